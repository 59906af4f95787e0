"""Firewall (ufw) resource models."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from fleet_hardener.resources.base import Resource

FIREWALL_PACKAGE = "ufw"


class FirewallResource(Resource):
    """Base for resources managed through ufw."""

    resource_type: ClassVar[str] = "firewall_base"
    requires_package: ClassVar[str] = FIREWALL_PACKAGE


class FirewallDefaultPolicyResource(FirewallResource):
    """Default policy for one traffic direction."""

    resource_type: ClassVar[str] = "firewall_default"
    plan_priority: ClassVar[int] = 10

    direction: Literal["incoming", "outgoing", "routed"]
    policy: Literal["allow", "deny", "reject"]

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type, self.direction)


class FirewallRuleResource(FirewallResource):
    """A single port rule (``ufw allow 22/tcp``)."""

    resource_type: ClassVar[str] = "firewall_rule"
    plan_priority: ClassVar[int] = 20

    port: int = Field(ge=1, le=65535)
    protocol: Literal["tcp", "udp", "any"] = "tcp"
    action: Literal["allow", "deny"] = "allow"

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type, str(self.port), self.protocol)

    def admits(self, port: int) -> bool:
        """True if this rule lets inbound TCP traffic reach *port*."""
        return self.action == "allow" and self.port == port and self.protocol in ("tcp", "any")

    @property
    def spec(self) -> str:
        """ufw port spec, e.g. ``22/tcp`` (bare port for ``any``)."""
        return str(self.port) if self.protocol == "any" else f"{self.port}/{self.protocol}"


class FirewallEnabledResource(FirewallResource):
    """Whether the firewall itself is active."""

    resource_type: ClassVar[str] = "firewall"
    plan_priority: ClassVar[int] = 30
    flag_field: ClassVar[str | None] = "enabled"

    enabled: bool = True

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type,)
