"""Configuration models for YAML-based hardening declarations."""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from fleet_hardener.engine.retry import RetryPolicy
from fleet_hardener.resources.base import Resource  # noqa: TC001
from fleet_hardener.resources.firewall import (
    FIREWALL_PACKAGE,
    FirewallDefaultPolicyResource,
    FirewallEnabledResource,
    FirewallRuleResource,
)
from fleet_hardener.resources.package import PackageResource
from fleet_hardener.resources.service import ServiceResource
from fleet_hardener.resources.sshd import SSHDirectiveResource
from fleet_hardener.resources.user import UserAccountResource


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


def _str_to_package(v: Any) -> Any:
    return {"package": v} if isinstance(v, str) else v


def _slug(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_\-]", "_", value)


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RunSettings(_Section):
    """Run-wide knobs: fan-out, timeouts and retries."""

    workers: int = Field(default=4, ge=1)
    probe_concurrency: int = Field(default=4, ge=1)
    command_timeout: float = Field(default=60.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    strict_host_keys: bool = True
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class PackageSpec(_Section):
    package: str
    depends_on: list[str] = []


class PortSpec(_Section):
    port: int = Field(ge=1, le=65535)
    protocol: Literal["tcp", "udp", "any"] = "tcp"
    action: Literal["allow", "deny"] = "allow"
    name: str | None = None
    depends_on: list[str] = []


class FirewallSection(_Section):
    enabled: bool = True
    defaults: Annotated[
        dict[Literal["incoming", "outgoing", "routed"], Literal["allow", "deny", "reject"]],
        BeforeValidator(_none_to_dict),
    ] = {}
    rules: Annotated[list[PortSpec], BeforeValidator(_none_to_list)] = []


class UserSpec(_Section):
    username: str
    groups: list[str] = []
    shell: str = "/bin/bash"
    authorized_keys: list[str] = []
    depends_on: list[str] = []


class SSHDSection(_Section):
    service: str = "ssh"
    package: str = "openssh-server"
    directives: Annotated[dict[str, str | int | bool], BeforeValidator(_none_to_dict)] = {}


class ServiceSpec(_Section):
    service: str
    package: str | None = None
    enabled: bool = True
    running: bool = True
    restart_on: list[str] = []
    depends_on: list[str] = []


class GroupConfig(_Section):
    """Desired posture for one inventory group."""

    packages: Annotated[
        list[Annotated[PackageSpec, BeforeValidator(_str_to_package)]],
        BeforeValidator(_none_to_list),
    ] = []
    firewall: FirewallSection | None = None
    users: Annotated[list[UserSpec], BeforeValidator(_none_to_list)] = []
    sshd: SSHDSection | None = None
    services: Annotated[list[ServiceSpec], BeforeValidator(_none_to_list)] = []

    def resources(self) -> list[Resource]:
        """Expand the group's sections into resources, in declaration order."""
        resources: list[Resource] = [
            PackageResource(name=_slug(p.package), package=p.package, depends_on=p.depends_on)
            for p in self.packages
        ]

        if self.firewall is not None:
            resources.extend(
                FirewallDefaultPolicyResource(name=direction, direction=direction, policy=policy)
                for direction, policy in self.firewall.defaults.items()
            )
            resources.extend(
                FirewallRuleResource(
                    name=r.name or f"{r.port}_{r.protocol}",
                    port=r.port,
                    protocol=r.protocol,
                    action=r.action,
                    depends_on=r.depends_on,
                )
                for r in self.firewall.rules
            )
            resources.append(
                FirewallEnabledResource(name=FIREWALL_PACKAGE, enabled=self.firewall.enabled)
            )

        resources.extend(
            UserAccountResource(
                name=u.username,
                username=u.username,
                groups=u.groups,
                shell=u.shell,
                authorized_keys=u.authorized_keys,
                depends_on=u.depends_on,
            )
            for u in self.users
        )

        services = [
            ServiceResource(
                name=_slug(s.service),
                service=s.service,
                package=s.package,
                enabled=s.enabled,
                running=s.running,
                restart_on=s.restart_on,
                depends_on=s.depends_on,
            )
            for s in self.services
        ]

        if self.sshd is not None and self.sshd.directives:
            directives = [
                SSHDirectiveResource(name=_slug(key), directive=key, value=value)
                for key, value in self.sshd.directives.items()
            ]
            resources.extend(directives)
            watched = [d.address for d in directives]
            idx = next(
                (i for i, s in enumerate(services) if s.service == self.sshd.service), None
            )
            if idx is not None:
                existing = services[idx]
                services[idx] = existing.model_copy(
                    update={"restart_on": [*existing.restart_on, *watched]}
                )
            else:
                services.insert(
                    0,
                    ServiceResource(
                        name=_slug(self.sshd.service),
                        service=self.sshd.service,
                        package=self.sshd.package,
                        restart_on=watched,
                    ),
                )

        resources.extend(services)
        return resources


class Config(BaseModel):
    """Hardening configuration, validated directly from YAML."""

    model_config = ConfigDict(extra="forbid")

    settings: RunSettings = Field(default_factory=RunSettings)
    groups: Annotated[
        dict[str, Annotated[GroupConfig, BeforeValidator(_none_to_dict)]],
        BeforeValidator(_none_to_dict),
    ] = {}

    def group_config(self, group: str) -> GroupConfig | None:
        """The posture for *group*, falling back to an ``all`` group."""
        return self.groups.get(group) or self.groups.get("all")
