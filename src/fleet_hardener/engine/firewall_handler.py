"""Firewall handlers implementing probe/converge via ufw."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.errors import ProbeError
from fleet_hardener.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from fleet_hardener.engine.handlers import EngineContext
    from fleet_hardener.resources.firewall import (
        FirewallDefaultPolicyResource,
        FirewallEnabledResource,
        FirewallRuleResource,
    )

logger = logging.getLogger(__name__)

UFW_DEFAULTS = "/etc/default/ufw"
UFW_USER_RULES = "/etc/ufw/user.rules"

_POLICY_KEYS = {
    "incoming": "DEFAULT_INPUT_POLICY",
    "outgoing": "DEFAULT_OUTPUT_POLICY",
    "routed": "DEFAULT_FORWARD_POLICY",
}
_POLICY_VALUES = {"ACCEPT": "allow", "DROP": "deny", "REJECT": "reject"}

# ### tuple ### allow tcp 22 0.0.0.0/0 any 0.0.0.0/0 in
_TUPLE_RE = re.compile(
    r"^### tuple ### (?P<action>allow|deny|reject|limit)(?:_log(?:-all)?)? "
    r"(?P<proto>\w+) (?P<dport>\S+) (?P<dst>\S+) (?P<sport>\S+) (?P<src>\S+)"
    r"(?: .*)? (?P<direction>in|out)$"
)
_ANYWHERE = {"0.0.0.0/0", "::/0"}


def parse_default_policies(text: str) -> dict[str, str]:
    """Map ``incoming``/``outgoing``/``routed`` to ufw's configured default policy."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, raw = line.strip().partition("=")
        if not sep:
            continue
        for direction, policy_key in _POLICY_KEYS.items():
            if key == policy_key:
                values[direction] = _POLICY_VALUES.get(raw.strip().strip('"').upper(), raw)
    return values


def parse_user_rules(text: str) -> list[dict[str, Any]]:
    """Parse inbound, unrestricted-source rules from ufw's ``user.rules``."""
    rules: list[dict[str, Any]] = []
    for line in text.splitlines():
        m = _TUPLE_RE.match(line.strip())
        if m is None or m["direction"] != "in":
            continue
        if m["src"] not in _ANYWHERE or m["dst"] not in _ANYWHERE or not m["dport"].isdigit():
            continue
        rules.append({"port": int(m["dport"]), "protocol": m["proto"], "action": m["action"]})
    return rules


class FirewallDefaultPolicyHandler(ResourceHandler["FirewallDefaultPolicyResource"]):
    """``ufw default <policy> <direction>``."""

    def read(
        self, ctx: EngineContext, desired: FirewallDefaultPolicyResource
    ) -> dict[str, Any] | None:
        result = ctx.run(f"cat {UFW_DEFAULTS}", check=False)
        if result.exit_code != 0:
            return None
        policies = parse_default_policies(result.stdout)
        if desired.direction not in policies:
            raise ProbeError(
                desired.address, f"{_POLICY_KEYS[desired.direction]} missing from {UFW_DEFAULTS}"
            )
        return {"direction": desired.direction, "policy": policies[desired.direction]}

    def create(self, ctx: EngineContext, desired: FirewallDefaultPolicyResource) -> bool:
        ctx.run(f"ufw default {desired.policy} {desired.direction}")
        return True


class FirewallRuleHandler(ResourceHandler["FirewallRuleResource"]):
    """``ufw allow|deny <port>/<proto>``; ufw replaces a same-port rule in place."""

    def read(self, ctx: EngineContext, desired: FirewallRuleResource) -> dict[str, Any] | None:
        result = ctx.run(f"cat {UFW_USER_RULES}", check=False)
        if result.exit_code != 0:
            return None
        for rule in parse_user_rules(result.stdout):
            if rule["port"] == desired.port and rule["protocol"] == desired.protocol:
                return rule
        return None

    def create(self, ctx: EngineContext, desired: FirewallRuleResource) -> bool:
        result = ctx.run(f"ufw {desired.action} {desired.spec}")
        return "Skipping" not in result.stdout


class FirewallEnabledHandler(ResourceHandler["FirewallEnabledResource"]):
    """``ufw --force enable`` / ``ufw disable``."""

    def read(self, ctx: EngineContext, desired: FirewallEnabledResource) -> dict[str, Any] | None:
        result = ctx.run("ufw status", check=False)
        if result.exit_code == 127:
            return None
        first = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
        if first == "Status: active":
            return {"enabled": True}
        if first == "Status: inactive":
            return {"enabled": False}
        raise ProbeError(desired.address, f"unexpected `ufw status` output: {first!r}")

    def create(self, ctx: EngineContext, desired: FirewallEnabledResource) -> bool:
        ctx.run("ufw --force enable" if desired.enabled else "ufw disable")
        logger.info("%s: firewall %s", ctx.host, "enabled" if desired.enabled else "disabled")
        return True
