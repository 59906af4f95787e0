"""Tests for dependency edges, safe ordering and access-preservation checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fleet_hardener.engine import planner, safety
from fleet_hardener.engine.errors import SafetyError
from fleet_hardener.engine.types import Action, CurrentState, PlanMetadata
from fleet_hardener.resources import (
    FirewallDefaultPolicyResource,
    FirewallEnabledResource,
    FirewallRuleResource,
    PackageResource,
    ServiceResource,
    SSHDirectiveResource,
    UserAccountResource,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fleet_hardener.engine.types import Plan
    from fleet_hardener.resources.base import Resource

OPS_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOps ops@example"


def _plan(
    resources: Sequence[Resource],
    current: dict[str, CurrentState] | None = None,
    *,
    port: int = 22,
) -> Plan:
    """Plan against a host where every resource is absent unless given."""
    states = {r.address: CurrentState.absent() for r in resources}
    states.update(current or {})
    meta = PlanMetadata(
        host="web1", management_port=port, config_digest="cdigest", engine_version="0.1.0"
    )
    draft = planner.plan(resources, states, meta)
    return safety.order(draft, resources, port)


def _order(plan: Plan) -> list[str]:
    return [c.key for c in plan.changes]


def _ops_user(**kwargs: object) -> UserAccountResource:
    return UserAccountResource(
        name="ops", username="ops", groups=["sudo"], authorized_keys=[OPS_KEY], **kwargs
    )


def _lockdown() -> SSHDirectiveResource:
    return SSHDirectiveResource(name="pw", directive="PasswordAuthentication", value="no")


class TestEdges:
    def test_implicit_package_edges(self) -> None:
        resources = [
            PackageResource(name="ufw", package="ufw"),
            PackageResource(name="fail2ban", package="fail2ban"),
            FirewallRuleResource(name="ssh", port=22),
            ServiceResource(name="fail2ban", service="fail2ban"),
        ]
        edges = safety.implicit_edges(resources)
        assert edges["firewall_rule.ssh"] == {"package.ufw"}
        assert edges["service.fail2ban"] == {"package.fail2ban"}

    def test_safety_edges(self) -> None:
        resources = [
            FirewallDefaultPolicyResource(name="incoming", direction="incoming", policy="deny"),
            FirewallRuleResource(name="ssh", port=22),
            FirewallRuleResource(name="https", port=443),
            FirewallEnabledResource(name="ufw"),
            _ops_user(),
            _lockdown(),
        ]
        edges = safety.safety_edges(resources, 22)
        assert edges["sshd_directive.pw"] == {"user.ops", "firewall_rule.ssh"}
        assert edges["firewall.ufw"] == {"firewall_rule.ssh", "firewall_rule.https"}
        assert edges["firewall_rule.https"] == {"firewall_default.incoming"}
        assert edges["firewall_rule.ssh"] == set()

    def test_active_firewall_puts_management_rule_before_deny_default(self) -> None:
        resources = [
            FirewallDefaultPolicyResource(name="incoming", direction="incoming", policy="deny"),
            FirewallRuleResource(name="ssh", port=22),
            FirewallRuleResource(name="https", port=443),
        ]
        edges = safety.safety_edges(resources, 22, firewall_active=True)
        assert edges["firewall_default.incoming"] == {"firewall_rule.ssh"}
        assert edges["firewall_rule.https"] == {"firewall_default.incoming"}
        assert safety.safety_edges(resources, 22)["firewall_default.incoming"] == set()


class TestOrdering:
    def test_user_precedes_lockdown_even_when_declared_after(self) -> None:
        plan = _plan([_lockdown(), _ops_user()])
        assert _order(plan) == ["user.ops", "sshd_directive.pw"]

    def test_full_posture_order(self) -> None:
        resources = [
            _lockdown(),
            SSHDirectiveResource(name="root", directive="PermitRootLogin", value="no"),
            ServiceResource(
                name="ssh",
                service="ssh",
                restart_on=["sshd_directive.pw", "sshd_directive.root"],
            ),
            FirewallEnabledResource(name="ufw"),
            FirewallRuleResource(name="ssh", port=22),
            FirewallDefaultPolicyResource(name="incoming", direction="incoming", policy="deny"),
            _ops_user(),
            PackageResource(name="ufw", package="ufw"),
        ]
        running = CurrentState.present({"service": "ssh", "enabled": True, "running": True})
        plan = _plan(resources, {"service.ssh": running})
        assert _order(plan) == [
            "package.ufw",
            "firewall_default.incoming",
            "firewall_rule.ssh",
            "firewall.ufw",
            "user.ops",
            "sshd_directive.pw",
            "sshd_directive.root",
            "service.ssh#restart",
        ]
        # Every restrictive change comes after the access path it relies on.
        order = _order(plan)
        assert order.index("user.ops") < order.index("sshd_directive.pw")
        assert order.index("firewall_rule.ssh") < order.index("firewall.ufw")

    def test_ordering_is_deterministic(self) -> None:
        resources = [
            FirewallRuleResource(name="https", port=443),
            FirewallRuleResource(name="ssh", port=22),
            FirewallRuleResource(name="http", port=80),
            FirewallEnabledResource(name="ufw"),
        ]
        first = _order(_plan(resources))
        for _ in range(5):
            assert _order(_plan(resources)) == first
        assert first == [
            "firewall_rule.https",
            "firewall_rule.ssh",
            "firewall_rule.http",
            "firewall.ufw",
        ]

    def test_plan_carries_dependency_map(self) -> None:
        plan = _plan([_lockdown(), _ops_user()])
        assert plan.dependencies["sshd_directive.pw"] == ["user.ops"]
        assert plan.dependencies["user.ops"] == []


class TestAccessChecks:
    def test_lockdown_without_keyed_user_is_rejected(self) -> None:
        with pytest.raises(SafetyError) as exc_info:
            _plan([_lockdown()])
        assert exc_info.value.host == "web1"
        assert "no user account with an authorized key" in exc_info.value.violations[0]

    def test_user_without_key_does_not_count(self) -> None:
        with pytest.raises(SafetyError):
            _plan([_lockdown(), UserAccountResource(name="ops", username="ops")])

    def test_converged_user_counts_as_in_place(self) -> None:
        user = _ops_user()
        converged = CurrentState.present(
            {
                "username": "ops",
                "groups": ["ops", "sudo"],
                "shell": "/bin/bash",
                "authorized_keys": [OPS_KEY],
            }
        )
        plan = _plan([_lockdown(), user], {"user.ops": converged})
        assert _order(plan) == ["sshd_directive.pw"]

    def test_enabling_firewall_without_management_rule_is_rejected(self) -> None:
        resources = [
            FirewallRuleResource(name="https", port=443),
            FirewallEnabledResource(name="ufw"),
        ]
        with pytest.raises(SafetyError, match="enables the firewall"):
            _plan(resources)

    def test_management_rule_uses_host_port(self) -> None:
        resources = [
            FirewallRuleResource(name="ssh", port=22),
            FirewallEnabledResource(name="ufw"),
        ]
        with pytest.raises(SafetyError, match="2222"):
            _plan(resources, port=2222)

    def test_deny_on_management_port_is_rejected(self) -> None:
        resources = [FirewallRuleResource(name="ssh", port=22, action="deny")]
        with pytest.raises(SafetyError, match="would deny management port 22"):
            _plan(resources)

    def test_lockdown_needs_firewall_rule_when_firewall_declared(self) -> None:
        resources = [_ops_user(), _lockdown(), FirewallRuleResource(name="https", port=443)]
        with pytest.raises(SafetyError, match="allowing port 22/tcp"):
            _plan(resources)

    def test_port_move_needs_rule_for_new_port(self) -> None:
        resources = [
            FirewallRuleResource(name="ssh", port=22),
            SSHDirectiveResource(name="port", directive="Port", value="2222"),
        ]
        with pytest.raises(SafetyError, match="allowing port 2222/tcp"):
            _plan(resources)

        resources.append(FirewallRuleResource(name="ssh_new", port=2222))
        assert _order(_plan(resources))[-1] == "sshd_directive.port"

    def test_probe_failure_counts_as_scheduled(self) -> None:
        plan = _plan(
            [_lockdown(), _ops_user()],
            {"user.ops": CurrentState.unknown("Probe failed for user.ops: timeout")},
        )
        assert _order(plan) == ["sshd_directive.pw"]
        assert [f.address for f in plan.probe_failures] == ["user.ops"]
        assert plan.dependencies["sshd_directive.pw"] == ["user.ops"]

    def test_relaxing_directive_needs_nothing(self) -> None:
        plan = _plan(
            [SSHDirectiveResource(name="pw", directive="PasswordAuthentication", value="yes")]
        )
        assert [c.action for c in plan.changes] == [Action.CREATE]


_UFW_ACTIVE = CurrentState.present({"enabled": True})
_DEFAULT_ALLOW = CurrentState.present({"direction": "incoming", "policy": "allow"})


class TestDefaultPolicyOnActiveFirewall:
    def _resources(self, *rules: FirewallRuleResource) -> list[Resource]:
        return [
            FirewallDefaultPolicyResource(name="incoming", direction="incoming", policy="deny"),
            *rules,
            FirewallEnabledResource(name="ufw"),
        ]

    def test_management_rule_lands_before_deny_default(self) -> None:
        resources = self._resources(FirewallRuleResource(name="ssh", port=22))
        plan = _plan(
            resources,
            {"firewall.ufw": _UFW_ACTIVE, "firewall_default.incoming": _DEFAULT_ALLOW},
        )
        assert _order(plan) == ["firewall_rule.ssh", "firewall_default.incoming"]
        assert plan.dependencies["firewall_default.incoming"] == ["firewall_rule.ssh"]

    def test_inactive_firewall_keeps_defaults_first(self) -> None:
        resources = self._resources(FirewallRuleResource(name="ssh", port=22))
        plan = _plan(
            resources,
            {
                "firewall.ufw": CurrentState.present({"enabled": False}),
                "firewall_default.incoming": _DEFAULT_ALLOW,
            },
        )
        assert _order(plan) == [
            "firewall_default.incoming",
            "firewall_rule.ssh",
            "firewall.ufw",
        ]

    def test_deny_default_without_management_rule_is_rejected(self) -> None:
        resources = self._resources(FirewallRuleResource(name="https", port=443))
        with pytest.raises(SafetyError, match="default incoming policy to deny on an active"):
            _plan(
                resources,
                {"firewall.ufw": _UFW_ACTIVE, "firewall_default.incoming": _DEFAULT_ALLOW},
            )

    def test_converged_management_rule_counts_as_in_place(self) -> None:
        resources = self._resources(FirewallRuleResource(name="ssh", port=22))
        existing = CurrentState.present({"port": 22, "protocol": "tcp", "action": "allow"})
        plan = _plan(
            resources,
            {
                "firewall.ufw": _UFW_ACTIVE,
                "firewall_default.incoming": _DEFAULT_ALLOW,
                "firewall_rule.ssh": existing,
            },
        )
        assert _order(plan) == ["firewall_default.incoming"]

    def test_unknown_firewall_state_is_treated_as_active(self) -> None:
        resources = self._resources(FirewallRuleResource(name="ssh", port=22))
        plan = _plan(
            resources,
            {
                "firewall.ufw": CurrentState.unknown("ufw status timed out"),
                "firewall_default.incoming": _DEFAULT_ALLOW,
            },
        )
        assert _order(plan) == ["firewall_rule.ssh", "firewall_default.incoming"]
