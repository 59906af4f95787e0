"""Tests for declaration-level validation (before any host is contacted)."""

from __future__ import annotations

import pytest

from fleet_hardener.config.registry import default_registry
from fleet_hardener.engine import validate_declaration
from fleet_hardener.engine.errors import ConfigValidationError, DependencyCycleError
from fleet_hardener.resources import (
    FirewallRuleResource,
    PackageResource,
    ServiceResource,
    SSHDirectiveResource,
    UserAccountResource,
    validate_resources,
)

OPS_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOps ops@example"


class TestValidateResources:
    def test_valid_set(self) -> None:
        resources = [
            PackageResource(name="ufw", package="ufw"),
            FirewallRuleResource(name="ssh", port=22, depends_on=["package.ufw"]),
        ]
        assert validate_resources(resources) == []

    def test_duplicate_address(self) -> None:
        resources = [
            PackageResource(name="ufw", package="ufw"),
            PackageResource(name="ufw", package="ufw"),
        ]
        assert "Duplicate resource address: package.ufw" in validate_resources(resources)

    def test_unknown_dependency(self) -> None:
        resources = [PackageResource(name="ufw", package="ufw", depends_on=["package.nope"])]
        errors = validate_resources(resources)
        assert errors == ["Resource 'package.ufw' depends on unknown address 'package.nope'"]

    def test_self_dependency(self) -> None:
        resources = [PackageResource(name="ufw", package="ufw", depends_on=["package.ufw"])]
        assert validate_resources(resources) == ["Resource 'package.ufw' depends on itself"]

    def test_unknown_restart_trigger(self) -> None:
        resources = [ServiceResource(name="ssh", service="ssh", restart_on=["sshd_directive.X"])]
        errors = validate_resources(resources)
        assert errors == ["Resource 'service.ssh' references unknown address 'sshd_directive.X'"]

    def test_contradictory_desired_values(self) -> None:
        resources = [
            SSHDirectiveResource(name="a", directive="PermitRootLogin", value="no"),
            SSHDirectiveResource(name="b", directive="permitrootlogin", value="yes"),
        ]
        errors = validate_resources(resources)
        assert len(errors) == 1
        assert "Contradictory desired values for PermitRootLogin" in errors[0]

    def test_same_object_same_value_is_not_a_contradiction(self) -> None:
        resources = [
            FirewallRuleResource(name="ssh", port=22),
            FirewallRuleResource(name="ssh_again", port=22),
        ]
        assert validate_resources(resources) == []


class TestValidateDeclaration:
    def test_errors_raise(self) -> None:
        resources = [PackageResource(name="ufw", package="ufw", depends_on=["package.nope"])]
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_declaration(resources, default_registry())
        assert len(exc_info.value.errors) == 1

    def test_declared_cycle(self) -> None:
        resources = [
            PackageResource(name="a", package="a", depends_on=["package.b"]),
            PackageResource(name="b", package="b", depends_on=["package.a"]),
        ]
        with pytest.raises(DependencyCycleError):
            validate_declaration(resources, default_registry())

    def test_cycle_through_safety_edge(self) -> None:
        """A user that waits for the directive it must precede can never be ordered."""
        resources = [
            SSHDirectiveResource(name="pw", directive="PasswordAuthentication", value="no"),
            UserAccountResource(
                name="ops",
                username="ops",
                authorized_keys=[OPS_KEY],
                depends_on=["sshd_directive.pw"],
            ),
        ]
        with pytest.raises(DependencyCycleError):
            validate_declaration(resources, default_registry())
