"""Declarable host posture resources."""

from fleet_hardener.resources.base import Resource
from fleet_hardener.resources.firewall import (
    FirewallDefaultPolicyResource,
    FirewallEnabledResource,
    FirewallResource,
    FirewallRuleResource,
)
from fleet_hardener.resources.package import PackageResource
from fleet_hardener.resources.service import ServiceResource
from fleet_hardener.resources.sshd import KNOWN_DIRECTIVES, SSHDirectiveResource
from fleet_hardener.resources.user import UserAccountResource
from fleet_hardener.resources.validation import validate_resources

__all__ = [
    "KNOWN_DIRECTIVES",
    "FirewallDefaultPolicyResource",
    "FirewallEnabledResource",
    "FirewallResource",
    "FirewallRuleResource",
    "PackageResource",
    "Resource",
    "SSHDirectiveResource",
    "ServiceResource",
    "UserAccountResource",
    "validate_resources",
]
