"""Default resource type registry factory."""

from __future__ import annotations

from fleet_hardener.engine.firewall_handler import (
    FirewallDefaultPolicyHandler,
    FirewallEnabledHandler,
    FirewallRuleHandler,
)
from fleet_hardener.engine.package_handler import PackageHandler
from fleet_hardener.engine.registry import ResourceTypeRegistry
from fleet_hardener.engine.service_handler import ServiceHandler
from fleet_hardener.engine.sshd_handler import SSHDirectiveHandler
from fleet_hardener.engine.user_handler import UserAccountHandler
from fleet_hardener.resources.firewall import (
    FirewallDefaultPolicyResource,
    FirewallEnabledResource,
    FirewallRuleResource,
)
from fleet_hardener.resources.package import PackageResource
from fleet_hardener.resources.service import ServiceResource
from fleet_hardener.resources.sshd import SSHDirectiveResource
from fleet_hardener.resources.user import UserAccountResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()

    registry.register(PackageResource, PackageHandler())
    registry.register(FirewallDefaultPolicyResource, FirewallDefaultPolicyHandler())
    registry.register(FirewallRuleResource, FirewallRuleHandler())
    registry.register(FirewallEnabledResource, FirewallEnabledHandler())
    registry.register(UserAccountResource, UserAccountHandler())
    registry.register(SSHDirectiveResource, SSHDirectiveHandler())
    registry.register(ServiceResource, ServiceHandler())

    return registry
