"""Dependency & safety orderer.

Orders a plan so that access-preserving changes land before access-restricting
ones, and rejects plans that would lock the operator out. Besides the
user-declared ``depends_on`` edges, the orderer adds:

- implicit edges: firewall resources need the ufw package, services need the
  package that ships them and everything they watch;
- safety edges: key-bearing users and the management-port rule precede any
  directive that disables password or root login; firewall rules precede
  enabling the firewall; a deny-incoming default precedes opening extra ports,
  and follows the management-port rule once the firewall is enforcing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fleet_hardener.engine.errors import SafetyError
from fleet_hardener.engine.graph import DependencyGraph
from fleet_hardener.engine.types import Action
from fleet_hardener.resources.firewall import (
    FirewallDefaultPolicyResource,
    FirewallEnabledResource,
    FirewallResource,
    FirewallRuleResource,
)
from fleet_hardener.resources.package import PackageResource
from fleet_hardener.resources.service import ServiceResource
from fleet_hardener.resources.sshd import SSHDirectiveResource
from fleet_hardener.resources.user import UserAccountResource

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fleet_hardener.engine.types import Plan, ResourceChange
    from fleet_hardener.resources.base import Resource

logger = logging.getLogger(__name__)


def _restricts_access(r: Resource) -> bool:
    return isinstance(r, SSHDirectiveResource) and (
        r.revokes_password_login or r.revokes_root_login
    )


def _access_port(r: SSHDirectiveResource, management_port: int) -> int:
    return int(r.value) if r.moves_port else management_port


def _of_type(resources: Sequence[Resource], cls: type) -> list:
    return [r for r in resources if isinstance(r, cls)]


def implicit_edges(resources: Sequence[Resource]) -> dict[str, set[str]]:
    """Edges implied by the resource model itself."""
    packages: dict[str, list[str]] = {}
    for p in _of_type(resources, PackageResource):
        packages.setdefault(p.package, []).append(p.address)

    edges: dict[str, set[str]] = {r.address: set(r.reference_addresses()) for r in resources}
    for r in resources:
        if isinstance(r, FirewallResource):
            edges[r.address].update(packages.get(r.requires_package, []))
        elif isinstance(r, ServiceResource):
            edges[r.address].update(packages.get(r.provided_by, []))
    return edges


def safety_edges(
    resources: Sequence[Resource], management_port: int, *, firewall_active: bool = False
) -> dict[str, set[str]]:
    """Ordering constraints that keep the management path open.

    With *firewall_active*, ufw applies a new default policy immediately, so a
    deny-incoming default must wait for the rule admitting the management port.
    """
    users = [u.address for u in _of_type(resources, UserAccountResource) if u.has_key]
    rules: list[FirewallRuleResource] = _of_type(resources, FirewallRuleResource)
    firewall_declared = any(isinstance(r, FirewallResource) for r in resources)
    deny_incoming = [
        d.address
        for d in _of_type(resources, FirewallDefaultPolicyResource)
        if d.direction == "incoming" and d.policy != "allow"
    ]

    edges: dict[str, set[str]] = {r.address: set() for r in resources}
    for r in resources:
        if isinstance(r, SSHDirectiveResource):
            if _restricts_access(r):
                edges[r.address].update(users)
            if firewall_declared and (_restricts_access(r) or r.moves_port):
                port = _access_port(r, management_port)
                edges[r.address].update(x.address for x in rules if x.admits(port))
        elif isinstance(r, FirewallEnabledResource):
            # Rules must exist before the firewall starts enforcing anything.
            edges[r.address].update(x.address for x in rules)
        elif isinstance(r, FirewallRuleResource) and r.port != management_port:
            edges[r.address].update(deny_incoming)
        elif firewall_active and r.address in deny_incoming:
            edges[r.address].update(x.address for x in rules if x.admits(management_port))
    return edges


def dependency_map(
    resources: Sequence[Resource], management_port: int, *, firewall_active: bool = False
) -> dict[str, list[str]]:
    """All edges: declared ``depends_on``, implicit and safety."""
    implicit = implicit_edges(resources)
    safety = safety_edges(resources, management_port, firewall_active=firewall_active)
    return {
        r.address: sorted({*r.depends_on, *implicit[r.address], *safety[r.address]})
        for r in resources
    }


def build_graph(
    resources: Sequence[Resource], management_port: int, *, firewall_active: bool = False
) -> DependencyGraph:
    return DependencyGraph(
        [r.address for r in resources],
        dependency_map(resources, management_port, firewall_active=firewall_active),
        priorities={r.address: r.plan_priority for r in resources},
    )


class _AccessCheck:
    """Positions of every resource, for "is X in place before Y" queries."""

    def __init__(self, plan: Plan, ordered: Sequence[ResourceChange]) -> None:
        self._position = {
            c.address: i for i, c in enumerate(ordered) if c.action != Action.RESTART
        }
        # Resources already converged are in place; unknown ones block their
        # dependents at execution, so they count as scheduled first.
        self._settled = {c.address for c in plan.noops} | {
            f.address for f in plan.probe_failures
        }

    def in_place_before(self, address: str, index: int) -> bool:
        if address in self._settled:
            return True
        pos = self._position.get(address)
        return pos is not None and pos < index


def firewall_active(plan: Plan, resources: Sequence[Resource]) -> bool:
    """True if ufw may already be enforcing before any change in *plan* runs."""
    settled = {c.address for c in plan.noops} | {f.address for f in plan.probe_failures}
    return any(
        fw.enabled and fw.address in settled
        for fw in _of_type(resources, FirewallEnabledResource)
    )


def check_access(
    plan: Plan,
    ordered: Sequence[ResourceChange],
    resources: Sequence[Resource],
    management_port: int,
) -> list[str]:
    """Return access-preservation violations for an ordered change list."""
    check = _AccessCheck(plan, ordered)
    by_addr = {r.address: r for r in resources}
    users = [u for u in _of_type(resources, UserAccountResource) if u.has_key]
    rules: list[FirewallRuleResource] = _of_type(resources, FirewallRuleResource)
    firewalls: list[FirewallEnabledResource] = _of_type(resources, FirewallEnabledResource)
    firewall_declared = any(isinstance(r, FirewallResource) for r in resources)

    def rule_in_place(port: int, index: int) -> bool:
        return any(r.admits(port) and check.in_place_before(r.address, index) for r in rules)

    def enforcing_before(index: int) -> bool:
        return any(fw.enabled and check.in_place_before(fw.address, index) for fw in firewalls)

    violations: list[str] = []
    for i, change in enumerate(ordered):
        r = by_addr[change.address]
        if isinstance(r, SSHDirectiveResource):
            if _restricts_access(r) and not any(check.in_place_before(u.address, i) for u in users):
                violations.append(
                    f"{r.address} sets {r.directive} {r.value} but no user account with an "
                    "authorized key is in place before it"
                )
            if firewall_declared and (_restricts_access(r) or r.moves_port):
                port = _access_port(r, management_port)
                if not rule_in_place(port, i):
                    violations.append(
                        f"{r.address} sets {r.directive} {r.value} but no firewall rule "
                        f"allowing port {port}/tcp is in place before it"
                    )
        elif isinstance(r, FirewallEnabledResource) and r.enabled:
            if not rule_in_place(management_port, i):
                violations.append(
                    f"{r.address} enables the firewall before a rule allowing management "
                    f"port {management_port}/tcp is in place"
                )
        elif (
            isinstance(r, FirewallDefaultPolicyResource)
            and r.direction == "incoming"
            and r.policy != "allow"
            and enforcing_before(i)
            and not rule_in_place(management_port, i)
        ):
            violations.append(
                f"{r.address} sets the default incoming policy to {r.policy} on an active "
                f"firewall before a rule allowing management port {management_port}/tcp "
                "is in place"
            )
        elif (
            isinstance(r, FirewallRuleResource)
            and r.port == management_port
            and r.protocol in ("tcp", "any")
            and r.action != "allow"
        ):
            violations.append(f"{r.address} would deny management port {management_port}")
    return violations


def order(plan: Plan, resources: Sequence[Resource], management_port: int) -> Plan:
    """Return *plan* with changes in safe execution order, or raise ``SafetyError``."""
    graph = build_graph(
        resources, management_port, firewall_active=firewall_active(plan, resources)
    )
    topo = graph.topological_order()
    position = {addr: i for i, addr in enumerate(topo)}

    regular = [c for c in plan.changes if c.action != Action.RESTART]
    restarts = [c for c in plan.changes if c.action == Action.RESTART]
    ordered = sorted(regular, key=lambda c: position[c.address])
    ordered.extend(sorted(restarts, key=lambda c: position[c.address]))

    violations = check_access(plan, ordered, resources, management_port)
    if violations:
        raise SafetyError(plan.metadata.host, violations)

    logger.debug("Ordered %d actions for %s", len(ordered), plan.metadata.host)
    return plan.model_copy(update={"changes": ordered, "dependencies": graph.dependency_map()})
