"""Diff planner: desired resources vs probed state -> minimal actions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.types import (
    Action,
    Plan,
    PlanMetadata,
    ProbeFailure,
    ProbeStatus,
    ResourceChange,
)
from fleet_hardener.resources.markers import CompareStrategy, collect_compare_strategies
from fleet_hardener.resources.service import ServiceResource

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from fleet_hardener.engine.types import CurrentState
    from fleet_hardener.resources.base import Resource

logger = logging.getLogger(__name__)


def values_differ(
    desired: Any,
    prior: Any,
    *,
    strategy: CompareStrategy | None = None,
) -> bool:
    """Check whether a desired value differs from the probed value.

    Comparison semantics depend on *strategy*:

    - ``strategy="set"``:
      - If both values are lists, they are compared as sets (order-insensitive).
      - Other types fall back to strict equality.
    - ``strategy="subset"``:
      - If both values are lists, every desired element must appear in prior.
      - Extra elements on the host are not a difference.
    - ``strategy="exact"``:
      - Values are compared with strict equality.
    - ``strategy="ignore"``:
      - Never a difference.
    - ``strategy=None`` or ``"partial"``:
      - For dict values, only keys present in *desired* are compared.
      - Non-dict values use strict equality.
    """
    if strategy == "ignore":
        return False

    if strategy == "set":
        if isinstance(desired, list) and isinstance(prior, list):
            return set(desired) != set(prior)
        return desired != prior

    if strategy == "subset":
        if isinstance(desired, list) and isinstance(prior, list):
            return not set(desired) <= set(prior)
        return desired != prior

    if strategy == "exact":
        return desired != prior

    if isinstance(desired, dict) and isinstance(prior, dict):
        return any(values_differ(v, prior.get(k), strategy="partial") for k, v in desired.items())
    return desired != prior


def _absent_action(resource: Resource, planned: dict[str, Any]) -> Action:
    if resource.flag_field is None:
        return Action.CREATE
    # Nothing to switch off on a host that doesn't have the thing at all.
    return Action.ENABLE if planned.get(resource.flag_field) else Action.NOOP


def classify_change(resource: Resource, current: CurrentState) -> ResourceChange:
    """Classify a single resource as CREATE, ENABLE, UPDATE, or NOOP."""
    desired = resource.model_dump(mode="json", exclude={"address"})
    planned = resource.state_attributes()

    if current.status == ProbeStatus.ABSENT:
        action = _absent_action(resource, planned)
        logger.debug("Classified %s as %s (absent)", resource.address, action.value)
        return ResourceChange(
            address=resource.address,
            resource_type=resource.resource_type,
            action=action,
            desired=desired,
            planned=planned,
        )

    prior = dict(current.attributes or {})
    strategies = collect_compare_strategies(resource)
    diff = {
        k: {"from": prior.get(k), "to": v}
        for k, v in planned.items()
        if values_differ(v, prior.get(k), strategy=strategies.get(k))
    }

    if not diff:
        action = Action.NOOP
    elif (
        resource.flag_field in diff
        and planned[resource.flag_field] is True
        and not prior.get(resource.flag_field)
    ):
        action = Action.ENABLE
    else:
        action = Action.UPDATE
    logger.debug("Classified %s as %s", resource.address, action.value)
    return ResourceChange(
        address=resource.address,
        resource_type=resource.resource_type,
        action=action,
        desired=desired,
        prior=prior,
        planned=planned,
        diff=diff or None,
    )


def plan_restarts(
    resources: Sequence[Resource],
    changes: Sequence[ResourceChange],
    current: Mapping[str, CurrentState],
) -> list[ResourceChange]:
    """One RESTART per running service whose watched resources change in this run.

    A service that is being started in this run already picks up the new
    configuration, so it never gets a restart.
    """
    changing = {c.address for c in changes if c.action != Action.NOOP}
    restarts: list[ResourceChange] = []
    for r in resources:
        if not isinstance(r, ServiceResource) or not r.running:
            continue
        triggers = [a for a in r.restart_on if a in changing]
        if not triggers:
            continue
        state = current[r.address]
        if state.status != ProbeStatus.PRESENT or not (state.attributes or {}).get("running"):
            continue
        logger.debug("Scheduling restart of %s (watched: %s)", r.address, ", ".join(triggers))
        restarts.append(
            ResourceChange(
                address=r.address,
                resource_type=r.resource_type,
                action=Action.RESTART,
                desired=r.model_dump(mode="json", exclude={"address"}),
                planned={"restart_on": triggers},
            )
        )
    return restarts


def plan(
    resources: Sequence[Resource],
    current: Mapping[str, CurrentState],
    metadata: PlanMetadata,
) -> Plan:
    """Diff every resource against its probed state. Changes stay in declaration order."""
    changes: list[ResourceChange] = []
    noops: list[ResourceChange] = []
    failures: list[ProbeFailure] = []

    for r in resources:
        state = current[r.address]
        if state.status == ProbeStatus.UNKNOWN:
            failures.append(
                ProbeFailure(
                    address=r.address,
                    resource_type=r.resource_type,
                    error=state.error or "unknown probe failure",
                )
            )
            continue
        change = classify_change(r, state)
        (noops if change.action == Action.NOOP else changes).append(change)

    changes.extend(plan_restarts(resources, changes, current))
    return Plan(metadata=metadata, changes=changes, noops=noops, probe_failures=failures)
