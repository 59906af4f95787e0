"""Host coordinator: Probe -> Plan -> Order -> Execute -> Notify for one host."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Literal

from fleet_hardener import __version__
from fleet_hardener.core.transport import TransportError
from fleet_hardener.engine import planner, safety
from fleet_hardener.engine.errors import ConfigValidationError, SafetyError
from fleet_hardener.engine.executor import Executor
from fleet_hardener.engine.handlers import EngineContext
from fleet_hardener.engine.notifier import ChangeNotifier
from fleet_hardener.engine.prober import StateProber
from fleet_hardener.engine.retry import RetryPolicy, call_with_retry
from fleet_hardener.engine.types import (
    Action,
    ActionResult,
    HostOutcome,
    HostReport,
    Outcome,
    PlanMetadata,
    ResourceChange,
)
from fleet_hardener.resources.service import ServiceResource
from fleet_hardener.resources.validation import validate_resources

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence

    from fleet_hardener.core.host import Host
    from fleet_hardener.core.transport import Transport
    from fleet_hardener.engine.registry import ResourceTypeRegistry
    from fleet_hardener.engine.types import CurrentState, Plan
    from fleet_hardener.resources.base import Resource


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_config_digest(resources: Sequence[Resource]) -> str:
    items = [
        {
            "address": r.address,
            "resource_type": r.resource_type,
            "desired": r.model_dump(mode="json", exclude={"address"}),
        }
        for r in resources
    ]
    items.sort(key=lambda x: x["address"])
    return _sha256_hex(_canonical_json(items))


def validate_declaration(
    resources: Sequence[Resource],
    registry: ResourceTypeRegistry,
    *,
    management_port: int = 22,
) -> None:
    """Reject an invalid declaration before any host is contacted.

    Raises:
        ConfigValidationError: On duplicate ids, dangling references,
            contradictory resources, handler-level errors or dependency cycles.
    """
    errors = validate_resources(resources)
    for r in resources:
        if r.resource_type not in registry:
            errors.append(f"{r.address}: no handler registered for '{r.resource_type}'")
            continue
        errors.extend(registry.handler_for(r).validate(r))
    if errors:
        raise ConfigValidationError(errors)
    # Raises DependencyCycleError (a ConfigValidationError) on cycles. The
    # active-firewall edges are a superset, so no host state can add a cycle.
    safety.build_graph(resources, management_port, firewall_active=True).topological_order()


class HostEngine:
    """Drives one host through probe, plan, order, execute and notify."""

    def __init__(
        self,
        *,
        transport: Transport,
        host: Host,
        registry: ResourceTypeRegistry,
        retry: RetryPolicy | None = None,
        probe_concurrency: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._host = host
        self._registry = registry
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._ctx = EngineContext(transport=transport, host=host)
        self._prober = StateProber(
            registry=registry, retry=self._retry, max_workers=probe_concurrency, sleep=sleep
        )
        self._executor = Executor(registry=registry, retry=self._retry, sleep=sleep)

    @property
    def host(self) -> Host:
        return self._host

    def check_reachable(self) -> None:
        """Open the connection once, with retries. Raises ``TransportError``."""
        call_with_retry(
            lambda: self._ctx.run("true"),
            self._retry,
            describe=f"{self._host}: connect",
            sleep=self._sleep,
        )

    def probe(self, resources: Sequence[Resource]) -> dict[str, CurrentState]:
        return self._prober.probe(self._ctx, resources)

    def plan(self, resources: Sequence[Resource]) -> Plan:
        """Probe the host and return an ordered, safety-checked plan.

        Raises:
            ConfigValidationError: If the declaration itself is invalid.
            SafetyError: If the changes would cut off administrative access.
        """
        port = self._host.management_port
        validate_declaration(resources, self._registry, management_port=port)
        current = self.probe(resources)
        metadata = PlanMetadata(
            host=self._host.name,
            management_port=port,
            config_digest=compute_config_digest(resources),
            engine_version=__version__,
        )
        draft = planner.plan(resources, current, metadata)
        ordered = safety.order(draft, resources, port)
        logger.info(
            "%s: %d action(s), %d up-to-date, %d probe failure(s)",
            self._host,
            len(ordered.changes),
            len(ordered.noops),
            len(ordered.probe_failures),
        )
        return ordered

    def apply(
        self,
        plan: Plan,
        resources: Sequence[Resource],
        *,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ActionResult]:
        """Execute an ordered plan; failures only stop their dependency subtree."""
        by_addr = {r.address: r for r in resources}
        blocked: dict[str, str] = {
            f.address: f"probe failed: {f.error}" for f in plan.probe_failures
        }
        ancestors = _Ancestors(plan.dependencies)
        notifier = ChangeNotifier()
        results: list[ActionResult] = []

        def skip(change: ResourceChange, reason: str | None) -> None:
            if reason is not None:
                blocked.setdefault(change.address, reason)
            results.append(ActionResult(change=change, outcome=Outcome.SKIPPED, error=reason))

        def blocker(address: str) -> str | None:
            """Reason this action can't run, if it or anything it depends on didn't apply."""
            if address in blocked:
                dep = address
            else:
                dep = next((d for d in sorted(ancestors.of(address)) if d in blocked), None)
            return None if dep is None else f"blocked by {dep}: {blocked[dep]}"

        def run(change: ResourceChange) -> None:
            if progress:
                progress(change, "start")
            result = self._executor.apply(self._ctx, change, by_addr[change.address])
            results.append(result)
            notifier.record(result)
            if result.outcome == Outcome.FAILED:
                blocked[change.address] = result.error or "failed"
            elif progress:
                progress(change, "done")

        regular = [c for c in plan.changes if c.action != Action.RESTART]
        restarts = [c for c in plan.changes if c.action == Action.RESTART]
        logger.info("%s: applying %d action(s)", self._host, len(plan.changes))

        for change in regular:
            if cancel is not None and cancel.is_set():
                skip(change, "canceled")
                continue
            reason = blocker(change.address)
            if reason is not None:
                skip(change, reason)
                continue
            run(change)

        # Restarts fire after everything else settled, at most once per service.
        for change in restarts:
            service = by_addr[change.address]
            assert isinstance(service, ServiceResource)
            if cancel is not None and cancel.is_set():
                skip(change, "canceled")
                continue
            reason = blocker(change.address)
            if reason is not None:
                skip(change, reason)
                continue
            triggers = notifier.triggers(service)
            if not triggers or not notifier.claim(change.address):
                logger.debug("%s: restart of %s not needed", self._host, change.address)
                skip(change, None)
                continue
            logger.info(
                "%s: restarting %s (changed: %s)", self._host, service.service, ", ".join(triggers)
            )
            run(change)

        return results

    def reconcile(
        self,
        resources: Sequence[Resource],
        *,
        dry_run: bool = False,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> HostReport:
        """Full pipeline for this host, contained to a ``HostReport``."""
        try:
            self.check_reachable()
        except TransportError as exc:
            logger.error("%s: unreachable: %s", self._host, exc)
            return HostReport(
                host=self._host.name, outcome=HostOutcome.UNREACHABLE, reason=str(exc)
            )

        try:
            plan = self.plan(resources)
        except SafetyError as exc:
            logger.error("%s", exc)
            return HostReport(host=self._host.name, outcome=HostOutcome.SKIPPED, reason=str(exc))

        probe_errors = [f"{f.address}: {f.error}" for f in plan.probe_failures]
        if dry_run:
            outcome = (
                HostOutcome.PARTIALLY_APPLIED if probe_errors else HostOutcome.FULLY_RECONCILED
            )
            return HostReport(
                host=self._host.name, outcome=outcome, plan=plan, probe_errors=probe_errors
            )

        results = self.apply(plan, resources, progress=progress, cancel=cancel)
        clean = not probe_errors and all(
            r.outcome == Outcome.APPLIED or (r.outcome == Outcome.SKIPPED and r.error is None)
            for r in results
        )
        outcome = HostOutcome.FULLY_RECONCILED if clean else HostOutcome.PARTIALLY_APPLIED
        logger.info("%s: %s", self._host, outcome.value)
        return HostReport(
            host=self._host.name,
            outcome=outcome,
            plan=plan,
            results=results,
            probe_errors=probe_errors,
        )


class _Ancestors:
    """Memoized transitive dependencies over a plan's dependency map."""

    def __init__(self, dependencies: dict[str, list[str]]) -> None:
        self._deps = dependencies
        self._cache: dict[str, frozenset[str]] = {}

    def of(self, address: str) -> frozenset[str]:
        cached = self._cache.get(address)
        if cached is not None:
            return cached
        found: set[str] = set()
        stack = list(self._deps.get(address, []))
        while stack:
            dep = stack.pop()
            if dep in found:
                continue
            found.add(dep)
            stack.extend(self._deps.get(dep, []))
        result = frozenset(found)
        self._cache[address] = result
        return result
