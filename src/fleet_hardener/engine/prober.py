"""State prober: read-only inspection of a live host."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from fleet_hardener.core.transport import TransportError
from fleet_hardener.engine.errors import CommandError, ProbeError
from fleet_hardener.engine.retry import RetryPolicy, call_with_retry
from fleet_hardener.engine.types import CurrentState

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from fleet_hardener.engine.handlers import EngineContext
    from fleet_hardener.engine.registry import ResourceTypeRegistry
    from fleet_hardener.resources.base import Resource

logger = logging.getLogger(__name__)


class StateProber:
    """Probe every declared resource and collect one complete state mapping.

    Probes are independent and side-effect free, so they fan out over a small
    thread pool. The mapping is only returned once every probe has settled.
    """

    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        retry: RetryPolicy | None = None,
        max_workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._retry = retry or RetryPolicy()
        self._max_workers = max(1, max_workers)
        self._sleep = sleep

    def _probe_one(self, ctx: EngineContext, resource: Resource) -> CurrentState:
        handler = self._registry.handler_for(resource)
        try:
            attrs = call_with_retry(
                lambda: handler.read(ctx, resource),
                self._retry,
                describe=f"{ctx.host}: probe {resource.address}",
                sleep=self._sleep,
            )
        except ProbeError as exc:
            logger.warning("%s: %s", ctx.host, exc)
            return CurrentState.unknown(str(exc))
        except (TransportError, CommandError) as exc:
            err = ProbeError(resource.address, str(exc))
            logger.warning("%s: %s", ctx.host, err)
            return CurrentState.unknown(str(err))

        if attrs is None:
            logger.debug("%s: %s is absent", ctx.host, resource.address)
            return CurrentState.absent()
        logger.debug("%s: %s = %s", ctx.host, resource.address, attrs)
        return CurrentState.present(attrs)

    def probe(self, ctx: EngineContext, resources: Sequence[Resource]) -> dict[str, CurrentState]:
        """Return ``address -> CurrentState`` for every resource, in declaration order."""
        if not resources:
            return {}
        workers = min(self._max_workers, len(resources))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as pool:
            states = list(pool.map(lambda r: self._probe_one(ctx, r), resources))
        return {r.address: s for r, s in zip(resources, states, strict=True)}
