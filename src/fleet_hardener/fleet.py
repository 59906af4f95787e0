"""Fleet dispatcher: fans the per-host pipeline out across a worker pool."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

from fleet_hardener.config.loader import ConfigError
from fleet_hardener.config.registry import default_registry
from fleet_hardener.engine.engine import HostEngine, validate_declaration
from fleet_hardener.engine.errors import ApplyCanceled, EngineError
from fleet_hardener.engine.types import HostOutcome, HostReport, RunReport

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fleet_hardener.config.schema import Config
    from fleet_hardener.core.host import Host
    from fleet_hardener.core.transport import Transport
    from fleet_hardener.engine.engine import ProgressCallback
    from fleet_hardener.engine.registry import ResourceTypeRegistry
    from fleet_hardener.resources.base import Resource

logger = logging.getLogger(__name__)

HostCallback = Callable[[HostReport], None]


def resolve_resources(
    config: Config,
    hosts: Sequence[Host],
    registry: ResourceTypeRegistry,
) -> dict[str, list[Resource]]:
    """Expand and validate the declaration for every host's group.

    Runs before any host is contacted, so a bad declaration never reaches
    the fleet.

    Raises:
        ConfigError: If a host's group has no posture in the config.
        ConfigValidationError: If a group's declaration is invalid.
    """
    by_group: dict[str, list[Resource]] = {}
    checked: set[tuple[str, int]] = set()
    for host in hosts:
        if host.group not in by_group:
            group = config.group_config(host.group)
            if group is None:
                raise ConfigError(f"No hardening config for inventory group '{host.group}'")
            by_group[host.group] = group.resources()
        key = (host.group, host.management_port)
        if key not in checked:
            validate_declaration(
                by_group[host.group], registry, management_port=host.management_port
            )
            checked.add(key)
    return by_group


class Fleet:
    """Runs ``HostEngine.reconcile`` for each host on a bounded thread pool.

    Each host's pipeline runs to completion on one worker. A run-level
    *timeout* sets a shared cancel event: hosts stop issuing new actions and
    report whatever they already applied.
    """

    def __init__(
        self,
        config: Config,
        *,
        transport: Transport,
        registry: ResourceTypeRegistry | None = None,
        workers: int | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._registry = registry or default_registry()
        self._workers = workers or config.settings.workers
        self._cancel = threading.Event()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def cancel(self) -> None:
        self._cancel.set()

    def _reconcile(
        self,
        host: Host,
        resources: list[Resource],
        *,
        dry_run: bool,
        progress: ProgressCallback | None,
    ) -> HostReport:
        if self._cancel.is_set():
            return HostReport(host=host.name, outcome=HostOutcome.SKIPPED, reason="canceled")
        engine = HostEngine(
            transport=self._transport,
            host=host,
            registry=self._registry,
            retry=self._config.settings.retry,
            probe_concurrency=self._config.settings.probe_concurrency,
        )
        try:
            return engine.reconcile(
                resources, dry_run=dry_run, progress=progress, cancel=self._cancel
            )
        except EngineError as exc:
            logger.error("%s: %s", host, exc)
            return HostReport(host=host.name, outcome=HostOutcome.SKIPPED, reason=str(exc))

    def run(
        self,
        hosts: Sequence[Host],
        *,
        dry_run: bool = False,
        timeout: float | None = None,
        progress: ProgressCallback | None = None,
        on_host_done: HostCallback | None = None,
    ) -> RunReport:
        """Reconcile *hosts* and return one report entry per host, in input order.

        Raises:
            ConfigError: If a host's group has no posture in the config.
            ConfigValidationError: If a declaration is invalid (nothing is contacted).
            ApplyCanceled: On keyboard interrupt, after in-flight hosts finish.
        """
        resources = resolve_resources(self._config, hosts, self._registry)
        report = RunReport(dry_run=dry_run)
        if not hosts:
            return report

        timer: threading.Timer | None = None
        if timeout is not None:
            timer = threading.Timer(timeout, self._on_timeout, args=(timeout,))
            timer.daemon = True
            timer.start()

        logger.info(
            "Reconciling %d host(s) with %d worker(s)%s",
            len(hosts),
            self._workers,
            " (dry run)" if dry_run else "",
        )
        reports: dict[str, HostReport] = {}
        pool = ThreadPoolExecutor(max_workers=min(self._workers, len(hosts)))
        try:
            futures = {
                pool.submit(
                    self._reconcile,
                    host,
                    resources[host.group],
                    dry_run=dry_run,
                    progress=progress,
                ): host
                for host in hosts
            }
            for future in as_completed(futures):
                host_report = future.result()
                reports[futures[future].name] = host_report
                if on_host_done:
                    on_host_done(host_report)
        except KeyboardInterrupt as e:  # pragma: no cover
            self._cancel.set()
            raise ApplyCanceled("Run canceled") from e
        finally:
            pool.shutdown(wait=True)
            if timer is not None:
                timer.cancel()

        report.hosts = [reports[h.name] for h in hosts]
        return report

    def _on_timeout(self, timeout: float) -> None:
        logger.warning("Run timeout (%.0fs) reached; canceling remaining actions", timeout)
        self._cancel.set()
