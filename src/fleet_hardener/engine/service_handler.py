"""Service handler implementing probe/enable/restart via systemctl."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.handlers import ResourceHandler, quote

if TYPE_CHECKING:
    from fleet_hardener.engine.handlers import EngineContext
    from fleet_hardener.resources.service import ServiceResource

logger = logging.getLogger(__name__)

_ENABLED_STATES = {"enabled", "enabled-runtime", "alias", "static", "indirect", "generated"}
_DISABLED_STATES = {"disabled", "masked", "masked-runtime", "linked", "linked-runtime"}


class ServiceHandler(ResourceHandler["ServiceResource"]):
    """Manages systemd units: enabled-at-boot flag, running state, restarts."""

    def read(self, ctx: EngineContext, desired: ServiceResource) -> dict[str, Any] | None:
        unit = quote(desired.service)
        enabled = ctx.run(f"systemctl is-enabled {unit}", check=False).stdout.strip()
        # Unknown units print nothing on stdout (the error goes to stderr).
        if enabled not in _ENABLED_STATES | _DISABLED_STATES:
            return None
        active = ctx.run(f"systemctl is-active {unit}", check=False).stdout.strip()
        return {
            "service": desired.service,
            "enabled": enabled in _ENABLED_STATES,
            "running": active in ("active", "activating", "reloading"),
        }

    def _converge(
        self, ctx: EngineContext, desired: ServiceResource, prior: dict[str, Any] | None
    ) -> bool:
        prior = prior or {}
        unit = quote(desired.service)
        changed = False
        if desired.enabled != prior.get("enabled"):
            ctx.run(f"systemctl {'enable' if desired.enabled else 'disable'} {unit}")
            changed = True
        if desired.running != prior.get("running"):
            ctx.run(f"systemctl {'start' if desired.running else 'stop'} {unit}")
            changed = True
        return changed

    def create(self, ctx: EngineContext, desired: ServiceResource) -> bool:
        return self._converge(ctx, desired, None)

    def update(self, ctx: EngineContext, desired: ServiceResource, prior: dict[str, Any]) -> bool:
        return self._converge(ctx, desired, prior)

    def restart(self, ctx: EngineContext, desired: ServiceResource) -> bool:
        ctx.run(f"systemctl restart {quote(desired.service)}")
        logger.info("%s: restarted %s", ctx.host, desired.service)
        return True
