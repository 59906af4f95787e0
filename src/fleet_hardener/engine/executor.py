"""Executor: apply one ordered action against the remote host."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.errors import ApplyError
from fleet_hardener.engine.retry import RetryPolicy, call_with_retry
from fleet_hardener.engine.types import Action, ActionResult, Outcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from fleet_hardener.engine.handlers import EngineContext, ResourceHandler
    from fleet_hardener.engine.registry import ResourceTypeRegistry
    from fleet_hardener.engine.types import ResourceChange
    from fleet_hardener.resources.base import Resource

logger = logging.getLogger(__name__)


def _dispatch(
    handler: ResourceHandler[Any], ctx: EngineContext, change: ResourceChange, desired: Resource
) -> bool:
    match change.action:
        case Action.CREATE:
            return handler.create(ctx, desired)
        case Action.UPDATE:
            return handler.update(ctx, desired, change.prior or {})
        case Action.ENABLE:
            return handler.enable(ctx, desired, change.prior)
        case Action.RESTART:
            return handler.restart(ctx, desired)
        case _:
            raise ValueError(f"Nothing to execute for action: {change.action}")


class Executor:
    """Runs handler mutators with bounded retries on transient transport errors.

    Authorization failures and command-level errors are not retried. Every
    failure is captured as a FAILED result instead of propagating, so the
    coordinator can keep going with independent actions.
    """

    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    def _execute(
        self, ctx: EngineContext, change: ResourceChange, desired: Resource
    ) -> tuple[bool, int]:
        handler = self._registry.handler_for(desired)
        attempts = 0

        def attempt() -> bool:
            nonlocal attempts
            attempts += 1
            return _dispatch(handler, ctx, change, desired)

        try:
            changed = call_with_retry(
                attempt,
                self._retry,
                describe=f"{ctx.host}: {change.action.value} {change.address}",
                sleep=self._sleep,
            )
        except Exception as e:
            raise ApplyError(address=change.key, message=str(e), attempts=attempts) from e
        return changed, attempts

    def apply(self, ctx: EngineContext, change: ResourceChange, desired: Resource) -> ActionResult:
        logger.debug("%s: applying %s (%s)", ctx.host, change.address, change.action.value)
        try:
            changed, attempts = self._execute(ctx, change, desired)
        except ApplyError as exc:
            logger.error("%s: %s", ctx.host, exc)
            return ActionResult(
                change=change, outcome=Outcome.FAILED, error=str(exc), attempts=exc.attempts
            )
        return ActionResult(
            change=change, outcome=Outcome.APPLIED, changed=changed, attempts=attempts
        )
