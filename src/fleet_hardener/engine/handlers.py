"""Engine-facing handler interfaces."""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from fleet_hardener.engine.errors import CommandError
from fleet_hardener.resources.base import Resource

if TYPE_CHECKING:
    from fleet_hardener.core.host import Host
    from fleet_hardener.core.transport import CommandResult, Transport

R = TypeVar("R", bound=Resource)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers: which host, and how to reach it."""

    transport: Transport
    host: Host

    def run(self, command: str, *, check: bool = True) -> CommandResult:
        """Run a privileged command; raise ``CommandError`` on non-zero exit when *check*."""
        result = self.transport.run_privileged(self.host, command)
        if check and result.exit_code != 0:
            raise CommandError(command, result.exit_code, result.stderr or result.stdout)
        return result


def quote(value: Any) -> str:
    return shlex.quote(str(value))


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers translate resources into read-only inspection commands (``read``)
    and idempotent mutating commands (``create``/``update``/``enable``/``restart``).
    Mutators return whether the host actually changed.
    """

    def validate(self, desired: R) -> list[str]:
        """Single-resource validation beyond the model's own field checks.

        Return list of error messages (empty = valid).
        """
        _ = desired
        return []

    def read(self, ctx: EngineContext, desired: R) -> dict[str, Any] | None:
        """Probe the host. Return current attributes, or None if absent.

        Must not mutate the host. Raise ``ProbeError`` on unparseable output.
        """
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> bool:
        """Bring an absent resource into existence."""
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: dict[str, Any]) -> bool:
        """Converge an existing resource whose attributes differ."""
        _ = prior
        return self.create(ctx, desired)

    def enable(self, ctx: EngineContext, desired: R, prior: dict[str, Any] | None) -> bool:
        """Switch a boolean-flag resource on."""
        if prior is None:
            return self.create(ctx, desired)
        return self.update(ctx, desired, prior)

    def restart(self, ctx: EngineContext, desired: R) -> bool:
        """Restart after a watched resource changed."""
        raise NotImplementedError(f"{type(desired).__name__} cannot be restarted")
