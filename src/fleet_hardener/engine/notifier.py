"""Change notifier: aggregate "changed" events, coalesce service restarts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fleet_hardener.engine.types import Action, Outcome

if TYPE_CHECKING:
    from fleet_hardener.engine.types import ActionResult
    from fleet_hardener.resources.service import ServiceResource


class ChangeNotifier:
    """Collects per-run change events and decides which restarts fire.

    Restarts are evaluated once, after every other action for the host has
    settled, and each service fires at most once per run no matter how many
    of its watched resources changed.
    """

    def __init__(self) -> None:
        self._changed: dict[str, bool] = {}
        self._fired: set[str] = set()

    def record(self, result: ActionResult) -> None:
        change = result.change
        if change.action == Action.RESTART:
            return
        did_change = result.outcome == Outcome.APPLIED and result.changed
        self._changed[change.address] = self._changed.get(change.address, False) or did_change

    def changed(self, address: str) -> bool:
        return self._changed.get(address, False)

    def triggers(self, service: ServiceResource) -> list[str]:
        """Watched addresses of *service* that changed in this run."""
        return [a for a in service.restart_on if self.changed(a)]

    def claim(self, address: str) -> bool:
        """Mark *address* restarted. False if it already fired this run."""
        if address in self._fired:
            return False
        self._fired.add(address)
        return True

    @property
    def fired(self) -> frozenset[str]:
        return frozenset(self._fired)
