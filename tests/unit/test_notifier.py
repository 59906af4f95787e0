"""Tests for change tracking and restart coalescing."""

from __future__ import annotations

from fleet_hardener.engine.notifier import ChangeNotifier
from fleet_hardener.engine.types import Action, ActionResult, Outcome, ResourceChange
from fleet_hardener.resources import ServiceResource


class TestChangeNotifier:
    def _result(
        self, address: str, *, changed: bool, outcome: Outcome = Outcome.APPLIED
    ) -> ActionResult:
        change = ResourceChange(
            address=address, resource_type="sshd_directive", action=Action.UPDATE
        )
        return ActionResult(change=change, outcome=outcome, changed=changed)

    def test_triggers_only_changed_watched_resources(self) -> None:
        notifier = ChangeNotifier()
        notifier.record(self._result("sshd_directive.a", changed=True))
        notifier.record(self._result("sshd_directive.b", changed=False))
        notifier.record(self._result("sshd_directive.c", changed=True, outcome=Outcome.FAILED))
        svc = ServiceResource(
            name="ssh",
            service="ssh",
            restart_on=["sshd_directive.a", "sshd_directive.b", "sshd_directive.c"],
        )
        assert notifier.triggers(svc) == ["sshd_directive.a"]

    def test_restart_fires_once(self) -> None:
        notifier = ChangeNotifier()
        assert notifier.claim("service.ssh") is True
        assert notifier.claim("service.ssh") is False
        assert notifier.fired == frozenset({"service.ssh"})
