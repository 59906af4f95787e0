"""Tests for the executor's retry and failure handling."""

from __future__ import annotations

from typing import Any

from fleet_hardener.core.host import Host
from fleet_hardener.core.transport import CommandResult, ConnectivityError
from fleet_hardener.engine.errors import CommandError
from fleet_hardener.engine.executor import Executor
from fleet_hardener.engine.handlers import EngineContext, ResourceHandler
from fleet_hardener.engine.registry import ResourceTypeRegistry
from fleet_hardener.engine.retry import RetryPolicy
from fleet_hardener.engine.types import Action, Outcome, ResourceChange
from fleet_hardener.resources import PackageResource

_HOST = Host(name="web1", address="10.0.0.1")


class _NullTransport:
    def run_privileged(self, host: Host, command: str) -> CommandResult:
        return CommandResult(stdout="", stderr="", exit_code=0)

    def close(self) -> None:
        pass


class FlakyHandler(ResourceHandler[PackageResource]):
    """Raises the queued errors in order, then succeeds."""

    def __init__(self, errors: list[Exception]) -> None:
        self.errors = list(errors)
        self.calls = 0

    def read(self, ctx: EngineContext, desired: PackageResource) -> dict[str, Any] | None:
        return None

    def create(self, ctx: EngineContext, desired: PackageResource) -> bool:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return True


def _change(action: Action = Action.CREATE) -> ResourceChange:
    return ResourceChange(address="package.ufw", resource_type="package", action=action)


def _executor(handler: ResourceHandler[Any], retry: RetryPolicy | None = None) -> Executor:
    registry = ResourceTypeRegistry()
    registry.register(PackageResource, handler)
    return Executor(
        registry=registry, retry=retry or RetryPolicy(jitter=False), sleep=lambda _: None
    )


def _ctx() -> EngineContext:
    return EngineContext(transport=_NullTransport(), host=_HOST)


class TestExecutor:
    def test_applied(self) -> None:
        result = _executor(FlakyHandler([])).apply(
            _ctx(), _change(), PackageResource(name="ufw", package="ufw")
        )
        assert result.outcome == Outcome.APPLIED
        assert result.changed is True
        assert result.attempts == 1

    def test_transient_failure_then_success(self) -> None:
        handler = FlakyHandler([ConnectivityError("web1", "reset")])
        result = _executor(handler).apply(
            _ctx(), _change(), PackageResource(name="ufw", package="ufw")
        )
        assert result.outcome == Outcome.APPLIED
        assert result.attempts == 2

    def test_command_error_fails_without_retry(self) -> None:
        handler = FlakyHandler([CommandError("apt-get install ufw", 100, "E: Unable to locate")])
        result = _executor(handler).apply(
            _ctx(), _change(), PackageResource(name="ufw", package="ufw")
        )
        assert result.outcome == Outcome.FAILED
        assert result.attempts == 1
        assert handler.calls == 1
        assert "Unable to locate" in (result.error or "")

    def test_exhausted_retries_report_attempts(self) -> None:
        handler = FlakyHandler([ConnectivityError("web1", "reset")] * 5)
        result = _executor(handler, RetryPolicy(max_retries=1)).apply(
            _ctx(), _change(), PackageResource(name="ufw", package="ufw")
        )
        assert result.outcome == Outcome.FAILED
        assert result.attempts == 2

    def test_restart_unsupported_fails(self) -> None:
        result = _executor(FlakyHandler([])).apply(
            _ctx(), _change(Action.RESTART), PackageResource(name="ufw", package="ufw")
        )
        assert result.outcome == Outcome.FAILED
        assert "cannot be restarted" in (result.error or "")
