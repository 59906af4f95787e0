"""Engine types (current state, plan, changes, results, reports)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class Action(str, Enum):
    NOOP = "no-op"
    CREATE = "create"
    UPDATE = "update"
    ENABLE = "enable"
    RESTART = "restart"


class ProbeStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class CurrentState(BaseModel):
    """Probed value of one resource on a live host."""

    status: ProbeStatus
    attributes: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def present(cls, attributes: dict[str, Any]) -> CurrentState:
        return cls(status=ProbeStatus.PRESENT, attributes=attributes)

    @classmethod
    def absent(cls) -> CurrentState:
        return cls(status=ProbeStatus.ABSENT)

    @classmethod
    def unknown(cls, error: str) -> CurrentState:
        return cls(status=ProbeStatus.UNKNOWN, error=error)


class Outcome(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


class HostOutcome(str, Enum):
    FULLY_RECONCILED = "fully_reconciled"
    PARTIALLY_APPLIED = "partially_applied"
    SKIPPED = "skipped"
    UNREACHABLE = "unreachable"

    @property
    def exit_code(self) -> int:
        return _HOST_EXIT_CODES[self]


_HOST_EXIT_CODES: dict[HostOutcome, int] = {
    HostOutcome.FULLY_RECONCILED: 0,
    HostOutcome.PARTIALLY_APPLIED: 1,
    HostOutcome.SKIPPED: 1,
    HostOutcome.UNREACHABLE: 2,
}


class PlanMetadata(BaseModel):
    host: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    management_port: int
    config_digest: str
    engine_version: str


class ResourceChange(BaseModel):
    address: str
    resource_type: str
    action: Action
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None

    @property
    def key(self) -> str:
        """Unique key within a plan (a service may carry both a change and a restart)."""
        if self.action == Action.RESTART:
            return f"{self.address}#restart"
        return self.address


class ProbeFailure(BaseModel):
    address: str
    resource_type: str
    error: str


class Plan(BaseModel):
    """Ordered actions for one host.

    ``changes`` holds the non-NOOP actions in execution order; ``noops`` holds
    the resources already converged. ``dependencies`` maps every declared
    address to its direct dependencies (declared, implicit and safety edges).
    """

    metadata: PlanMetadata
    changes: list[ResourceChange] = Field(default_factory=list)
    noops: list[ResourceChange] = Field(default_factory=list)
    probe_failures: list[ProbeFailure] = Field(default_factory=list)
    dependencies: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for c in [*self.changes, *self.noops]:
            counts[c.action.value] += 1
        return counts


class ActionResult(BaseModel):
    """Outcome of one action: ``Planned -> (Skipped | Applying -> Applied | Failed)``."""

    change: ResourceChange
    outcome: Outcome
    changed: bool = False
    error: str | None = None
    attempts: int = 0


class HostReport(BaseModel):
    host: str
    outcome: HostOutcome
    plan: Plan | None = None
    results: list[ActionResult] = Field(default_factory=list)
    probe_errors: list[str] = Field(default_factory=list)
    reason: str | None = None

    def summary(self) -> dict[str, int]:
        counts = {o.value: 0 for o in Outcome}
        for r in self.results:
            counts[r.outcome.value] += 1
        return counts


class RunReport(BaseModel):
    dry_run: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    hosts: list[HostReport] = Field(default_factory=list)

    @property
    def exit_code(self) -> int:
        """Worst-case host outcome; 0 when every host converged."""
        return max((h.outcome.exit_code for h in self.hosts), default=0)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> RunReport:
        path = Path(path)
        return cls.model_validate_json(path.read_text(encoding="utf-8"))
