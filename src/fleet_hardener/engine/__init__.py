"""Reconciliation engine: probe, plan, order, execute and notify."""

from fleet_hardener.engine.engine import HostEngine, validate_declaration
from fleet_hardener.engine.errors import (
    ApplyCanceled,
    ApplyError,
    CommandError,
    ConfigValidationError,
    DependencyCycleError,
    EngineError,
    ProbeError,
    SafetyError,
    UnknownResourceTypeError,
)
from fleet_hardener.engine.handlers import EngineContext, ResourceHandler
from fleet_hardener.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from fleet_hardener.engine.retry import RetryPolicy
from fleet_hardener.engine.types import (
    Action,
    ActionResult,
    CurrentState,
    HostOutcome,
    HostReport,
    Outcome,
    Plan,
    PlanMetadata,
    ProbeFailure,
    ProbeStatus,
    ResourceChange,
    RunReport,
)

__all__ = [
    "Action",
    "ActionResult",
    "ApplyCanceled",
    "ApplyError",
    "CommandError",
    "ConfigValidationError",
    "CurrentState",
    "DependencyCycleError",
    "EngineContext",
    "EngineError",
    "HostEngine",
    "HostOutcome",
    "HostReport",
    "Outcome",
    "Plan",
    "PlanMetadata",
    "ProbeError",
    "ProbeFailure",
    "ProbeStatus",
    "ResourceChange",
    "ResourceHandler",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "RetryPolicy",
    "RunReport",
    "SafetyError",
    "UnknownResourceTypeError",
    "validate_declaration",
]
