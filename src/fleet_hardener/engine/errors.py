"""Engine error types."""

from __future__ import annotations


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """Raised when a resource type has no registration/handler."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class ConfigValidationError(EngineError):
    """The declared resource set is invalid. Fatal before any host contact."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class DependencyCycleError(ConfigValidationError):
    """Raised when dependencies (declared, implicit or safety) contain a cycle."""

    def __init__(self, addresses: list[str]) -> None:
        msg = "Dependency cycle detected"
        if addresses:
            msg += f": {', '.join(addresses)}"
        super().__init__([msg])
        self.addresses = addresses


class ProbeError(EngineError):
    """The current state of a resource could not be determined."""

    def __init__(self, address: str, message: str) -> None:
        super().__init__(f"Probe failed for {address}: {message}")
        self.address = address


class SafetyError(EngineError):
    """A plan would cut off administrative access. The host is skipped."""

    def __init__(self, host: str, violations: list[str]) -> None:
        self.host = host
        self.violations = violations
        msg = f"Unsafe plan for {host}:\n" + "\n".join(f"  - {v}" for v in violations)
        super().__init__(msg)


class CommandError(EngineError):
    """A remote command exited non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Command exited {exit_code}: {command}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class ApplyError(EngineError):
    """An action still failed after its retries were exhausted.

    The original exception is chained via ``__cause__``.
    """

    def __init__(self, *, address: str, message: str, attempts: int = 1) -> None:
        self.address = address
        self.attempts = attempts
        super().__init__(f"Apply failed on {address}: {message}")


class ApplyCanceled(EngineError):
    """Raised when a run is canceled (e.g., Ctrl-C)."""
