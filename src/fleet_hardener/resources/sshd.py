"""SSH daemon directive resource model."""

from __future__ import annotations

import re
from typing import ClassVar, Self

from pydantic import Field, ValidationInfo, field_validator, model_validator

from fleet_hardener.resources.base import Resource

# Canonical spelling of the sshd_config keywords we manage.
KNOWN_DIRECTIVES: dict[str, str] = {
    d.lower(): d
    for d in (
        "AllowAgentForwarding",
        "AllowGroups",
        "AllowTcpForwarding",
        "AllowUsers",
        "AuthenticationMethods",
        "Banner",
        "ClientAliveCountMax",
        "ClientAliveInterval",
        "DenyGroups",
        "DenyUsers",
        "HostbasedAuthentication",
        "IgnoreRhosts",
        "KbdInteractiveAuthentication",
        "LoginGraceTime",
        "LogLevel",
        "MaxAuthTries",
        "MaxSessions",
        "MaxStartups",
        "PasswordAuthentication",
        "PermitEmptyPasswords",
        "PermitRootLogin",
        "PermitTunnel",
        "PermitUserEnvironment",
        "Port",
        "PubkeyAuthentication",
        "UseDNS",
        "UsePAM",
        "X11Forwarding",
    )
}

# Deprecated spellings that sshd -T reports under another name.
_ALIASES: dict[str, str] = {
    "challengeresponseauthentication": "KbdInteractiveAuthentication",
}

_VALUE_ALIASES: dict[str, str] = {"without-password": "prohibit-password"}

# Keyword values are case-insensitive to sshd and reported in lower case.
_KEYWORD_VALUES = frozenset(
    {"yes", "no", "prohibit-password", "forced-commands-only", "local", "remote", "all"}
)

# Time-valued keywords; ``sshd -T`` reports them in seconds.
_TIME_DIRECTIVES = frozenset({"ClientAliveInterval", "LoginGraceTime"})
_TIME_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}
_TIME_RE = re.compile(r"(?:\d+[smhdw]?)+", re.IGNORECASE)
_TIME_PART_RE = re.compile(r"(\d+)([smhdw]?)", re.IGNORECASE)

# ``sshd -T`` prints the level name in upper case, and DEBUG as DEBUG1.
_LOG_LEVELS = frozenset(
    {"QUIET", "FATAL", "ERROR", "INFO", "VERBOSE", "DEBUG1", "DEBUG2", "DEBUG3"}
)


def canonical_directive(name: str) -> str | None:
    """Canonical spelling of an sshd keyword, or None if we don't manage it."""
    key = name.strip().lower()
    return _ALIASES.get(key) or KNOWN_DIRECTIVES.get(key)


def time_to_seconds(spec: str) -> int:
    """Convert an sshd time format (``90``, ``1m``, ``1h30m``) to seconds."""
    if not _TIME_RE.fullmatch(spec):
        raise ValueError(f"Invalid sshd time value: {spec!r}")
    return sum(int(n) * _TIME_UNITS[unit.lower()] for n, unit in _TIME_PART_RE.findall(spec))


def normalize_value(value: str, directive: str | None = None) -> str:
    """Rewrite *value* into the form ``sshd -T`` reports for *directive*.

    Whitespace is collapsed and keyword values are lower-cased. Time-valued
    directives become seconds and ``LogLevel`` becomes its upper-case name.

    Raises:
        ValueError: If a time or log level value is not one sshd accepts.
    """
    value = " ".join(value.split())
    if directive in _TIME_DIRECTIVES:
        return str(time_to_seconds(value))
    if directive == "LogLevel":
        level = value.upper()
        level = "DEBUG1" if level == "DEBUG" else level
        if level not in _LOG_LEVELS:
            raise ValueError(f"Invalid LogLevel: {value!r}")
        return level
    low = value.lower()
    low = _VALUE_ALIASES.get(low, low)
    return low if low in _KEYWORD_VALUES else value


class SSHDirectiveResource(Resource):
    """A single ``sshd_config`` directive override (e.g. ``PermitRootLogin no``)."""

    resource_type: ClassVar[str] = "sshd_directive"
    plan_priority: ClassVar[int] = 50

    directive: str
    value: str = Field(min_length=1)

    @field_validator("directive")
    @classmethod
    def _canonical_directive(cls, v: str) -> str:
        canonical = canonical_directive(v)
        if canonical is None:
            raise ValueError(f"Unknown sshd directive: {v!r}")
        return canonical

    @field_validator("value", mode="before")
    @classmethod
    def _normalize_value(cls, v: object, info: ValidationInfo) -> object:
        if isinstance(v, bool):
            # YAML turns bare ``no``/``yes`` into booleans.
            return "yes" if v else "no"
        if isinstance(v, int):
            v = str(v)
        if isinstance(v, str):
            return normalize_value(v, info.data.get("directive"))
        return v

    @model_validator(mode="after")
    def _check_port(self) -> Self:
        if self.directive == "Port":
            if not self.value.isdigit() or not 1 <= int(self.value) <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {self.value!r}")
        return self

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type, self.directive)

    @property
    def revokes_password_login(self) -> bool:
        return self.directive == "PasswordAuthentication" and self.value == "no"

    @property
    def revokes_root_login(self) -> bool:
        return self.directive == "PermitRootLogin" and self.value in ("no", "prohibit-password")

    @property
    def moves_port(self) -> bool:
        return self.directive == "Port"
