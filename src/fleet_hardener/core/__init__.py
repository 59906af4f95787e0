"""Core infrastructure components: hosts and the transport layer."""

from fleet_hardener.core.host import Host
from fleet_hardener.core.transport import (
    AuthenticationError,
    CommandResult,
    ConnectivityError,
    ParamikoTransport,
    Transport,
    TransportError,
)

__all__ = [
    "AuthenticationError",
    "CommandResult",
    "ConnectivityError",
    "Host",
    "ParamikoTransport",
    "Transport",
    "TransportError",
]
