"""Transport collaborator: privileged command execution on a remote host."""

from __future__ import annotations

import logging
import shlex
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, NamedTuple, Protocol

import paramiko

if TYPE_CHECKING:
    from fleet_hardener.core.host import Host

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Base exception for transport failures."""

    def __init__(self, host: str, message: str) -> None:
        super().__init__(f"{host}: {message}")
        self.host = host


class ConnectivityError(TransportError):
    """Host unreachable, connection reset or timed out. Transient, safe to retry."""


class AuthenticationError(TransportError):
    """The host rejected our credentials. Never retried."""


class CommandResult(NamedTuple):
    """Result of a remote command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Transport(Protocol):
    """What the prober and executor need from a connection layer."""

    def run_privileged(self, host: Host, command: str) -> CommandResult:
        """Run *command* as root on *host*."""

    def close(self) -> None:
        """Release any cached connections."""


def privileged_command(user: str, command: str) -> str:
    """Wrap *command* so it runs as root for a non-root login user."""
    if user == "root":
        return command
    return f"sudo -n sh -c {shlex.quote(command)}"


class ParamikoTransport:
    """SSH transport backed by paramiko, one cached client per host.

    Connections are opened lazily and reused for every probe and action on a
    host. Connecting happens under a per-host lock, so concurrent callers share
    one client. A client that fails mid-command is evicted so the next attempt
    reconnects.
    """

    def __init__(
        self,
        *,
        connect_timeout: float = 10.0,
        command_timeout: float = 60.0,
        strict_host_keys: bool = True,
    ) -> None:
        self._connect_timeout = connect_timeout
        self._strict_host_keys = strict_host_keys
        self._command_timeout = command_timeout
        self._clients: dict[str, paramiko.SSHClient] = {}
        self._lock = threading.Lock()
        self._host_locks: dict[str, threading.Lock] = {}

    def _connect(self, host: Host) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        policy = paramiko.RejectPolicy() if self._strict_host_keys else paramiko.AutoAddPolicy()
        client.set_missing_host_key_policy(policy)
        try:
            client.connect(
                hostname=host.address,
                port=host.port,
                username=host.user,
                key_filename=str(host.key_path.expanduser()) if host.key_path else None,
                timeout=self._connect_timeout,
                banner_timeout=self._connect_timeout,
                auth_timeout=self._connect_timeout,
                allow_agent=host.key_path is None,
                look_for_keys=host.key_path is None,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(host.name, f"authentication failed: {e}") from e
        except paramiko.BadHostKeyException as e:
            client.close()
            raise AuthenticationError(host.name, f"host key mismatch: {e}") from e
        except (TimeoutError, socket.error, paramiko.SSHException) as e:
            client.close()
            raise ConnectivityError(host.name, f"connection failed: {e}") from e
        logger.debug("Connected to %s (%s@%s:%d)", host.name, host.user, host.address, host.port)
        return client

    def _host_lock(self, host: Host) -> threading.Lock:
        with self._lock:
            return self._host_locks.setdefault(host.name, threading.Lock())

    def _client(self, host: Host) -> paramiko.SSHClient:
        with self._host_lock(host):
            with self._lock:
                client = self._clients.get(host.name)
            if client is not None:
                transport = client.get_transport()
                if transport is not None and transport.is_active():
                    return client
                self._evict(host, client)
            client = self._connect(host)
            with self._lock:
                self._clients[host.name] = client
            return client

    def _evict(self, host: Host, client: paramiko.SSHClient) -> None:
        """Close *client*, dropping it from the cache only if it is still the cached one."""
        with self._lock:
            if self._clients.get(host.name) is client:
                del self._clients[host.name]
        client.close()

    def run_privileged(self, host: Host, command: str) -> CommandResult:
        client = self._client(host)
        wrapped = privileged_command(host.user, command)
        logger.debug("%s$ %s", host.name, command)
        try:
            _stdin, stdout, stderr = client.exec_command(wrapped, timeout=self._command_timeout)
            # Both streams share the channel window; drain them together.
            with ThreadPoolExecutor(max_workers=1) as pool:
                pending_err = pool.submit(stderr.read)
                out = stdout.read().decode("utf-8", errors="replace")
                err = pending_err.result().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except (TimeoutError, socket.error, paramiko.SSHException, EOFError) as e:
            self._evict(host, client)
            raise ConnectivityError(host.name, f"command interrupted: {e}") from e

        if exit_code != 0 and "sudo:" in err and "password is required" in err:
            raise AuthenticationError(host.name, "passwordless sudo is not available")
        return CommandResult(stdout=out, stderr=err, exit_code=exit_code)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
