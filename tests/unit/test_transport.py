"""Tests for the paramiko-backed SSH transport."""

from __future__ import annotations

import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from fleet_hardener.core.host import Host
from fleet_hardener.core.transport import (
    AuthenticationError,
    CommandResult,
    ConnectivityError,
    ParamikoTransport,
    privileged_command,
)

_ROOT = Host(name="web1", address="10.0.0.1")
_OPS = Host(name="web2", address="10.0.0.2", user="ops", key_path=Path("/keys/ops"))


def _client(stdout: bytes = b"", stderr: bytes = b"", exit_code: int = 0) -> MagicMock:
    client = MagicMock()
    out, err = MagicMock(), MagicMock()
    out.read.return_value = stdout
    out.channel.recv_exit_status.return_value = exit_code
    err.read.return_value = stderr
    client.exec_command.return_value = (MagicMock(), out, err)
    client.get_transport.return_value.is_active.return_value = True
    return client


class TestPrivilegedCommand:
    def test_root_runs_directly(self) -> None:
        assert privileged_command("root", "ufw status") == "ufw status"

    def test_other_users_go_through_sudo(self) -> None:
        assert privileged_command("ops", "ufw status") == "sudo -n sh -c 'ufw status'"


class TestParamikoTransport:
    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_run_and_reuse_connection(self, mock_cls: MagicMock) -> None:
        client = _client(stdout=b"Status: active\n")
        mock_cls.return_value = client
        transport = ParamikoTransport(command_timeout=5)

        result = transport.run_privileged(_OPS, "ufw status")
        transport.run_privileged(_OPS, "ufw status")

        assert result.stdout == "Status: active\n"
        assert result.ok
        assert mock_cls.call_count == 1
        client.exec_command.assert_called_with("sudo -n sh -c 'ufw status'", timeout=5)
        kwargs = client.connect.call_args.kwargs
        assert kwargs["username"] == "ops"
        assert kwargs["key_filename"] == "/keys/ops"
        assert kwargs["look_for_keys"] is False

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_auth_failure(self, mock_cls: MagicMock) -> None:
        client = _client()
        client.connect.side_effect = paramiko.AuthenticationException("denied")
        mock_cls.return_value = client

        with pytest.raises(AuthenticationError, match="authentication failed"):
            ParamikoTransport().run_privileged(_ROOT, "true")
        client.close.assert_called_once()

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_connection_refused(self, mock_cls: MagicMock) -> None:
        client = _client()
        client.connect.side_effect = socket.error("Connection refused")
        mock_cls.return_value = client

        with pytest.raises(ConnectivityError, match="connection failed"):
            ParamikoTransport().run_privileged(_ROOT, "true")

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_broken_channel_evicts_client(self, mock_cls: MagicMock) -> None:
        broken, fresh = _client(), _client(stdout=b"ok")
        broken.exec_command.side_effect = paramiko.SSHException("channel closed")
        mock_cls.side_effect = [broken, fresh]
        transport = ParamikoTransport()

        with pytest.raises(ConnectivityError):
            transport.run_privileged(_ROOT, "true")
        broken.close.assert_called_once()

        assert transport.run_privileged(_ROOT, "true").stdout == "ok"

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_sudo_password_prompt_is_auth_error(self, mock_cls: MagicMock) -> None:
        mock_cls.return_value = _client(stderr=b"sudo: a password is required\n", exit_code=1)

        with pytest.raises(AuthenticationError, match="passwordless sudo"):
            ParamikoTransport().run_privileged(_OPS, "true")

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_close(self, mock_cls: MagicMock) -> None:
        client = _client()
        mock_cls.return_value = client
        transport = ParamikoTransport()
        transport.run_privileged(_ROOT, "true")

        transport.close()
        client.close.assert_called_once()

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_concurrent_callers_share_one_connection(self, mock_cls: MagicMock) -> None:
        made: list[MagicMock] = []

        def new_client() -> MagicMock:
            client = _client()
            client.connect.side_effect = lambda **_: time.sleep(0.05)
            made.append(client)
            return client

        mock_cls.side_effect = new_client
        transport = ParamikoTransport()
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: transport.run_privileged(_ROOT, "true"), range(4)))

        assert all(r.ok for r in results)
        assert len(made) == 1
        made[0].close.assert_not_called()

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_evicting_a_stale_client_keeps_the_current_one(self, mock_cls: MagicMock) -> None:
        current, stale = _client(), _client()
        mock_cls.return_value = current
        transport = ParamikoTransport()
        transport.run_privileged(_ROOT, "true")

        transport._evict(_ROOT, stale)
        stale.close.assert_called_once()
        current.close.assert_not_called()

        transport.run_privileged(_ROOT, "true")
        assert mock_cls.call_count == 1

    @patch("fleet_hardener.core.transport.paramiko.SSHClient")
    def test_stderr_drained_while_stdout_is_read(self, mock_cls: MagicMock) -> None:
        client = _client(exit_code=1)
        _stdin, out, err = client.exec_command.return_value
        reading_err = threading.Event()

        def read_err() -> bytes:
            reading_err.set()
            return b"W: lots of warnings\n"

        def read_out() -> bytes:
            assert reading_err.wait(timeout=5)
            return b"partial\n"

        out.read.side_effect = read_out
        err.read.side_effect = read_err
        mock_cls.return_value = client

        result = ParamikoTransport().run_privileged(_ROOT, "apt-get install -y ufw")
        assert result == CommandResult("partial\n", "W: lots of warnings\n", 1)
