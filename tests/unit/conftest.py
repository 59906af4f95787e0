"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fleet_hardener.config import load, load_inventory

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from fleet_hardener.config.inventory import Inventory
    from fleet_hardener.config.schema import Config

_HARDENER_ENV_VARS = (
    "HARDENER_USER",
    "HARDENER_PORT",
    "HARDENER_KEY_PATH",
    "HARDENER_CONNECT_TIMEOUT",
    "HARDENER_LOG",
    "NO_COLOR",
)

OPS_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOps ops@example"


@pytest.fixture(autouse=True)
def _clean_hardener_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove HARDENER_* env vars so unit tests don't leak connection config."""
    for var in _HARDENER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML, return loaded Config."""

    def _make(yaml_str: str) -> Config:
        (tmp_path / "fleet-hardener.yaml").write_text(yaml_str)
        return load(tmp_path / "fleet-hardener.yaml")

    return _make


@pytest.fixture
def make_inventory(tmp_path: Path) -> Callable[..., Inventory]:
    """Factory fixture: write inventory YAML + optional .env, return loaded Inventory."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Inventory:
        (tmp_path / "inventory.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load_inventory(tmp_path / "inventory.yaml")

    return _make
