"""YAML configuration and inventory file loaders."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from fleet_hardener.config.inventory import Inventory
from fleet_hardener.config.schema import Config

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


# Field name → environment variable.
_CONNECTION_ENV_MAP: dict[str, str] = {
    "user": "HARDENER_USER",
    "port": "HARDENER_PORT",
    "key_path": "HARDENER_KEY_PATH",
    "connect_timeout": "HARDENER_CONNECT_TIMEOUT",
}


def _resolve_defaults(raw_defaults: dict[str, Any], inventory_dir: Path) -> dict[str, Any]:
    """Resolve connection defaults from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    env_file = inventory_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    resolved: dict[str, Any] = dict(raw_defaults)
    for field, env_key in _CONNECTION_ENV_MAP.items():
        val = raw_defaults.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            resolved[field] = val

    return resolved


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return raw


def load_config(path: Path | str) -> Config:
    """Load a hardening configuration file and return a ``Config`` object.

    Raises:
        ConfigError: On YAML parse errors or validation failures.
    """
    path = Path(path)
    raw = _read_yaml(path)

    try:
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    for name, group in config.groups.items():
        try:
            group.resources()
        except ValidationError as exc:
            raise ConfigError(f"group '{name}': {exc}") from exc

    logger.info("Loaded config from %s (%d groups)", path, len(config.groups))
    return config


def load_inventory(path: Path | str) -> Inventory:
    """Load an inventory file and resolve connection defaults.

    Raises:
        ConfigError: On YAML parse errors or validation failures.
    """
    path = Path(path)
    raw = _read_yaml(path)

    try:
        raw["defaults"] = _resolve_defaults(raw.get("defaults") or {}, path.parent)
        inventory = Inventory.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    inventory.inventory_dir = path.parent

    logger.info(
        "Loaded inventory from %s (%d groups, %d hosts)",
        path,
        len(inventory.groups),
        sum(len(g.hosts) for g in inventory.groups.values()),
    )
    return inventory
