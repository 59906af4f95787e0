"""YAML configuration loading, host selection and transport setup."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fleet_hardener.config.inventory import ConnectionSettings, HostEntry, Inventory
from fleet_hardener.config.loader import ConfigError, load_config, load_inventory
from fleet_hardener.config.registry import default_registry
from fleet_hardener.config.schema import Config, GroupConfig, RunSettings
from fleet_hardener.core.transport import ParamikoTransport

if TYPE_CHECKING:
    from pathlib import Path

    from fleet_hardener.core.host import Host

__all__ = [
    "Config",
    "ConfigError",
    "ConnectionSettings",
    "GroupConfig",
    "HostEntry",
    "Inventory",
    "RunSettings",
    "default_registry",
    "load",
    "load_config",
    "load_inventory",
    "select_hosts",
    "transport_for",
]


def load(path: Path | str) -> Config:
    """Load a YAML hardening configuration file."""
    return load_config(path)


def select_hosts(inventory: Inventory, groups: list[str] | None = None) -> list[Host]:
    """Resolve the hosts in *groups* (every group when empty).

    Raises:
        ConfigError: If a requested group is not in the inventory.
    """
    try:
        return inventory.select(groups)
    except KeyError as exc:
        raise ConfigError(f"Unknown inventory group(s): {exc.args[0]}") from exc


def transport_for(config: Config, inventory: Inventory) -> ParamikoTransport:
    """Build the SSH transport from run settings and connection defaults."""
    return ParamikoTransport(
        connect_timeout=inventory.defaults.connect_timeout or config.settings.connect_timeout,
        command_timeout=config.settings.command_timeout,
        strict_host_keys=config.settings.strict_host_keys,
    )
