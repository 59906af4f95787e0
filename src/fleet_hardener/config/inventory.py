"""Inventory models: which hosts exist and how to reach them."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleet_hardener.core.host import Host


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


class ConnectionSettings(BaseSettings):
    """Connection defaults applied to every host that does not override them.

    Fields can be set under ``defaults:`` in the inventory YAML or through
    environment variables with the ``HARDENER_`` prefix. YAML values take
    precedence.
    """

    model_config = SettingsConfigDict(env_prefix="HARDENER_", extra="ignore")

    user: str = "root"
    port: int = Field(default=22, ge=1, le=65535)
    key_path: Path | None = None
    connect_timeout: float | None = Field(default=None, gt=0)


class HostEntry(BaseModel):
    """Per-host (or per-group ``vars``) connection overrides."""

    model_config = ConfigDict(extra="forbid")

    address: str | None = None
    user: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    key_path: Path | None = None


class InventoryGroup(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hosts: Annotated[dict[str, HostEntry | None], BeforeValidator(_none_to_dict)] = {}
    vars: HostEntry = Field(default_factory=HostEntry)


class Inventory(BaseModel):
    """Groups of hosts plus the connection defaults they inherit."""

    model_config = ConfigDict(extra="forbid")

    defaults: ConnectionSettings = Field(default_factory=ConnectionSettings)
    groups: Annotated[
        dict[str, Annotated[InventoryGroup, BeforeValidator(_none_to_dict)]],
        BeforeValidator(_none_to_dict),
    ] = {}
    inventory_dir: Path = Path()

    def _resolve(self, name: str, group: str, entry: HostEntry | None) -> Host:
        group_vars = self.groups[group].vars
        entry = entry or HostEntry()

        def pick(field: str) -> Any:
            for source in (entry, group_vars):
                value = getattr(source, field)
                if value is not None:
                    return value
            return getattr(self.defaults, field)

        key_path = pick("key_path")
        if key_path is not None:
            key_path = Path(key_path).expanduser()
            if not key_path.is_absolute():
                key_path = self.inventory_dir / key_path

        return Host(
            name=name,
            address=entry.address or group_vars.address or name,
            user=pick("user"),
            port=pick("port"),
            key_path=key_path,
            group=group,
        )

    def select(self, groups: list[str] | None = None) -> list[Host]:
        """Hosts in *groups* (all groups when empty), in inventory order.

        A host listed in more than one selected group is resolved once, from
        the first group that lists it.

        Raises:
            KeyError: If a requested group is not in the inventory.
        """
        names = groups or list(self.groups)
        missing = [g for g in names if g not in self.groups]
        if missing:
            raise KeyError(", ".join(missing))

        hosts: dict[str, Host] = {}
        for group in names:
            for name, entry in self.groups[group].hosts.items():
                if name not in hosts:
                    hosts[name] = self._resolve(name, group, entry)
        return list(hosts.values())
