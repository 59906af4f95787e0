"""Host - connection parameters for one inventory target."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Host(BaseModel):
    """A reconciliation target, as resolved from the inventory.

    Attributes:
        name: Inventory name (e.g., "web1")
        address: Hostname or IP the transport connects to
        user: Connection user; non-root users run commands through ``sudo -n``
        port: SSH port, also the management port that must stay reachable
        key_path: Private key used for authentication
        group: Inventory group the host was selected from
    """

    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    user: str = "root"
    port: int = Field(default=22, ge=1, le=65535)
    key_path: Path | None = None
    group: str = ""

    @property
    def management_port(self) -> int:
        return self.port

    def __str__(self) -> str:
        return self.name
