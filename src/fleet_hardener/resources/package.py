"""Package resource model."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from fleet_hardener.resources.base import Resource


class PackageResource(Resource):
    """An OS package that must be installed (e.g. ``ufw``, ``fail2ban``)."""

    resource_type: ClassVar[str] = "package"
    plan_priority: ClassVar[int] = 0

    package: str = Field(pattern=r"^[a-z0-9][a-z0-9+.\-]*$")

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type, self.package)
