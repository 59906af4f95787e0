"""Service resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from fleet_hardener.resources.base import Resource
from fleet_hardener.resources.markers import Compare, Ref


class ServiceResource(Resource):
    """A systemd service that should be enabled and running.

    ``restart_on`` lists the addresses of configuration resources the service
    watches. When any of them changes during a run the service is restarted
    once, after every other action for the host has settled.
    """

    resource_type: ClassVar[str] = "service"
    plan_priority: ClassVar[int] = 60
    flag_field: ClassVar[str | None] = "running"

    service: str = Field(pattern=r"^[a-zA-Z0-9@_.\-]+$")
    package: Annotated[str | None, Compare("ignore")] = None
    enabled: bool = True
    running: bool = True
    restart_on: Annotated[list[str], Ref(), Compare("ignore")] = Field(default_factory=list)

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type, self.service)

    @property
    def provided_by(self) -> str:
        """Name of the package that ships the unit."""
        return self.package or self.service
