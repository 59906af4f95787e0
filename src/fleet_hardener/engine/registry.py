"""Resource type registry: which handler converges which resource kind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.errors import UnknownResourceTypeError
from fleet_hardener.resources.base import Resource

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fleet_hardener.engine.handlers import ResourceHandler


@dataclass(frozen=True)
class ResourceTypeRegistration:
    resource_type: str
    model: type[Resource]
    handler: ResourceHandler[Any]


class ResourceTypeRegistry:
    """Maps ``resource_type`` to its model and handler.

    One handler instance serves every host; handlers keep no per-host state
    and receive the host through ``EngineContext``.
    """

    def __init__(self) -> None:
        self._registrations: dict[str, ResourceTypeRegistration] = {}

    def register(self, model: type[Resource], handler: ResourceHandler[Any]) -> None:
        if not (isinstance(model, type) and issubclass(model, Resource)):
            raise TypeError(f"Not a Resource model: {model!r}")
        resource_type = getattr(model, "resource_type", None)
        if not isinstance(resource_type, str) or not resource_type:
            raise ValueError("Resource model must define a non-empty classvar `resource_type`")
        if resource_type in self._registrations:
            raise ValueError(f"Resource type already registered: {resource_type}")

        self._registrations[resource_type] = ResourceTypeRegistration(
            resource_type=resource_type,
            model=model,
            handler=handler,
        )

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._registrations

    def __iter__(self) -> Iterator[ResourceTypeRegistration]:
        return iter(self._registrations.values())

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        try:
            return self._registrations[resource_type]
        except KeyError as e:
            raise UnknownResourceTypeError(resource_type) from e

    def handler_for(self, resource: Resource) -> ResourceHandler[Any]:
        return self.get(resource.resource_type).handler
