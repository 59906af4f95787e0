from typing import ClassVar

import pytest

from fleet_hardener.engine import validate_declaration
from fleet_hardener.engine.errors import ConfigValidationError, UnknownResourceTypeError
from fleet_hardener.engine.handlers import ResourceHandler
from fleet_hardener.engine.registry import ResourceTypeRegistry
from fleet_hardener.resources.base import Resource


class DummyResource(Resource):
    resource_type: ClassVar[str] = "dummy"
    value: int


class DummyHandler(ResourceHandler["DummyResource"]):
    pass


def test_registry_register_and_get() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()

    registry.register(DummyResource, handler)
    reg = registry.get("dummy")

    assert reg.resource_type == "dummy"
    assert reg.model is DummyResource
    assert reg.handler is handler


def test_registry_handler_for_resource() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()
    registry.register(DummyResource, handler)

    assert registry.handler_for(DummyResource(name="d", value=1)) is handler


def test_registry_duplicate_registration() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()

    registry.register(DummyResource, handler)
    with pytest.raises(ValueError):
        registry.register(DummyResource, handler)


def test_registry_unknown_type() -> None:
    registry = ResourceTypeRegistry()
    with pytest.raises(UnknownResourceTypeError, match="Unknown resource type: missing"):
        registry.get("missing")


def test_registry_rejects_non_resource_models() -> None:
    registry = ResourceTypeRegistry()
    with pytest.raises(TypeError):
        registry.register(dict, DummyHandler())  # type: ignore[arg-type]


def test_registry_membership_and_iteration() -> None:
    registry = ResourceTypeRegistry()
    registry.register(DummyResource, DummyHandler())

    assert "dummy" in registry
    assert "missing" not in registry
    assert [reg.resource_type for reg in registry] == ["dummy"]


def test_validate_declaration_reports_unregistered_types() -> None:
    with pytest.raises(ConfigValidationError) as exc_info:
        validate_declaration([DummyResource(name="d", value=1)], ResourceTypeRegistry())
    assert exc_info.value.errors == ["dummy.d: no handler registered for 'dummy'"]


def test_validate_declaration_collects_duplicates_with_other_errors() -> None:
    registry = ResourceTypeRegistry()
    registry.register(DummyResource, DummyHandler())
    resources = [
        DummyResource(name="d", value=1),
        DummyResource(name="d", value=1),
        DummyResource(name="e", value=3, depends_on=["dummy.missing"]),
    ]
    with pytest.raises(ConfigValidationError) as exc_info:
        validate_declaration(resources, registry)
    assert type(exc_info.value) is ConfigValidationError
    assert "Duplicate resource address: dummy.d" in exc_info.value.errors
    assert len(exc_info.value.errors) == 2
