"""Declarative field markers for resource models.

Two markers attach to Pydantic fields via ``Annotated``:

- ``Ref``: field references other resources by address (implicit dependency)
- ``Compare``: field-level comparison strategy used by the planner

Helper functions introspect these markers at runtime so the planner and the
validators don't need per-kind knowledge of which fields matter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypeVar

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")
CompareStrategy: TypeAlias = Literal["partial", "exact", "set", "subset", "ignore"]


# ── Marker dataclasses ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Ref:
    """Field holds one or more resource addresses.

    ``resource_type`` is optional; ``None`` means "any resource".
    """

    resource_type: str | None = None


@dataclass(frozen=True, slots=True)
class Compare:
    """How the planner should compare the field.

    - ``"partial"``: for dict values, only keys declared in desired are compared
    - ``"exact"``: strict equality comparison
    - ``"set"``: order-insensitive list comparison
    - ``"subset"``: every desired list element must be present on the host
    - ``"ignore"``: never compared (engine-only metadata)
    """

    strategy: CompareStrategy


# ── Shared introspection primitives ─────────────────────────────────


def _find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def _iter_marked_fields(
    model_or_cls: Any,
    marker_type: type[M],
) -> list[tuple[str, FieldInfo, M]]:
    """Return ``(field_name, field_info, marker)`` for every field carrying *marker_type*."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return [
        (name, fi, marker)
        for name, fi in cls.model_fields.items()
        if (marker := _find_marker(fi, marker_type)) is not None
    ]


def _coerce_to_list(value: Any) -> list[str]:
    """Normalize a scalar, list, or ``None`` to a flat list of strings."""
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


# ── Public helpers ──────────────────────────────────────────────────


def collect_refs(resource: Any) -> list[str]:
    """Collect referenced addresses from ``Ref``-annotated fields."""
    refs: list[str] = []
    for name, _, _marker in _iter_marked_fields(resource, Ref):
        refs.extend(_coerce_to_list(getattr(resource, name)))
    return refs


def collect_compare_strategies(resource_or_cls: Any) -> dict[str, CompareStrategy]:
    """Collect per-field compare strategies from ``Compare`` markers."""
    return {
        name: marker.strategy for name, _, marker in _iter_marked_fields(resource_or_cls, Compare)
    }
