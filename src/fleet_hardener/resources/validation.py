"""Declaration-level validation of a host's resource set."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fleet_hardener.resources.base import Resource


def _duplicate_addresses(resources: Sequence[Resource]) -> list[str]:
    seen: set[str] = set()
    errors: list[str] = []
    for r in resources:
        if r.address in seen:
            errors.append(f"Duplicate resource address: {r.address}")
        seen.add(r.address)
    return errors


def _unknown_references(resources: Sequence[Resource]) -> list[str]:
    addresses = {r.address for r in resources}
    errors: list[str] = []
    for r in resources:
        for dep in r.depends_on:
            if dep not in addresses:
                errors.append(f"Resource '{r.address}' depends on unknown address '{dep}'")
            elif dep == r.address:
                errors.append(f"Resource '{r.address}' depends on itself")
        for ref in r.reference_addresses():
            if ref not in addresses:
                errors.append(f"Resource '{r.address}' references unknown address '{ref}'")
    return errors


def _contradictions(resources: Sequence[Resource]) -> list[str]:
    """Resources managing the same host object must agree on its desired value."""
    first: dict[tuple[str, ...], Resource] = {}
    errors: list[str] = []
    for r in resources:
        key = r.identity()
        other = first.get(key)
        if other is None:
            first[key] = r
            continue
        if other.state_attributes() != r.state_attributes():
            errors.append(
                f"Contradictory desired values for {' '.join(key[1:]) or key[0]}: "
                f"{other.address} and {r.address}"
            )
    return errors


def validate_resources(resources: Sequence[Resource]) -> list[str]:
    """Check a declared resource set. Returns error messages (empty = valid)."""
    return [
        *_duplicate_addresses(resources),
        *_unknown_references(resources),
        *_contradictions(resources),
    ]
