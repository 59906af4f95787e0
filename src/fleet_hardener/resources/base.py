"""Base resource class for host posture resources."""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from fleet_hardener.resources.markers import collect_compare_strategies, collect_refs

# Fields every resource carries that describe the declaration, not host state.
META_FIELDS: frozenset[str] = frozenset({"name", "description", "depends_on", "address"})


class Resource(BaseModel):
    """Base class for all declarable resources.

    Resources are pure data - they define the desired state.
    Handlers know how to probe and converge them.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]
    plan_priority: ClassVar[int] = 100
    # Boolean-flag kinds name the field whose off -> on transition is an ENABLE.
    flag_field: ClassVar[str | None] = None

    name: str = Field(pattern=r"^[a-zA-Z0-9_\-]+$")
    description: str = ""

    # Lifecycle
    depends_on: list[str] = []

    def reference_addresses(self) -> list[str]:
        """Addresses of other resources this one references (from Ref markers)."""
        return collect_refs(self)

    def identity(self) -> tuple[str, ...]:
        """Key of the host object this resource manages.

        Two resources with the same identity but different desired values
        contradict each other.
        """
        return (self.resource_type, self.name)

    def state_attributes(self) -> dict[str, Any]:
        """Desired host-state attributes, as compared against probed state."""
        ignored = {
            k for k, strategy in collect_compare_strategies(self).items() if strategy == "ignore"
        }
        return self.model_dump(mode="json", exclude=META_FIELDS | ignored)

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'firewall_rule.ssh')."""
        return f"{self.resource_type}.{self.name}"
