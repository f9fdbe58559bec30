"""Entity metadata models.

A snapshot of the application's entity model as reported by a metadata
provider. Snapshots are built per request and never mutated afterwards.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class AssociationKind(str, Enum):
    """Declared cardinality of an association."""

    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    HAS_MANY_THROUGH = "has_many_through"
    POLYMORPHIC = "polymorphic"


class DirectTarget(BaseModel):
    """Association pointing at a single, statically known entity."""

    model_config = ConfigDict(frozen=True)

    type: Literal["direct"] = "direct"
    entity: str


class PolymorphicTarget(BaseModel):
    """Association whose concrete target is only known per row."""

    model_config = ConfigDict(frozen=True)

    type: Literal["polymorphic"] = "polymorphic"


AssociationTarget = Annotated[DirectTarget | PolymorphicTarget, Field(discriminator="type")]


class ThroughTable(BaseModel):
    """Intermediate table of a has-many-through association."""

    model_config = ConfigDict(frozen=True)

    table_name: str
    source_columns: tuple[tuple[str, str], ...]
    """(owner column, through column) pairs."""

    target_columns: tuple[tuple[str, str], ...]
    """(through column, target column) pairs."""


class Association(BaseModel):
    """A declared relationship from one entity to another."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: AssociationKind
    target: AssociationTarget
    options: dict[str, str] = Field(default_factory=dict)
    """Declared options, stringified, preserved for the caller."""

    join_columns: tuple[tuple[str, str], ...] = ()
    """(owner column, target column) pairs for direct associations."""

    through: ThroughTable | None = None

    @property
    def target_entity(self) -> str | None:
        """Name of the target entity, None when polymorphic."""
        if isinstance(self.target, DirectTarget):
            return self.target.entity
        return None

    @property
    def is_polymorphic(self) -> bool:
        return isinstance(self.target, PolymorphicTarget)

    @property
    def is_graph_edge(self) -> bool:
        """Whether this association contributes an edge to the entity graph."""
        return self.kind == AssociationKind.BELONGS_TO and not self.is_polymorphic


class EntityDescriptor(BaseModel):
    """One live entity type."""

    model_config = ConfigDict(frozen=True)

    name: str
    table_name: str
    primary_key: str | None
    attribute_names: tuple[str, ...]
    exists: bool = True


class MetadataSnapshot(BaseModel):
    """All entities and their associations as of one provider call."""

    model_config = ConfigDict(frozen=True)

    entities: tuple[EntityDescriptor, ...]
    associations: dict[str, tuple[Association, ...]] = Field(default_factory=dict)
    schema_version: str | None = None

    def entity(self, name: str) -> EntityDescriptor | None:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None

    def associations_for(self, name: str) -> tuple[Association, ...]:
        return self.associations.get(name, ())

    def existing(self) -> MetadataSnapshot:
        """Snapshot restricted to entities whose backing table is present."""
        entities = tuple(e for e in self.entities if e.exists)
        names = {e.name for e in entities}
        return MetadataSnapshot(
            entities=entities,
            associations={k: v for k, v in self.associations.items() if k in names},
            schema_version=self.schema_version,
        )
