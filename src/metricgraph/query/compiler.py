"""Metric query compilation.

Turns a MetricInstruction into a QueryDescriptor:

| pivot | pivot attribute | descriptor |
|-------|-----------------|------------|
| no    | -               | CountQuery |
| yes   | no              | GroupedCountQuery |
| yes   | yes             | ZeroFilledGroupedCountQuery |

When a pivot is requested without a join path, one is resolved over the
graph of entities whose tables exist.
"""

from __future__ import annotations

from metricgraph.entities.models import Association, EntityDescriptor, MetadataSnapshot
from metricgraph.errors import (
    InvalidPivotError,
    NoJoinPathError,
    UnknownAssociationError,
    UnknownEntityError,
)
from metricgraph.graph.builder import EntityGraph, build_from_snapshot
from metricgraph.graph.paths import resolve_join_path
from metricgraph.query.models import (
    COUNT_LABEL,
    ColumnPair,
    CountQuery,
    GroupedCountQuery,
    JoinStep,
    MetricInstruction,
    QueryDescriptor,
    ZeroFilledGroupedCountQuery,
)

ROOT_ALIAS = "t0"


class MetricQueryCompiler:
    """Compiles instructions against one metadata snapshot."""

    def __init__(self, snapshot: MetadataSnapshot, path_graph: EntityGraph | None = None):
        self.snapshot = snapshot
        self.path_graph = path_graph or build_from_snapshot(snapshot, existing_only=True)

    def resolve_entity(self, name: str) -> EntityDescriptor:
        entity = self.snapshot.entity(name)
        if entity is None:
            raise UnknownEntityError(name)
        return entity

    def compile(self, instruction: MetricInstruction) -> QueryDescriptor:
        """Compile one instruction.

        Raises:
            UnknownEntityError: Entity or pivot not in the snapshot
            UnknownAssociationError: Explicit join path names a missing association
            NoJoinPathError: Pivot requested but unreachable
            InvalidPivotError: Pivot has no primary key, lacks the attribute, or
                groups on a column named like the count column
        """
        entity = self.resolve_entity(instruction.entity)

        if instruction.pivot is None:
            return CountQuery(entity=entity.name, table_name=entity.table_name)

        pivot = self.resolve_entity(instruction.pivot)
        if pivot.primary_key is None:
            raise InvalidPivotError(f"Pivot {pivot.name} has no primary key to group by")
        if pivot.primary_key == COUNT_LABEL:
            raise InvalidPivotError(
                f"Pivot {pivot.name} primary key {COUNT_LABEL!r} clashes with the count column"
            )

        if instruction.join_path is not None:
            join_path = tuple(instruction.join_path)
        else:
            missing = [e.table_name for e in (entity, pivot) if not e.exists]
            if missing:
                raise NoJoinPathError(
                    entity.name, pivot.name, reason=f"table {missing[0]} does not exist"
                )
            join_path = tuple(resolve_join_path(self.path_graph, entity.name, pivot.name))

        joins, pivot_alias = self._join_steps(entity, pivot, join_path)

        if instruction.pivot_attribute_name is None:
            return GroupedCountQuery(
                entity=entity.name,
                table_name=entity.table_name,
                pivot=pivot.name,
                pivot_alias=pivot_alias,
                group_by=pivot.primary_key,
                join_path=join_path,
                joins=joins,
            )

        if instruction.pivot_attribute_name not in pivot.attribute_names:
            raise InvalidPivotError(
                f"Pivot {pivot.name} has no attribute {instruction.pivot_attribute_name}"
            )
        if instruction.pivot_attribute_name == COUNT_LABEL:
            raise InvalidPivotError(
                f"Pivot attribute {COUNT_LABEL!r} clashes with the count column"
            )

        return ZeroFilledGroupedCountQuery(
            entity=entity.name,
            table_name=entity.table_name,
            pivot=pivot.name,
            pivot_table_name=pivot.table_name,
            pivot_alias=pivot_alias,
            primary_key=pivot.primary_key,
            pivot_attribute_name=instruction.pivot_attribute_name,
            join_path=join_path,
            joins=joins,
        )

    def _find_association(self, entity: EntityDescriptor, name: str) -> Association:
        for association in self.snapshot.associations_for(entity.name):
            if association.name == name and not association.is_polymorphic:
                return association
        raise UnknownAssociationError(entity.name, name)

    def _join_steps(
        self,
        entity: EntityDescriptor,
        pivot: EntityDescriptor,
        join_path: tuple[str, ...],
    ) -> tuple[tuple[JoinStep, ...], str]:
        """Expand association names into join steps.

        Returns:
            The join steps and the alias under which the pivot table appears
        """
        steps: list[JoinStep] = []
        current = entity
        current_alias = ROOT_ALIAS

        for name in join_path:
            association = self._find_association(current, name)
            target = self.resolve_entity(association.target_entity or "")

            if association.through is not None:
                through_alias = f"t{len(steps) + 1}"
                steps.append(
                    JoinStep(
                        association=name,
                        table_name=association.through.table_name,
                        alias=through_alias,
                        on=_column_pairs(current_alias, association.through.source_columns),
                    )
                )
                left_alias, pairs = through_alias, association.through.target_columns
            else:
                left_alias, pairs = current_alias, association.join_columns

            if not pairs:
                raise NoJoinPathError(
                    entity.name, pivot.name, reason=f"{current.name}.{name} has no join columns"
                )

            target_alias = f"t{len(steps) + 1}"
            steps.append(
                JoinStep(
                    association=name,
                    table_name=target.table_name,
                    alias=target_alias,
                    on=_column_pairs(left_alias, pairs),
                )
            )
            current, current_alias = target, target_alias

        if current.name != pivot.name:
            raise NoJoinPathError(
                entity.name, pivot.name, reason=f"join path ends at {current.name}"
            )

        return tuple(steps), current_alias


def _column_pairs(left_alias: str, pairs: tuple[tuple[str, str], ...]) -> tuple[ColumnPair, ...]:
    return tuple(
        ColumnPair(left_alias=left_alias, left_column=left, right_column=right)
        for left, right in pairs
    )
