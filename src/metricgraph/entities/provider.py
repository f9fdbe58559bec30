"""Metadata providers.

A provider enumerates the live entity types of an application and reports,
per entity, its storage table, attributes, primary key and associations.

Usage:
    from metricgraph.entities.provider import SQLAlchemyMetadataProvider

    provider = SQLAlchemyMetadataProvider(Base, engine)
    snapshot = provider.snapshot()
"""

from __future__ import annotations

import importlib
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import yaml
from sqlalchemy import Table, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapper, RelationshipDirection, RelationshipProperty, registry

from metricgraph.core.logging import get_logger
from metricgraph.entities.models import (
    Association,
    AssociationKind,
    DirectTarget,
    EntityDescriptor,
    MetadataSnapshot,
    PolymorphicTarget,
    ThroughTable,
)

logger = get_logger(__name__)

_DEFAULT_CASCADE = {"save-update", "merge"}


class MetadataProvider(Protocol):
    """Anything able to produce a fresh metadata snapshot."""

    def snapshot(self) -> MetadataSnapshot: ...


class MetadataLoadError(Exception):
    """Error loading entity metadata."""


def load_registry(import_path: str) -> registry:
    """Import a declarative base or registry from ``module:attribute``."""
    module_name, _, attribute = import_path.partition(":")
    if not attribute:
        raise MetadataLoadError(f"Expected 'module:attribute', got {import_path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise MetadataLoadError(f"Cannot import {module_name}: {e}") from e
    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise MetadataLoadError(f"{module_name} has no attribute {attribute}") from e
    return _as_registry(target)


def _as_registry(target: Any) -> registry:
    if isinstance(target, registry):
        return target
    reg = getattr(target, "registry", None)
    if isinstance(reg, registry):
        return reg
    raise MetadataLoadError(f"{target!r} is neither a declarative base nor a registry")


class SQLAlchemyMetadataProvider:
    """Reports the entities mapped in a SQLAlchemy registry.

    Entities are the registry's mappers, taken from the explicit registry
    rather than discovered at runtime. When an engine is given, table
    existence and the alembic migration version are read from the database.
    """

    def __init__(self, base: Any, engine: Engine | None = None):
        self.registry = _as_registry(base)
        self.engine = engine

    def snapshot(self) -> MetadataSnapshot:
        existing_tables: set[tuple[str | None, str]] | None = None
        schema_version: str | None = None

        self.registry.configure()
        mappers = sorted(
            (m for m in self.registry.mappers if isinstance(m.local_table, Table)),
            key=lambda m: m.class_.__name__,
        )

        if self.engine is not None:
            inspector = inspect(self.engine)
            schemas = {m.local_table.schema for m in mappers}
            existing_tables = {
                (schema, name) for schema in schemas for name in inspector.get_table_names(schema)
            }
            if inspector.has_table("alembic_version"):
                with self.engine.connect() as conn:
                    schema_version = conn.execute(
                        text("SELECT version_num FROM alembic_version")
                    ).scalar()

        entities: list[EntityDescriptor] = []
        associations: dict[str, tuple[Association, ...]] = {}

        for mapper in mappers:
            table = mapper.local_table
            name = mapper.class_.__name__
            exists = existing_tables is None or (table.schema, table.name) in existing_tables
            entities.append(
                EntityDescriptor(
                    name=name,
                    table_name=table.name,
                    primary_key=mapper.primary_key[0].name if mapper.primary_key else None,
                    attribute_names=tuple(column.name for column in table.columns),
                    exists=exists,
                )
            )
            associations[name] = tuple(
                _describe_relationship(prop) for prop in mapper.relationships
            )

        logger.debug(
            "metadata_snapshot",
            entities=len(entities),
            schema_version=schema_version,
        )
        return MetadataSnapshot(
            entities=tuple(entities),
            associations=associations,
            schema_version=schema_version,
        )


def _describe_relationship(prop: RelationshipProperty[Any]) -> Association:
    options = _declared_options(prop)

    if prop.info.get("polymorphic"):
        return Association(
            name=prop.key,
            kind=AssociationKind.POLYMORPHIC,
            target=PolymorphicTarget(),
            options=options,
        )

    target_mapper: Mapper[Any] = prop.mapper
    target = DirectTarget(entity=target_mapper.class_.__name__)

    if prop.secondary is not None:
        return Association(
            name=prop.key,
            kind=AssociationKind.HAS_MANY_THROUGH,
            target=target,
            options=options,
            through=ThroughTable(
                table_name=prop.secondary.name,
                source_columns=tuple(
                    (local.name, through.name) for local, through in prop.synchronize_pairs
                ),
                target_columns=tuple(
                    (through.name, remote.name)
                    for remote, through in prop.secondary_synchronize_pairs or ()
                ),
            ),
        )

    if prop.direction is RelationshipDirection.MANYTOONE:
        kind = AssociationKind.BELONGS_TO
    elif prop.uselist is False:
        kind = AssociationKind.HAS_ONE
    else:
        kind = AssociationKind.HAS_MANY

    return Association(
        name=prop.key,
        kind=kind,
        target=target,
        options=options,
        join_columns=tuple((local.name, remote.name) for local, remote in prop.local_remote_pairs),
    )


def _stringify(value: Any) -> str:
    """Option values as the control plane expects them (``true``, not ``True``)."""
    return str(value).lower() if isinstance(value, bool) else str(value)


def _declared_options(prop: RelationshipProperty[Any]) -> dict[str, str]:
    """Stringify the options a relationship sets away from their defaults."""
    options: dict[str, str] = {}
    if prop.back_populates:
        options["back_populates"] = str(prop.back_populates)
    if prop.secondary is not None:
        options["secondary"] = prop.secondary.name
    if prop.viewonly:
        options["viewonly"] = "true"
    if prop.uselist is False and prop.direction is not RelationshipDirection.MANYTOONE:
        options["uselist"] = "false"
    if prop.order_by:
        options["order_by"] = ", ".join(str(clause) for clause in prop.order_by)
    if set(prop.cascade) != _DEFAULT_CASCADE:
        options["cascade"] = ", ".join(sorted(prop.cascade))
    if prop.lazy != "select":
        options["lazy"] = str(prop.lazy)
    for key, value in prop.info.items():
        options[str(key)] = _stringify(value)
    return options


class StaticMetadataProvider:
    """Serves a snapshot described by plain mappings.

    Expected shape (JSON or YAML)::

        schema_version: "20240101"
        entities:
          - name: Order
            table_name: orders
            primary_key: id
            attribute_names: [id, customer_id]
            exists: true
            associations:
              - name: customer
                kind: belongs_to
                target_entity: Customer
                join_columns: [[customer_id, id]]
    """

    def __init__(self, data: Mapping[str, Any]):
        try:
            self._snapshot = _parse_snapshot(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # ValueError covers pydantic's ValidationError and unknown kinds
            raise MetadataLoadError(f"Invalid snapshot: {type(e).__name__}: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> StaticMetadataProvider:
        try:
            data = yaml.safe_load(path.read_text())
        except (OSError, yaml.YAMLError) as e:
            raise MetadataLoadError(f"Cannot read snapshot {path}: {e}") from e
        if not isinstance(data, Mapping):
            raise MetadataLoadError(f"Snapshot {path} must be a mapping")
        return cls(data)

    def snapshot(self) -> MetadataSnapshot:
        return self._snapshot


def _parse_snapshot(data: Mapping[str, Any]) -> MetadataSnapshot:
    entities: list[EntityDescriptor] = []
    associations: dict[str, tuple[Association, ...]] = {}

    for raw in data.get("entities", []):
        entity = EntityDescriptor(
            name=raw["name"],
            table_name=raw.get("table_name", raw["name"]),
            primary_key=raw.get("primary_key", "id"),
            attribute_names=tuple(raw.get("attribute_names", ())),
            exists=raw.get("exists", raw.get("table_exists", True)),
        )
        entities.append(entity)
        associations[entity.name] = tuple(
            _parse_association(entity.name, a) for a in raw.get("associations", [])
        )

    by_name = {e.name: e for e in entities}
    associations = {
        owner: tuple(_conventional_join_columns(by_name[owner], a, by_name) for a in assocs)
        for owner, assocs in associations.items()
    }

    return MetadataSnapshot(
        entities=tuple(entities),
        associations=associations,
        schema_version=data.get("schema_version"),
    )


def _foreign_key_name(name: str) -> str:
    """``LineItem`` -> ``line_item_id``."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower() + "_id"


def _conventional_join_columns(
    owner: EntityDescriptor,
    association: Association,
    entities: Mapping[str, EntityDescriptor],
) -> Association:
    """Fill in ``<name>_id`` style join columns when a snapshot omits them."""
    target = entities.get(association.target_entity or "")
    if association.join_columns or association.through or target is None:
        return association
    if association.kind is AssociationKind.BELONGS_TO and target.primary_key:
        pairs = ((association.name + "_id", target.primary_key),)
    elif association.kind in (AssociationKind.HAS_ONE, AssociationKind.HAS_MANY) and owner.primary_key:
        pairs = ((owner.primary_key, _foreign_key_name(owner.name)),)
    else:
        return association
    return association.model_copy(update={"join_columns": pairs})


def _parse_association(owner: str, raw: Mapping[str, Any]) -> Association:
    kind = AssociationKind(raw.get("kind", raw.get("macro", "belongs_to")))
    options = {str(k): _stringify(v) for k, v in (raw.get("options") or {}).items()}
    target_entity = raw.get("target_entity")
    polymorphic = kind is AssociationKind.POLYMORPHIC or options.get("polymorphic") == "true"

    if polymorphic:
        target: DirectTarget | PolymorphicTarget = PolymorphicTarget()
        kind = AssociationKind.POLYMORPHIC
    elif target_entity:
        target = DirectTarget(entity=target_entity)
    else:
        raise MetadataLoadError(
            f"Association {owner}.{raw.get('name')} has no target and is not polymorphic"
        )

    through = raw.get("through")
    return Association(
        name=raw["name"],
        kind=kind,
        target=target,
        options=options,
        join_columns=tuple(tuple(pair) for pair in raw.get("join_columns", ())),
        through=ThroughTable(
            table_name=through["table_name"],
            source_columns=tuple(tuple(p) for p in through["source_columns"]),
            target_columns=tuple(tuple(p) for p in through["target_columns"]),
        )
        if through
        else None,
    )
