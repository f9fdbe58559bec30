"""Schema listing and metric batches.

Entry points behind the two inbound commands. Each call takes a fresh
metadata snapshot; nothing is cached between calls.

Usage:
    provider = SQLAlchemyMetadataProvider(Base, engine)
    executor = SQLAlchemyQueryExecutor(engine)

    schema = describe_schema(provider)
    metrics = compute_metrics(provider, executor, [{"metric_configuration_id": 1, ...}])
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from metricgraph.core.logging import get_logger, log_context
from metricgraph.core.models.base import Result
from metricgraph.entities.models import Association, EntityDescriptor, MetadataSnapshot
from metricgraph.entities.provider import MetadataLoadError, MetadataProvider
from metricgraph.errors import InvalidInstructionError, MetricGraphError, RankingDivergedError
from metricgraph.graph.builder import build_from_snapshot
from metricgraph.graph.paths import resolve_join_path
from metricgraph.graph.ranking import rank_entities
from metricgraph.query.compiler import MetricQueryCompiler
from metricgraph.query.execution import QueryExecutor
from metricgraph.query.models import (
    CountQuery,
    EntityTotal,
    MetricInstruction,
    MetricResult,
    MetricsResponse,
)

logger = get_logger(__name__)


class AssociationSchema(BaseModel):
    name: str
    kind: str
    target_entity: str | None
    options: dict[str, str] = Field(default_factory=dict)


class EntitySchema(BaseModel):
    name: str
    table_name: str
    attribute_names: list[str]
    primary_key: str | None
    table_exists: bool
    associations: list[AssociationSchema]
    rank: float | None = None


class SchemaResponse(BaseModel):
    schema_version: str | None = None
    entities: list[EntitySchema]
    ranked: bool = True


def _take_snapshot(provider: MetadataProvider) -> Result[MetadataSnapshot]:
    try:
        return Result.ok(provider.snapshot())
    except (MetadataLoadError, SQLAlchemyError) as e:
        logger.error("metadata_read_failed", error=str(e))
        return Result.fail(f"Cannot read entity metadata: {e}")


def _entity_schema(
    entity: EntityDescriptor, associations: Sequence[Association], rank: float | None
) -> EntitySchema:
    return EntitySchema(
        name=entity.name,
        table_name=entity.table_name,
        attribute_names=list(entity.attribute_names),
        primary_key=entity.primary_key,
        table_exists=entity.exists,
        associations=[
            AssociationSchema(
                name=a.name,
                kind=a.kind.value,
                target_entity=a.target_entity,
                options=dict(a.options),
            )
            for a in associations
        ],
        rank=rank,
    )


def describe_schema(provider: MetadataProvider) -> Result[SchemaResponse]:
    """List entities with existing tables, most important first.

    When ranking fails the listing falls back to name order and the result
    carries a warning.
    """
    snapshot_result = _take_snapshot(provider)
    if not snapshot_result.success or snapshot_result.value is None:
        return Result.fail(snapshot_result.error or "Cannot read entity metadata")

    listed = snapshot_result.value.existing()
    graph = build_from_snapshot(listed)
    warnings: list[str] = []

    try:
        ranks: dict[str, float] = rank_entities(graph)
    except RankingDivergedError as e:
        logger.warning("ranking_unavailable", error=e.message)
        warnings.append(f"Ranking unavailable, entities listed by name: {e.message}")
        ranks = {}

    entities = sorted(listed.entities, key=lambda e: (-ranks.get(e.name, 0.0), e.name))
    response = SchemaResponse(
        schema_version=listed.schema_version,
        entities=[
            _entity_schema(e, listed.associations_for(e.name), ranks.get(e.name))
            for e in entities
        ],
        ranked=bool(ranks),
    )
    logger.info("schema_described", entities=len(response.entities), ranked=response.ranked)
    return Result.ok(response, warnings)


def _run_instruction(
    compiler: MetricQueryCompiler,
    executor: QueryExecutor,
    raw: MetricInstruction | Mapping[str, Any],
) -> MetricResult:
    if isinstance(raw, MetricInstruction):
        metric_configuration_id = raw.metric_configuration_id
    elif isinstance(raw, Mapping):
        metric_configuration_id = raw.get("metric_configuration_id")
    else:
        metric_configuration_id = None

    with log_context(metric_configuration_id=metric_configuration_id):
        try:
            try:
                instruction = (
                    raw if isinstance(raw, MetricInstruction) else MetricInstruction(**raw)
                )
            except (ValidationError, TypeError) as e:
                raise InvalidInstructionError(f"Malformed instruction: {e}") from e
            descriptor = compiler.compile(instruction)
            rows = executor.execute(descriptor)
        except MetricGraphError as e:
            logger.warning("instruction_failed", error=e.code, message=e.message)
            return MetricResult(
                metric_configuration_id=metric_configuration_id,
                error=e.code,
                message=e.message,
            )

    return MetricResult(metric_configuration_id=metric_configuration_id, rows=rows)


def _entity_totals(
    snapshot: MetadataSnapshot, executor: QueryExecutor
) -> tuple[list[EntityTotal], list[str]]:
    totals: list[EntityTotal] = []
    warnings: list[str] = []
    for entity in snapshot.existing().entities:
        try:
            rows = executor.execute(CountQuery(entity=entity.name, table_name=entity.table_name))
        except MetricGraphError as e:
            logger.warning("entity_total_failed", entity=entity.name, error=e.message)
            warnings.append(f"{entity.name}: {e.message}")
            continue
        totals.append(EntityTotal(name=entity.name, total=rows[0]["count"] if rows else 0))
    return totals, warnings


def compute_metrics(
    provider: MetadataProvider,
    executor: QueryExecutor,
    instructions: Sequence[MetricInstruction | Mapping[str, Any]] | None,
) -> Result[MetricsResponse]:
    """Run a batch of metric instructions.

    Results keep the input order. A failing instruction is reported inline
    with its error code; the rest of the batch still runs. Without
    instructions, the total row count of every existing entity is returned.
    """
    snapshot_result = _take_snapshot(provider)
    if not snapshot_result.success or snapshot_result.value is None:
        return Result.fail(snapshot_result.error or "Cannot read entity metadata")
    snapshot = snapshot_result.value

    if instructions is None:
        totals, warnings = _entity_totals(snapshot, executor)
        return Result.ok(MetricsResponse(entity_totals=totals), warnings)

    compiler = MetricQueryCompiler(snapshot)
    results = [_run_instruction(compiler, executor, raw) for raw in instructions]
    failed = sum(1 for r in results if r.error)
    logger.info("metrics_computed", instructions=len(results), failed=failed)
    return Result.ok(MetricsResponse(results=results))


def find_join_path(provider: MetadataProvider, source: str, pivot: str) -> Result[list[str]]:
    """Resolve the join path between two entities with existing tables."""
    snapshot_result = _take_snapshot(provider)
    if not snapshot_result.success or snapshot_result.value is None:
        return Result.fail(snapshot_result.error or "Cannot read entity metadata")

    graph = build_from_snapshot(snapshot_result.value, existing_only=True)
    try:
        return Result.ok(resolve_join_path(graph, source, pivot))
    except MetricGraphError as e:
        return Result.fail(e.message)
