"""Metric instructions and the query descriptors compiled from them.

Descriptors are data only: table names, aliases and join columns. They carry
no connection and can be rendered for any SQLAlchemy dialect.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

COUNT_LABEL = "count"
"""Result column holding the aggregate count."""


class MetricInstruction(BaseModel):
    """One aggregation request."""

    model_config = ConfigDict(frozen=True)

    metric_configuration_id: Any
    """Opaque identifier, echoed back verbatim."""

    entity: str
    pivot: str | None = None
    join_path: tuple[str, ...] | None = None
    pivot_attribute_name: str | None = None


class ColumnPair(BaseModel):
    """Equality between a column of an earlier alias and one of the joined alias."""

    model_config = ConfigDict(frozen=True)

    left_alias: str
    left_column: str
    right_column: str


class JoinStep(BaseModel):
    """Inner join of one table into the query."""

    model_config = ConfigDict(frozen=True)

    association: str
    table_name: str
    alias: str
    on: tuple[ColumnPair, ...]


class CountQuery(BaseModel):
    """``SELECT COUNT(*)`` over an entity's table."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["count"] = "count"
    entity: str
    table_name: str


class GroupedCountQuery(BaseModel):
    """Count of entity rows joined to the pivot, grouped by pivot primary key."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["grouped_count"] = "grouped_count"
    entity: str
    table_name: str
    pivot: str
    pivot_alias: str
    group_by: str
    join_path: tuple[str, ...]
    joins: tuple[JoinStep, ...]


class ZeroFilledGroupedCountQuery(BaseModel):
    """Grouped count guaranteeing one row per pivot instance.

    The joined count rows are unioned with a zero-count row per pivot
    instance and regrouped taking the maximum count.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["zero_filled_grouped_count"] = "zero_filled_grouped_count"
    entity: str
    table_name: str
    pivot: str
    pivot_table_name: str
    pivot_alias: str
    primary_key: str
    pivot_attribute_name: str
    join_path: tuple[str, ...]
    joins: tuple[JoinStep, ...]


QueryDescriptor = Annotated[
    CountQuery | GroupedCountQuery | ZeroFilledGroupedCountQuery,
    Field(discriminator="kind"),
]


class MetricResult(BaseModel):
    """Rows for one instruction, or the reason there are none."""

    metric_configuration_id: Any
    rows: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    message: str | None = None


class EntityTotal(BaseModel):
    name: str
    total: int


class MetricsResponse(BaseModel):
    results: list[MetricResult] = Field(default_factory=list)
    entity_totals: list[EntityTotal] | None = None
