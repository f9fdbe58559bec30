"""Metric query planning: instructions, compilation, rendering and execution."""

from metricgraph.query.compiler import MetricQueryCompiler
from metricgraph.query.execution import QueryExecutor, SQLAlchemyQueryExecutor
from metricgraph.query.models import (
    CountQuery,
    GroupedCountQuery,
    MetricInstruction,
    MetricResult,
    MetricsResponse,
    QueryDescriptor,
    ZeroFilledGroupedCountQuery,
)
from metricgraph.query.sql import render, to_sql

__all__ = [
    "CountQuery",
    "GroupedCountQuery",
    "MetricInstruction",
    "MetricQueryCompiler",
    "MetricResult",
    "MetricsResponse",
    "QueryDescriptor",
    "QueryExecutor",
    "SQLAlchemyQueryExecutor",
    "ZeroFilledGroupedCountQuery",
    "render",
    "to_sql",
]
