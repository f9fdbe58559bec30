"""metricgraph - entity relationship graph and metric query planning.

Introspects an application's entity model, ranks entities by structural
importance and compiles metric instructions into aggregate queries.

Example:
    from metricgraph import SQLAlchemyMetadataProvider, SQLAlchemyQueryExecutor
    from metricgraph import compute_metrics, describe_schema

    provider = SQLAlchemyMetadataProvider(Base, engine)
    describe_schema(provider).unwrap().entities
    compute_metrics(provider, SQLAlchemyQueryExecutor(engine), instructions)
"""

__version__ = "0.1.0"

from metricgraph.core.models.base import Result
from metricgraph.entities.provider import SQLAlchemyMetadataProvider, StaticMetadataProvider
from metricgraph.query.execution import SQLAlchemyQueryExecutor
from metricgraph.service import compute_metrics, describe_schema, find_join_path

__all__ = [
    "Result",
    "SQLAlchemyMetadataProvider",
    "SQLAlchemyQueryExecutor",
    "StaticMetadataProvider",
    "__version__",
    "compute_metrics",
    "describe_schema",
    "find_join_path",
]
