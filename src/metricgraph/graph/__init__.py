"""Entity relationship graph: construction, ranking and join paths."""

from metricgraph.graph.builder import EntityGraph, build_entity_graph, build_from_snapshot
from metricgraph.graph.paths import pick_association, resolve_join_path
from metricgraph.graph.ranking import DAMPING_FACTOR, rank_entities

__all__ = [
    "DAMPING_FACTOR",
    "EntityGraph",
    "build_entity_graph",
    "build_from_snapshot",
    "pick_association",
    "rank_entities",
    "resolve_join_path",
]
