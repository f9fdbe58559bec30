"""Join path resolution.

Finds a shortest chain of belongs-to associations from a source entity to a
pivot entity and reports it as association names usable for joins.
"""

from __future__ import annotations

import networkx as nx

from metricgraph.core.logging import get_logger
from metricgraph.entities.models import Association
from metricgraph.errors import AmbiguousJoinError, NoJoinPathError, UnknownEntityError
from metricgraph.graph.builder import EntityGraph

logger = get_logger(__name__)


def _preference(association: Association) -> tuple[int, str]:
    """Fewest declared options first, then lexicographically smallest name."""
    return (len(association.options), association.name)


def pick_association(graph: EntityGraph, source: str, target: str) -> Association:
    """Choose the association to join on between two adjacent entities.

    Raises:
        NoJoinPathError: If no edge connects the pair
        AmbiguousJoinError: If the best candidates tie on every criterion
    """
    candidates = sorted(graph.associations_between(source, target), key=_preference)
    if not candidates:
        raise NoJoinPathError(source, target)
    if len(candidates) > 1 and _preference(candidates[0]) == _preference(candidates[1]):
        tied = [c.name for c in candidates if _preference(c) == _preference(candidates[0])]
        raise AmbiguousJoinError(source, target, tied)
    return candidates[0]


def resolve_join_path(graph: EntityGraph, source: str, target: str) -> list[str]:
    """Resolve the join path from ``source`` to ``target``.

    Edges are unweighted, so breadth-first shortest path is exact.

    Args:
        graph: Entity graph (restricted to existing tables)
        source: Counted entity name
        target: Pivot entity name

    Returns:
        Ordered association names; empty when source is target

    Raises:
        UnknownEntityError: If either entity is not in the graph
        NoJoinPathError: If the pivot is unreachable
        AmbiguousJoinError: If a hop cannot be decided
    """
    for name in (source, target):
        if name not in graph:
            raise UnknownEntityError(name)

    if source == target:
        return []

    try:
        vertices = nx.shortest_path(graph.graph, source=source, target=target)
    except nx.NetworkXNoPath as e:
        raise NoJoinPathError(source, target) from e

    path = [pick_association(graph, u, v).name for u, v in zip(vertices, vertices[1:])]
    logger.debug("join_path_resolved", source=source, target=target, path=path)
    return path
