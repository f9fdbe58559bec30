"""Entity relationship graph.

Entities are vertices keyed by name; every non-polymorphic belongs-to
association is a directed edge from its owner to its target, keyed by the
association name. Parallel associations between the same pair of entities
stay as parallel edges.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass

import networkx as nx

from metricgraph.core.logging import get_logger
from metricgraph.entities.models import Association, EntityDescriptor, MetadataSnapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class EntityGraph:
    """Immutable directed multigraph over a metadata snapshot."""

    graph: nx.MultiDiGraph  # type: ignore[type-arg]

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    def __contains__(self, name: object) -> bool:
        return name in self.graph

    @property
    def entity_names(self) -> list[str]:
        return list(self.graph.nodes)

    def entity(self, name: str) -> EntityDescriptor:
        return self.graph.nodes[name]["entity"]

    def edge_triples(self) -> Iterator[tuple[str, str, str]]:
        """(source, target, association name) for every edge."""
        for source, target, key in self.graph.edges(keys=True):
            yield source, target, key

    def associations_between(self, source: str, target: str) -> list[Association]:
        """All edge associations from ``source`` directly to ``target``."""
        edges = self.graph.get_edge_data(source, target) or {}
        return [attrs["association"] for attrs in edges.values()]

    @property
    def edge_count(self) -> int:
        return self.graph.number_of_edges()


def build_entity_graph(
    entities: Sequence[EntityDescriptor],
    associations: Mapping[str, Sequence[Association]],
) -> EntityGraph:
    """Build the entity graph.

    Every entity becomes a vertex regardless of whether its table exists;
    callers filter beforehand when they need to. Edges naming a target that
    is not part of ``entities`` are dropped as dangling.

    Args:
        entities: Entity descriptors (vertices)
        associations: Associations keyed by owning entity name

    Returns:
        Frozen EntityGraph
    """
    G: nx.MultiDiGraph = nx.MultiDiGraph()  # type: ignore[type-arg]

    for entity in entities:
        G.add_node(entity.name, entity=entity)

    for owner, owned in associations.items():
        if owner not in G:
            continue
        for association in owned:
            if not association.is_graph_edge:
                continue
            target = association.target_entity
            if target not in G:
                logger.debug(
                    "dangling_association",
                    entity=owner,
                    association=association.name,
                    target=target,
                )
                continue
            if G.has_edge(owner, target, key=association.name):
                continue
            G.add_edge(owner, target, key=association.name, association=association)

    logger.debug("entity_graph_built", nodes=G.number_of_nodes(), edges=G.number_of_edges())
    return EntityGraph(graph=nx.freeze(G))


def build_from_snapshot(snapshot: MetadataSnapshot, *, existing_only: bool = False) -> EntityGraph:
    """Build the graph for a snapshot, optionally restricted to existing tables."""
    if existing_only:
        snapshot = snapshot.existing()
    return build_entity_graph(snapshot.entities, snapshot.associations)
