"""
Entity Graph — the in-memory relationship graph for one ranking call.

Built from: caller-supplied entity snapshots
Queried by: Network Scorer + Ranking Service

Behavioral Contract:
- Entities are deduplicated by id, last write wins
- Edge weight = relationship type weight x strength x age decay
- Edges to ids outside the batch land on external nodes (external=True);
  they consume out-flow but never feed mass back into the batch
- Self-loops are dropped; parallel edges accumulate
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import networkx as nx

from irisrank.models.config import RankConfig, RelationshipTypeConfig, vocabulary_key
from irisrank.models.entity import Entity

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def age_in_days(now: datetime, then: datetime) -> float:
    """Days elapsed from `then` to `now`; future timestamps count as zero."""
    return max(0.0, (now - then).total_seconds() / SECONDS_PER_DAY)


class EntityGraph:
    """
    Weighted directed graph over one batch of entities, backed by nx.DiGraph.
    Lives only for the duration of a call.
    """

    def __init__(self, entities: Iterable[Entity]):
        self._entities: Dict[str, Entity] = {}
        duplicates = 0
        for entity in entities:
            if entity.id in self._entities:
                duplicates += 1
            self._entities[entity.id] = entity
        if duplicates:
            logger.debug("Collapsed %d duplicate entity ids", duplicates)

        self.digraph = nx.DiGraph()
        for entity_id, entity in self._entities.items():
            self.digraph.add_node(entity_id, entity_type=entity.type, external=False)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities

    @property
    def node_ids(self) -> List[str]:
        return list(self._entities)

    @property
    def external_ids(self) -> List[str]:
        """Connection targets that are not part of the batch."""
        return [n for n, external in self.digraph.nodes(data="external") if external]

    @property
    def entities(self) -> List[Entity]:
        return list(self._entities.values())

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def edge_count(self) -> int:
        """Edges between batch entities."""
        return sum(1 for u, v in self.digraph.edges() if v in self._entities)

    def add_edge(self, source_id: str, target_id: str, weight: float) -> None:
        if weight <= 0 or source_id == target_id:
            return
        if target_id not in self.digraph:
            self.digraph.add_node(target_id, external=True)
        if self.digraph.has_edge(source_id, target_id):
            self.digraph[source_id][target_id]["weight"] += weight
        else:
            self.digraph.add_edge(source_id, target_id, weight=weight)


def lookup_relationship_type(relationship_type: str, config: RankConfig) -> Optional[RelationshipTypeConfig]:
    return config.relationship_types.get(vocabulary_key(relationship_type))


def edge_weight(
    relationship_type: str,
    strength: Optional[float],
    established_at: Optional[datetime],
    config: RankConfig,
    now: datetime,
) -> float:
    """Relationship weight x strength x half-life decay on the connection's age."""
    rel = lookup_relationship_type(relationship_type, config)
    base = rel.weight if rel else config.default_relationship_weight
    if established_at is None:
        age = config.default_connection_age_days
    else:
        age = age_in_days(now, established_at)
    decay = 0.5 ** (age / config.connection_half_life_days)
    return base * (1.0 if strength is None else strength) * decay


def build_graph(entities: Iterable[Entity], config: RankConfig, now: datetime) -> EntityGraph:
    """Deduplicate the batch and wire every connection into a weighted graph."""
    graph = EntityGraph(entities)

    for entity in graph.entities:
        for conn in entity.connections:
            if conn.target_id == entity.id:
                continue
            weight = edge_weight(
                conn.relationship_type, conn.strength, conn.established_at, config, now
            )
            graph.add_edge(entity.id, conn.target_id, weight)

            rel = lookup_relationship_type(conn.relationship_type, config)
            if rel and rel.bidirectional and conn.target_id in graph:
                graph.add_edge(conn.target_id, entity.id, weight)

    logger.debug(
        "Built entity graph",
        extra={"nodes": len(graph), "edges": graph.edge_count(), "external": len(graph.external_ids)},
    )
    return graph
