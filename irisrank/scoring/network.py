"""
Network Scorer — PageRank centrality over the entity graph via networkx.

nx.pagerank runs with damping, a restart distribution that is uniform over
the batch, and edge weights from the graph builder:
- dangling batch nodes (no out-flow at all) spread their mass over the batch
- external nodes carry a self-loop, so mass sent along boundary edges is
  absorbed there and leaves the batch
- a run that misses the tolerance is retried once with twice the iteration
  budget; if that also fails the restart distribution is used

Raw PageRank values are mapped into (0, 1) with a logistic transform relative
to the uniform baseline 1/n: x = n * p, score = x / (x + 1). An isolated graph
scores 0.5 everywhere and no entity ever scores exactly zero, because every
node keeps at least its teleportation mass.
"""

import logging
from typing import Dict

import networkx as nx

from irisrank.graph.builder import EntityGraph
from irisrank.models.config import RankConfig, vocabulary_key

logger = logging.getLogger(__name__)


def _absorbing_view(graph: EntityGraph) -> nx.DiGraph:
    G = graph.digraph.copy()
    for node in graph.external_ids:
        G.add_edge(node, node, weight=1.0)
    return G


def pagerank(graph: EntityGraph, config: RankConfig) -> Dict[str, float]:
    """Raw PageRank mass per batch node. Iteration count is always bounded."""
    node_ids = graph.node_ids
    n = len(node_ids)
    if n == 0:
        return {}

    G = _absorbing_view(graph)
    personalization = {nid: 1.0 / n for nid in node_ids}
    max_iter = config.max_iterations
    try:
        mass = nx.pagerank(
            G,
            alpha=config.damping_factor,
            personalization=personalization,
            max_iter=max_iter,
            tol=config.convergence_threshold,
            weight="weight",
        )
    except nx.PowerIterationFailedConvergence:
        logger.warning(
            "PageRank did not converge within %d iterations", max_iter,
            extra={"nodes": n},
        )
        try:
            mass = nx.pagerank(
                G,
                alpha=config.damping_factor,
                personalization=personalization,
                max_iter=max_iter * 2,
                tol=config.convergence_threshold,
                weight="weight",
            )
        except nx.PowerIterationFailedConvergence:
            logger.warning(
                "PageRank retry did not converge within %d iterations, using restart mass",
                max_iter * 2, extra={"nodes": n},
            )
            return dict(personalization)

    return {nid: mass[nid] for nid in node_ids}


def score_network(graph: EntityGraph, config: RankConfig) -> Dict[str, float]:
    """Centrality per entity id, strictly inside (0, 1)."""
    raw = pagerank(graph, config)
    n = len(raw)
    normalized = {}
    for nid, mass in raw.items():
        x = n * mass
        normalized[nid] = x / (x + 1.0)
    return normalized


def connection_counts(graph: EntityGraph, entity_id: str) -> Dict[str, int]:
    """Outgoing connections of an entity grouped by normalized relationship type."""
    entity = graph.get_entity(entity_id)
    counts: Dict[str, int] = {}
    if entity is None:
        return counts
    for conn in entity.connections:
        key = vocabulary_key(conn.relationship_type)
        counts[key] = counts.get(key, 0) + 1
    return counts
