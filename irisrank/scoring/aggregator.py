"""
Aggregator — blends the component scores into a single rank and explains it.

rank = (w_n * network + w_a * activity + w_r * relevance + w_m * momentum) / sum(w)

Explanations are template text: identical inputs always produce identical
strings in the same order.
"""

import math
from datetime import datetime
from typing import List

from irisrank.errors import ComputationError
from irisrank.graph.builder import EntityGraph, age_in_days
from irisrank.models.config import RankConfig, RankWeights
from irisrank.models.entity import ActivityOutcome, Entity
from irisrank.models.result import (
    ActivityContribution,
    ConnectionCount,
    IRISRankResult,
    MomentumMetrics,
    ScoreBreakdown,
    Trend,
)
from irisrank.scoring.activity import top_contributions
from irisrank.scoring.momentum import relative_change
from irisrank.scoring.network import connection_counts


def _check_bounds(name: str, value: float, entity_id: str) -> float:
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise ComputationError(
            f"{name} for entity {entity_id} is outside [0, 1]: {value}",
            details={"entity_id": entity_id, "component": name, "value": value},
        )
    return value


def combine(
    network: float,
    activity: float,
    relevance: float,
    momentum: float,
    weights: RankWeights,
) -> float:
    total = weights.total
    if total <= 0:
        raise ComputationError("Rank weights sum to zero")
    raw = (
        weights.network * network
        + weights.activity * activity
        + weights.relevance * relevance
        + weights.momentum * momentum
    ) / total
    return min(1.0, max(0.0, raw))


def explain(
    entity: Entity,
    network: float,
    activity: float,
    relevance: float,
    momentum: MomentumMetrics,
    now: datetime,
    has_query: bool = False,
) -> List[str]:
    """Short human-readable reasons, most actionable first."""
    lines: List[str] = []
    days = momentum.days_since_last_activity

    if momentum.trend == Trend.ACCELERATING:
        lines.append("Accelerating: engagement increasing and speeding up")
    elif momentum.trend == Trend.STEADY:
        lines.append("Steady: consistent engagement pattern")
    elif momentum.trend == Trend.AT_RISK:
        lines.append(f"At risk: {days} days since last activity")
    elif momentum.trend == Trend.CHURNING:
        lines.append(f"Churning: no recent activity in {days} days, needs immediate attention")
    else:
        lines.append("No activity history yet")

    if momentum.trend != Trend.UNKNOWN:
        change = relative_change(momentum.period_counts)
        if abs(change) >= 0.3:
            direction = "up" if change > 0 else "declining"
            lines.append(f"Engagement {direction} {abs(change) * 100:.0f}% week-over-week")
        if momentum.acceleration > 0.02:
            lines.append("Trend: picking up speed")
        elif momentum.acceleration < -0.02:
            lines.append("Trend: losing momentum")

    if network > 0.7:
        lines.append("High network centrality (well-connected)")
    elif network > 0.55:
        lines.append("Moderate network connections")
    elif network < 0.45:
        lines.append("Limited network connections")

    if activity > 0.7:
        lines.append("Strong recent engagement")
    elif activity > 0.4:
        lines.append("Some recent activity")
    elif activity < 0.3:
        lines.append("Limited recent engagement")

    if has_query:
        if relevance > 0.7:
            lines.append("Highly relevant to query")
        elif relevance > 0.4:
            lines.append("Moderately relevant to query")
        elif relevance == 0:
            lines.append("No match for query")

    positives = [a for a in entity.activities if a.outcome == ActivityOutcome.POSITIVE]
    if positives:
        recent = max(positives, key=lambda a: (a.occurred_at, a.type))
        if age_in_days(now, recent.occurred_at) < 7:
            lines.append(f"Recent positive activity: {recent.type.replace('_', ' ')}")

    return lines


def breakdown(entity: Entity, graph: EntityGraph, config: RankConfig, now: datetime) -> ScoreBreakdown:
    counts = connection_counts(graph, entity.id)
    top_connections = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:5]

    recency = 0.0
    if entity.last_modified_at is not None:
        recency = math.exp(-age_in_days(now, entity.last_modified_at) / 30.0)

    return ScoreBreakdown(
        top_activities=[
            ActivityContribution(type=t, contribution=c)
            for t, c in top_contributions(entity, config, now)
        ],
        top_connections=[ConnectionCount(type=t, count=c) for t, c in top_connections],
        recency_factor=recency,
    )


def aggregate(
    entity: Entity,
    graph: EntityGraph,
    network: float,
    activity: float,
    relevance: float,
    momentum: MomentumMetrics,
    config: RankConfig,
    weights: RankWeights,
    now: datetime,
    has_query: bool = False,
) -> IRISRankResult:
    """Merge component scores for one entity into its ranking result."""
    _check_bounds("network_score", network, entity.id)
    _check_bounds("activity_score", activity, entity.id)
    _check_bounds("relevance_score", relevance, entity.id)
    _check_bounds("momentum_score", momentum.momentum_score, entity.id)

    rank = _check_bounds(
        "rank",
        combine(network, activity, relevance, momentum.momentum_score, weights),
        entity.id,
    )

    return IRISRankResult(
        entity_id=entity.id,
        entity_name=entity.name,
        entity_type=entity.type,
        rank=rank,
        network_score=network,
        activity_score=activity,
        relevance_score=relevance,
        momentum=momentum,
        explanation=explain(entity, network, activity, relevance, momentum, now, has_query),
        breakdown=breakdown(entity, graph, config, now),
    )
