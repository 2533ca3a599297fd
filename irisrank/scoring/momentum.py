"""
Momentum Calculator — engagement velocity, acceleration and trend.

Activity is bucketed into three adjacent windows of velocity_period_days
ending at `now` (current, previous, two periods ago). Velocity and
acceleration are finite differences over those windows, in weighted
activity per day.

Trend classification, first match wins:
  unknown       no activity at all
  churning      stale and declining hard, or dormant for twice the staleness threshold
  at_risk       declining, or stale
  accelerating  rising and speeding up
  steady        everything else
"""

import math
from datetime import datetime
from typing import List, Optional, Tuple

from irisrank.graph.builder import age_in_days
from irisrank.models.config import RankConfig
from irisrank.models.entity import ActivityOutcome, Entity
from irisrank.models.result import MomentumMetrics, PeriodCounts, Trend
from irisrank.scoring.activity import lookup_activity_type

NO_ACTIVITY_DAYS = 999

# Raw momentum blend: velocity, acceleration, recency bonus
VELOCITY_SHARE = 0.50
ACCELERATION_SHARE = 0.30
RECENCY_SHARE = 0.20

_MOMENTUM_OUTCOME_MULTIPLIERS = {
    ActivityOutcome.POSITIVE: 1.5,
    ActivityOutcome.NEUTRAL: 1.0,
    ActivityOutcome.NEGATIVE: 0.5,
}


def window_counts(entity: Entity, config: RankConfig, now: datetime) -> Tuple[float, float, float]:
    """Weighted activity in the current, previous and two-periods-ago windows."""
    period = float(config.velocity_period_days)
    buckets = [0.0, 0.0, 0.0]
    for activity in entity.activities:
        index = int(age_in_days(now, activity.occurred_at) // period)
        if index > 2:
            continue
        weight = abs(lookup_activity_type(activity.type, config).weight)
        buckets[index] += weight * _MOMENTUM_OUTCOME_MULTIPLIERS[activity.outcome]
    return buckets[0], buckets[1], buckets[2]


def days_since_last_activity(entity: Entity, now: datetime) -> int:
    latest = entity.latest_activity_at()
    if latest is None:
        return NO_ACTIVITY_DAYS
    return int(age_in_days(now, latest))


def recency_bonus(days: int) -> float:
    if days <= 7:
        return 0.2
    if days <= 14:
        return 0.1
    if days <= 30:
        return 0.05
    return 0.0


def relative_change(counts: PeriodCounts) -> float:
    """Week-over-week change as a fraction of the previous window."""
    if counts.previous_period > 0:
        return (counts.current_period - counts.previous_period) / counts.previous_period
    return 1.0 if counts.current_period > 0 else 0.0


def classify_trend(
    velocity: float,
    acceleration: float,
    days: int,
    config: RankConfig,
    staleness_days: int,
) -> Trend:
    tolerance = config.velocity_tolerance
    if days > 2 * staleness_days:
        return Trend.CHURNING
    if days > staleness_days and velocity <= -config.strong_decline_velocity:
        return Trend.CHURNING
    if velocity < -tolerance or days > staleness_days:
        return Trend.AT_RISK
    if velocity > tolerance and acceleration > tolerance:
        return Trend.ACCELERATING
    return Trend.STEADY


def compute_momentum(
    entity: Entity,
    config: RankConfig,
    now: datetime,
    staleness_days: Optional[int] = None,
) -> MomentumMetrics:
    """Velocity, acceleration, staleness and trend for one entity."""
    staleness = staleness_days if staleness_days is not None else config.staleness_days
    seasonal = config.seasonal_factors.get(now.month, 1.0)
    current, previous, two_ago = window_counts(entity, config, now)
    counts = PeriodCounts(
        current_period=current,
        previous_period=previous,
        two_periods_ago=two_ago,
    )

    if not entity.activities:
        return MomentumMetrics(
            velocity=0.0,
            acceleration=0.0,
            trend=Trend.UNKNOWN,
            days_since_last_activity=NO_ACTIVITY_DAYS,
            momentum_score=0.5,
            seasonal_factor=seasonal,
            period_counts=counts,
        )

    period = float(config.velocity_period_days)
    velocity = (current - previous) / period
    previous_velocity = (previous - two_ago) / period
    acceleration = velocity - previous_velocity
    days = days_since_last_activity(entity, now)

    scale = config.momentum_velocity_scale
    raw = (
        VELOCITY_SHARE * math.tanh(velocity / scale)
        + ACCELERATION_SHARE * math.tanh(acceleration / scale)
        + RECENCY_SHARE * recency_bonus(days)
    ) * seasonal
    score = min(1.0, max(0.0, (raw + 1.0) / 2.0))

    return MomentumMetrics(
        velocity=velocity,
        acceleration=acceleration,
        trend=classify_trend(velocity, acceleration, days, config, staleness),
        days_since_last_activity=days,
        momentum_score=score,
        seasonal_factor=seasonal,
        period_counts=counts,
    )


def summarize_trends(metrics: List[MomentumMetrics]) -> dict:
    counts: dict = {}
    for m in metrics:
        counts[m.trend.value] = counts.get(m.trend.value, 0) + 1
    return counts
