"""
Activity Scorer — time-decayed, outcome-weighted engagement.

Each activity contributes type weight x half-life decay x outcome multiplier.
The sum is clamped at zero and saturated with 1 - exp(-k * sum), so a handful
of strong recent signals scores high without enormous histories dominating.
"""

import logging
import math
from datetime import datetime
from typing import List, Tuple

from irisrank.graph.builder import age_in_days
from irisrank.models.config import ActivityTypeConfig, RankConfig, vocabulary_key
from irisrank.models.entity import ActivityOutcome, Entity, EntityActivity

logger = logging.getLogger(__name__)


def activity_type_key(activity_type: str) -> str:
    """Normalize a free-form activity type ("Email Replied" -> "email_replied")."""
    return vocabulary_key(activity_type)


def lookup_activity_type(activity_type: str, config: RankConfig) -> ActivityTypeConfig:
    """Configured vocabulary entry, or the configured default for unknown types."""
    known = config.activity_types.get(activity_type_key(activity_type))
    if known is not None:
        return known
    logger.debug("Unknown activity type: %s", activity_type)
    return ActivityTypeConfig(
        weight=config.default_activity_weight,
        decay_days=config.default_activity_decay_days,
    )


def outcome_multiplier(outcome: ActivityOutcome, config: RankConfig) -> float:
    if outcome == ActivityOutcome.POSITIVE:
        return config.positive_outcome_multiplier
    if outcome == ActivityOutcome.NEGATIVE:
        return config.negative_outcome_multiplier
    return config.neutral_outcome_multiplier


def activity_contribution(activity: EntityActivity, config: RankConfig, now: datetime) -> float:
    spec = lookup_activity_type(activity.type, config)
    decay = 0.5 ** (age_in_days(now, activity.occurred_at) / spec.decay_days)
    return spec.weight * decay * outcome_multiplier(activity.outcome, config)


def score_activity(entity: Entity, config: RankConfig, now: datetime) -> float:
    """Bounded [0, 1] engagement score. No activity scores 0."""
    if not entity.activities:
        return 0.0
    total = sum(activity_contribution(a, config, now) for a in entity.activities)
    return 1.0 - math.exp(-config.activity_saturation_rate * max(0.0, total))


def top_contributions(
    entity: Entity, config: RankConfig, now: datetime, limit: int = 5
) -> List[Tuple[str, float]]:
    """Largest absolute per-activity contributions, for the score breakdown."""
    contributions = [
        (a.type, activity_contribution(a, config, now)) for a in entity.activities
    ]
    contributions.sort(key=lambda item: (-abs(item[1]), item[0]))
    return contributions[:limit]
