"""Ranking configuration — weights, algorithm constants, vocabularies and service limits."""

import math
import re
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_VOCABULARY_KEY_RE = re.compile(r"[^a-z_]")


def vocabulary_key(name: str) -> str:
    """Normalize a free-form type name ("Works At" -> "works_at")."""
    return _VOCABULARY_KEY_RE.sub("_", name.strip().lower())


class RankWeights(BaseModel):
    """Blend weights for the four component scores. Normalized at aggregation time."""

    model_config = ConfigDict(frozen=True)

    network: float = Field(ge=0, default=0.30)
    activity: float = Field(ge=0, default=0.25)
    relevance: float = Field(ge=0, default=0.20)
    momentum: float = Field(ge=0, default=0.25)

    @field_validator("network", "activity", "relevance", "momentum")
    @classmethod
    def require_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("weight must be finite")
        return value

    @property
    def total(self) -> float:
        return self.network + self.activity + self.relevance + self.momentum

    def normalized(self) -> "RankWeights":
        total = self.total
        if total <= 0:
            return self
        return RankWeights(
            network=self.network / total,
            activity=self.activity / total,
            relevance=self.relevance / total,
            momentum=self.momentum / total,
        )


class ActivityTypeConfig(BaseModel):
    """Signal strength of an activity type. Negative weights mark bad signals."""

    model_config = ConfigDict(frozen=True)

    weight: float = Field(ge=-1, le=1)
    decay_days: float = Field(gt=0)         # Half-life in days
    category: Optional[str] = None


class RelationshipTypeConfig(BaseModel):
    """Edge weight of a relationship type."""

    model_config = ConfigDict(frozen=True)

    weight: float = Field(ge=0, le=1)
    bidirectional: bool = False


DEFAULT_ACTIVITY_TYPES: Dict[str, ActivityTypeConfig] = {
    # Positive engagement
    "email_replied": ActivityTypeConfig(weight=0.25, decay_days=14, category="communication"),
    "email_opened": ActivityTypeConfig(weight=0.10, decay_days=7, category="communication"),
    "email_sent": ActivityTypeConfig(weight=0.05, decay_days=7, category="communication"),
    "meeting_attended": ActivityTypeConfig(weight=0.35, decay_days=30, category="meeting"),
    "meeting_scheduled": ActivityTypeConfig(weight=0.20, decay_days=14, category="meeting"),
    "call_answered": ActivityTypeConfig(weight=0.20, decay_days=14, category="communication"),
    "call_made": ActivityTypeConfig(weight=0.10, decay_days=7, category="communication"),
    "task_completed": ActivityTypeConfig(weight=0.15, decay_days=14, category="task"),
    "task_created": ActivityTypeConfig(weight=0.05, decay_days=7, category="task"),
    "stage_advanced": ActivityTypeConfig(weight=0.30, decay_days=60, category="pipeline"),
    "deal_won": ActivityTypeConfig(weight=0.50, decay_days=90, category="pipeline"),
    "content_downloaded": ActivityTypeConfig(weight=0.20, decay_days=14, category="engagement"),
    "website_visit": ActivityTypeConfig(weight=0.05, decay_days=3, category="engagement"),
    "referral_received": ActivityTypeConfig(weight=0.50, decay_days=90, category="referral"),
    "referral_given": ActivityTypeConfig(weight=0.40, decay_days=90, category="referral"),
    "lead_created": ActivityTypeConfig(weight=0.10, decay_days=90, category="lifecycle"),
    "lead_qualified": ActivityTypeConfig(weight=0.35, decay_days=60, category="pipeline"),
    "profile_updated": ActivityTypeConfig(weight=0.08, decay_days=14, category="engagement"),
    # Negative signals
    "email_bounced": ActivityTypeConfig(weight=-0.15, decay_days=30, category="communication"),
    "meeting_no_show": ActivityTypeConfig(weight=-0.20, decay_days=30, category="meeting"),
    "call_missed": ActivityTypeConfig(weight=-0.05, decay_days=7, category="communication"),
    "task_overdue": ActivityTypeConfig(weight=-0.10, decay_days=7, category="task"),
    "stage_regressed": ActivityTypeConfig(weight=-0.25, decay_days=60, category="pipeline"),
    "deal_lost": ActivityTypeConfig(weight=-0.30, decay_days=90, category="pipeline"),
    "unsubscribed": ActivityTypeConfig(weight=-0.40, decay_days=180, category="engagement"),
}

DEFAULT_RELATIONSHIP_TYPES: Dict[str, RelationshipTypeConfig] = {
    "owns": RelationshipTypeConfig(weight=1.0),
    "employs": RelationshipTypeConfig(weight=0.8),
    "works_at": RelationshipTypeConfig(weight=0.8),
    "associated_to": RelationshipTypeConfig(weight=0.7, bidirectional=True),
    "referred_by": RelationshipTypeConfig(weight=0.9),
    "related_to": RelationshipTypeConfig(weight=0.3, bidirectional=True),
    "reports_to": RelationshipTypeConfig(weight=0.5),
    "partner_of": RelationshipTypeConfig(weight=0.6, bidirectional=True),
    "parent_of": RelationshipTypeConfig(weight=0.7),
    "child_of": RelationshipTypeConfig(weight=0.7),
    "primary_contact": RelationshipTypeConfig(weight=0.95, bidirectional=True),
    "subsidiary_of": RelationshipTypeConfig(weight=0.8),
}

# B2B seasonality: Q1 post-holiday slowdown, Q3 summer slowdown, Q4 budget flush
DEFAULT_SEASONAL_FACTORS: Dict[int, float] = {
    1: 0.85, 2: 0.90, 3: 0.95,
    4: 1.00, 5: 1.00, 6: 0.95,
    7: 0.85, 8: 0.80, 9: 0.95,
    10: 1.05, 11: 1.10, 12: 1.00,
}


class RankConfig(BaseModel):
    """
    Process-wide ranking configuration.

    Immutable: updates build a new snapshot which the ConfigStore swaps in,
    so an in-flight ranking always sees one consistent version.
    """

    model_config = ConfigDict(frozen=True)

    weights: RankWeights = RankWeights()

    # Network propagation
    damping_factor: float = Field(gt=0, lt=1, default=0.85)
    convergence_threshold: float = Field(gt=0, default=1e-4)
    max_iterations: int = Field(ge=1, le=1000, default=50)
    connection_half_life_days: float = Field(gt=0, default=180.0)
    default_connection_age_days: float = Field(ge=0, default=90.0)
    default_relationship_weight: float = Field(ge=0, le=1, default=0.3)

    # Activity scoring
    default_activity_weight: float = Field(ge=-1, le=1, default=0.10)
    default_activity_decay_days: float = Field(gt=0, default=30.0)
    activity_saturation_rate: float = Field(gt=0, default=1.0)
    positive_outcome_multiplier: float = Field(ge=0, default=1.2)
    neutral_outcome_multiplier: float = Field(ge=0, default=1.0)
    negative_outcome_multiplier: float = Field(ge=0, default=0.8)

    # Momentum
    velocity_period_days: int = Field(ge=1, default=7)
    velocity_tolerance: float = Field(ge=0, default=0.01)       # Per day
    strong_decline_velocity: float = Field(ge=0, default=0.05)  # Per day
    momentum_velocity_scale: float = Field(gt=0, default=0.05)  # Per day
    staleness_days: int = Field(ge=1, default=30)
    seasonal_factors: Dict[int, float] = DEFAULT_SEASONAL_FACTORS

    # Relevance
    neutral_relevance: float = Field(ge=0, le=1, default=0.5)
    min_query_token_length: int = Field(ge=1, default=3)

    activity_types: Dict[str, ActivityTypeConfig] = DEFAULT_ACTIVITY_TYPES
    relationship_types: Dict[str, RelationshipTypeConfig] = DEFAULT_RELATIONSHIP_TYPES

    version: int = 0


class ServiceLimits(BaseModel):
    """Request limits, concurrency bounds, cache and rate-limit settings."""

    max_entities: int = Field(ge=1, default=1000)
    max_batches: int = Field(ge=1, default=10)
    max_batch_workers: int = Field(ge=1, default=4)
    batch_timeout_seconds: float = Field(gt=0, default=10.0)
    cache_ttl_seconds: float = Field(ge=0, default=300.0)
    cache_max_entries: int = Field(ge=0, default=256)
    rate_limit_per_minute: int = Field(ge=1, default=120)
    default_score_limit: int = Field(ge=1, default=50)
    default_batch_limit: int = Field(ge=1, default=20)
    default_filter_limit: int = Field(ge=1, default=10)
