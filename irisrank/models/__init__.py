"""IRISRank data models."""

from irisrank.models.config import (
    ActivityTypeConfig,
    RankConfig,
    RankWeights,
    RelationshipTypeConfig,
    ServiceLimits,
)
from irisrank.models.entity import (
    ActivityOutcome,
    Entity,
    EntityActivity,
    EntityConnection,
    PropertyValue,
    RankingContext,
)
from irisrank.models.request import BatchRequest, WeightsOverride
from irisrank.models.result import (
    BatchResult,
    InsightsReport,
    IRISRankResult,
    MomentumMetrics,
    MomentumResult,
    RiskedResult,
    ScoreBreakdown,
    Trend,
)

__all__ = [
    "ActivityOutcome",
    "ActivityTypeConfig",
    "BatchRequest",
    "BatchResult",
    "Entity",
    "EntityActivity",
    "EntityConnection",
    "InsightsReport",
    "IRISRankResult",
    "MomentumMetrics",
    "MomentumResult",
    "PropertyValue",
    "RankConfig",
    "RankWeights",
    "RankingContext",
    "RelationshipTypeConfig",
    "RiskedResult",
    "ScoreBreakdown",
    "ServiceLimits",
    "Trend",
    "WeightsOverride",
]
