"""Ranking results — the externally visible output shapes."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Trend(str, Enum):
    ACCELERATING = "accelerating"
    STEADY = "steady"
    AT_RISK = "at_risk"
    CHURNING = "churning"
    UNKNOWN = "unknown"


class PeriodCounts(BaseModel):
    """Weighted activity per momentum window, for transparency."""

    current_period: float = 0.0
    previous_period: float = 0.0
    two_periods_ago: float = 0.0


class MomentumMetrics(BaseModel):
    """Derived engagement dynamics. Never stored."""

    velocity: float                         # Weighted activity per day, signed
    acceleration: float                     # Change in velocity vs the prior window pair
    trend: Trend
    days_since_last_activity: int           # 999 when the entity never had activity
    momentum_score: float = Field(ge=0, le=1)
    seasonal_factor: float = 1.0
    period_counts: PeriodCounts = PeriodCounts()


class ActivityContribution(BaseModel):
    type: str
    contribution: float


class ConnectionCount(BaseModel):
    type: str
    count: int


class ScoreBreakdown(BaseModel):
    top_activities: List[ActivityContribution] = []
    top_connections: List[ConnectionCount] = []
    recency_factor: float = 0.0


class IRISRankResult(BaseModel):
    """One ranked entity with full explainability."""

    entity_id: str
    entity_name: str
    entity_type: str
    rank: float = Field(ge=0, le=1)
    network_score: float = Field(ge=0, le=1)
    activity_score: float = Field(ge=0, le=1)
    relevance_score: float = Field(ge=0, le=1)
    momentum: MomentumMetrics
    explanation: List[str] = []
    breakdown: ScoreBreakdown = ScoreBreakdown()

    @property
    def momentum_score(self) -> float:
        return self.momentum.momentum_score


class RiskedResult(IRISRankResult):
    """An at-risk entity with its severity and the factors behind it."""

    risk_level: str                         # "Critical" | "High"
    risk_factors: List[str] = []


class MomentumResult(IRISRankResult):
    """An entity with positive engagement momentum."""

    heat_level: str                         # "Hot" | "Warm"


class BatchResult(BaseModel):
    """Outcome of one batch in a batch-score call. Exactly one of results/error is meaningful."""

    batch_id: str
    count: int = 0
    results: List[IRISRankResult] = []
    error: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class InsightsSummary(BaseModel):
    total_entities: int
    avg_rank: float
    avg_momentum: float


class InsightsDistribution(BaseModel):
    by_trend: Dict[str, int] = {}
    by_type: Dict[str, int] = {}


class InsightsReport(BaseModel):
    """Portfolio-level statistics over an unlimited ranking pass."""

    summary: InsightsSummary
    distribution: InsightsDistribution
    recommendations: List[str] = []
