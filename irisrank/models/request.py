"""Request shapes shared by the service and the HTTP transport."""

from typing import List, Optional, Set

from pydantic import BaseModel, Field

from irisrank.models.entity import Entity, RankingContext


class WeightsOverride(BaseModel):
    """Partial weights. Missing values fall back to the current configuration."""

    network: Optional[float] = None
    activity: Optional[float] = None
    relevance: Optional[float] = None
    momentum: Optional[float] = None

    def is_empty(self) -> bool:
        return all(
            v is None for v in (self.network, self.activity, self.relevance, self.momentum)
        )


class BatchRequest(BaseModel):
    """One independently ranked entity set inside a batch-score call."""

    batch_id: str
    entities: List[Entity] = []             # Emptiness is reported per batch, not rejected here
    query: Optional[str] = None
    entity_types: Optional[Set[str]] = None
    limit: Optional[int] = Field(default=None, ge=1)

    def context(self) -> RankingContext:
        return RankingContext(query=self.query, entity_types=self.entity_types)
