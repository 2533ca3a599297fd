"""Entity snapshots — the rankable business objects supplied by the caller."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator


ScalarValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, None]
PropertyValue = Union[ScalarValue, List[ScalarValue], Dict[str, ScalarValue]]


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """All ranking arithmetic runs on naive UTC timestamps."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ActivityOutcome(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class EntityActivity(BaseModel):
    """A single engagement event on an entity."""

    type: str                               # e.g., "email_replied", "meeting_attended"
    occurred_at: datetime
    outcome: ActivityOutcome = ActivityOutcome.NEUTRAL
    related_entity_id: Optional[str] = None

    normalize_occurred_at = field_validator("occurred_at")(to_naive_utc)


class EntityConnection(BaseModel):
    """A directed relationship to another entity, possibly outside the batch."""

    target_id: str
    target_type: str = ""
    relationship_type: str                  # e.g., "works_at", "referred_by"
    strength: Optional[float] = Field(default=None, ge=0)   # None -> 1.0
    established_at: Optional[datetime] = None               # None -> default age

    normalize_established_at = field_validator("established_at")(to_naive_utc)


class Entity(BaseModel):
    """A rankable snapshot. Built fresh per call, never persisted."""

    id: str = Field(min_length=1)
    type: str                               # e.g., "Lead", "Account"
    name: str
    properties: Dict[str, PropertyValue] = {}
    activities: List[EntityActivity] = []
    connections: List[EntityConnection] = []
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None

    normalize_dates = field_validator("created_at", "last_modified_at")(to_naive_utc)

    def latest_activity_at(self) -> Optional[datetime]:
        if not self.activities:
            return None
        return max(a.occurred_at for a in self.activities)


class RankingContext(BaseModel):
    """Per-call relevance hint and hard type filter."""

    query: Optional[str] = None
    entity_types: Optional[Set[str]] = None

    def accepts_type(self, entity_type: str) -> bool:
        if not self.entity_types:
            return True
        return entity_type in self.entity_types
