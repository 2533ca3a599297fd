"""Shared builders for IRISRank tests."""

from datetime import datetime, timedelta
from typing import List, Optional

from irisrank.models.entity import (
    ActivityOutcome,
    Entity,
    EntityActivity,
    EntityConnection,
)

NOW = datetime(2025, 4, 15, 12, 0, 0)


def make_activity(
    days_ago: float,
    activity_type: str = "meeting_attended",
    outcome: ActivityOutcome = ActivityOutcome.NEUTRAL,
) -> EntityActivity:
    return EntityActivity(
        type=activity_type,
        occurred_at=NOW - timedelta(days=days_ago),
        outcome=outcome,
    )


def make_connection(
    target_id: str,
    relationship_type: str = "works_at",
    strength: Optional[float] = 1.0,
    days_ago: Optional[float] = 0,
) -> EntityConnection:
    return EntityConnection(
        target_id=target_id,
        relationship_type=relationship_type,
        strength=strength,
        established_at=NOW - timedelta(days=days_ago) if days_ago is not None else None,
    )


def make_entity(
    entity_id: str,
    entity_type: str = "Lead",
    name: Optional[str] = None,
    activities: Optional[List[EntityActivity]] = None,
    connections: Optional[List[EntityConnection]] = None,
    **properties,
) -> Entity:
    return Entity(
        id=entity_id,
        type=entity_type,
        name=name or f"Entity {entity_id}",
        properties=properties,
        activities=activities or [],
        connections=connections or [],
        created_at=NOW - timedelta(days=120),
        last_modified_at=NOW - timedelta(days=2),
    )
