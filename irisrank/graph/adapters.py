"""Adapters from loosely shaped records (CRM rows, exports) to Entity snapshots."""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from irisrank.models.entity import Entity, EntityActivity, EntityConnection

Record = Dict[str, Any]
ConnectionExtractor = Callable[[Record], List[EntityConnection]]
ActivityExtractor = Callable[[Record], List[EntityActivity]]

_FALLBACK_ID_FIELDS = ("Id", "_id")
_FALLBACK_NAME_FIELDS = ("Name", "title")
_FALLBACK_CREATED_FIELDS = ("CreatedDate",)
_FALLBACK_MODIFIED_FIELDS = ("LastModifiedDate",)


def _first(record: Record, fields: Iterable[str]) -> Any:
    for field in fields:
        value = record.get(field)
        if value not in (None, ""):
            return value
    return None


def _scalar_properties(record: Record) -> Dict[str, Any]:
    """Keep the values Entity.properties accepts; nested records are dropped."""
    properties: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, datetime):
            properties[key] = value.isoformat()
        elif value is None or isinstance(value, (bool, int, float, str)):
            properties[key] = value
        elif isinstance(value, (list, tuple)) and all(
            v is None or isinstance(v, (bool, int, float, str)) for v in value
        ):
            properties[key] = list(value)
        elif isinstance(value, dict) and all(
            v is None or isinstance(v, (bool, int, float, str)) for v in value.values()
        ):
            properties[key] = {str(k): v for k, v in value.items()}
    return properties


def entity_from_record(
    record: Record,
    id_field: str = "id",
    name_field: str = "name",
    type_value: Optional[str] = None,
    type_field: str = "type",
    created_field: str = "createdAt",
    modified_field: str = "updatedAt",
    connection_extractor: Optional[ConnectionExtractor] = None,
    activity_extractor: Optional[ActivityExtractor] = None,
) -> Entity:
    """
    Build an Entity from a generic record.

    Missing ids get a generated one, missing names become "Unknown", and the
    type defaults to "Entity". The record's scalar fields become properties.
    """
    entity_id = _first(record, (id_field,) + _FALLBACK_ID_FIELDS)
    name = _first(record, (name_field,) + _FALLBACK_NAME_FIELDS)
    created = _first(record, (created_field,) + _FALLBACK_CREATED_FIELDS)
    modified = _first(record, (modified_field,) + _FALLBACK_MODIFIED_FIELDS) or created

    return Entity(
        id=str(entity_id) if entity_id is not None else str(uuid4()),
        type=str(type_value or record.get(type_field) or "Entity"),
        name=str(name) if name is not None else "Unknown",
        properties=_scalar_properties(record),
        connections=connection_extractor(record) if connection_extractor else [],
        activities=activity_extractor(record) if activity_extractor else [],
        created_at=created,
        last_modified_at=modified,
    )


def entities_from_records(records: Iterable[Record], **options) -> List[Entity]:
    return [entity_from_record(r, **options) for r in records]
