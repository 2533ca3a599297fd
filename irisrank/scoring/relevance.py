"""Relevance Scorer — keyword overlap between a query and an entity's text."""

from typing import Iterator, List

from irisrank.models.config import RankConfig
from irisrank.models.entity import Entity, PropertyValue, RankingContext


def _render_scalar(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_property_values(value: PropertyValue) -> Iterator[str]:
    """Yield every non-null scalar inside a property value as text."""
    if value is None:
        return
    if isinstance(value, dict):
        for item in value.values():
            yield from flatten_property_values(item)
    elif isinstance(value, list):
        for item in value:
            yield from flatten_property_values(item)
    else:
        yield _render_scalar(value)


def searchable_text(entity: Entity) -> str:
    parts: List[str] = [entity.name, entity.type]
    for value in entity.properties.values():
        parts.extend(flatten_property_values(value))
    return " ".join(parts).lower()


def query_tokens(query: str, config: RankConfig) -> List[str]:
    tokens = []
    for token in query.lower().split():
        if len(token) >= config.min_query_token_length and token not in tokens:
            tokens.append(token)
    return tokens


def score_relevance(entity: Entity, context: RankingContext, config: RankConfig) -> float:
    """
    Fraction of query tokens found in the entity's text.
    Without a usable query every entity gets the neutral score.
    """
    if not context.query:
        return config.neutral_relevance
    tokens = query_tokens(context.query, config)
    if not tokens:
        return config.neutral_relevance

    text = searchable_text(entity)
    matches = sum(1 for token in tokens if token in text)
    return matches / len(tokens)
