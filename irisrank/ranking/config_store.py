"""
Config Store — the shared, runtime-tunable ranking configuration.

Behavioral Contract:
- Readers take `current` once per call and use that snapshot throughout
- Writers build a complete new RankConfig under a lock and swap the reference,
  so no reader ever observes a partially applied update
- Every successful write increments the snapshot's version
- Invalid updates raise ConfigError and leave the current snapshot untouched
"""

import logging
import math
import threading
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from irisrank.errors import ConfigError
from irisrank.models.config import (
    ActivityTypeConfig,
    RankConfig,
    RankWeights,
    RelationshipTypeConfig,
    vocabulary_key,
)

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    Holds the current RankConfig snapshot.
    One instance is injected into each RankingService; nothing is module-global.
    """

    def __init__(self, config: Optional[RankConfig] = None):
        self._config = config or RankConfig()
        self._write_lock = threading.Lock()
        self._listeners: List[Callable[[RankConfig], None]] = []

    @property
    def current(self) -> RankConfig:
        """The current immutable snapshot."""
        return self._config

    def subscribe(self, listener: Callable[[RankConfig], None]) -> None:
        """Register a callback invoked after every successful write."""
        self._listeners.append(listener)

    def _swap(self, build: Callable[[RankConfig], dict]) -> RankConfig:
        """
        Apply `build(current)` to the current snapshot and publish the result.
        The read, the merge and the swap all happen under the write lock.
        """
        with self._write_lock:
            current = self._config
            changes = build(current)
            payload = current.model_dump()
            payload.update(changes)
            payload["version"] = current.version + 1
            try:
                updated = RankConfig.model_validate(payload)
            except PydanticValidationError as e:
                raise ConfigError(
                    "Invalid ranking configuration",
                    details={"errors": e.errors(include_url=False, include_context=False)},
                ) from e
            self._config = updated

        for listener in self._listeners:
            listener(updated)
        return updated

    def update_weights(
        self,
        network: Optional[float] = None,
        activity: Optional[float] = None,
        relevance: Optional[float] = None,
        momentum: Optional[float] = None,
    ) -> RankWeights:
        """
        Replace any subset of the four weights. The resulting set is
        normalized to sum to 1.0 before it is published.
        """
        def merge(config: RankConfig) -> dict:
            current = config.weights
            weights = validate_weights(
                network=current.network if network is None else network,
                activity=current.activity if activity is None else activity,
                relevance=current.relevance if relevance is None else relevance,
                momentum=current.momentum if momentum is None else momentum,
            )
            return {"weights": weights.normalized()}

        updated = self._swap(merge)
        weights = updated.weights
        logger.info(
            "Updated weights: network=%.2f, activity=%.2f, relevance=%.2f, momentum=%.2f",
            weights.network, weights.activity, weights.relevance, weights.momentum,
            extra={"config_version": updated.version},
        )
        return weights

    def add_activity_type(self, name: str, spec: ActivityTypeConfig) -> RankConfig:
        key = vocabulary_key(name)
        if not key.strip("_"):
            raise ConfigError(f"Invalid activity type name: {name!r}")
        updated = self._swap(lambda config: {"activity_types": {**config.activity_types, key: spec}})
        logger.info("Added activity type: %s", key, extra={"config_version": updated.version})
        return updated

    def add_relationship_type(self, name: str, spec: RelationshipTypeConfig) -> RankConfig:
        key = vocabulary_key(name)
        if not key.strip("_"):
            raise ConfigError(f"Invalid relationship type name: {name!r}")
        updated = self._swap(
            lambda config: {"relationship_types": {**config.relationship_types, key: spec}}
        )
        logger.info("Added relationship type: %s", key, extra={"config_version": updated.version})
        return updated


def validate_weights(
    network: float, activity: float, relevance: float, momentum: float
) -> RankWeights:
    """Reject negative, non-finite or all-zero weight sets."""
    values = {
        "network": network,
        "activity": activity,
        "relevance": relevance,
        "momentum": momentum,
    }
    for name, value in values.items():
        if value is None or not math.isfinite(value) or value < 0:
            raise ConfigError(
                f"Weight '{name}' must be a finite non-negative number, got {value}",
                details={"weight": name, "value": value},
            )
    if sum(values.values()) <= 0:
        raise ConfigError("At least one weight must be positive", details=values)
    return RankWeights(**values)
