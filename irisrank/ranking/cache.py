"""
Result cache and per-user rate limiting.

RankCache memoizes full ranking passes by request fingerprint with a TTL and
a size bound. RateLimiter enforces a sliding one-minute call budget per user
and fails fast instead of queuing.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from irisrank.errors import RateLimitError
from irisrank.models.config import RankWeights
from irisrank.models.entity import Entity, RankingContext

logger = logging.getLogger(__name__)


def fingerprint(
    user_id: str,
    entities: Sequence[Entity],
    context: RankingContext,
    weights: RankWeights,
    config_version: int,
    staleness_days: int,
    now: Optional[datetime] = None,
) -> str:
    """Stable sha256 over everything that can change a ranking outcome."""
    payload = {
        "user": user_id,
        "entities": [e.model_dump(mode="json") for e in entities],
        "query": context.query,
        "entity_types": sorted(context.entity_types) if context.entity_types else None,
        "weights": weights.model_dump(),
        "config_version": config_version,
        "staleness_days": staleness_days,
        "now": now.isoformat() if now else None,
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()


class RankCache:
    """TTL + LRU-bounded memo of ranking passes. Thread-safe."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if now - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: str, value: Any) -> None:
        if self.max_entries <= 0 or self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class RateLimiter:
    """Sliding 60-second window per key. Idle keys are swept once per window."""

    WINDOW_SECONDS = 60.0

    def __init__(self, requests_per_minute: int = 120, clock: Callable[[], float] = time.monotonic):
        self.requests_per_minute = requests_per_minute
        self._clock = clock
        self.requests: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self.rejected = 0

    def is_allowed(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.WINDOW_SECONDS:
                self._sweep(now)
            recent = [t for t in self.requests.get(key, ()) if now - t < self.WINDOW_SECONDS]
            if len(recent) >= self.requests_per_minute:
                self.requests[key] = recent
                self.rejected += 1
                return False
            recent.append(now)
            self.requests[key] = recent
            return True

    def _sweep(self, now: float) -> None:
        # caller holds self._lock
        expired = [
            key for key, times in self.requests.items()
            if not times or now - times[-1] >= self.WINDOW_SECONDS
        ]
        for key in expired:
            del self.requests[key]
        self._last_sweep = now
        if expired:
            logger.debug("Dropped %d idle rate limit keys", len(expired))

    def check(self, key: str) -> None:
        """Consume one call for `key` or raise RateLimitError."""
        if not self.is_allowed(key):
            logger.warning("Rate limit exceeded", extra={"user_id": key})
            raise RateLimitError(
                f"Rate limit of {self.requests_per_minute} calls per minute exceeded",
                details={"user_id": key, "limit": self.requests_per_minute},
            )
