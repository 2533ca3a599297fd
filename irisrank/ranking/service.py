"""
Ranking Service — the operations callers use.

Behavioral Contract:
- Each call validates its input before anything is computed
- Each call reads exactly one configuration snapshot
- Rankings are totally ordered: rank desc, momentum_score desc, entity_id asc
- An entity-type filter that matches nothing yields an empty list
- Batches run concurrently on a bounded pool; one failed batch never
  affects its siblings
- Identical requests inside the cache TTL return identical results
- A rate-limited call fails before any work is done
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union

from irisrank.errors import RankingError, RateLimitError, ValidationError
from irisrank.graph.builder import build_graph
from irisrank.models.config import (
    ActivityTypeConfig,
    RankConfig,
    RankWeights,
    RelationshipTypeConfig,
    ServiceLimits,
)
from irisrank.models.entity import Entity, RankingContext, to_naive_utc
from irisrank.models.request import BatchRequest, WeightsOverride
from irisrank.models.result import (
    BatchResult,
    InsightsDistribution,
    InsightsReport,
    InsightsSummary,
    IRISRankResult,
    MomentumResult,
    RiskedResult,
    Trend,
)
from irisrank.ranking.cache import RankCache, RateLimiter, fingerprint
from irisrank.ranking.config_store import ConfigStore, validate_weights
from irisrank.scoring.activity import score_activity
from irisrank.scoring.aggregator import aggregate
from irisrank.scoring.momentum import compute_momentum, relative_change, summarize_trends
from irisrank.scoring.network import score_network
from irisrank.scoring.relevance import score_relevance

logger = logging.getLogger(__name__)

WeightsArg = Union[RankWeights, WeightsOverride, None]


def ranking_order(result: IRISRankResult):
    return (-result.rank, -result.momentum_score, result.entity_id)


def risk_factors(result: IRISRankResult, inactivity_threshold: int, config: RankConfig) -> List[str]:
    """Plain-language reasons an entity is flagged at risk."""
    metrics = result.momentum
    factors: List[str] = []

    if metrics.days_since_last_activity > inactivity_threshold:
        factors.append(f"No activity for {metrics.days_since_last_activity} days")
    change = relative_change(metrics.period_counts)
    if change <= -0.2:
        factors.append(f"Engagement declining {abs(change) * 100:.0f}%")
    if metrics.acceleration < -config.velocity_tolerance:
        factors.append("Negative trend accelerating")
    if result.activity_score < 0.3:
        factors.append("Low overall engagement")

    return factors or ["General decline in engagement"]


class _BatchClock:
    """Start stamp for one submitted batch, set by the worker that runs it."""

    def __init__(self):
        self.started = threading.Event()
        self.started_at = 0.0

    def stamp(self) -> None:
        self.started_at = time.monotonic()
        self.started.set()


class RankingService:
    """
    Scores entity sets and answers portfolio questions about them.

    Holds an injected ConfigStore, a result cache, a rate limiter and call
    statistics. Everything else is computed per call from the caller's snapshot.
    """

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        limits: Optional[ServiceLimits] = None,
        cache: Optional[RankCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.config_store = config_store or ConfigStore()
        self.limits = limits or ServiceLimits()
        self.cache = cache or RankCache(
            ttl_seconds=self.limits.cache_ttl_seconds,
            max_entries=self.limits.cache_max_entries,
        )
        self.rate_limiter = rate_limiter or RateLimiter(self.limits.rate_limit_per_minute)
        self.config_store.subscribe(self._on_config_change)

        self._stats_lock = threading.Lock()
        self._stats: Dict[str, float] = {
            "total_calls": 0,
            "total_computations": 0,
            "entities_ranked": 0,
            "total_compute_time_ms": 0.0,
            "rate_limited_calls": 0,
            "batch_failures": 0,
        }

    # --- Scoring operations ---

    def score(
        self,
        entities: Sequence[Entity],
        context: Optional[RankingContext] = None,
        limit: Optional[int] = None,
        user_id: str = "anonymous",
        weights_override: WeightsArg = None,
        now: Optional[datetime] = None,
    ) -> List[IRISRankResult]:
        """Rank `entities` and return the top `limit` results."""
        self.admit(user_id)
        limit = self._check_limit(limit, self.limits.default_score_limit)
        self._check_entities(entities)
        ranked = self._rank(entities, context or RankingContext(), user_id, weights_override, None, now)
        return ranked[:limit]

    def batch_score(
        self,
        batches: Sequence[BatchRequest],
        user_id: str = "anonymous",
        now: Optional[datetime] = None,
    ) -> List[BatchResult]:
        """
        Rank several independent entity sets in one call.

        Results come back in request order. A batch that fails validation,
        computation or its deadline carries an error; the others are unaffected.
        Each batch's timeout starts when a worker picks it up, not at submission.
        """
        self.admit(user_id)
        if not batches:
            raise ValidationError("At least one batch is required")
        if len(batches) > self.limits.max_batches:
            raise ValidationError(
                f"Maximum {self.limits.max_batches} batches per request",
                details={"batches": len(batches), "max": self.limits.max_batches},
            )

        now = to_naive_utc(now) if now is not None else datetime.utcnow()
        timeout = self.limits.batch_timeout_seconds
        # every batch could run back to back at its full timeout
        queue_deadline = time.monotonic() + timeout * len(batches)
        workers = min(self.limits.max_batch_workers, len(batches))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="irisrank-batch")
        try:
            submitted = []
            for batch in batches:
                clock = _BatchClock()
                future = executor.submit(self._run_batch, batch, user_id, now, clock)
                submitted.append((batch, clock, future))
            results = [
                self._collect_batch(batch, clock, future, queue_deadline)
                for batch, clock, future in submitted
            ]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def at_risk(
        self,
        entities: Sequence[Entity],
        limit: Optional[int] = None,
        inactivity_threshold: int = 30,
        user_id: str = "anonymous",
        now: Optional[datetime] = None,
    ) -> List[RiskedResult]:
        """Entities trending at_risk or churning, most urgent first."""
        self.admit(user_id)
        limit = self._check_limit(limit, self.limits.default_filter_limit)
        if inactivity_threshold < 1:
            raise ValidationError(
                "inactivity_threshold must be at least 1 day",
                details={"inactivity_threshold": inactivity_threshold},
            )
        self._check_entities(entities)
        config = self.config_store.current
        ranked = self._rank(entities, RankingContext(), user_id, None, inactivity_threshold, now)

        flagged = [r for r in ranked if r.momentum.trend in (Trend.CHURNING, Trend.AT_RISK)]
        flagged.sort(key=lambda r: (
            0 if r.momentum.trend == Trend.CHURNING else 1,
            -r.momentum.days_since_last_activity,
            -r.rank,
            r.entity_id,
        ))
        return [
            RiskedResult(
                **r.model_dump(),
                risk_level="Critical" if r.momentum.trend == Trend.CHURNING else "High",
                risk_factors=risk_factors(r, inactivity_threshold, config),
            )
            for r in flagged[:limit]
        ]

    def momentum(
        self,
        entities: Sequence[Entity],
        limit: Optional[int] = None,
        user_id: str = "anonymous",
        now: Optional[datetime] = None,
    ) -> List[MomentumResult]:
        """Entities with positive engagement momentum, hottest first."""
        self.admit(user_id)
        limit = self._check_limit(limit, self.limits.default_filter_limit)
        self._check_entities(entities)
        ranked = self._rank(entities, RankingContext(), user_id, None, None, now)

        hot = [
            r for r in ranked
            if r.momentum.trend in (Trend.ACCELERATING, Trend.STEADY) and r.momentum_score > 0.5
        ]
        hot.sort(key=lambda r: (-r.momentum_score, -r.rank, r.entity_id))
        return [
            MomentumResult(
                **r.model_dump(),
                heat_level="Hot" if r.momentum.trend == Trend.ACCELERATING else "Warm",
            )
            for r in hot[:limit]
        ]

    def insights(
        self,
        entities: Sequence[Entity],
        user_id: str = "anonymous",
        now: Optional[datetime] = None,
    ) -> InsightsReport:
        """Portfolio summary, distribution and recommendations over all entities."""
        self.admit(user_id)
        self._check_entities(entities)
        ranked = self._rank(entities, RankingContext(), user_id, None, None, now)

        total = len(ranked)
        by_trend = summarize_trends([r.momentum for r in ranked])
        by_type: Dict[str, int] = {}
        for r in ranked:
            by_type[r.entity_type] = by_type.get(r.entity_type, 0) + 1

        avg_rank = sum(r.rank for r in ranked) / total if total else 0.0
        avg_momentum = sum(r.momentum_score for r in ranked) / total if total else 0.0

        recommendations: List[str] = []
        churning = by_trend.get(Trend.CHURNING.value, 0)
        at_risk = by_trend.get(Trend.AT_RISK.value, 0)
        accelerating = by_trend.get(Trend.ACCELERATING.value, 0)
        if churning > 0:
            recommendations.append(f"{churning} entities are churning - immediate outreach needed")
        if total and at_risk > total * 0.3:
            recommendations.append(
                f"{round(at_risk / total * 100)}% of portfolio is at risk - review engagement strategy"
            )
        if accelerating > 0:
            recommendations.append(
                f"{accelerating} entities have strong momentum - prioritize for conversion"
            )
        if total and avg_momentum < 0.4:
            recommendations.append(
                "Overall portfolio momentum is low - consider re-engagement campaigns"
            )

        return InsightsReport(
            summary=InsightsSummary(
                total_entities=total,
                avg_rank=round(avg_rank, 2),
                avg_momentum=round(avg_momentum, 2),
            ),
            distribution=InsightsDistribution(by_trend=by_trend, by_type=by_type),
            recommendations=recommendations,
        )

    # --- Configuration ---

    def update_weights(
        self,
        network: Optional[float] = None,
        activity: Optional[float] = None,
        relevance: Optional[float] = None,
        momentum: Optional[float] = None,
    ) -> RankWeights:
        return self.config_store.update_weights(
            network=network, activity=activity, relevance=relevance, momentum=momentum
        )

    def add_activity_type(self, name: str, spec: ActivityTypeConfig) -> None:
        self.config_store.add_activity_type(name, spec)

    def add_relationship_type(self, name: str, spec: RelationshipTypeConfig) -> None:
        self.config_store.add_relationship_type(name, spec)

    def get_config(self) -> dict:
        config = self.config_store.current
        return {
            "version": config.version,
            "weights": config.weights.model_dump(),
            "activity_types": {k: v.model_dump() for k, v in sorted(config.activity_types.items())},
            "relationship_types": {
                k: v.model_dump() for k, v in sorted(config.relationship_types.items())
            },
            "velocity_period_days": config.velocity_period_days,
            "staleness_days": config.staleness_days,
            "damping_factor": config.damping_factor,
            "convergence_threshold": config.convergence_threshold,
            "max_iterations": config.max_iterations,
            "connection_half_life_days": config.connection_half_life_days,
            "default_connection_age_days": config.default_connection_age_days,
            "cache_ttl_seconds": self.limits.cache_ttl_seconds,
        }

    def get_stats(self) -> dict:
        config = self.config_store.current
        with self._stats_lock:
            stats = dict(self._stats)
        computations = stats.pop("total_compute_time_ms")
        stats["avg_compute_time_ms"] = (
            round(computations / stats["total_computations"], 3)
            if stats["total_computations"] else 0.0
        )
        stats.update({
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
            "cache_hit_rate": round(self.cache.hit_rate, 4),
            "cache_size": len(self.cache),
            "activity_types": len(config.activity_types),
            "relationship_types": len(config.relationship_types),
            "config_version": config.version,
        })
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()

    def admit(self, user_id: str) -> None:
        """Consume one rate-limit slot for `user_id` and count the call, or raise RateLimitError."""
        try:
            self.rate_limiter.check(user_id)
        except RateLimitError:
            self._bump("rate_limited_calls")
            raise
        self._bump("total_calls")

    # --- Internals ---

    def _on_config_change(self, config: RankConfig) -> None:
        self.cache.clear()
        logger.debug("Cache cleared after config change", extra={"config_version": config.version})

    def _bump(self, key: str, amount: float = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    def _check_entities(self, entities: Sequence[Entity]) -> None:
        if not entities:
            raise ValidationError("At least one entity is required")
        if len(entities) > self.limits.max_entities:
            raise ValidationError(
                f"Maximum {self.limits.max_entities} entities per request",
                details={"entities": len(entities), "max": self.limits.max_entities},
            )

    @staticmethod
    def _check_limit(limit: Optional[int], default: int) -> int:
        if limit is None:
            return default
        if limit < 1:
            raise ValidationError("limit must be at least 1", details={"limit": limit})
        return limit

    @staticmethod
    def _effective_weights(config: RankConfig, override: WeightsArg) -> RankWeights:
        if override is None:
            return config.weights
        if isinstance(override, WeightsOverride):
            if override.is_empty():
                return config.weights
            current = config.weights
            return validate_weights(
                network=current.network if override.network is None else override.network,
                activity=current.activity if override.activity is None else override.activity,
                relevance=current.relevance if override.relevance is None else override.relevance,
                momentum=current.momentum if override.momentum is None else override.momentum,
            )
        return validate_weights(
            override.network, override.activity, override.relevance, override.momentum
        )

    def _score_batch(self, batch: BatchRequest, user_id: str, now: datetime) -> BatchResult:
        self._check_entities(batch.entities)
        limit = batch.limit or self.limits.default_batch_limit
        ranked = self._rank(batch.entities, batch.context(), user_id, None, None, now)
        results = ranked[:limit]
        return BatchResult(batch_id=batch.batch_id, count=len(results), results=results)

    def _run_batch(self, batch: BatchRequest, user_id: str, now: datetime, clock: _BatchClock) -> BatchResult:
        clock.stamp()
        return self._score_batch(batch, user_id, now)

    def _collect_batch(
        self, batch: BatchRequest, clock: _BatchClock, future: Future, queue_deadline: float
    ) -> BatchResult:
        """Wait for one batch. Its timeout counts from when a worker picked it up."""
        if not clock.started.wait(timeout=max(0.0, queue_deadline - time.monotonic())):
            if future.cancel():
                return self._batch_failure(batch, {
                    "code": "BATCH_NOT_STARTED",
                    "message": "Batch was still queued when the request deadline passed",
                    "details": {},
                })
            clock.started.wait()

        timeout = self.limits.batch_timeout_seconds
        remaining = timeout - (time.monotonic() - clock.started_at)
        try:
            return future.result(timeout=max(0.0, remaining))
        except FutureTimeoutError:
            future.cancel()
            return self._batch_failure(batch, {
                "code": "BATCH_TIMEOUT",
                "message": f"Batch exceeded {timeout}s",
                "details": {},
            })
        except RankingError as e:
            return self._batch_failure(batch, e.to_dict())
        except Exception as e:
            logger.exception("Unexpected batch failure", extra={"batch_id": batch.batch_id})
            return self._batch_failure(batch, {
                "code": "INTERNAL_ERROR",
                "message": str(e),
                "details": {},
            })

    def _batch_failure(self, batch: BatchRequest, error: dict) -> BatchResult:
        self._bump("batch_failures")
        logger.warning(
            "Batch %s failed: %s", batch.batch_id, error["message"],
            extra={"batch_id": batch.batch_id, "code": error["code"]},
        )
        return BatchResult(batch_id=batch.batch_id, error=error)

    def _rank(
        self,
        entities: Sequence[Entity],
        context: RankingContext,
        user_id: str,
        weights_override: WeightsArg,
        staleness_days: Optional[int],
        now: Optional[datetime],
    ) -> List[IRISRankResult]:
        """Full ordered ranking of every entity that passes the type filter."""
        config = self.config_store.current
        weights = self._effective_weights(config, weights_override)
        staleness = staleness_days if staleness_days is not None else config.staleness_days

        key = fingerprint(user_id, entities, context, weights, config.version, staleness, now)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit", extra={"user_id": user_id, "entities": len(entities)})
            return list(cached)

        started = time.perf_counter()
        at = to_naive_utc(now) if now is not None else datetime.utcnow()
        has_query = bool(context.query and context.query.strip())

        graph = build_graph(entities, config, at)
        network = score_network(graph, config)
        results: List[IRISRankResult] = []
        for entity in graph.entities:
            if not context.accepts_type(entity.type):
                continue
            results.append(aggregate(
                entity,
                graph,
                network[entity.id],
                score_activity(entity, config, at),
                score_relevance(entity, context, config),
                compute_momentum(entity, config, at, staleness),
                config,
                weights,
                at,
                has_query=has_query,
            ))
        results.sort(key=ranking_order)

        elapsed_ms = (time.perf_counter() - started) * 1000
        with self._stats_lock:
            self._stats["total_computations"] += 1
            self._stats["entities_ranked"] += len(graph)
            self._stats["total_compute_time_ms"] += elapsed_ms
        self.cache.put(key, results)

        logger.info(
            "Ranked %d entities in %.1fms", len(graph), elapsed_ms,
            extra={"user_id": user_id, "results": len(results), "config_version": config.version},
        )
        return list(results)
