"""
IRISRank API — FastAPI endpoints.

Exposes the ranking service over HTTP for:
- Scoring and batch scoring
- At-risk and momentum filters
- Portfolio insights
- Next-step recommendations
- Configuration and statistics
"""

from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from irisrank.advisor.next_steps import NextStepsAdvisor, NextStepsContext
from irisrank.errors import RankingError
from irisrank.models.entity import Entity, RankingContext
from irisrank.models.request import BatchRequest, WeightsOverride
from irisrank.ranking.service import RankingService


# --- Request Models ---

class ScoreRequest(BaseModel):
    entities: List[Entity]
    query: Optional[str] = None
    entity_types: Optional[List[str]] = None
    limit: Optional[int] = None
    weights: Optional[WeightsOverride] = None


class BatchScoreRequest(BaseModel):
    batches: List[BatchRequest]


class AtRiskRequest(BaseModel):
    entities: List[Entity]
    limit: Optional[int] = None
    inactivity_threshold_days: int = 30


class MomentumRequest(BaseModel):
    entities: List[Entity]
    limit: Optional[int] = None


class InsightsRequest(BaseModel):
    entities: List[Entity]


class NextStepsRequest(BaseModel):
    entity: Entity
    context: Optional[NextStepsContext] = None


def _computed_at() -> str:
    return datetime.utcnow().isoformat()


def _results(results: list) -> dict:
    return {
        "success": True,
        "count": len(results),
        "results": [r.model_dump(mode="json") for r in results],
        "computed_at": _computed_at(),
    }


# --- Application Factory ---

def create_app(
    service: Optional[RankingService] = None,
    advisor: Optional[NextStepsAdvisor] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="IRISRank API",
        description="Entity importance and momentum ranking",
        version="0.1.0",
    )

    svc = service or RankingService()
    adv = advisor or NextStepsAdvisor(config_store=svc.config_store)

    app.state.service = svc
    app.state.advisor = adv

    @app.exception_handler(RankingError)
    async def handle_ranking_error(request: Request, exc: RankingError):
        return JSONResponse(
            status_code=exc.http_status,
            content={"success": False, "error": exc.to_dict()},
        )

    # === SCORING ===

    @app.post("/iris-rank/score")
    def score(req: ScoreRequest, user_id: str = Header(default="anonymous", alias="X-User-Id")):
        """Rank entities by composite importance."""
        context = RankingContext(
            query=req.query,
            entity_types=set(req.entity_types) if req.entity_types else None,
        )
        results = svc.score(
            req.entities,
            context=context,
            limit=req.limit,
            user_id=user_id,
            weights_override=req.weights,
        )
        return _results(results)

    @app.post("/iris-rank/batch")
    def batch_score(req: BatchScoreRequest, user_id: str = Header(default="anonymous", alias="X-User-Id")):
        """Rank several independent entity sets. Failures are reported per batch."""
        results = svc.batch_score(req.batches, user_id=user_id)
        return {
            "success": all(r.ok for r in results),
            "batches": [r.model_dump(mode="json") for r in results],
            "computed_at": _computed_at(),
        }

    # === FILTERS ===

    @app.post("/iris-rank/at-risk")
    def at_risk(req: AtRiskRequest, user_id: str = Header(default="anonymous", alias="X-User-Id")):
        results = svc.at_risk(
            req.entities,
            limit=req.limit,
            inactivity_threshold=req.inactivity_threshold_days,
            user_id=user_id,
        )
        return _results(results)

    @app.post("/iris-rank/momentum")
    def momentum(req: MomentumRequest, user_id: str = Header(default="anonymous", alias="X-User-Id")):
        results = svc.momentum(req.entities, limit=req.limit, user_id=user_id)
        return _results(results)

    @app.post("/iris-rank/insights")
    def insights(req: InsightsRequest, user_id: str = Header(default="anonymous", alias="X-User-Id")):
        report = svc.insights(req.entities, user_id=user_id)
        return {
            "success": True,
            "insights": report.model_dump(mode="json"),
            "computed_at": _computed_at(),
        }

    @app.post("/iris-rank/next-steps")
    def next_steps(req: NextStepsRequest, user_id: str = Header(default="anonymous", alias="X-User-Id")):
        """Recommended engagement actions for one entity."""
        svc.admit(user_id)
        plan = adv.advise(req.entity, req.context)
        return {"success": True, **plan.model_dump(mode="json")}

    # === CONFIGURATION ===

    @app.get("/iris-rank/config")
    def get_config():
        return svc.get_config()

    @app.put("/iris-rank/weights")
    def update_weights(req: WeightsOverride):
        weights = svc.update_weights(
            network=req.network,
            activity=req.activity,
            relevance=req.relevance,
            momentum=req.momentum,
        )
        return {"success": True, "weights": weights.model_dump()}

    @app.get("/iris-rank/stats")
    def get_stats():
        return svc.get_stats()

    @app.get("/iris-rank/health")
    def health():
        return {
            "status": "healthy",
            "service": "IRISRank",
            "config_version": svc.config_store.current.version,
            "timestamp": _computed_at(),
        }

    return app
