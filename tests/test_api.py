"""Tests for the FastAPI API endpoints."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from irisrank.api.app import create_app
from irisrank.models.config import ServiceLimits
from irisrank.ranking.service import RankingService


def _iso(days_ago: float) -> str:
    return (datetime.utcnow() - timedelta(days=days_ago)).isoformat()


def _make_entities():
    return [
        {
            "id": "lead_1",
            "type": "Lead",
            "name": "Jane Doe",
            "properties": {"company": "Acme", "industry": "Software"},
            "activities": [
                {"type": "email_replied", "occurred_at": _iso(d), "outcome": "positive"}
                for d in range(4)
            ],
            "connections": [
                {"target_id": "acc_1", "relationship_type": "works_at", "strength": 1.0,
                 "established_at": _iso(10)},
            ],
        },
        {
            "id": "acc_1",
            "type": "Account",
            "name": "Acme Corp",
            "activities": [{"type": "meeting_attended", "occurred_at": _iso(75)}],
        },
        {"id": "lead_2", "type": "Lead", "name": "John Roe"},
    ]


@pytest.fixture
def client():
    """Create a test client with a fresh service."""
    return TestClient(create_app(service=RankingService()))


class TestScoreEndpoints:
    def test_score(self, client):
        response = client.post("/iris-rank/score", json={"entities": _make_entities()})
        assert response.status_code == 200
        data = response.json()
        assert data["success"]
        assert data["count"] == 3
        ranks = [r["rank"] for r in data["results"]]
        assert ranks == sorted(ranks, reverse=True)
        assert data["results"][0]["explanation"]

    def test_score_with_filter_and_limit(self, client):
        response = client.post("/iris-rank/score", json={
            "entities": _make_entities(),
            "entity_types": ["Lead"],
            "limit": 1,
        })
        results = response.json()["results"]
        assert len(results) == 1
        assert results[0]["entity_type"] == "Lead"

    def test_score_with_weights_override(self, client):
        response = client.post("/iris-rank/score", json={
            "entities": _make_entities(),
            "query": "acme",
            "weights": {"relevance": 1.0},
        })
        assert response.status_code == 200
        assert client.get("/iris-rank/config").json()["version"] == 0

    def test_empty_entities_is_400(self, client):
        response = client.post("/iris-rank/score", json={"entities": []})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_malformed_body_is_422(self, client):
        response = client.post("/iris-rank/score", json={"entities": [{"id": "x"}]})
        assert response.status_code == 422

    def test_batch(self, client):
        response = client.post("/iris-rank/batch", json={"batches": [
            {"batch_id": "empty", "entities": []},
            {"batch_id": "full", "entities": _make_entities(), "limit": 2},
        ]})
        assert response.status_code == 200
        data = response.json()
        assert not data["success"]
        assert data["batches"][0]["error"]["code"] == "VALIDATION_ERROR"
        assert data["batches"][1]["count"] == 2


class TestFilterEndpoints:
    def test_at_risk(self, client):
        response = client.post("/iris-rank/at-risk", json={"entities": _make_entities()})
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["entity_id"] == "acc_1"
        assert data["results"][0]["risk_level"] == "Critical"

    def test_momentum(self, client):
        response = client.post("/iris-rank/momentum", json={"entities": _make_entities()})
        data = response.json()
        assert [r["entity_id"] for r in data["results"]] == ["lead_1"]
        assert data["results"][0]["heat_level"] == "Hot"

    def test_insights(self, client):
        response = client.post("/iris-rank/insights", json={"entities": _make_entities()})
        insights = response.json()["insights"]
        assert insights["summary"]["total_entities"] == 3
        assert insights["distribution"]["by_type"] == {"Lead": 2, "Account": 1}

    def test_next_steps_fallback(self, client):
        response = client.post("/iris-rank/next-steps", json={
            "entity": _make_entities()[0],
            "context": {"deal_stage": "Discovery"},
        })
        assert response.status_code == 200
        data = response.json()
        assert data["fallback"]
        assert data["entity_id"] == "lead_1"
        assert data["next_steps"]


class TestConfigEndpoints:
    def test_get_config(self, client):
        data = client.get("/iris-rank/config").json()
        assert data["weights"]["network"] == 0.30
        assert "email_replied" in data["activity_types"]

    def test_update_weights(self, client):
        response = client.put("/iris-rank/weights", json={"network": 1, "activity": 1, "relevance": 1, "momentum": 1})
        assert response.status_code == 200
        assert response.json()["weights"]["network"] == pytest.approx(0.25)
        data = client.get("/iris-rank/config").json()
        assert data["version"] == 1
        assert data["weights"]["momentum"] == pytest.approx(0.25)

    def test_invalid_weights_is_400(self, client):
        response = client.put("/iris-rank/weights", json={"network": -1})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CONFIG_ERROR"

    def test_stats_and_health(self, client):
        client.post("/iris-rank/score", json={"entities": _make_entities()})
        stats = client.get("/iris-rank/stats").json()
        assert stats["total_calls"] == 1
        assert stats["entities_ranked"] == 3
        assert client.get("/iris-rank/health").json()["status"] == "healthy"


class TestRateLimit:
    def test_per_user_budget(self):
        client = TestClient(create_app(service=RankingService(limits=ServiceLimits(rate_limit_per_minute=1))))
        body = {"entities": _make_entities()}
        assert client.post("/iris-rank/score", json=body, headers={"X-User-Id": "u1"}).status_code == 200
        response = client.post("/iris-rank/score", json=body, headers={"X-User-Id": "u1"})
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert client.post("/iris-rank/score", json=body, headers={"X-User-Id": "u2"}).status_code == 200

    def test_next_steps_rejections_are_counted(self):
        service = RankingService(limits=ServiceLimits(rate_limit_per_minute=1))
        client = TestClient(create_app(service=service))
        body = {"entity": _make_entities()[0]}
        assert client.post("/iris-rank/next-steps", json=body).status_code == 200
        assert client.post("/iris-rank/next-steps", json=body).status_code == 429
        stats = client.get("/iris-rank/stats").json()
        assert stats["rate_limited_calls"] == 1
        assert stats["total_calls"] == 1
