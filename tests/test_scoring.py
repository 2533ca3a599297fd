"""Tests for the activity, network and relevance scorers."""

import math

import pytest

from conftest import NOW, make_activity, make_connection, make_entity
from irisrank.graph.builder import build_graph
from irisrank.models.config import RankConfig
from irisrank.models.entity import ActivityOutcome, RankingContext
from irisrank.scoring.activity import (
    activity_contribution,
    activity_type_key,
    lookup_activity_type,
    score_activity,
    top_contributions,
)
from irisrank.scoring.network import connection_counts, pagerank, score_network
from irisrank.scoring.relevance import query_tokens, score_relevance, searchable_text


class TestActivityScorer:
    def setup_method(self):
        self.config = RankConfig()

    def test_no_activity_scores_zero(self):
        assert score_activity(make_entity("a"), self.config, NOW) == 0.0

    def test_single_fresh_activity(self):
        entity = make_entity("a", activities=[make_activity(0, "meeting_attended")])
        assert score_activity(entity, self.config, NOW) == pytest.approx(1 - math.exp(-0.35))

    def test_half_life_decay(self):
        activity = make_activity(30, "meeting_attended")
        assert activity_contribution(activity, self.config, NOW) == pytest.approx(0.175)

    def test_outcome_multipliers(self):
        positive = make_activity(0, "call_answered", ActivityOutcome.POSITIVE)
        neutral = make_activity(0, "call_answered", ActivityOutcome.NEUTRAL)
        negative = make_activity(0, "call_answered", ActivityOutcome.NEGATIVE)
        assert activity_contribution(positive, self.config, NOW) == pytest.approx(0.24)
        assert activity_contribution(neutral, self.config, NOW) == pytest.approx(0.20)
        assert activity_contribution(negative, self.config, NOW) == pytest.approx(0.16)

    def test_negative_signals_clamp_at_zero(self):
        entity = make_entity("a", activities=[make_activity(0, "unsubscribed")])
        assert score_activity(entity, self.config, NOW) == 0.0

    def test_saturates_below_one(self):
        entity = make_entity("a", activities=[make_activity(0, "deal_won") for _ in range(40)])
        score = score_activity(entity, self.config, NOW)
        assert 0.99 < score <= 1.0

    def test_unknown_type_uses_default(self):
        spec = lookup_activity_type("Webinar Attended", self.config)
        assert spec.weight == pytest.approx(0.10)
        assert spec.decay_days == 30

    def test_type_key_normalization(self):
        assert activity_type_key("Email Replied") == "email_replied"
        assert activity_type_key("  MEETING_ATTENDED ") == "meeting_attended"
        assert lookup_activity_type("Email Replied", self.config).weight == pytest.approx(0.25)

    def test_more_recent_scores_higher(self):
        fresh = make_entity("a", activities=[make_activity(1, "email_replied")])
        stale = make_entity("b", activities=[make_activity(40, "email_replied")])
        assert score_activity(fresh, self.config, NOW) > score_activity(stale, self.config, NOW)

    def test_top_contributions(self):
        entity = make_entity("a", activities=[
            make_activity(0, "website_visit"),
            make_activity(0, "deal_won"),
            make_activity(0, "stage_regressed"),
        ])
        top = top_contributions(entity, self.config, NOW, limit=2)
        assert [t for t, _ in top] == ["deal_won", "stage_regressed"]
        assert top[1][1] < 0


class TestNetworkScorer:
    def setup_method(self):
        self.config = RankConfig()

    def test_empty_graph(self):
        assert score_network(build_graph([], self.config, NOW), self.config) == {}

    def test_isolated_entities_are_neutral(self):
        graph = build_graph([make_entity("a"), make_entity("b"), make_entity("c")], self.config, NOW)
        scores = score_network(graph, self.config)
        for score in scores.values():
            assert score == pytest.approx(0.5)

    def test_pagerank_mass_sums_to_one_without_boundary(self):
        a = make_entity("a", connections=[make_connection("b", "owns")])
        b = make_entity("b", connections=[make_connection("c", "owns")])
        c = make_entity("c")
        raw = pagerank(build_graph([a, b, c], self.config, NOW), self.config)
        assert sum(raw.values()) == pytest.approx(1.0, abs=1e-3)

    def test_target_outranks_source(self):
        a = make_entity("a", connections=[make_connection("b", "works_at")])
        b = make_entity("b")
        scores = score_network(build_graph([a, b], self.config, NOW), self.config)
        assert scores["b"] > scores["a"] > 0

    def test_two_node_stationary_values(self):
        a = make_entity("a", connections=[make_connection("b", "works_at")])
        b = make_entity("b")
        raw = pagerank(build_graph([a, b], self.config, NOW), self.config)
        assert raw["a"] == pytest.approx(0.5 / 1.425, abs=1e-3)
        assert raw["b"] == pytest.approx(1 - 0.5 / 1.425, abs=1e-3)

    def test_hub_with_many_referrers(self):
        referrers = [make_entity(f"r{i}", connections=[make_connection("hub", "works_at")]) for i in range(5)]
        hub = make_entity("hub")
        scores = score_network(build_graph(referrers + [hub], self.config, NOW), self.config)
        assert scores["hub"] == max(scores.values())
        assert scores["hub"] > 0.7

    def test_boundary_edges_leak_mass(self):
        a = make_entity("a", connections=[make_connection("external", "owns")])
        c = make_entity("c", connections=[make_connection("external", "owns")])
        scores = score_network(build_graph([a, c], self.config, NOW), self.config)
        assert 0 < scores["a"] < 0.5
        assert scores["a"] == pytest.approx(scores["c"])

    def test_scores_strictly_inside_unit_interval(self):
        entities = [
            make_entity("a", connections=[make_connection("b"), make_connection("c", "partner_of")]),
            make_entity("b", connections=[make_connection("c", "owns")]),
            make_entity("c", connections=[make_connection("a", "reports_to")]),
            make_entity("d"),
        ]
        scores = score_network(build_graph(entities, self.config, NOW), self.config)
        assert all(0 < s < 1 for s in scores.values())

    def test_iteration_cap_still_returns(self, caplog):
        config = RankConfig(max_iterations=1, convergence_threshold=1e-12)
        a = make_entity("a", connections=[make_connection("b", "owns")])
        b = make_entity("b")
        with caplog.at_level("WARNING", logger="irisrank.scoring.network"):
            scores = score_network(build_graph([a, b], config, NOW), config)
        assert all(math.isfinite(s) for s in scores.values())
        assert scores == {"a": pytest.approx(0.5), "b": pytest.approx(0.5)}
        assert "did not converge" in caplog.text

    def test_boundary_mass_never_returns_to_batch(self):
        # a leaks half its out-flow to an outside id; total batch mass drops below one
        a = make_entity("a", connections=[make_connection("b", "owns"), make_connection("outside", "owns")])
        b = make_entity("b", connections=[make_connection("a", "owns")])
        raw = pagerank(build_graph([a, b], self.config, NOW), self.config)
        assert set(raw) == {"a", "b"}
        assert sum(raw.values()) < 0.9
        assert raw["a"] > raw["b"]

    def test_connection_counts(self):
        a = make_entity("a", connections=[
            make_connection("b", "works_at"),
            make_connection("c", "Works At"),
            make_connection("d", "owns"),
        ])
        graph = build_graph([a], self.config, NOW)
        assert connection_counts(graph, "a") == {"works_at": 2, "owns": 1}
        assert connection_counts(graph, "missing") == {}


class TestRelevanceScorer:
    def setup_method(self):
        self.config = RankConfig()
        self.entity = make_entity(
            "acc_1",
            entity_type="Account",
            name="Acme Corp",
            industry="Software",
            tags=["enterprise", "emea"],
            address={"city": "Berlin"},
            is_customer=True,
        )

    def test_no_query_is_neutral(self):
        assert score_relevance(self.entity, RankingContext(), self.config) == 0.5

    def test_only_short_tokens_is_neutral(self):
        context = RankingContext(query="a to")
        assert score_relevance(self.entity, context, self.config) == 0.5

    def test_full_match(self):
        context = RankingContext(query="ACME software")
        assert score_relevance(self.entity, context, self.config) == 1.0

    def test_partial_match(self):
        context = RankingContext(query="acme hardware")
        assert score_relevance(self.entity, context, self.config) == 0.5

    def test_no_match(self):
        context = RankingContext(query="globex")
        assert score_relevance(self.entity, context, self.config) == 0.0

    def test_nested_values_searched(self):
        context = RankingContext(query="berlin enterprise")
        assert score_relevance(self.entity, context, self.config) == 1.0

    def test_booleans_rendered(self):
        assert "true" in searchable_text(self.entity)

    def test_duplicate_tokens_counted_once(self):
        assert query_tokens("acme acme corp", self.config) == ["acme", "corp"]
