"""Tests for the runtime configuration store."""

import threading
import time

import pytest

from irisrank.errors import ConfigError
from irisrank.models.config import ActivityTypeConfig, RankConfig, RelationshipTypeConfig
from irisrank.ranking import config_store
from irisrank.ranking.config_store import ConfigStore, validate_weights


class TestUpdateWeights:
    def setup_method(self):
        self.store = ConfigStore()

    def test_partial_update_normalizes(self):
        weights = self.store.update_weights(network=1.0)
        assert weights.total == pytest.approx(1.0)
        assert weights.network == pytest.approx(1.0 / 1.7)
        assert weights.activity == pytest.approx(0.25 / 1.7)

    def test_full_update(self):
        weights = self.store.update_weights(network=1, activity=1, relevance=1, momentum=1)
        assert weights.network == pytest.approx(0.25)
        assert self.store.current.weights == weights

    def test_version_bumps_on_write(self):
        assert self.store.current.version == 0
        self.store.update_weights(momentum=0.5)
        self.store.update_weights(momentum=0.6)
        assert self.store.current.version == 2

    def test_old_snapshot_unchanged(self):
        before = self.store.current
        self.store.update_weights(network=0.9)
        assert before.weights.network == 0.30
        assert before.version == 0

    def test_negative_weight_rejected(self):
        with pytest.raises(ConfigError) as exc:
            self.store.update_weights(network=-0.1)
        assert exc.value.details["weight"] == "network"
        assert self.store.current.version == 0

    def test_non_finite_weight_rejected(self):
        with pytest.raises(ConfigError):
            self.store.update_weights(activity=float("nan"))

    def test_all_zero_rejected(self):
        with pytest.raises(ConfigError):
            self.store.update_weights(network=0, activity=0, relevance=0, momentum=0)
        assert self.store.current.weights.total == pytest.approx(1.0)

    def test_listeners_notified(self):
        seen = []
        self.store.subscribe(lambda config: seen.append(config.version))
        self.store.update_weights(network=0.4)
        assert seen == [1]

    def test_concurrent_writers_never_expose_partial_weights(self):
        errors = []

        def writer(value):
            for _ in range(50):
                self.store.update_weights(network=value, activity=1 - value)

        def reader():
            for _ in range(200):
                weights = self.store.current.weights
                if abs(weights.total - 1.0) > 1e-9:
                    errors.append(weights)

        threads = [threading.Thread(target=writer, args=(v,)) for v in (0.2, 0.8)]
        threads += [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert self.store.current.version == 100

    def test_concurrent_partial_updates_both_apply(self, monkeypatch):
        original = config_store.validate_weights
        first_entered = threading.Event()

        def slow_validate(**weights):
            first_entered.set()
            time.sleep(0.05)
            return original(**weights)

        monkeypatch.setattr(config_store, "validate_weights", slow_validate)
        first = threading.Thread(target=self.store.update_weights, kwargs={"network": 10})
        second = threading.Thread(target=self.store.update_weights, kwargs={"momentum": 10})
        first.start()
        assert first_entered.wait(timeout=1)
        second.start()
        first.join()
        second.join()

        weights = self.store.current.weights
        assert self.store.current.version == 2
        assert weights.momentum > 0.9
        # the network boost survives the second write
        assert weights.network > 10 * weights.activity


class TestVocabularies:
    def setup_method(self):
        self.store = ConfigStore()

    def test_add_activity_type(self):
        config = self.store.add_activity_type(
            "Webinar Attended", ActivityTypeConfig(weight=0.3, decay_days=21, category="event")
        )
        assert config.activity_types["webinar_attended"].weight == 0.3
        assert len(config.activity_types) == 26
        assert config.version == 1

    def test_replace_activity_type(self):
        self.store.add_activity_type("email_opened", ActivityTypeConfig(weight=0.5, decay_days=7))
        assert self.store.current.activity_types["email_opened"].weight == 0.5

    def test_add_relationship_type(self):
        config = self.store.add_relationship_type(
            "Mentors", RelationshipTypeConfig(weight=0.4, bidirectional=True)
        )
        assert config.relationship_types["mentors"].bidirectional

    def test_relationship_type_name_normalized_like_activity_types(self):
        config = self.store.add_relationship_type("Board Member", RelationshipTypeConfig(weight=0.7))
        assert "board_member" in config.relationship_types

    def test_blank_names_rejected(self):
        with pytest.raises(ConfigError):
            self.store.add_relationship_type("  ", RelationshipTypeConfig(weight=0.4))
        with pytest.raises(ConfigError):
            self.store.add_activity_type("", ActivityTypeConfig(weight=0.1, decay_days=7))

    def test_default_tables_not_mutated(self):
        self.store.add_activity_type("webinar_attended", ActivityTypeConfig(weight=0.3, decay_days=21))
        assert "webinar_attended" not in RankConfig().activity_types


class TestValidateWeights:
    def test_valid(self):
        weights = validate_weights(0.1, 0.2, 0.3, 0.4)
        assert weights.total == pytest.approx(1.0)

    def test_negative(self):
        with pytest.raises(ConfigError):
            validate_weights(0.1, -0.2, 0.3, 0.4)
