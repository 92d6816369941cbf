"""
Unit tests for JourneyClassifier.

Tests:
- Minimum sequence length
- Exploring vs focused cadence
- Expert override
- Journey statistics
"""

import math

import pytest

from uiflow.core.models import MS_PER_MINUTE, Category, JourneyBehavior
from uiflow.engine.journey_classifier import JourneyClassifier


@pytest.fixture
def classifier(store):
    return JourneyClassifier(store)


@pytest.fixture
def editor(store):
    store.register("open-file", "basic", "editor")
    store.register("save-file", "basic", "editor")
    store.register("find", "basic", "editor")
    store.register("export", "advanced", "editor")
    store.register("macros", "expert", "editor")
    return store


def record_every(store, element_id, count, spacing_ms, start):
    for index in range(count):
        store.record_interaction(element_id, timestamp=start + index * spacing_ms)


class TestClassify:
    """Tests for behaviour classification."""

    def test_needs_five_interactions(self, editor, classifier, manual_time):
        record_every(editor, "open-file", 4, MS_PER_MINUTE, manual_time.ms)
        assert classifier.classify("editor") is None

    def test_slow_cadence_is_exploring(self, editor, classifier, manual_time):
        # 5 interactions over 8 minutes -> 0.625 per minute
        record_every(editor, "open-file", 5, 2 * MS_PER_MINUTE, manual_time.ms)

        insight = classifier.classify("editor")

        assert insight.behavior == JourneyBehavior.EXPLORING
        assert insight.interaction_rate == pytest.approx(5 / 8)
        assert insight.total_sequence_length == 5
        assert insight.recent_activity == 5

    def test_fast_cadence_is_focused(self, editor, classifier, manual_time):
        # 10 interactions over 90 seconds
        record_every(editor, "open-file", 10, 10_000, manual_time.ms)

        insight = classifier.classify("editor")

        assert insight.behavior == JourneyBehavior.FOCUSED
        assert insight.interaction_rate > 2

    def test_exactly_two_per_minute_is_not_focused(self, editor, classifier, manual_time):
        # 6 entries spanning 3 minutes -> exactly 2.0 per minute
        record_every(editor, "open-file", 6, 36_000, manual_time.ms)

        insight = classifier.classify("editor")

        assert insight.interaction_rate == pytest.approx(2.0)
        assert insight.behavior == JourneyBehavior.EXPLORING

    def test_only_last_ten_entries_count(self, editor, classifier, manual_time):
        # Slow history followed by a burst
        record_every(editor, "open-file", 10, 10 * MS_PER_MINUTE, manual_time.ms)
        record_every(editor, "save-file", 10, 1_000, manual_time.ms + 200 * MS_PER_MINUTE)

        insight = classifier.classify("editor")

        assert insight.recent_activity == 10
        assert insight.total_sequence_length == 20
        assert insight.behavior == JourneyBehavior.FOCUSED

    def test_same_timestamp_burst_is_focused(self, editor, classifier, manual_time):
        record_every(editor, "open-file", 5, 0, manual_time.ms)

        insight = classifier.classify("editor")

        assert math.isinf(insight.interaction_rate)
        assert insight.behavior == JourneyBehavior.FOCUSED

    def test_expert_requires_majority_of_elements(self, store, classifier, manual_time):
        store.register("open-file", "basic", "editor")
        store.register("export", "advanced", "editor")
        store.register("macros", "expert", "editor")
        record_every(store, "export", 3, 5 * MS_PER_MINUTE, manual_time.ms)
        record_every(store, "macros", 2, 5 * MS_PER_MINUTE, manual_time.ms + 20 * MS_PER_MINUTE)

        insight = classifier.classify("editor")

        # 2 of 3 elements are advanced/expert and used -> overrides the slow cadence
        assert insight.advanced_feature_usage == 2
        assert insight.behavior == JourneyBehavior.EXPERT

    def test_half_is_not_a_majority(self, store, classifier, manual_time):
        store.register("open-file", "basic", "editor")
        store.register("export", "advanced", "editor")
        record_every(store, "export", 5, 5 * MS_PER_MINUTE, manual_time.ms)

        insight = classifier.classify("editor")

        assert insight.advanced_feature_usage == 1
        assert insight.behavior == JourneyBehavior.EXPLORING

    def test_payload_uses_plain_values(self, editor, classifier, manual_time):
        record_every(editor, "open-file", 5, 2 * MS_PER_MINUTE, manual_time.ms)

        payload = classifier.classify("editor").to_payload()

        assert payload["area"] == "editor"
        assert payload["behavior"] == "exploring"


class TestInteractionRate:
    """Tests for the rate helper."""

    def test_empty(self):
        assert JourneyClassifier.interaction_rate([]) == 0.0

    def test_rate_per_minute(self):
        assert JourneyClassifier.interaction_rate([0, MS_PER_MINUTE]) == pytest.approx(2.0)


class TestStats:
    """Tests for journey statistics."""

    def test_stats(self, editor, classifier, manual_time):
        record_every(editor, "open-file", 3, 1_000, manual_time.ms - 10_000)
        record_every(editor, "export", 2, 1_000, manual_time.ms - 5_000)

        stats = classifier.stats("editor")

        assert stats.total_interactions == 5
        assert stats.sequence_length == 5
        assert stats.recent_activity == 5
        assert stats.usage_pattern[Category.BASIC] == 3
        assert stats.usage_pattern[Category.ADVANCED] == 2
