"""
Unit tests for InteractionStore.

Tests:
- Registration defaults (visibility, categories)
- Interaction recording and bounded histories
- Recent usage window boundaries
- Area reset
"""

import pytest

from uiflow.core.errors import InvalidCategoryError
from uiflow.core.expressions import parse_dependency
from uiflow.core.models import MS_PER_DAY, Category


class TestRegistration:
    """Tests for element registration."""

    def test_basic_without_dependencies_starts_visible(self, store):
        record = store.register("open-file", "basic", "editor")

        assert record.visible is True
        assert record.category == Category.BASIC
        assert record.interactions == 0
        assert record.last_used is None

    def test_advanced_starts_hidden(self, store):
        assert store.register("export", Category.ADVANCED, "editor").visible is False

    def test_element_with_dependencies_starts_hidden(self, store):
        dependency = parse_dependency({"type": "usage_count", "elementId": "a", "threshold": 1})
        record = store.register("b", "basic", "editor", dependencies=[dependency])

        assert record.visible is False

    def test_unknown_category_raises(self, store):
        with pytest.raises(InvalidCategoryError, match="Invalid category: legendary"):
            store.register("x", "legendary")

    def test_invalid_category_is_value_error(self, store):
        with pytest.raises(ValueError):
            store.register("x", "")

    def test_register_creates_area(self, store, manual_time):
        store.register("theme", "basic", "settings")

        assert store.areas["settings"].last_activity == manual_time.ms
        assert store.areas["settings"].total_interactions == 0


class TestRecording:
    """Tests for recording interactions."""

    def test_record_updates_counts_and_histories(self, store, manual_time):
        store.register("open-file", "basic", "editor")

        record = store.record_interaction("open-file")

        assert record.interactions == 1
        assert record.last_used == manual_time.ms
        assert store.element_history("open-file") == [manual_time.ms]
        assert store.category_history("editor", Category.BASIC) == [manual_time.ms]
        assert store.sequence("editor") == [manual_time.ms]
        assert store.sequence() == [manual_time.ms]
        assert store.areas["editor"].total_interactions == 1

    def test_unknown_element_ignored(self, store):
        assert store.record_interaction("ghost") is None
        assert store.total_interactions() == 0

    def test_explicit_timestamp(self, store):
        store.register("open-file", "basic", "editor")
        store.record_interaction("open-file", timestamp=1234)

        assert store.get("open-file").last_used == 1234

    def test_histories_are_bounded(self, store, manual_time):
        store.register("open-file", "basic", "editor")
        for _ in range(120):
            manual_time.advance(1_000)
            store.record_interaction("open-file")

        assert len(store.element_history("open-file")) == store.ELEMENT_HISTORY_CAP
        assert len(store.category_history("editor", Category.BASIC)) == store.CATEGORY_HISTORY_CAP
        assert len(store.sequence("editor")) == store.SEQUENCE_CAP
        # Oldest entries are dropped first
        assert store.element_history("open-file")[-1] == manual_time.ms
        assert store.get("open-file").interactions == 120

    def test_global_sequence_spans_areas(self, store):
        store.register("open-file", "basic", "editor")
        store.register("theme", "basic", "settings")

        store.record_interaction("open-file", timestamp=1)
        store.record_interaction("theme", timestamp=2)

        assert store.sequence("editor") == [1]
        assert store.sequence("settings") == [2]
        assert store.sequence() == [1, 2]

    def test_category_usage_without_element(self, store):
        store.record_category_usage("reports", "expert", 99)

        assert store.category_history("reports", Category.EXPERT) == [99]
        assert store.total_interactions() == 0


class TestRecentUsage:
    """Tests for the recent usage window."""

    def test_counts_per_category(self, store, manual_time):
        store.register("open-file", "basic", "editor")
        store.register("export", "advanced", "editor")
        store.record_interaction("open-file")
        store.record_interaction("open-file")
        store.record_interaction("export")

        usage = store.recent_usage("editor", 7 * MS_PER_DAY)

        assert usage == {Category.BASIC: 2, Category.ADVANCED: 1, Category.EXPERT: 0}

    def test_window_lower_bound_is_exclusive(self, store, manual_time):
        store.register("open-file", "basic", "editor")
        window = 7 * MS_PER_DAY
        store.record_interaction("open-file", timestamp=manual_time.ms - window)
        store.record_interaction("open-file", timestamp=manual_time.ms - window + 1)

        assert store.recent_usage("editor", window)[Category.BASIC] == 1

    def test_unknown_area_is_all_zero(self, store):
        assert set(store.recent_usage("nowhere", MS_PER_DAY).values()) == {0}


class TestReset:
    """Tests for resetting an area."""

    def test_reset_clears_area_only(self, store):
        store.register("open-file", "basic", "editor")
        store.register("theme", "basic", "settings")
        store.record_interaction("open-file", timestamp=10)
        store.record_interaction("theme", timestamp=20)
        store.get("open-file").force_unlocked = True

        records = store.reset("editor")

        assert [r.element_id for r in records] == ["open-file"]
        editor = store.get("open-file")
        assert editor.interactions == 0
        assert editor.last_used is None
        assert editor.force_unlocked is False
        assert store.element_history("open-file") == []
        assert store.category_history("editor", Category.BASIC) == []
        assert store.sequence("editor") == []
        assert store.areas["editor"].total_interactions == 0

        assert store.get("theme").interactions == 1
        assert store.sequence("settings") == [20]

    def test_clear_drops_everything(self, store):
        store.register("open-file", "basic", "editor")
        store.record_interaction("open-file")

        store.clear()

        assert store.elements == {}
        assert store.areas == {}
        assert store.sequence() == []
