"""
Unit tests for configuration parsing.

Tests:
- Dependency / trigger / action parsing
- Unknown and malformed nodes degrade to unsupported placeholders
- Configuration document validation
"""

import pytest

from uiflow.core.errors import ConfigurationError
from uiflow.core.expressions import (
    CustomEventTrigger,
    FlowConfiguration,
    Frequency,
    LogicalOrDependency,
    SendEventAction,
    ShowTutorialAction,
    TimeBasedDependency,
    UnlockCategoryAction,
    UnsupportedAction,
    UnsupportedDependency,
    UnsupportedTrigger,
    UsageCountDependency,
    UsagePatternTrigger,
    parse_action,
    parse_dependency,
    parse_trigger,
)
from uiflow.core.models import Category


class TestDependencies:
    """Tests for dependency parsing."""

    def test_camel_case_keys(self):
        expression = parse_dependency(
            {"type": "time_based", "elementId": "open-file", "timeWindow": "2w", "minUsage": 3}
        )

        assert isinstance(expression, TimeBasedDependency)
        assert expression.element_id == "open-file"
        assert expression.time_window == "2w"
        assert expression.min_usage == 3

    def test_snake_case_keys(self):
        expression = parse_dependency({"type": "usage_count", "element_id": "open-file", "threshold": 2})
        assert expression == UsageCountDependency(element_id="open-file", threshold=2)

    def test_references(self):
        assert parse_dependency({"type": "logical_or", "elements": ["a", "b"]}).references() == ("a", "b")
        assert parse_dependency({"type": "usage_count", "elementId": "a", "threshold": 1}).references() == ("a",)

    def test_describe(self):
        assert parse_dependency({"type": "usage_count", "elementId": "a", "threshold": 3}).describe() == "usage_count(a >= 3)"
        assert parse_dependency({"type": "sequence", "elements": ["a", "b"]}).describe() == "sequence(a -> b)"
        assert parse_dependency({"type": "moon"}).describe() == "unsupported(moon)"

    def test_unknown_type(self):
        expression = parse_dependency({"type": "moon_phase"})

        assert isinstance(expression, UnsupportedDependency)
        assert expression.type == "moon_phase"
        assert expression.references() == ()

    def test_missing_type(self):
        assert parse_dependency({"elementId": "a"}).type == "<missing>"

    def test_non_mapping(self):
        assert isinstance(parse_dependency("usage_count"), UnsupportedDependency)

    def test_zero_threshold_rejected(self):
        assert isinstance(
            parse_dependency({"type": "usage_count", "elementId": "a", "threshold": 0}),
            UnsupportedDependency,
        )

    def test_already_parsed_passes_through(self):
        expression = LogicalOrDependency(elements=("a",))
        assert parse_dependency(expression) is expression


class TestTriggersAndActions:
    """Tests for rule trigger and action parsing."""

    def test_usage_pattern(self):
        trigger = parse_trigger(
            {"type": "usage_pattern", "elements": ["a"], "frequency": "weekly", "duration": "1m"}
        )

        assert isinstance(trigger, UsagePatternTrigger)
        assert trigger.frequency == Frequency.WEEKLY

    def test_unknown_frequency_is_unsupported(self):
        trigger = parse_trigger(
            {"type": "usage_pattern", "elements": ["a"], "frequency": "hourly", "duration": "1d"}
        )
        assert isinstance(trigger, UnsupportedTrigger)

    def test_custom_event(self):
        trigger = parse_trigger({"type": "custom_event", "event": "tour-finished"})
        assert trigger == CustomEventTrigger(event="tour-finished")

    def test_unknown_trigger(self):
        assert parse_trigger({"type": "on_full_moon"}).type == "on_full_moon"

    def test_unlock_category(self):
        action = parse_action({"type": "unlock_category", "category": "expert", "area": "editor"})

        assert isinstance(action, UnlockCategoryAction)
        assert action.category == Category.EXPERT

    def test_unlock_category_rejects_unknown_category(self):
        action = parse_action({"type": "unlock_category", "category": "legendary", "area": "editor"})
        assert isinstance(action, UnsupportedAction)

    def test_show_tutorial_defaults(self):
        action = parse_action({"type": "show_tutorial"})

        assert isinstance(action, ShowTutorialAction)
        assert action.tutorial == "default"
        assert action.auto_start is False

    def test_send_event_any_data(self):
        assert parse_action({"type": "send_event", "data": [1, 2]}) == SendEventAction(data=[1, 2])

    def test_unknown_action(self):
        assert isinstance(parse_action({"type": "teleport"}), UnsupportedAction)


class TestFlowConfiguration:
    """Tests for configuration documents."""

    def test_full_document(self, editor_document):
        configuration = FlowConfiguration.from_document(editor_document)

        assert configuration.name == "Editor Flow"
        assert configuration.version == "2.1.0"
        assert configuration.element_count == 6
        assert len(configuration.rules) == 2
        export = configuration.areas["editor"].elements[2]
        assert export.category == Category.ADVANCED
        assert isinstance(export.dependencies[0], UsageCountDependency)

    def test_minimal_document(self):
        configuration = FlowConfiguration.from_document({"name": "Empty"})

        assert configuration.version == "1.0.0"
        assert configuration.areas == {}
        assert configuration.rules == ()
        assert configuration.ab_test is None

    def test_missing_name_raises(self):
        with pytest.raises(ConfigurationError, match="name"):
            FlowConfiguration.from_document({"areas": {}})

    def test_unknown_category_raises(self):
        with pytest.raises(ConfigurationError):
            FlowConfiguration.from_document(
                {"name": "x", "areas": {"a": {"elements": [{"id": "e", "category": "legendary"}]}}}
            )

    def test_unknown_rule_nodes_do_not_raise(self):
        configuration = FlowConfiguration.from_document(
            {
                "name": "x",
                "rules": [{"name": "odd", "trigger": {"type": "?"}, "action": {"type": "?"}}],
            }
        )

        assert isinstance(configuration.rules[0].trigger, UnsupportedTrigger)
        assert isinstance(configuration.rules[0].action, UnsupportedAction)

    def test_single_dependency_mapping_accepted(self):
        configuration = FlowConfiguration.from_document(
            {
                "name": "x",
                "areas": {
                    "a": {
                        "elements": [
                            {
                                "id": "e",
                                "category": "advanced",
                                "dependencies": {"type": "usage_count", "elementId": "f", "threshold": 1},
                            }
                        ]
                    }
                },
            }
        )
        assert len(configuration.areas["a"].elements[0].dependencies) == 1

    def test_ab_test(self):
        configuration = FlowConfiguration.from_document(
            {
                "name": "x",
                "abTest": {
                    "testId": "layout",
                    "variants": [{"id": "a"}, {"id": "b", "configuration": {"name": "Variant B"}}],
                    "trafficAllocation": [50, 50],
                    "metrics": ["clicks"],
                },
            }
        )

        experiment = configuration.ab_test
        assert experiment.test_id == "layout"
        assert experiment.enabled is True
        assert experiment.traffic_allocation == (50.0, 50.0)
        assert experiment.variants[1].configuration.name == "Variant B"

    def test_to_document_uses_camel_case(self, editor_document):
        document = FlowConfiguration.from_document(editor_document).to_document()

        export = document["areas"]["editor"]["elements"][2]
        assert export["dependencies"][0]["elementId"] == "open-file"
        assert document["areas"]["editor"]["elements"][0]["helpText"] == "Open a document"
        assert "abTest" not in document
