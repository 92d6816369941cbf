"""
Core Module - Shared value types, configuration models and notifications.

Components:
- models: Categories, element/area records, statistics
- expressions: Dependency expressions, rules and configuration documents
- events: EventBus and notification types
- clock: Accelerable millisecond clock
- errors: Exception hierarchy

Design Principle:
Engine components (uiflow/engine/) import shared concepts from here
rather than redefining them.
"""

from uiflow.core.clock import Clock
from uiflow.core.errors import ConfigurationError, InvalidCategoryError, UIFlowError
from uiflow.core.events import Event, EventBus, EventRecorder, EventType
from uiflow.core.expressions import (
    DependencyExpression,
    Experiment,
    FlowConfiguration,
    Rule,
    RuleAction,
    RuleTrigger,
    Variant,
    parse_action,
    parse_dependency,
    parse_trigger,
)
from uiflow.core.models import (
    AreaRecord,
    AreaStats,
    Category,
    ElementRecord,
    JourneyBehavior,
)

__all__ = [
    # Clock
    "Clock",
    # Errors
    "UIFlowError",
    "ConfigurationError",
    "InvalidCategoryError",
    # Events
    "Event",
    "EventBus",
    "EventRecorder",
    "EventType",
    # Expressions
    "DependencyExpression",
    "Experiment",
    "FlowConfiguration",
    "Rule",
    "RuleAction",
    "RuleTrigger",
    "Variant",
    "parse_action",
    "parse_dependency",
    "parse_trigger",
    # Models
    "AreaRecord",
    "AreaStats",
    "Category",
    "ElementRecord",
    "JourneyBehavior",
]
