"""
Flow configuration models and closed tagged unions.

Dependency expressions, rule triggers and rule actions are pydantic
discriminated unions keyed on ``type``. Unknown tags and malformed nodes
are rejected at the boundary: the parser logs a warning and substitutes
an explicit ``Unsupported*`` node, which evaluates false / is skipped.
Structural problems in the document itself (missing name, bad category)
raise ConfigurationError.

Document shape (camelCase or snake_case keys):

    {
      "name": "...", "version": "...",
      "areas": {"editor": {"elements": [{"id", "category", "helpText", "dependencies"}]}},
      "rules": [{"name", "trigger": {...}, "action": {...}}],
      "templates": [...],
      "abTest": {"testId", "variants": [{"id", "configuration"}], "trafficAllocation", "metrics"}
    }
"""
from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from uiflow.core.errors import ConfigurationError
from uiflow.core.models import MS_PER_DAY, Category


class _Node(BaseModel):
    """Immutable configuration node accepting camelCase or snake_case keys."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    location = ".".join(str(part) for part in errors[0].get("loc", ()))
    message = errors[0].get("msg", "invalid")
    return f"{location}: {message}" if location else message


def _node_type(raw: Any) -> str:
    if isinstance(raw, Mapping):
        return str(raw.get("type", "<missing>"))
    return type(raw).__name__


# ========================================
# Dependency Expressions
# ========================================


class UsageCountDependency(_Node):
    """Target element used at least ``threshold`` times."""

    type: Literal["usage_count"] = "usage_count"
    element_id: str = Field(alias="elementId")
    threshold: int = Field(ge=1)
    description: str | None = None

    def references(self) -> tuple[str, ...]:
        return (self.element_id,)

    def describe(self) -> str:
        return f"usage_count({self.element_id} >= {self.threshold})"


class TimeBasedDependency(_Node):
    """Target element used at least ``min_usage`` times within ``time_window``."""

    type: Literal["time_based"] = "time_based"
    element_id: str = Field(alias="elementId")
    time_window: str = Field(alias="timeWindow")
    min_usage: int = Field(alias="minUsage", ge=1)
    description: str | None = None

    def references(self) -> tuple[str, ...]:
        return (self.element_id,)

    def describe(self) -> str:
        return f"time_based({self.element_id} >= {self.min_usage} in {self.time_window})"


class SequenceDependency(_Node):
    """
    Every listed element has been used.

    Ordering between the elements is not checked.
    """

    type: Literal["sequence"] = "sequence"
    elements: tuple[str, ...] = Field(min_length=1)
    description: str | None = None

    def references(self) -> tuple[str, ...]:
        return self.elements

    def describe(self) -> str:
        return f"sequence({' -> '.join(self.elements)})"


class LogicalAndDependency(_Node):
    """Every listed element is itself unlocked."""

    type: Literal["logical_and"] = "logical_and"
    elements: tuple[str, ...] = ()
    description: str | None = None

    def references(self) -> tuple[str, ...]:
        return self.elements

    def describe(self) -> str:
        return f"and({', '.join(self.elements)})"


class LogicalOrDependency(_Node):
    """At least one listed element is itself unlocked."""

    type: Literal["logical_or"] = "logical_or"
    elements: tuple[str, ...] = ()
    description: str | None = None

    def references(self) -> tuple[str, ...]:
        return self.elements

    def describe(self) -> str:
        return f"or({', '.join(self.elements)})"


class UnsupportedDependency(_Node):
    """Placeholder for an unknown or malformed dependency node. Never satisfied."""

    type: str
    reason: str = ""

    def references(self) -> tuple[str, ...]:
        return ()

    def describe(self) -> str:
        return f"unsupported({self.type})"


KnownDependency = Annotated[
    Union[
        UsageCountDependency,
        TimeBasedDependency,
        SequenceDependency,
        LogicalAndDependency,
        LogicalOrDependency,
    ],
    Field(discriminator="type"),
]

DependencyExpression = Union[
    UsageCountDependency,
    TimeBasedDependency,
    SequenceDependency,
    LogicalAndDependency,
    LogicalOrDependency,
    UnsupportedDependency,
]

_DEPENDENCY_ADAPTER: TypeAdapter = TypeAdapter(KnownDependency)


def parse_dependency(raw: Any) -> DependencyExpression:
    """
    Parse one dependency node.

    Args:
        raw: Mapping from a configuration document, or an already-built node

    Returns:
        A typed dependency, or UnsupportedDependency if the node is unknown/malformed
    """
    if isinstance(raw, _Node):
        return raw
    try:
        return _DEPENDENCY_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        node_type = _node_type(raw)
        reason = _first_error(exc)
        logger.warning("Unsupported dependency '{}' will never be satisfied: {}", node_type, reason)
        return UnsupportedDependency(type=node_type, reason=reason)


# ========================================
# Rule Triggers
# ========================================


class Frequency(str, Enum):
    """Usage pattern frequency."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def period_ms(self) -> int:
        return {
            Frequency.DAILY: MS_PER_DAY,
            Frequency.WEEKLY: 7 * MS_PER_DAY,
            Frequency.MONTHLY: 30 * MS_PER_DAY,
        }[self]


class UsagePatternTrigger(_Node):
    """Each element used at least once per ``frequency`` period over ``duration``."""

    type: Literal["usage_pattern"] = "usage_pattern"
    elements: tuple[str, ...] = Field(min_length=1)
    frequency: Frequency
    duration: str


class TimeBasedTrigger(_Node):
    """Total interactions across all elements reached ``threshold``."""

    type: Literal["time_based"] = "time_based"
    threshold: int = Field(ge=1)


class ElementInteractionTrigger(_Node):
    """Any listed element has been used."""

    type: Literal["element_interaction"] = "element_interaction"
    elements: tuple[str, ...] = Field(min_length=1)


class CustomEventTrigger(_Node):
    """Fired only by an external collaborator via ``fire_custom_event``."""

    type: Literal["custom_event"] = "custom_event"
    event: str | None = None


class UnsupportedTrigger(_Node):
    """Placeholder for an unknown or malformed trigger. Never fires."""

    type: str
    reason: str = ""


KnownTrigger = Annotated[
    Union[UsagePatternTrigger, TimeBasedTrigger, ElementInteractionTrigger, CustomEventTrigger],
    Field(discriminator="type"),
]

RuleTrigger = Union[
    UsagePatternTrigger,
    TimeBasedTrigger,
    ElementInteractionTrigger,
    CustomEventTrigger,
    UnsupportedTrigger,
]

_TRIGGER_ADAPTER: TypeAdapter = TypeAdapter(KnownTrigger)


def parse_trigger(raw: Any) -> RuleTrigger:
    """Parse a rule trigger, degrading to UnsupportedTrigger."""
    if isinstance(raw, _Node):
        return raw
    try:
        return _TRIGGER_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        node_type = _node_type(raw)
        reason = _first_error(exc)
        logger.warning("Unsupported trigger '{}' will never fire: {}", node_type, reason)
        return UnsupportedTrigger(type=node_type, reason=reason)


# ========================================
# Rule Actions
# ========================================


class UnlockElementAction(_Node):
    type: Literal["unlock_element"] = "unlock_element"
    element_id: str = Field(alias="elementId")


class UnlockCategoryAction(_Node):
    type: Literal["unlock_category"] = "unlock_category"
    category: Category
    area: str


class ShowTutorialAction(_Node):
    type: Literal["show_tutorial"] = "show_tutorial"
    data: Any = None

    @property
    def options(self) -> Mapping[str, Any]:
        return self.data if isinstance(self.data, Mapping) else {}

    @property
    def tutorial(self) -> str:
        return self.options.get("tutorial") or "default"

    @property
    def auto_start(self) -> bool:
        return bool(self.options.get("autoStart", False))


class SendEventAction(_Node):
    type: Literal["send_event"] = "send_event"
    data: Any = None


class UnsupportedAction(_Node):
    """Placeholder for an unknown or malformed action. Skipped."""

    type: str
    reason: str = ""


KnownAction = Annotated[
    Union[UnlockElementAction, UnlockCategoryAction, ShowTutorialAction, SendEventAction],
    Field(discriminator="type"),
]

RuleAction = Union[
    UnlockElementAction,
    UnlockCategoryAction,
    ShowTutorialAction,
    SendEventAction,
    UnsupportedAction,
]

_ACTION_ADAPTER: TypeAdapter = TypeAdapter(KnownAction)


def parse_action(raw: Any) -> RuleAction:
    """Parse a rule action, degrading to UnsupportedAction."""
    if isinstance(raw, _Node):
        return raw
    try:
        return _ACTION_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        node_type = _node_type(raw)
        reason = _first_error(exc)
        logger.warning("Unsupported action '{}' will be skipped: {}", node_type, reason)
        return UnsupportedAction(type=node_type, reason=reason)


class Rule(_Node):
    """A named trigger/action pair evaluated on every rule tick."""

    name: str
    trigger: RuleTrigger
    action: RuleAction

    @field_validator("trigger", mode="before")
    @classmethod
    def _parse_trigger(cls, value: Any) -> RuleTrigger:
        return parse_trigger(value)

    @field_validator("action", mode="before")
    @classmethod
    def _parse_action(cls, value: Any) -> RuleAction:
        return parse_action(value)


class RuleTemplate(_Node):
    """Reusable partial rule, carried through configuration untouched."""

    id: str
    name: str = ""
    description: str = ""
    category: str = "custom"
    template: dict[str, Any] = Field(default_factory=dict)


# ========================================
# Configuration Document
# ========================================


class ElementConfiguration(_Node):
    id: str
    category: Category
    help_text: str | None = Field(default=None, alias="helpText")
    selector: str | None = None
    dependencies: tuple[DependencyExpression, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _parse_dependencies(cls, value: Any) -> tuple[DependencyExpression, ...]:
        if value is None:
            return ()
        if isinstance(value, Mapping):
            value = [value]
        return tuple(parse_dependency(item) for item in value)


class AreaConfiguration(_Node):
    elements: tuple[ElementConfiguration, ...] = ()


class PartialFlowConfiguration(_Node):
    """Variant override. Only the fields present replace/merge into the base."""

    name: str | None = None
    version: str | None = None
    areas: dict[str, AreaConfiguration] | None = None
    rules: tuple[Rule, ...] | None = None
    templates: tuple[RuleTemplate, ...] | None = None


class Variant(_Node):
    id: str
    name: str = ""
    description: str = ""
    configuration: PartialFlowConfiguration = Field(default_factory=PartialFlowConfiguration)

    @property
    def display_name(self) -> str:
        return self.name or self.id


class Experiment(_Node):
    """A/B test definition. Allocation percentages are parallel to ``variants``."""

    test_id: str = Field(alias="testId")
    enabled: bool = True
    variants: tuple[Variant, ...] = ()
    traffic_allocation: tuple[float, ...] = Field(default=(), alias="trafficAllocation")
    metrics: tuple[str, ...] = ()

    @field_validator("traffic_allocation", mode="before")
    @classmethod
    def _lenient_allocation(cls, value: Any) -> tuple[float, ...]:
        # Malformed allocation means "no assignment", never a load failure
        if value is None:
            return ()
        try:
            return tuple(float(item) for item in value)
        except (TypeError, ValueError):
            logger.warning("Malformed traffic allocation {!r}; experiment will not assign", value)
            return ()


class FlowConfiguration(_Node):
    name: str
    version: str = "1.0.0"
    areas: dict[str, AreaConfiguration] = Field(default_factory=dict)
    rules: tuple[Rule, ...] = ()
    templates: tuple[RuleTemplate, ...] = ()
    ab_test: Experiment | None = Field(default=None, alias="abTest")

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | FlowConfiguration) -> FlowConfiguration:
        """
        Validate a configuration document.

        Raises:
            ConfigurationError: If the document is structurally invalid
        """
        if isinstance(document, FlowConfiguration):
            return document
        try:
            return cls.model_validate(document)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid flow configuration: {_first_error(exc)}") from exc

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the camelCase document shape."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @property
    def element_count(self) -> int:
        return sum(len(area.elements) for area in self.areas.values())
