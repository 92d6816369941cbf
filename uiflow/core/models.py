"""
Core Models.

Mutable records held by the InteractionStore and the small value types
shared by the engine components.

Design:
- Category: Tier label on an element (basic / advanced / expert)
- JourneyBehavior: Inferred skill label for an area
- ElementRecord: Per-element interaction and visibility state
- AreaRecord: Per-area activity counters
- AreaStats: Read-only statistics snapshot for an area
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from uiflow.core.errors import InvalidCategoryError

if TYPE_CHECKING:
    from uiflow.core.expressions import DependencyExpression

MS_PER_MINUTE = 60 * 1000
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE


class Category(str, Enum):
    """Element tier. Only basic elements are visible without unlocking."""

    BASIC = "basic"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @classmethod
    def parse(cls, value: Category | str) -> Category:
        """
        Coerce a string to a Category.

        Raises:
            InvalidCategoryError: If the value is not a known category
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidCategoryError(value) from None

    @property
    def rank(self) -> int:
        """Sort order (basic first)."""
        return {
            Category.BASIC: 0,
            Category.ADVANCED: 1,
            Category.EXPERT: 2,
        }[self]


class JourneyBehavior(str, Enum):
    """Behaviour inferred from interaction cadence."""

    EXPLORING = "exploring"  # Default, low cadence
    FOCUSED = "focused"  # More than 2 interactions per minute
    EXPERT = "expert"  # Majority of area elements are advanced/expert and used


@dataclass
class ElementRecord:
    """
    Interaction and visibility state for one registered element.

    Created on registration, mutated on interaction/reset, only removed
    on full teardown.
    """

    element_id: str
    category: Category
    area: str
    dependencies: list[DependencyExpression] = field(default_factory=list)
    interactions: int = 0
    last_used: int | None = None
    visible: bool = False
    is_new: bool = False
    help_text: str | None = None
    force_unlocked: bool = False  # Set by rule/journey unlocks, cleared by reset

    @property
    def has_dependencies(self) -> bool:
        return bool(self.dependencies)

    @property
    def default_visibility(self) -> bool:
        """Visibility of this element before any dependency is satisfied."""
        return not self.has_dependencies and self.category == Category.BASIC


@dataclass
class AreaRecord:
    """Activity counters for an area."""

    area_id: str
    last_activity: int
    total_interactions: int = 0


@dataclass
class AreaStats:
    """Statistics snapshot for an area."""

    visible_elements: int = 0
    total_elements: int = 0
    recent_usage: dict[Category, int] = field(
        default_factory=lambda: {category: 0 for category in Category}
    )
    adaptation_events: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "visible_elements": self.visible_elements,
            "total_elements": self.total_elements,
            "recent_usage": {c.value: n for c, n in self.recent_usage.items()},
            "adaptation_events": self.adaptation_events,
        }
