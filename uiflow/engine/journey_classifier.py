"""
Journey Classifier.

Infers how a user is working in an area from the cadence of their last
interactions:

1. Start at EXPLORING
2. More than 2 interactions per minute over the last 10 -> FOCUSED
3. More than half of the area's elements are advanced/expert AND used -> EXPERT

Later checks override earlier ones. At least 5 sequence entries are
needed before an area is classified.
"""
from __future__ import annotations

from dataclasses import dataclass

from uiflow.core.models import MS_PER_DAY, MS_PER_MINUTE, Category, JourneyBehavior
from uiflow.engine.interaction_store import InteractionStore

ADVANCED_CATEGORIES = frozenset({Category.ADVANCED, Category.EXPERT})


@dataclass
class JourneyInsight:
    """Result of classifying an area."""

    area: str
    behavior: JourneyBehavior
    interaction_rate: float  # per minute; inf when all recent interactions share a timestamp
    advanced_feature_usage: int
    total_sequence_length: int
    recent_activity: int

    def to_payload(self) -> dict:
        return {
            "area": self.area,
            "behavior": self.behavior.value,
            "interaction_rate": self.interaction_rate,
            "advanced_feature_usage": self.advanced_feature_usage,
            "total_sequence_length": self.total_sequence_length,
            "recent_activity": self.recent_activity,
        }


@dataclass
class JourneyStats:
    """Journey statistics for an area."""

    total_interactions: int
    recent_activity: int
    sequence_length: int
    usage_pattern: dict[Category, int]


class JourneyClassifier:
    """Classify per-area behaviour from the InteractionStore sequence buffers."""

    MIN_SEQUENCE = 5
    RECENT_WINDOW = 10
    FOCUSED_RATE = 2.0  # interactions per minute
    EXPERT_SHARE = 0.5

    def __init__(self, store: InteractionStore):
        self.store = store

    def classify(self, area: str) -> JourneyInsight | None:
        """
        Classify an area.

        Returns:
            JourneyInsight, or None if the area has fewer than 5 sequence entries
        """
        sequence = self.store.sequence(area)
        if len(sequence) < self.MIN_SEQUENCE:
            return None

        recent = sequence[-self.RECENT_WINDOW:]
        rate = self.interaction_rate(recent)

        behavior = JourneyBehavior.EXPLORING
        if rate > self.FOCUSED_RATE:
            behavior = JourneyBehavior.FOCUSED

        area_elements = self.store.elements_in_area(area)
        advanced_usage = sum(
            1
            for record in area_elements
            if record.category in ADVANCED_CATEGORIES and record.interactions > 0
        )
        if advanced_usage > len(area_elements) * self.EXPERT_SHARE:
            behavior = JourneyBehavior.EXPERT

        return JourneyInsight(
            area=area,
            behavior=behavior,
            interaction_rate=rate,
            advanced_feature_usage=advanced_usage,
            total_sequence_length=len(sequence),
            recent_activity=len(recent),
        )

    @staticmethod
    def interaction_rate(timestamps: list[int]) -> float:
        """Interactions per minute between the first and last timestamp."""
        if not timestamps:
            return 0.0
        span_minutes = (timestamps[-1] - timestamps[0]) / MS_PER_MINUTE
        if span_minutes <= 0:
            return float("inf")
        return len(timestamps) / span_minutes

    def stats(self, area: str, window_ms: int = 7 * MS_PER_DAY) -> JourneyStats:
        sequence = self.store.sequence(area)
        usage = self.store.recent_usage(area, window_ms)
        return JourneyStats(
            total_interactions=sum(usage.values()),
            recent_activity=len(sequence[-self.RECENT_WINDOW:]),
            sequence_length=len(sequence),
            usage_pattern=usage,
        )
