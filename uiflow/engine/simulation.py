"""
Usage simulation for demos and tests.

Generates synthetic interactions for an area and replays them through
the normal recording path, spread evenly over the last N days. The
engine clock is overridden while the replay runs (so time windows see
the simulated "now" of each step) and restored afterwards.

Predefined user types:
- beginner: 85% basic / 13% advanced / 2% expert
- intermediate: 60% / 35% / 5%
- power-user: 30% / 50% / 20%
- expert: 15% / 40% / 45%
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from loguru import logger

from uiflow.core.models import MS_PER_DAY, Category
from uiflow.engine.interaction_store import InteractionStore


@dataclass(frozen=True)
class UserPattern:
    """Share of interactions per category (should sum to 1)."""

    basic: float
    advanced: float
    expert: float

    def interactions(self, total: int) -> list[Category]:
        """Category list with the pattern's proportions (expert takes the remainder)."""
        # Half-up rounding: 42.5 -> 43
        basic_count = math.floor(total * self.basic + 0.5)
        advanced_count = math.floor(total * self.advanced + 0.5)
        expert_count = max(0, total - basic_count - advanced_count)
        return (
            [Category.BASIC] * basic_count
            + [Category.ADVANCED] * advanced_count
            + [Category.EXPERT] * expert_count
        )


USER_PATTERNS: dict[str, UserPattern] = {
    "beginner": UserPattern(basic=0.85, advanced=0.13, expert=0.02),
    "intermediate": UserPattern(basic=0.60, advanced=0.35, expert=0.05),
    "power-user": UserPattern(basic=0.30, advanced=0.50, expert=0.20),
    "expert": UserPattern(basic=0.15, advanced=0.40, expert=0.45),
}


def resolve_pattern(user_type: str | UserPattern) -> UserPattern:
    """
    Look up a predefined pattern or pass a custom one through.

    Raises:
        ValueError: If the user type name is unknown
    """
    if isinstance(user_type, UserPattern):
        return user_type
    try:
        return USER_PATTERNS[user_type]
    except KeyError:
        raise ValueError(
            f"Unknown user type: {user_type} (expected one of {', '.join(USER_PATTERNS)})"
        ) from None


class UsageSimulator:
    """Replays synthetic interactions into an InteractionStore."""

    def __init__(
        self,
        store: InteractionStore,
        record: Callable[[str, int], object],
        seed: int | None = None,
    ):
        """
        Initialize simulator.

        Args:
            store: Store whose clock is overridden during replay
            record: Callable recording one element interaction at a timestamp
            seed: Seed for shuffling (None = nondeterministic)
        """
        self.store = store
        self._record = record
        self._random = random.Random(seed)

    def simulate_usage(
        self,
        area: str,
        categories: Sequence[Category | str],
        days: int = 7,
    ) -> int:
        """
        Replay one interaction per entry in ``categories``.

        Each category is attributed to the area's elements of that category
        in round-robin order; if the area has none, only the (area, category)
        history is updated.

        Returns:
            Number of interactions replayed
        """
        if not categories:
            return 0

        categories = [Category.parse(category) for category in categories]
        by_category: dict[Category, list[str]] = {category: [] for category in Category}
        for record in sorted(self.store.elements_in_area(area), key=lambda r: r.element_id):
            by_category[record.category].append(record.element_id)
        cursor = {category: 0 for category in Category}

        end = self.store.now()
        span = days * MS_PER_DAY
        step = span / len(categories)
        timestamps = [int(end - span + (index + 1) * step) for index in range(len(categories))]
        current = {"ms": timestamps[0]}

        with self.store.clock.override(time_source=lambda: current["ms"], acceleration=1.0):
            for category, timestamp in zip(categories, timestamps):
                current["ms"] = timestamp
                candidates = by_category[category]
                if candidates:
                    element_id = candidates[cursor[category] % len(candidates)]
                    cursor[category] += 1
                    self._record(element_id, timestamp)
                else:
                    self.store.record_category_usage(area, category, timestamp)

        logger.debug("Simulated {} interactions in {} over {} days", len(categories), area, days)
        return len(categories)

    def simulate_user_type(
        self,
        user_type: str | UserPattern,
        areas: Iterable[str],
        total: int = 50,
        days: int = 7,
    ) -> list[str]:
        """
        Simulate a user type across areas.

        Returns:
            The areas that were simulated
        """
        pattern = resolve_pattern(user_type)
        interactions = pattern.interactions(total)
        self._random.shuffle(interactions)

        simulated = []
        for area in areas:
            self.simulate_usage(area, interactions, days)
            simulated.append(area)

        label = user_type if isinstance(user_type, str) else "custom"
        logger.info("Simulated {} user for areas: {}", label, ", ".join(simulated))
        return simulated
