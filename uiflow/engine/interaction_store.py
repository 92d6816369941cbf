"""
Interaction Store.

The only mutable state in the engine:
- Element records (counts, last use, visibility)
- Area records (activity counters)
- Bounded usage histories (ring buffers of timestamps)

History buffers:
- (area, category): last 30 timestamps, used by recent usage and usage-pattern rules
- per element: last 100 timestamps, used by time-based dependencies
- per area and global "sequence": last 20 timestamps, used by journey classification
"""
from __future__ import annotations

from collections import deque
from typing import Iterable

from loguru import logger

from uiflow.core.clock import Clock
from uiflow.core.models import AreaRecord, Category, ElementRecord


class InteractionStore:
    """Per-element interaction counts and bounded usage histories."""

    ELEMENT_HISTORY_CAP = 100
    CATEGORY_HISTORY_CAP = 30
    SEQUENCE_CAP = 20

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or Clock()
        self.elements: dict[str, ElementRecord] = {}
        self.areas: dict[str, AreaRecord] = {}
        self._element_history: dict[str, deque[int]] = {}
        self._category_history: dict[tuple[str, Category], deque[int]] = {}
        self._sequences: dict[str, deque[int]] = {}
        self._global_sequence: deque[int] = deque(maxlen=self.SEQUENCE_CAP)
        # Bumped whenever the set of registered elements changes
        self.revision = 0

    def now(self) -> int:
        """Accelerated time in milliseconds."""
        return self.clock.now()

    # ========================================
    # Registration
    # ========================================

    def register(
        self,
        element_id: str,
        category: Category | str,
        area: str = "default",
        dependencies: Iterable | None = None,
        help_text: str | None = None,
        is_new: bool = False,
    ) -> ElementRecord:
        """
        Create or overwrite an element record.

        Elements with dependencies start hidden; otherwise only basic
        elements start visible.

        Raises:
            InvalidCategoryError: If category is unknown
        """
        category = Category.parse(category)
        record = ElementRecord(
            element_id=element_id,
            category=category,
            area=area,
            dependencies=list(dependencies or []),
            help_text=help_text,
            is_new=is_new,
        )
        record.visible = record.default_visibility
        self.elements[element_id] = record
        self.revision += 1

        if area not in self.areas:
            self.areas[area] = AreaRecord(area_id=area, last_activity=self.now())

        logger.debug(
            "Element {} registered ({}/{}, {} dependencies)",
            element_id,
            area,
            category.value,
            len(record.dependencies),
        )
        return record

    def get(self, element_id: str) -> ElementRecord | None:
        return self.elements.get(element_id)

    def elements_in_area(self, area: str) -> list[ElementRecord]:
        return [record for record in self.elements.values() if record.area == area]

    # ========================================
    # Recording
    # ========================================

    def record_interaction(self, element_id: str, timestamp: int | None = None) -> ElementRecord | None:
        """
        Record one interaction with a registered element.

        Args:
            element_id: Element that was used
            timestamp: Engine time in ms (defaults to now())

        Returns:
            The updated record, or None if the element is unknown
        """
        record = self.elements.get(element_id)
        if record is None:
            logger.warning("Interaction with unknown element {} ignored", element_id)
            return None

        now = self.now() if timestamp is None else int(timestamp)
        record.interactions += 1
        record.last_used = now

        self._push(self._element_history, element_id, now, self.ELEMENT_HISTORY_CAP)
        self._push(self._category_history, (record.area, record.category), now, self.CATEGORY_HISTORY_CAP)
        self._push(self._sequences, record.area, now, self.SEQUENCE_CAP)
        self._global_sequence.append(now)

        area = self.areas.get(record.area)
        if area is not None:
            area.last_activity = now
            area.total_interactions += 1

        logger.debug("Interaction recorded: {} (total: {})", element_id, record.interactions)
        return record

    def record_category_usage(self, area: str, category: Category | str, timestamp: int) -> None:
        """Add a (area, category) history entry without touching any element."""
        category = Category.parse(category)
        self._push(self._category_history, (area, category), int(timestamp), self.CATEGORY_HISTORY_CAP)

    @staticmethod
    def _push(buffers: dict, key, timestamp: int, cap: int) -> None:
        buffer = buffers.get(key)
        if buffer is None:
            buffer = buffers[key] = deque(maxlen=cap)
        buffer.append(timestamp)

    # ========================================
    # Queries
    # ========================================

    def element_history(self, element_id: str) -> list[int]:
        return list(self._element_history.get(element_id, ()))

    def category_history(self, area: str, category: Category) -> list[int]:
        return list(self._category_history.get((area, category), ()))

    def sequence(self, area: str | None = None) -> list[int]:
        """Sequence buffer for an area, or the global one when area is None."""
        if area is None:
            return list(self._global_sequence)
        return list(self._sequences.get(area, ()))

    @staticmethod
    def count_since(history: Iterable[int], cutoff: int) -> int:
        """Entries strictly newer than cutoff."""
        return sum(1 for timestamp in history if timestamp > cutoff)

    def recent_usage(self, area: str, window_ms: int) -> dict[Category, int]:
        """
        Count (area, category) history entries newer than ``now - window_ms``.

        The lower bound is exclusive: an entry exactly at the cutoff does not count.
        """
        cutoff = self.now() - window_ms
        return {
            category: self.count_since(self._category_history.get((area, category), ()), cutoff)
            for category in Category
        }

    def total_interactions(self) -> int:
        return sum(record.interactions for record in self.elements.values())

    # ========================================
    # Reset
    # ========================================

    def reset(self, area: str) -> list[ElementRecord]:
        """
        Reset an area to its initial state.

        Zeroes counts, last use and force-unlocks of the area's elements and
        drops every history buffer belonging to the area, including its
        sequence buffer.

        Returns:
            The element records in the area
        """
        records = self.elements_in_area(area)
        for record in records:
            record.interactions = 0
            record.last_used = None
            record.force_unlocked = False
            self._element_history.pop(record.element_id, None)

        for category in Category:
            self._category_history.pop((area, category), None)
        self._sequences.pop(area, None)

        area_record = self.areas.get(area)
        if area_record is not None:
            area_record.total_interactions = 0
            area_record.last_activity = 0

        logger.debug("Reset interaction data for {} ({} elements)", area, len(records))
        return records

    def clear(self) -> None:
        """Drop all state (full teardown)."""
        self.elements.clear()
        self.areas.clear()
        self._element_history.clear()
        self._category_history.clear()
        self._sequences.clear()
        self._global_sequence.clear()
        self.revision += 1
