"""
Dependency Evaluator.

Decides whether an element's dependency expressions are satisfied by the
current InteractionStore state. Evaluation is a pure read.

Expression semantics:
- usage_count: target used at least ``threshold`` times
- time_based: target used ``min_usage`` times in total, or within the window
- sequence: every listed element used at least once (order is not checked)
- logical_and / logical_or: listed elements are themselves unlocked

Logical nodes recurse through other elements' dependencies, so the graph
may contain cycles. A path-scoped visited set makes any revisit evaluate
false instead of recursing forever.
"""
from __future__ import annotations

import re
from collections import defaultdict
from typing import Callable

from loguru import logger

from uiflow.core.expressions import (
    DependencyExpression,
    LogicalAndDependency,
    LogicalOrDependency,
    SequenceDependency,
    TimeBasedDependency,
    UnsupportedDependency,
    UsageCountDependency,
)
from uiflow.core.models import MS_PER_DAY
from uiflow.engine.interaction_store import InteractionStore

DEFAULT_TIME_WINDOW_MS = 7 * MS_PER_DAY

_TIME_WINDOW = re.compile(r"^(\d+)([dwmy])$")
_UNIT_DAYS = {"d": 1, "w": 7, "m": 30, "y": 365}


def parse_time_window(window: str | None) -> int:
    """
    Convert a window such as '7d', '2w', '1m' or '1y' to milliseconds.

    Malformed windows fall back to 7 days.
    """
    match = _TIME_WINDOW.match(window.strip()) if isinstance(window, str) else None
    if not match:
        logger.debug("Malformed time window {!r}, defaulting to 7 days", window)
        return DEFAULT_TIME_WINDOW_MS
    amount, unit = match.groups()
    return int(amount) * _UNIT_DAYS[unit] * MS_PER_DAY


class DependencyEvaluator:
    """Evaluate element dependency expressions against an InteractionStore."""

    def __init__(self, store: InteractionStore):
        self.store = store
        self._handlers: dict[type, Callable[[DependencyExpression, frozenset[str]], bool]] = {
            UsageCountDependency: self._usage_count,
            TimeBasedDependency: self._time_based,
            SequenceDependency: self._sequence,
            LogicalAndDependency: self._logical_and,
            LogicalOrDependency: self._logical_or,
            UnsupportedDependency: self._unsupported,
        }
        self._index: dict[str, set[str]] = {}
        self._index_revision = -1

    def is_satisfied(self, element_id: str, visited: frozenset[str] = frozenset()) -> bool:
        """
        Check whether every dependency of an element holds.

        Args:
            element_id: Element to check
            visited: Elements already on the current evaluation path

        Returns:
            True if the element has no dependencies or all of them hold.
            False for unknown elements and for cyclic references.
        """
        if element_id in visited:
            logger.debug("Dependency cycle through {} evaluates false", element_id)
            return False

        record = self.store.get(element_id)
        if record is None:
            return False
        if not record.dependencies:
            return True

        path = visited | {element_id}
        return all(self.evaluate(expression, path) for expression in record.dependencies)

    def evaluate(self, expression: DependencyExpression, visited: frozenset[str] = frozenset()) -> bool:
        """Evaluate a single expression. Never raises."""
        handler = self._handlers.get(type(expression))
        if handler is None:
            logger.warning("Unknown dependency type: {}", getattr(expression, "type", expression))
            return False
        return handler(expression, visited)

    # ========================================
    # Expression Handlers
    # ========================================

    def _usage_count(self, expression: UsageCountDependency, visited: frozenset[str]) -> bool:
        target = self.store.get(expression.element_id)
        return target is not None and target.interactions >= expression.threshold

    def _time_based(self, expression: TimeBasedDependency, visited: frozenset[str]) -> bool:
        target = self.store.get(expression.element_id)
        if target is None:
            return False
        if target.interactions >= expression.min_usage:
            return True

        cutoff = self.store.now() - parse_time_window(expression.time_window)
        history = self.store.element_history(expression.element_id)
        return self.store.count_since(history, cutoff) >= expression.min_usage

    def _sequence(self, expression: SequenceDependency, visited: frozenset[str]) -> bool:
        # Every element used at least once; chronological order is not verified
        for element_id in expression.elements:
            target = self.store.get(element_id)
            if target is None or target.interactions <= 0:
                return False
        return True

    def _logical_and(self, expression: LogicalAndDependency, visited: frozenset[str]) -> bool:
        if not expression.elements:
            return False
        return all(self.is_satisfied(element_id, visited) for element_id in expression.elements)

    def _logical_or(self, expression: LogicalOrDependency, visited: frozenset[str]) -> bool:
        return any(self.is_satisfied(element_id, visited) for element_id in expression.elements)

    def _unsupported(self, expression: UnsupportedDependency, visited: frozenset[str]) -> bool:
        logger.warning("Unknown dependency type: {}", expression.type)
        return False

    # ========================================
    # Reverse Index
    # ========================================

    def dependents(self) -> dict[str, set[str]]:
        """
        Map each referenced element to the elements whose expressions mention it.

        Rebuilt only when the store's registrations change.
        """
        if self._index_revision != self.store.revision:
            index: dict[str, set[str]] = defaultdict(set)
            for record in self.store.elements.values():
                for expression in record.dependencies:
                    for referenced in expression.references():
                        index[referenced].add(record.element_id)
            self._index = dict(index)
            self._index_revision = self.store.revision
        return self._index

    def affected_by(self, element_id: str) -> set[str]:
        """
        Elements whose satisfaction can change when ``element_id`` is used.

        Transitive over logical references; cycles terminate.
        """
        index = self.dependents()
        affected: set[str] = set()
        pending = [element_id]
        while pending:
            current = pending.pop()
            for dependent in index.get(current, ()):
                if dependent not in affected:
                    affected.add(dependent)
                    pending.append(dependent)
        return affected
