"""
Rule Engine.

Evaluates the configuration's ordered rules on a fixed interval (default
30 seconds) in a background thread while a configuration is loaded.

Triggers are level-triggered: each tick re-evaluates every trigger from
the current state. Unlock actions are idempotent, but show_tutorial and
send_event fire again on every tick for as long as their trigger holds.

Usage:
    engine = RuleEngine(store, events, unlock_element, unlock_category)
    engine.load(configuration.rules)
    engine.start()
    # ... interactions happen ...
    engine.stop()
"""
from __future__ import annotations

import math
import threading
from typing import Any, Callable, Iterable

from loguru import logger

from uiflow.core.events import EventBus, EventType
from uiflow.core.expressions import (
    CustomEventTrigger,
    ElementInteractionTrigger,
    Rule,
    RuleAction,
    RuleTrigger,
    SendEventAction,
    ShowTutorialAction,
    TimeBasedTrigger,
    UnlockCategoryAction,
    UnlockElementAction,
    UnsupportedAction,
    UnsupportedTrigger,
    UsagePatternTrigger,
)
from uiflow.core.models import Category
from uiflow.engine.dependency_evaluator import parse_time_window
from uiflow.engine.interaction_store import InteractionStore


class RuleEngine:
    """Periodic evaluation of configuration rules."""

    def __init__(
        self,
        store: InteractionStore,
        events: EventBus,
        unlock_element: Callable[[str], bool],
        unlock_category: Callable[[Category, str], int],
        interval_ms: int = 30_000,
        lock: threading.RLock | None = None,
        after_tick: Callable[[], Any] | None = None,
    ):
        """
        Initialize rule engine.

        Args:
            store: Interaction state the triggers read
            events: Bus for rule-triggered / tutorial-requested / custom-event
            unlock_element: Callback that force-unlocks one element
            unlock_category: Callback that force-unlocks a category in an area
            interval_ms: Tick interval in milliseconds
            lock: Lock shared with every other writer of the store
            after_tick: Called (under the lock) after each tick
        """
        self.store = store
        self.events = events
        self.interval_ms = interval_ms
        self._unlock_element = unlock_element
        self._unlock_category = unlock_category
        self._lock = lock or threading.RLock()
        self._after_tick = after_tick
        self.rules: tuple[Rule, ...] = ()

        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self._trigger_handlers: dict[type, Callable[[Any], bool]] = {
            UsagePatternTrigger: self._usage_pattern,
            TimeBasedTrigger: self._time_based,
            ElementInteractionTrigger: self._element_interaction,
            CustomEventTrigger: self._custom_event,
            UnsupportedTrigger: self._unsupported_trigger,
        }
        self._action_handlers: dict[type, Callable[[Any], None]] = {
            UnlockElementAction: self._unlock_element_action,
            UnlockCategoryAction: self._unlock_category_action,
            ShowTutorialAction: self._show_tutorial,
            SendEventAction: self._send_event,
            UnsupportedAction: self._unsupported_action,
        }

    # ========================================
    # Lifecycle
    # ========================================

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def load(self, rules: Iterable[Rule]) -> None:
        """Replace the active rule list."""
        self.rules = tuple(rules)
        logger.info("Rule engine initialized with {} rules", len(self.rules))

    def start(self) -> bool:
        """
        Start the periodic timer.

        Returns:
            True if a timer is running after the call
        """
        if self.is_running:
            logger.warning("Rule engine already running")
            return True
        if not self.rules:
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._tick_loop,
            name="uiflow-rule-engine",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Rule engine started (interval: {}ms)", self.interval_ms)
        return True

    def stop(self) -> None:
        """Stop the periodic timer. Safe to call repeatedly."""
        thread = self._thread
        if thread is None:
            return

        self._stop_event.set()
        if thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=5.0)
        self._thread = None
        logger.debug("Rule engine stopped")

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(self.interval_ms / 1000):
            try:
                self.tick()
            except Exception:
                logger.exception("Rule tick failed")

    # ========================================
    # Evaluation
    # ========================================

    def tick(self) -> list[str]:
        """
        Evaluate every rule once.

        Each rule is isolated: an error in one rule is logged and the
        remaining rules still run.

        Returns:
            Names of the rules whose actions executed
        """
        fired: list[str] = []
        with self._lock:
            for rule in self.rules:
                try:
                    if self.evaluate_trigger(rule.trigger) and self._execute(rule):
                        fired.append(rule.name)
                except Exception:
                    logger.exception("Rule {} failed", rule.name)
            if self._after_tick is not None:
                self._after_tick()
        return fired

    def fire_custom_event(self, name: str, data: Any = None) -> list[str]:
        """
        Inject an external custom event.

        Rules whose trigger is ``custom_event`` with a matching (or no)
        event name execute once.
        """
        fired: list[str] = []
        with self._lock:
            for rule in self.rules:
                trigger = rule.trigger
                if not isinstance(trigger, CustomEventTrigger):
                    continue
                if trigger.event is not None and trigger.event != name:
                    continue
                try:
                    if self._execute(rule, event=name, event_data=data):
                        fired.append(rule.name)
                except Exception:
                    logger.exception("Rule {} failed", rule.name)
            if fired and self._after_tick is not None:
                self._after_tick()
        return fired

    def evaluate_trigger(self, trigger: RuleTrigger) -> bool:
        handler = self._trigger_handlers.get(type(trigger))
        if handler is None:
            logger.warning("Unknown trigger type: {}", getattr(trigger, "type", trigger))
            return False
        return handler(trigger)

    def execute_action(self, action: RuleAction) -> None:
        handler = self._action_handlers.get(type(action))
        if handler is None:
            logger.warning("Unknown action type: {}", getattr(action, "type", action))
            return
        handler(action)

    def _execute(self, rule: Rule, **extra: Any) -> bool:
        if isinstance(rule.action, UnsupportedAction):
            logger.warning("Rule {} skipped: unknown action type {}", rule.name, rule.action.type)
            return False
        self.execute_action(rule.action)
        logger.info("Rule executed: {}", rule.name)
        self.events.emit(
            EventType.RULE_TRIGGERED,
            rule=rule.name,
            trigger=rule.trigger.model_dump(mode="json"),
            action=rule.action.model_dump(mode="json"),
            **extra,
        )
        return True

    # ========================================
    # Triggers
    # ========================================

    def _usage_pattern(self, trigger: UsagePatternTrigger) -> bool:
        duration_ms = parse_time_window(trigger.duration)
        cutoff = self.store.now() - duration_ms
        required = math.ceil(duration_ms / trigger.frequency.period_ms)

        for element_id in trigger.elements:
            record = self.store.get(element_id)
            if record is None:
                return False
            history = self.store.category_history(record.area, record.category)
            if self.store.count_since(history, cutoff) < required:
                return False
        return True

    def _time_based(self, trigger: TimeBasedTrigger) -> bool:
        return self.store.total_interactions() >= trigger.threshold

    def _element_interaction(self, trigger: ElementInteractionTrigger) -> bool:
        for element_id in trigger.elements:
            record = self.store.get(element_id)
            if record is not None and record.interactions > 0:
                return True
        return False

    def _custom_event(self, trigger: CustomEventTrigger) -> bool:
        # Only fire_custom_event() executes these rules
        return False

    def _unsupported_trigger(self, trigger: UnsupportedTrigger) -> bool:
        logger.warning("Unknown trigger type: {}", trigger.type)
        return False

    # ========================================
    # Actions
    # ========================================

    def _unlock_element_action(self, action: UnlockElementAction) -> None:
        self._unlock_element(action.element_id)

    def _unlock_category_action(self, action: UnlockCategoryAction) -> None:
        self._unlock_category(action.category, action.area)

    def _show_tutorial(self, action: ShowTutorialAction) -> None:
        self.events.emit(
            EventType.TUTORIAL_REQUESTED,
            tutorial=action.tutorial,
            auto_start=action.auto_start,
            data=action.data,
        )

    def _send_event(self, action: SendEventAction) -> None:
        self.events.emit(EventType.CUSTOM_EVENT, data=action.data)

    def _unsupported_action(self, action: UnsupportedAction) -> None:
        logger.warning("Unknown action type: {}", action.type)
