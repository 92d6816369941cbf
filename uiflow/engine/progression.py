"""
Progression Controller.

Orchestrates the engine components and exposes the public API:

    interaction -> InteractionStore records it
                -> DependencyEvaluator re-checks the affected elements
                -> visibility-changed notifications
                -> JourneyClassifier classifies the area and adapts it

Every mutating entry point (interactions, rule ticks, configuration loads,
resets, simulations) serializes on one re-entrant lock, so a rule tick
never observes a half-applied interaction.

Visibility of an element:
    force_unlocked or (dependencies satisfied if it has any else category == basic)
"""
from __future__ import annotations

import threading
from typing import Any, Iterable, Mapping

from loguru import logger

from config import Settings, get_settings
from uiflow.core.clock import Clock
from uiflow.core.events import EventBus, EventType, Listener
from uiflow.core.expressions import (
    AreaConfiguration,
    ElementConfiguration,
    FlowConfiguration,
    parse_dependency,
)
from uiflow.core.models import AreaStats, Category, ElementRecord, JourneyBehavior
from uiflow.engine.dependency_evaluator import DependencyEvaluator
from uiflow.engine.interaction_store import InteractionStore
from uiflow.engine.journey_classifier import JourneyClassifier, JourneyInsight, JourneyStats
from uiflow.engine.rule_engine import RuleEngine
from uiflow.engine.simulation import UsageSimulator, UserPattern
from uiflow.engine.variant_selector import ExperimentResults, VariantSelector, merge_configuration

DEFAULT_HELP_TEXT = "Try this feature!"
GENERATED_CONFIGURATION_NAME = "Generated UIFlow Configuration"


class ProgressionController:
    """
    Progressive disclosure engine.

    Usage:
        controller = ProgressionController()
        controller.subscribe(EventType.VISIBILITY_CHANGED, on_visibility)
        controller.load_configuration(document)
        controller.on_interaction("open-file")
        ...
        controller.destroy()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        events: EventBus | None = None,
        clock: Clock | None = None,
        subject_key: str | None = None,
    ):
        """
        Initialize controller.

        Args:
            settings: Engine settings (defaults to get_settings())
            events: Bus notifications are pushed through
            clock: Engine clock (defaults to one using settings.time_acceleration)
            subject_key: Identity used for A/B assignment (defaults to settings.subject_key)
        """
        self.settings = settings or get_settings()
        self.events = events or EventBus()
        self.clock = clock or Clock(acceleration=self.settings.time_acceleration)
        self._lock = threading.RLock()

        self.store = InteractionStore(self.clock)
        self.evaluator = DependencyEvaluator(self.store)
        self.variants = VariantSelector(subject_key or self.settings.subject_key, self.events)
        self.journey = JourneyClassifier(self.store)
        self.rules = RuleEngine(
            self.store,
            self.events,
            unlock_element=self.unlock_element,
            unlock_category=self.unlock_category,
            interval_ms=self.settings.rule_interval_ms,
            lock=self._lock,
            after_tick=self.refresh,
        )
        self.simulator = UsageSimulator(
            self.store,
            self._record_simulated,
            seed=self.settings.simulation_seed,
        )

        self.configuration: FlowConfiguration | None = None
        self._destroyed = False

    def subscribe(self, event_type: EventType | None, listener: Listener):
        """Register a listener (None = every event). Returns an unsubscribe callable."""
        return self.events.subscribe(event_type, listener)

    # ========================================
    # Registration & Configuration
    # ========================================

    def register_element(
        self,
        element_id: str,
        category: Category | str,
        area: str | None = None,
        dependencies: Iterable[Any] | Mapping[str, Any] | None = None,
        help_text: str | None = None,
        is_new: bool = False,
    ) -> ElementRecord:
        """
        Register (or re-register) one element.

        Dependencies may be expression models or raw mappings; a single
        mapping is treated as a one-item list.

        Raises:
            InvalidCategoryError: If category is unknown
        """
        if isinstance(dependencies, Mapping):
            dependencies = [dependencies]
        expressions = [parse_dependency(item) for item in dependencies or []]
        with self._lock:
            record = self.store.register(
                element_id,
                category,
                area or self.settings.default_area,
                dependencies=expressions,
                help_text=help_text,
                is_new=is_new,
            )
            self._refresh_elements({element_id} | self.evaluator.affected_by(element_id))
            return record

    def load_configuration(
        self,
        document: Mapping[str, Any] | FlowConfiguration,
        start_rules: bool = True,
    ) -> FlowConfiguration:
        """
        Load a configuration document.

        Assigns the A/B variant (if an enabled experiment is present) and
        merges its override, registers every element, evaluates all
        dependencies and (re)starts the rule timer.

        Args:
            document: Configuration mapping (camelCase or snake_case keys)
            start_rules: Start the periodic rule timer when rules exist

        Returns:
            The effective (merged) configuration

        Raises:
            ConfigurationError: If the document is structurally invalid
        """
        configuration = FlowConfiguration.from_document(document)
        self.rules.stop()

        with self._lock:
            variant = self.variants.assign(configuration.ab_test)
            if variant is not None:
                configuration = merge_configuration(configuration, variant.configuration)
            self.configuration = configuration

            for area_id, area in configuration.areas.items():
                for element in area.elements:
                    self.store.register(
                        element.id,
                        element.category,
                        area_id,
                        dependencies=element.dependencies,
                        help_text=element.help_text,
                    )
            self.refresh()
            self.rules.load(configuration.rules)

            logger.info(
                "Configuration loaded: {} v{} ({} elements, {} rules)",
                configuration.name,
                configuration.version,
                configuration.element_count,
                len(configuration.rules),
            )
            self.events.emit(
                EventType.CONFIGURATION_LOADED,
                name=configuration.name,
                version=configuration.version,
                elements=configuration.element_count,
                rules=len(configuration.rules),
                variant=variant.id if variant else None,
            )

        if start_rules:
            self.rules.start()
        return configuration

    def export_configuration(self) -> FlowConfiguration:
        """
        The loaded (variant-merged) configuration, or one generated from
        the registered elements when nothing was loaded.
        """
        with self._lock:
            if self.configuration is not None:
                return self.configuration

            areas: dict[str, list[ElementConfiguration]] = {}
            for record in self.store.elements.values():
                areas.setdefault(record.area, []).append(
                    ElementConfiguration(
                        id=record.element_id,
                        category=record.category,
                        help_text=record.help_text,
                        dependencies=tuple(record.dependencies),
                    )
                )
            return FlowConfiguration(
                name=GENERATED_CONFIGURATION_NAME,
                version="1.0.0",
                areas={area: AreaConfiguration(elements=tuple(elements)) for area, elements in areas.items()},
            )

    # ========================================
    # Interactions
    # ========================================

    def on_interaction(self, element_id: str, timestamp: int | None = None) -> bool:
        """
        Record a user interaction with an element.

        Args:
            element_id: Element that was used
            timestamp: Engine time in ms (defaults to clock.now())

        Returns:
            True if recorded, False for unknown elements
        """
        with self._lock:
            record = self._apply_interaction(element_id, timestamp)
            if record is None:
                return False

            insight = self.journey.classify(record.area)
            if insight is not None:
                self._adapt(insight)
            return True

    def _apply_interaction(self, element_id: str, timestamp: int | None) -> ElementRecord | None:
        record = self.store.record_interaction(element_id, timestamp)
        if record is not None:
            self._refresh_elements(self.evaluator.affected_by(element_id) | {element_id})
        return record

    def _record_simulated(self, element_id: str, timestamp: int) -> None:
        # Simulated interactions skip journey adaptation
        self._apply_interaction(element_id, timestamp)

    def is_satisfied(self, element_id: str) -> bool:
        """Whether every dependency of the element currently holds."""
        with self._lock:
            return self.evaluator.is_satisfied(element_id)

    # ========================================
    # Visibility
    # ========================================

    def _target_visibility(self, record: ElementRecord) -> bool:
        if record.force_unlocked:
            return True
        if record.has_dependencies:
            return self.evaluator.is_satisfied(record.element_id)
        return record.category == Category.BASIC

    def _set_visible(self, record: ElementRecord, visible: bool) -> bool:
        if record.visible == visible:
            return False

        record.visible = visible
        self.events.emit(
            EventType.VISIBILITY_CHANGED,
            element_id=record.element_id,
            category=record.category.value,
            area=record.area,
            visible=visible,
            dependencies=[expression.model_dump(by_alias=True, mode="json") for expression in record.dependencies],
        )
        if visible and record.is_new:
            self._flag(record)
        return True

    def _refresh_elements(self, element_ids: Iterable[str]) -> list[str]:
        changed = []
        for element_id in sorted(element_ids):
            record = self.store.get(element_id)
            if record is not None and self._set_visible(record, self._target_visibility(record)):
                changed.append(element_id)
        return changed

    def refresh(self) -> list[str]:
        """
        Re-evaluate visibility of every registered element.

        Returns:
            IDs of elements whose visibility changed
        """
        with self._lock:
            return self._refresh_elements(list(self.store.elements))

    def unlock_element(self, element_id: str) -> bool:
        """
        Force an element visible until its area is reset.

        Returns:
            True if the element was hidden before the call
        """
        with self._lock:
            record = self.store.get(element_id)
            if record is None:
                logger.warning("Cannot unlock unknown element {}", element_id)
                return False
            record.force_unlocked = True
            return self._set_visible(record, True)

    def unlock_category(self, category: Category | str, area: str) -> int:
        """
        Force every element of a category in an area visible.

        Emits category-unlocked when at least one element became visible.

        Returns:
            Number of elements that went from hidden to visible

        Raises:
            InvalidCategoryError: If category is unknown
        """
        category = Category.parse(category)
        with self._lock:
            count = 0
            for record in self.store.elements_in_area(area):
                if record.category != category:
                    continue
                record.force_unlocked = True
                if self._set_visible(record, True):
                    count += 1

            if count:
                logger.info("Unlocked {} {} elements in {}", count, category.value, area)
                self.events.emit(
                    EventType.CATEGORY_UNLOCKED,
                    category=category.value,
                    area=area,
                    count=count,
                )
            return count

    def new_visible_elements(self) -> list[ElementRecord]:
        """Visible elements currently flagged as new."""
        with self._lock:
            return [record for record in self.store.elements.values() if record.visible and record.is_new]

    def visible_elements_sorted(self, area: str | None = None) -> list[ElementRecord]:
        """Visible elements ordered basic -> advanced -> expert (registration order within a tier)."""
        with self._lock:
            records = [
                record
                for record in self.store.elements.values()
                if record.visible and (area is None or record.area == area)
            ]
        return sorted(records, key=lambda record: record.category.rank)

    # ========================================
    # Journey Adaptation
    # ========================================

    def _adapt(self, insight: JourneyInsight) -> None:
        self.events.emit(EventType.JOURNEY_ANALYZED, **insight.to_payload())

        if insight.behavior == JourneyBehavior.EXPLORING:
            self._flag_visible(insight.area, Category.BASIC)
        elif insight.behavior == JourneyBehavior.FOCUSED:
            self._flag_visible(insight.area, Category.ADVANCED)
        else:
            self.unlock_category(Category.EXPERT, insight.area)

    def _flag_visible(self, area: str, category: Category) -> None:
        for record in self.store.elements_in_area(area):
            if record.visible and record.category == category:
                record.is_new = True
                self._flag(record)

    def _flag(self, record: ElementRecord) -> None:
        self.events.emit(
            EventType.NEW_FEATURE_FLAGGED,
            element_id=record.element_id,
            help_text=record.help_text or DEFAULT_HELP_TEXT,
        )

    # ========================================
    # Reset
    # ========================================

    def reset_area(self, area: str) -> bool:
        """
        Reset an area to its initial state.

        Clears counts, histories, force-unlocks and the journey sequence for
        the area, then recomputes visibility everywhere.

        Returns:
            False if the area is unknown
        """
        with self._lock:
            if area not in self.store.areas:
                logger.warning("Cannot reset unknown area {}", area)
                return False

            records = self.store.reset(area)
            self._refresh_elements(list(self.store.elements))

            logger.info("Reset {} to initial state", area)
            self.events.emit(EventType.AREA_RESET, area=area, elements=len(records))
            return True

    # ========================================
    # Statistics
    # ========================================

    def recent_usage(self, area: str, window_ms: int | None = None) -> dict[Category, int]:
        """Category counts for an area within the window (exclusive lower bound)."""
        with self._lock:
            return self.store.recent_usage(area, window_ms or self.settings.recent_usage_window_ms)

    def area_stats(self, area: str) -> AreaStats:
        with self._lock:
            records = self.store.elements_in_area(area)
            area_record = self.store.areas.get(area)
            return AreaStats(
                visible_elements=sum(1 for record in records if record.visible),
                total_elements=len(records),
                recent_usage=self.store.recent_usage(area, self.settings.recent_usage_window_ms),
                adaptation_events=area_record.total_interactions if area_record else 0,
            )

    def overview_stats(self) -> dict[str, AreaStats]:
        """Statistics for every known area."""
        with self._lock:
            return {area: self.area_stats(area) for area in self.store.areas}

    def journey_stats(self, area: str) -> JourneyStats:
        with self._lock:
            return self.journey.stats(area, self.settings.recent_usage_window_ms)

    # ========================================
    # Simulation
    # ========================================

    def simulate_usage(
        self,
        area: str,
        categories: Iterable[Category | str],
        days: int | None = None,
    ) -> int:
        """
        Replay synthetic interactions for an area, spread over the last N days.

        Returns:
            Number of interactions replayed
        """
        with self._lock:
            count = self.simulator.simulate_usage(area, list(categories), days or self.settings.simulation_days)
            self._finish_simulation([area], count)
            return count

    def simulate_user_type(
        self,
        user_type: str | UserPattern,
        areas: Iterable[str] | None = None,
    ) -> list[str]:
        """
        Simulate a predefined (or custom) user type.

        Args:
            user_type: beginner, intermediate, power-user, expert or a UserPattern
            areas: Areas to simulate (defaults to every known area)

        Raises:
            ValueError: If the user type name is unknown
        """
        with self._lock:
            targets = list(areas) if areas is not None else list(self.store.areas)
            simulated = self.simulator.simulate_user_type(
                user_type,
                targets,
                total=self.settings.simulation_interactions,
                days=self.settings.simulation_days,
            )
            self._finish_simulation(simulated, self.settings.simulation_interactions * len(simulated))
            return simulated

    def _finish_simulation(self, areas: list[str], interactions: int) -> None:
        self._refresh_elements(list(self.store.elements))
        self.events.emit(EventType.SIMULATION_COMPLETE, areas=areas, interactions=interactions)

    # ========================================
    # Experiments
    # ========================================

    def track_metric(self, metric: str, value: float = 1) -> bool:
        with self._lock:
            return self.variants.track_metric(metric, value)

    def experiment_results(self) -> ExperimentResults:
        with self._lock:
            return self.variants.results()

    # ========================================
    # Rules
    # ========================================

    def tick(self) -> list[str]:
        """Run one rule evaluation pass immediately."""
        return self.rules.tick()

    def fire_custom_event(self, name: str, data: Any = None) -> list[str]:
        return self.rules.fire_custom_event(name, data)

    # ========================================
    # Teardown
    # ========================================

    def destroy(self) -> None:
        """Stop the rule timer and drop all state. Safe to call repeatedly."""
        # Stop outside the lock: the timer thread may be waiting on it
        self.rules.stop()
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            self.rules.load(())
            self.store.clear()
            self.configuration = None
            logger.info("Progression engine destroyed")
            self.events.emit(EventType.DESTROYED)
