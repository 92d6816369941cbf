"""
Engine Module - Stateful components of the disclosure engine.

Components:
- interaction_store: Counts and bounded usage histories
- dependency_evaluator: Dependency expression evaluation
- variant_selector: Deterministic A/B assignment
- journey_classifier: Per-area behaviour classification
- rule_engine: Periodic rule evaluation
- simulation: Synthetic usage replay
- progression: ProgressionController orchestrating the above
"""

from uiflow.engine.dependency_evaluator import DependencyEvaluator, parse_time_window
from uiflow.engine.interaction_store import InteractionStore
from uiflow.engine.journey_classifier import JourneyClassifier, JourneyInsight, JourneyStats
from uiflow.engine.progression import ProgressionController
from uiflow.engine.rule_engine import RuleEngine
from uiflow.engine.simulation import USER_PATTERNS, UsageSimulator, UserPattern
from uiflow.engine.variant_selector import (
    ExperimentResults,
    VariantSelector,
    hash_subject,
    merge_configuration,
    select_variant,
)

__all__ = [
    "DependencyEvaluator",
    "parse_time_window",
    "InteractionStore",
    "JourneyClassifier",
    "JourneyInsight",
    "JourneyStats",
    "ProgressionController",
    "RuleEngine",
    "USER_PATTERNS",
    "UsageSimulator",
    "UserPattern",
    "ExperimentResults",
    "VariantSelector",
    "hash_subject",
    "merge_configuration",
    "select_variant",
]
