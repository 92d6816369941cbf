"""
Variant Selector.

Deterministic A/B assignment:

    hash   = String.hashCode(subject_key + test_id)   (31-polynomial, signed 32-bit)
    bucket = abs(hash) % 100

The variant list is walked with a running sum of traffic allocations and
the first variant whose cumulative allocation exceeds the bucket wins.
If no variant matches (allocations summing below 100) the first variant
is used. Assignment depends only on its inputs, so a subject keeps its
variant across restarts.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from uiflow.core.events import EventBus, EventType
from uiflow.core.expressions import (
    Experiment,
    FlowConfiguration,
    PartialFlowConfiguration,
    Variant,
)

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def hash_subject(text: str) -> int:
    """
    Non-negative 32-bit polynomial hash of ``text``.

    Matches ``Math.abs`` of the JavaScript/Java string hash: iterates
    UTF-16 code units, ``h = h * 31 + unit`` wrapped to signed 32-bit.
    """
    encoded = text.encode("utf-16-le", "surrogatepass")
    h = 0
    for index in range(0, len(encoded), 2):
        unit = encoded[index] | (encoded[index + 1] << 8)
        h = (h * 31 + unit) & _INT32_MASK
    if h & _INT32_SIGN:
        h -= 1 << 32
    return abs(h)


def select_variant(subject_key: str, experiment: Experiment) -> Variant | None:
    """
    Pick the variant for a subject.

    Args:
        subject_key: Stable identifier for the subject (user id or 'anonymous')
        experiment: Experiment definition

    Returns:
        The assigned Variant, or None when the experiment cannot assign
        (no variants, no allocation, negative allocations, or a sum above 100)
    """
    variants = experiment.variants
    allocation = experiment.traffic_allocation
    if not variants or not allocation:
        return None
    if any(share < 0 for share in allocation) or sum(allocation) > 100:
        logger.warning(
            "Invalid traffic allocation {} for test {}; no variant assigned",
            list(allocation),
            experiment.test_id,
        )
        return None

    bucket = hash_subject(subject_key + experiment.test_id) % 100
    cumulative = 0.0
    for index, variant in enumerate(variants):
        cumulative += allocation[index] if index < len(allocation) else 0
        if bucket < cumulative:
            return variant
    return variants[0]


def merge_configuration(base: FlowConfiguration, variant: PartialFlowConfiguration) -> FlowConfiguration:
    """
    Apply a variant override to a base configuration.

    Areas are shallow-merged (variant areas replace same-named base areas);
    rules and templates are replaced wholesale when the variant provides them.
    """
    update: dict = {"areas": {**base.areas, **(variant.areas or {})}}
    if variant.name is not None:
        update["name"] = variant.name
    if variant.version is not None:
        update["version"] = variant.version
    if variant.rules is not None:
        update["rules"] = variant.rules
    if variant.templates is not None:
        update["templates"] = variant.templates
    return base.model_copy(update=update)


@dataclass
class ExperimentResults:
    """Assigned variant and metric counters."""

    test_id: str | None = None
    variant: str | None = None
    metrics: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"test_id": self.test_id, "variant": self.variant, "metrics": dict(self.metrics)}


class VariantSelector:
    """Holds the engine's experiment assignment and metric counters."""

    def __init__(self, subject_key: str, events: EventBus | None = None):
        self.subject_key = subject_key
        self.events = events or EventBus()
        self.experiment: Experiment | None = None
        self.variant: Variant | None = None
        self._metrics: dict[str, float] = {}

    def assign(self, experiment: Experiment | None) -> Variant | None:
        """
        Assign this engine's subject to a variant.

        Assignment happens once per engine lifetime; later calls return the
        existing assignment for the same test.
        """
        if experiment is None or not experiment.enabled:
            return None
        if self.experiment is not None and self.experiment.test_id == experiment.test_id:
            return self.variant

        variant = select_variant(self.subject_key, experiment)
        self.experiment = experiment
        self.variant = variant
        self._metrics = {metric: 0 for metric in experiment.metrics} if variant else {}

        if variant is not None:
            logger.info("A/B Test Active: {}, Variant: {}", experiment.test_id, variant.display_name)
        return variant

    def track_metric(self, metric: str, value: float = 1) -> bool:
        """
        Increment a declared metric for the assigned variant.

        Returns:
            True if the metric was counted, False if it was ignored
        """
        if self.variant is None or metric not in self._metrics:
            return False
        self._metrics[metric] += value
        self.events.emit(
            EventType.AB_METRIC_CHANGED,
            test_variant=self.variant.id,
            metric=metric,
            value=self._metrics[metric],
        )
        return True

    def results(self) -> ExperimentResults:
        return ExperimentResults(
            test_id=self.experiment.test_id if self.experiment else None,
            variant=self.variant.id if self.variant else None,
            metrics=dict(self._metrics),
        )
