"""Metric policies and metric extraction.

A :class:`MetricPolicy` bundles the three choices that decide whether
numbers produced by two deployments are comparable: which payload field
carries the metric, how the congestion rate is computed and how efficiency
is computed. Policies are versioned and selected by name from configuration.
"""

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from src.analytics.readings import Reading, to_float

logger = logging.getLogger(__name__)

DEFAULT_FIELD_PRIORITY = ("inCount", "queueLength", "occupancy")


def round_half_up(value: float, digits: int = 1) -> float:
    """Round half away from zero, the way reported figures are rounded."""
    factor = 10**digits
    return math.copysign(math.floor(abs(value) * factor + 0.5), value) / factor


class CongestionFormula(str, Enum):
    """How the congestion rate percentage is derived."""

    RATIO = "ratio"
    THRESHOLD = "threshold"


class EfficiencyFormula(str, Enum):
    """How the efficiency percentage is derived."""

    INVERSE_LOAD = "inverse_load"


@dataclass(frozen=True)
class MetricPolicy:
    """Versioned description of how readings turn into comparable metrics.

    Attributes:
        name: Registry name of the policy.
        version: Policy revision, bumped whenever a formula changes.
        field_priority: Candidate payload fields, most preferred first.
        congestion: Congestion rate formula.
        congestion_threshold: Reading value at or above which a reading is
            congested. Only used by the threshold formula.
        efficiency_formula: Efficiency formula.
    """

    name: str
    version: int
    field_priority: tuple[str, ...] = DEFAULT_FIELD_PRIORITY
    congestion: CongestionFormula = CongestionFormula.RATIO
    congestion_threshold: float = 4.0
    efficiency_formula: EfficiencyFormula = EfficiencyFormula.INVERSE_LOAD

    def extract(self, reading: Reading) -> Optional[float]:
        """Resolve the metric value of a reading.

        Fields are tried in priority order. A field that is present but not
        numeric is treated as absent and the next candidate is tried.

        Args:
            reading: Decoded telemetry reading.

        Returns:
            The metric as a float, or None when no candidate field is usable.
        """
        for name in self.field_priority:
            if name not in reading.raw_fields:
                continue
            value = to_float(reading.raw_fields[name])
            if value is not None:
                return value
        return None

    def efficiency(self, average: float, maximum: float) -> float:
        """Return how far the average load sits below the peak, as a percentage."""
        if maximum == 0:
            return 100.0
        return max(0.0, (1 - average / maximum) * 100)

    def congestion_rate(
        self, average: float, maximum: float, values: Sequence[float]
    ) -> float:
        """Compute the congestion rate percentage.

        Args:
            average: Average of the bucketed series.
            maximum: Peak of the bucketed series.
            values: Raw per-reading metric values.

        Returns:
            Congestion rate between 0 and 100.
        """
        if self.congestion is CongestionFormula.THRESHOLD:
            if not values:
                return 0.0
            congested = sum(1 for v in values if v >= self.congestion_threshold)
            return congested * 100.0 / len(values)

        if maximum == 0:
            return 0.0
        return round_half_up(average / maximum * 100, 1)

    def with_threshold(self, threshold: float) -> "MetricPolicy":
        """Return a copy of this policy with a different congestion threshold."""
        return replace(self, congestion_threshold=threshold)


QUEUE_POLICY = MetricPolicy(name="queue", version=1)

OCCUPANCY_POLICY = MetricPolicy(
    name="occupancy",
    version=2,
    field_priority=("occupancy",),
    congestion=CongestionFormula.THRESHOLD,
    congestion_threshold=4.0,
)

POLICIES: dict[str, MetricPolicy] = {
    QUEUE_POLICY.name: QUEUE_POLICY,
    OCCUPANCY_POLICY.name: OCCUPANCY_POLICY,
}

DEFAULT_POLICY = QUEUE_POLICY


def get_policy(name: str) -> MetricPolicy:
    """Look up a registered metric policy by name.

    Raises:
        ValueError: If no policy is registered under ``name``.
    """
    try:
        return POLICIES[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown metric policy '{name}', expected one of {sorted(POLICIES)}"
        ) from None


def extract_metric(
    reading: Reading, policy: MetricPolicy = DEFAULT_POLICY
) -> Optional[float]:
    """Resolve one numeric value from a reading using ``policy``."""
    return policy.extract(reading)


def extract_values(
    readings: Iterable[Reading], policy: MetricPolicy = DEFAULT_POLICY
) -> list[float]:
    """Extract every usable metric value, skipping readings without one."""
    values = []
    for reading in readings:
        value = policy.extract(reading)
        if value is not None:
            values.append(value)
    return values
