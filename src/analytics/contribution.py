"""Per-device share of a counter's total."""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

import numpy as np

from src.analytics.policy import DEFAULT_POLICY, MetricPolicy
from src.analytics.readings import Reading

logger = logging.getLogger(__name__)


@dataclass
class DeviceContribution:
    """How much one device contributed to the counter total.

    Attributes:
        device_id: Device identifier.
        device_name: Display name, falls back to the device id.
        average: Mean of the device's values.
        maximum: Highest value reported.
        minimum: Lowest value reported.
        total_readings: Number of readings with a usable value.
        total: Sum of the device's values.
        contribution_percentage: ``total`` as a share of the grand total.
    """

    device_id: str
    device_name: str
    average: float
    maximum: float
    minimum: float
    total_readings: int
    total: float
    contribution_percentage: float


def device_breakdown(
    readings: Iterable[Reading],
    device_names: Optional[Mapping[str, str]] = None,
    policy: MetricPolicy = DEFAULT_POLICY,
) -> list[DeviceContribution]:
    """Compute each device's contribution to the counter total.

    Args:
        readings: Readings of every device of the counter.
        device_names: Optional display name per device id.
        policy: Metric policy used for extraction.

    Returns:
        Contributions sorted by percentage, largest first. Every share is 0
        when the grand total is 0.
    """
    names = device_names or {}
    per_device: dict[str, list[float]] = defaultdict(list)
    for reading in readings:
        value = policy.extract(reading)
        if value is not None:
            per_device[reading.device_id].append(value)

    grand_total = sum(sum(values) for values in per_device.values())

    breakdown = []
    for device_id, values in per_device.items():
        device_total = sum(values)
        share = device_total / grand_total * 100 if grand_total > 0 else 0.0
        breakdown.append(
            DeviceContribution(
                device_id=device_id,
                device_name=names.get(device_id, device_id),
                average=float(np.mean(values)),
                maximum=float(max(values)),
                minimum=float(min(values)),
                total_readings=len(values),
                total=device_total,
                contribution_percentage=share,
            )
        )

    breakdown.sort(key=lambda c: (-c.contribution_percentage, c.device_id))
    return breakdown
