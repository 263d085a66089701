"""Descriptive statistics over reading values."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from models.records import Reading


@dataclass
class AggregationSummary:
    """Computed statistics for a batch of readings.

    Every statistic stays ``None`` for an empty batch.
    """

    row_count: int = 0
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    mean_value: Optional[float] = None
    stddev_value: Optional[float] = None
    per_vessel_count: Dict[str, int] = field(default_factory=dict)


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, readings: Iterable[Reading]) -> AggregationSummary:
        summary = AggregationSummary()
        values: list[float] = []

        for reading in readings:
            summary.row_count += 1
            value = reading.value
            values.append(value)

            if summary.min_value is None or value < summary.min_value:
                summary.min_value = value
            if summary.max_value is None or value > summary.max_value:
                summary.max_value = value

            summary.per_vessel_count[reading.vessel] = (
                summary.per_vessel_count.get(reading.vessel, 0) + 1
            )

        if summary.row_count:
            mean = math.fsum(values) / summary.row_count
            # Population variance: divide by N.
            variance = math.fsum((value - mean) ** 2 for value in values) / summary.row_count
            summary.mean_value = mean
            summary.stddev_value = math.sqrt(variance)

        return summary
