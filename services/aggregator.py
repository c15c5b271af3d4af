"""Summary statistics for a device's reading history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

_SPARK_BLOCKS = "▁▂▃▄▅▆▇█"


@dataclass
class HistorySummary:
    """Computed statistics for a series of temperatures."""

    row_count: int = 0
    min_value: float | None = None
    max_value: float | None = None
    mean_value: float | None = None


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, temperatures: Iterable[float]) -> HistorySummary:
        summary = HistorySummary()
        total = 0.0

        for value in temperatures:
            summary.row_count += 1
            total += value

            if summary.min_value is None or value < summary.min_value:
                summary.min_value = value
            if summary.max_value is None or value > summary.max_value:
                summary.max_value = value

        if summary.row_count:
            summary.mean_value = total / summary.row_count

        return summary

    def sparkline(self, temperatures: Iterable[float], width: int = 40) -> str:
        """Render the series as block characters, bucketed down to ``width`` cells."""
        values = list(temperatures)
        if not values:
            return ""

        if len(values) > width:
            bucket = len(values) / width
            values = [
                sum(chunk) / len(chunk)
                for chunk in (
                    values[int(i * bucket):int((i + 1) * bucket)] for i in range(width)
                )
                if chunk
            ]

        low, high = min(values), max(values)
        span = high - low
        if span == 0:
            return _SPARK_BLOCKS[len(_SPARK_BLOCKS) // 2] * len(values)

        top = len(_SPARK_BLOCKS) - 1
        return "".join(_SPARK_BLOCKS[round((value - low) / span * top)] for value in values)
