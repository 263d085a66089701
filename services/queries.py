"""Read-side queries over the reading store.

Every query works on a snapshot of the store taken when it starts and never
mutates anything, so queries are safe to run while nothing is ingesting.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from datastore.reading_store import ReadingStore
from models.records import (
    AMPERE_PARAMETER,
    RPM_PARAMETER,
    Reading,
    ReadingStatus,
)
from services.aggregator import Aggregator
from services.normalizer import Clock, utc_now
from services.timestamps import format_instant

EMPTY_STAT = "-"
DEFAULT_PAGE_SIZE = 20
DEFAULT_RECENT_LIMIT = 10


class MissingSortKey(str, Enum):
    days = "days"
    vessel = "vessel"
    equipment = "equipment"


class StalenessSeverity(str, Enum):
    normal = "normal"
    attention = "attention"
    warning = "warning"
    critical = "critical"


def staleness_severity(days: int) -> StalenessSeverity:
    if days >= 90:
        return StalenessSeverity.critical
    if days >= 60:
        return StalenessSeverity.warning
    if days >= 30:
        return StalenessSeverity.attention
    return StalenessSeverity.normal


@dataclass(frozen=True)
class SeriesPoint:
    x: datetime
    y: float


@dataclass(frozen=True)
class PairedPoint:
    timestamp: datetime
    rpm: float
    ampere: float


@dataclass(frozen=True)
class TrendStatistics:
    average: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    stddev: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.average is None

    def formatted(self, unit: str = "") -> Dict[str, str]:
        """Two-decimal display strings, ``-`` for an empty selection."""
        def render(value: Optional[float]) -> str:
            if value is None:
                return EMPTY_STAT
            return f"{value:.2f} {unit}".rstrip()

        return {
            "average": render(self.average),
            "minimum": render(self.minimum),
            "maximum": render(self.maximum),
            "stddev": render(self.stddev),
        }


@dataclass
class FleetTrend:
    parameter: str
    readings: List[Reading]
    series_by_vessel: Dict[str, List[SeriesPoint]]
    stats: TrendStatistics
    counts_by_vessel: Dict[str, int] = field(default_factory=dict)


@dataclass
class RawPage:
    total_count: int
    total_pages: int
    page: int
    page_size: int
    items: List[Reading] = field(default_factory=list)


@dataclass(frozen=True)
class MissingEquipment:
    vessel: str
    equipment_code: str
    component: str
    last_reading: datetime
    days_since_last_reading: int

    @property
    def severity(self) -> StalenessSeverity:
        return staleness_severity(self.days_since_last_reading)


@dataclass(frozen=True)
class RecentReading:
    reading: Reading
    unit: str
    status: ReadingStatus


@dataclass
class TrendChart:
    parameter: str
    unit: str
    labels: List[str]
    values: List[float]
    warning_line: Optional[List[float]] = None
    critical_line: Optional[List[float]] = None

    @property
    def label(self) -> str:
        return f"{self.parameter} ({self.unit})" if self.unit else self.parameter


def _matches(reading: Reading, **criteria: Optional[str]) -> bool:
    for attribute, expected in criteria.items():
        if expected and getattr(reading, attribute) != expected:
            return False
    return True


def _ascending(readings: Iterable[Reading]) -> List[Reading]:
    return sorted(readings, key=lambda reading: reading.timestamp)


class QueryEngine:
    """Analytical queries behind the dashboard tabs."""

    def __init__(
        self,
        store: ReadingStore,
        clock: Clock = utc_now,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.aggregator = aggregator or Aggregator()

    def _cutoff(self, range_days: Optional[int]) -> Optional[datetime]:
        if not range_days or range_days <= 0:
            return None
        return self.clock() - timedelta(days=range_days)

    def equipment_series(
        self,
        vessel: Optional[str] = None,
        equipment_code: Optional[str] = None,
        component: Optional[str] = None,
        parameter: Optional[str] = None,
    ) -> List[Reading]:
        selected = (
            reading
            for reading in self.store.all()
            if _matches(
                reading,
                vessel=vessel,
                equipment_code=equipment_code,
                component=component,
                parameter=parameter,
            )
        )
        return _ascending(selected)

    def paired_series(
        self,
        vessel: Optional[str] = None,
        equipment_code: Optional[str] = None,
        component: Optional[str] = None,
    ) -> List[PairedPoint]:
        """RPM against current for readings taken at exactly the same instant."""
        groups: Dict[datetime, Dict[str, float]] = {}
        for reading in self.store.all():
            if not _matches(
                reading, vessel=vessel, equipment_code=equipment_code, component=component
            ):
                continue
            groups.setdefault(reading.timestamp, {})[reading.parameter] = reading.value

        points = [
            PairedPoint(timestamp=timestamp, rpm=values[RPM_PARAMETER], ampere=values[AMPERE_PARAMETER])
            for timestamp, values in groups.items()
            if RPM_PARAMETER in values and AMPERE_PARAMETER in values
        ]
        return sorted(points, key=lambda point: point.timestamp)

    def fleet_trend(
        self,
        parameter: str,
        vessel: Optional[str] = None,
        range_days: Optional[int] = None,
    ) -> FleetTrend:
        cutoff = self._cutoff(range_days)
        selected = [
            reading
            for reading in self.store.all()
            if reading.parameter == parameter
            and _matches(reading, vessel=vessel)
            and (cutoff is None or reading.timestamp >= cutoff)
        ]
        ordered = _ascending(selected)

        series: Dict[str, List[SeriesPoint]] = {}
        for reading in ordered:
            series.setdefault(reading.vessel, []).append(
                SeriesPoint(x=reading.timestamp, y=reading.value)
            )

        summary = self.aggregator.aggregate(ordered)
        stats = TrendStatistics(
            average=summary.mean_value,
            minimum=summary.min_value,
            maximum=summary.max_value,
            stddev=summary.stddev_value,
        )
        return FleetTrend(
            parameter=parameter,
            readings=ordered,
            series_by_vessel=series,
            stats=stats,
            counts_by_vessel=summary.per_vessel_count,
        )

    def filter_raw(
        self,
        search: Optional[str] = None,
        vessel: Optional[str] = None,
        parameter: Optional[str] = None,
        range_days: Optional[int] = None,
    ) -> List[Reading]:
        """Raw-data filter, newest first."""
        needle = (search or "").strip().lower()
        cutoff = self._cutoff(range_days)

        def keep(reading: Reading) -> bool:
            if needle and not any(
                needle in text.lower()
                for text in (
                    reading.vessel,
                    reading.equipment_code,
                    reading.component,
                    reading.parameter,
                )
            ):
                return False
            if not _matches(reading, vessel=vessel, parameter=parameter):
                return False
            return cutoff is None or reading.timestamp >= cutoff

        selected = [reading for reading in self.store.all() if keep(reading)]
        return sorted(selected, key=lambda reading: reading.timestamp, reverse=True)

    def raw_listing(
        self,
        search: Optional[str] = None,
        vessel: Optional[str] = None,
        parameter: Optional[str] = None,
        range_days: Optional[int] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> RawPage:
        if page_size <= 0:
            raise ValueError("page_size must be positive.")
        selected = self.filter_raw(
            search=search, vessel=vessel, parameter=parameter, range_days=range_days
        )
        total_count = len(selected)
        total_pages = max(1, math.ceil(total_count / page_size))
        current = min(max(page, 1), total_pages)
        start = (current - 1) * page_size
        return RawPage(
            total_count=total_count,
            total_pages=total_pages,
            page=current,
            page_size=page_size,
            items=selected[start:start + page_size],
        )

    def missing_equipment(
        self,
        threshold_days: int,
        vessel: Optional[str] = None,
        sort_by: MissingSortKey | str = MissingSortKey.days,
    ) -> List[MissingEquipment]:
        """Equipment whose most recent reading is at least ``threshold_days`` old."""
        sort_key = MissingSortKey(sort_by)
        now = self.clock()

        latest: Dict[Tuple[str, str, str], Reading] = {}
        for reading in self.store.all():
            if vessel and reading.vessel != vessel:
                continue
            key = (reading.vessel, reading.equipment_code, reading.component)
            current = latest.get(key)
            if current is None or reading.timestamp > current.timestamp:
                latest[key] = reading

        stale: List[MissingEquipment] = []
        for (vessel_name, equipment_code, component), reading in latest.items():
            days = math.floor((now - reading.timestamp) / timedelta(days=1))
            if days < threshold_days:
                continue
            stale.append(
                MissingEquipment(
                    vessel=vessel_name,
                    equipment_code=equipment_code,
                    component=component,
                    last_reading=reading.timestamp,
                    days_since_last_reading=days,
                )
            )

        if sort_key is MissingSortKey.days:
            stale.sort(key=lambda item: item.days_since_last_reading, reverse=True)
        elif sort_key is MissingSortKey.vessel:
            stale.sort(key=lambda item: item.vessel)
        else:
            stale.sort(key=lambda item: item.equipment_code)
        return stale

    def recent_readings(
        self,
        vessel: Optional[str] = None,
        equipment_code: Optional[str] = None,
        component: Optional[str] = None,
        parameter: Optional[str] = None,
        limit: int = DEFAULT_RECENT_LIMIT,
    ) -> List[RecentReading]:
        series = self.equipment_series(
            vessel=vessel, equipment_code=equipment_code, component=component, parameter=parameter
        )
        newest = sorted(series, key=lambda reading: reading.timestamp, reverse=True)[:limit]
        metadata = self.store.parameter_metadata
        return [
            RecentReading(
                reading=reading,
                unit=metadata.get(reading.parameter).unit,
                status=metadata.get(reading.parameter).status_for(reading.value),
            )
            for reading in newest
        ]

    def trend_chart(self, parameter: str, readings: Sequence[Reading]) -> TrendChart:
        """Labels, values and threshold lines for a single-parameter chart."""
        info = self.store.parameter_metadata.get(parameter)
        selected = [reading for reading in readings if reading.parameter == parameter]
        labels = [format_instant(reading.timestamp) for reading in selected]
        chart = TrendChart(
            parameter=parameter,
            unit=info.unit,
            labels=labels,
            values=[reading.value for reading in selected],
        )
        if selected and info.threshold_warning is not None:
            chart.warning_line = [info.threshold_warning] * len(selected)
        if selected and info.threshold_critical is not None:
            chart.critical_line = [info.threshold_critical] * len(selected)
        return chart
