from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from datastore.reading_store import ReadingStore
from models.records import AMPERE_PARAMETER, RPM_PARAMETER, VELOCITY_RMS, Reading, ReadingStatus
from services.queries import (
    EMPTY_STAT,
    MissingSortKey,
    QueryEngine,
    StalenessSeverity,
    staleness_severity,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _clock() -> datetime:
    return NOW


def _reading(
    parameter: str = VELOCITY_RMS,
    value: float = 1.0,
    days_ago: float = 0,
    vessel: str = "Ocean Star",
    equipment_code: str = "EQ-1",
    component: str = "Pump",
) -> Reading:
    return Reading(
        vessel=vessel,
        equipment_code=equipment_code,
        component=component,
        parameter=parameter,
        value=value,
        timestamp=NOW - timedelta(days=days_ago),
    )


def _engine(*readings: Reading) -> QueryEngine:
    store = ReadingStore()
    store.extend(readings)
    store.finalize()
    return QueryEngine(store, clock=_clock)


def test_equipment_series_filters_and_orders_ascending() -> None:
    engine = _engine(
        _reading(value=3.0, days_ago=1),
        _reading(value=1.0, days_ago=3),
        _reading(value=9.0, days_ago=2, vessel="Sea Breeze"),
        _reading(parameter=RPM_PARAMETER, value=1500, days_ago=2),
    )

    series = engine.equipment_series(vessel="Ocean Star", parameter=VELOCITY_RMS)

    assert [reading.value for reading in series] == [1.0, 3.0]


def test_paired_series_requires_both_parameters_at_the_same_instant() -> None:
    engine = _engine(
        _reading(parameter=RPM_PARAMETER, value=1500, days_ago=2),
        _reading(parameter=AMPERE_PARAMETER, value=11.5, days_ago=2),
        _reading(parameter=RPM_PARAMETER, value=1400, days_ago=1),
        _reading(parameter=AMPERE_PARAMETER, value=10.0, days_ago=1.5),
    )

    points = engine.paired_series(vessel="Ocean Star", equipment_code="EQ-1")

    assert len(points) == 1
    assert points[0].rpm == 1500
    assert points[0].ampere == 11.5
    assert points[0].timestamp == NOW - timedelta(days=2)


def test_fleet_trend_on_empty_selection_reports_placeholders() -> None:
    trend = _engine().fleet_trend(VELOCITY_RMS)

    assert trend.readings == []
    assert trend.series_by_vessel == {}
    assert trend.counts_by_vessel == {}
    assert trend.stats.is_empty
    assert trend.stats.formatted("mm/s") == {
        "average": EMPTY_STAT,
        "minimum": EMPTY_STAT,
        "maximum": EMPTY_STAT,
        "stddev": EMPTY_STAT,
    }


def test_fleet_trend_groups_by_vessel_and_formats_statistics() -> None:
    engine = _engine(
        _reading(value=2.0, days_ago=2),
        _reading(value=4.0, days_ago=1, vessel="Sea Breeze"),
        _reading(value=100.0, days_ago=45),
        _reading(parameter=RPM_PARAMETER, value=1500),
    )

    trend = engine.fleet_trend(VELOCITY_RMS, range_days=30)

    assert set(trend.series_by_vessel) == {"Ocean Star", "Sea Breeze"}
    assert [point.y for point in trend.series_by_vessel["Ocean Star"]] == [2.0]
    assert trend.counts_by_vessel == {"Ocean Star": 1, "Sea Breeze": 1}
    display = trend.stats.formatted("mm/s")
    assert display["average"] == "3.00 mm/s"
    assert display["minimum"] == "2.00 mm/s"
    assert display["maximum"] == "4.00 mm/s"
    assert display["stddev"] == "1.00 mm/s"


def test_fleet_trend_vessel_filter() -> None:
    engine = _engine(_reading(value=2.0), _reading(value=4.0, vessel="Sea Breeze"))

    trend = engine.fleet_trend(VELOCITY_RMS, vessel="Sea Breeze")

    assert [reading.value for reading in trend.readings] == [4.0]


def test_filter_raw_search_is_case_insensitive_and_newest_first() -> None:
    engine = _engine(
        _reading(value=1.0, days_ago=5, component="Main Pump"),
        _reading(value=2.0, days_ago=1, component="Aux PUMP"),
        _reading(value=3.0, days_ago=2, component="Fan"),
    )

    results = engine.filter_raw(search="pump")

    assert [reading.value for reading in results] == [2.0, 1.0]


def test_filter_raw_range_days() -> None:
    engine = _engine(_reading(value=1.0, days_ago=10), _reading(value=2.0, days_ago=40))

    assert [reading.value for reading in engine.filter_raw(range_days=30)] == [1.0]
    assert len(engine.filter_raw(range_days=0)) == 2


def test_raw_listing_clamps_page_number() -> None:
    engine = _engine(*(_reading(value=float(number), days_ago=number) for number in range(45)))

    last = engine.raw_listing(page=99, page_size=20)
    assert last.total_count == 45
    assert last.total_pages == 3
    assert last.page == 3
    assert len(last.items) == 5

    first = engine.raw_listing(page=0, page_size=20)
    assert first.page == 1
    assert first.items[0].value == 0.0


def test_raw_listing_on_empty_store_has_one_page() -> None:
    page = _engine().raw_listing(page=5)

    assert page.total_pages == 1
    assert page.page == 1
    assert page.items == []


def test_raw_listing_rejects_non_positive_page_size() -> None:
    with pytest.raises(ValueError):
        _engine().raw_listing(page_size=0)


def test_missing_equipment_threshold_is_inclusive() -> None:
    engine = _engine(
        _reading(days_ago=30, equipment_code="EQ-1"),
        _reading(days_ago=29, equipment_code="EQ-2"),
    )

    items = engine.missing_equipment(30)

    assert [item.equipment_code for item in items] == ["EQ-1"]
    assert items[0].days_since_last_reading == 30
    assert items[0].severity is StalenessSeverity.attention


def test_missing_equipment_uses_latest_reading_per_equipment() -> None:
    engine = _engine(
        _reading(days_ago=120),
        _reading(days_ago=45, parameter=RPM_PARAMETER),
        _reading(days_ago=200, equipment_code="EQ-2", vessel="Sea Breeze"),
    )

    items = engine.missing_equipment(30)

    assert [(item.equipment_code, item.days_since_last_reading) for item in items] == [
        ("EQ-2", 200),
        ("EQ-1", 45),
    ]


def test_missing_equipment_sorting_and_vessel_filter() -> None:
    engine = _engine(
        _reading(days_ago=40, vessel="Sea Breeze", equipment_code="EQ-1"),
        _reading(days_ago=90, vessel="Ocean Star", equipment_code="EQ-3"),
        _reading(days_ago=60, vessel="Ocean Star", equipment_code="EQ-2"),
    )

    by_vessel = engine.missing_equipment(30, sort_by=MissingSortKey.vessel)
    assert [item.vessel for item in by_vessel][-1] == "Sea Breeze"

    by_equipment = engine.missing_equipment(30, sort_by="equipment")
    assert [item.equipment_code for item in by_equipment] == ["EQ-1", "EQ-2", "EQ-3"]

    only_ocean = engine.missing_equipment(30, vessel="Ocean Star")
    assert [item.equipment_code for item in only_ocean] == ["EQ-3", "EQ-2"]


@pytest.mark.parametrize(
    ("days", "severity"),
    [
        (0, StalenessSeverity.normal),
        (29, StalenessSeverity.normal),
        (30, StalenessSeverity.attention),
        (60, StalenessSeverity.warning),
        (89, StalenessSeverity.warning),
        (90, StalenessSeverity.critical),
    ],
)
def test_staleness_severity(days: int, severity: StalenessSeverity) -> None:
    assert staleness_severity(days) is severity


def test_recent_readings_carry_threshold_status() -> None:
    engine = _engine(
        _reading(value=1.0, days_ago=3),
        _reading(value=5.0, days_ago=2),
        _reading(value=8.0, days_ago=1),
    )

    recent = engine.recent_readings(parameter=VELOCITY_RMS, limit=2)

    assert [item.reading.value for item in recent] == [8.0, 5.0]
    assert [item.status for item in recent] == [ReadingStatus.critical, ReadingStatus.warning]
    assert recent[0].unit == "mm/s"


def test_trend_chart_includes_threshold_lines() -> None:
    engine = _engine(_reading(value=1.0, days_ago=2), _reading(value=2.0, days_ago=1))
    readings = engine.equipment_series(parameter=VELOCITY_RMS)

    chart = engine.trend_chart(VELOCITY_RMS, readings)

    assert chart.label == "Vel, Rms (RMS) (mm/s)"
    assert chart.values == [1.0, 2.0]
    assert chart.warning_line == [4.5, 4.5]
    assert chart.critical_line == [7.1, 7.1]


def test_trend_chart_without_thresholds() -> None:
    engine = _engine(_reading(parameter=RPM_PARAMETER, value=1500))

    chart = engine.trend_chart(RPM_PARAMETER, engine.equipment_series())

    assert chart.warning_line is None
    assert chart.critical_line is None
    assert chart.labels == ["2024-06-01T00:00:00.000Z"]
