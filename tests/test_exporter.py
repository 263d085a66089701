from __future__ import annotations

from datetime import date, datetime, timezone

from models.records import Reading
from services.exporter import (
    ExportKind,
    export_filename,
    export_missing,
    export_readings,
    to_delimited_text,
)
from services.queries import MissingEquipment

TODAY = date(2024, 6, 1)


def _reading(component: str = "Pump", value: float = 2.5) -> Reading:
    return Reading(
        vessel="Ocean Star",
        equipment_code="EQ-1",
        component=component,
        parameter="Vel, Rms (RMS)",
        value=value,
        timestamp=datetime(2024, 1, 15, 12, tzinfo=timezone.utc),
    )


def _missing(equipment_code: str, days: int) -> MissingEquipment:
    return MissingEquipment(
        vessel="Ocean Star",
        equipment_code=equipment_code,
        component="Pump",
        last_reading=datetime(2024, 1, 15, tzinfo=timezone.utc),
        days_since_last_reading=days,
    )


def test_delimited_text_uses_first_row_keys_as_header() -> None:
    text = to_delimited_text([{"a": 1, "b": "x"}, {"a": 2.5, "b": None}])

    assert text == "a,b\n1,x\n2.5,"


def test_delimited_text_of_nothing_is_empty() -> None:
    assert to_delimited_text([]) == ""


def test_export_filename_is_kind_and_date() -> None:
    assert export_filename("raw_data", TODAY) == "raw_data_2024-06-01.csv"
    assert export_filename(ExportKind.missing_readings, TODAY) == "missing_readings_2024-06-01.csv"


def test_export_readings() -> None:
    export = export_readings(ExportKind.equipment_data, [_reading()], TODAY)

    assert export is not None
    assert export.filename == "equipment_data_2024-06-01.csv"
    assert export.row_count == 1
    assert export.content.splitlines() == [
        "Timestamp,Vessel,Equipment Code,Component,Parameter,Value",
        "2024-01-15T12:00:00.000Z,Ocean Star,EQ-1,Pump,Vel, Rms (RMS),2.5",
    ]


def test_commas_in_values_are_not_quoted() -> None:
    export = export_readings(ExportKind.raw_data, [_reading(component="Pump, aft")], TODAY)

    assert export is not None
    data_line = export.content.splitlines()[1]
    assert '"' not in data_line
    assert "Pump, aft" in data_line


def test_empty_exports_return_none() -> None:
    assert export_readings(ExportKind.trend_data, [], TODAY) is None
    assert export_missing([], TODAY) is None


def test_missing_export_is_sorted_by_staleness() -> None:
    export = export_missing([_missing("EQ-1", 31), _missing("EQ-2", 120)], TODAY)

    assert export is not None
    lines = export.content.splitlines()
    assert lines[0] == "vessel,equipmentCode,component,lastReading,daysSinceLastReading"
    assert lines[1] == "Ocean Star,EQ-2,Pump,2024-01-15T00:00:00.000Z,120"
    assert lines[2].startswith("Ocean Star,EQ-1,")
