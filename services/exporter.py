"""CSV export of query results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from models.records import Reading
from services.queries import MissingEquipment
from services.timestamps import format_instant

READING_COLUMNS = ("Timestamp", "Vessel", "Equipment Code", "Component", "Parameter", "Value")
MISSING_COLUMNS = ("vessel", "equipmentCode", "component", "lastReading", "daysSinceLastReading")


class ExportKind(str, Enum):
    equipment_data = "equipment_data"
    trend_data = "trend_data"
    raw_data = "raw_data"
    missing_readings = "missing_readings"


@dataclass(frozen=True)
class ExportFile:
    filename: str
    content: str
    row_count: int

    media_type: str = "text/csv; charset=utf-8"


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_delimited_text(
    rows: Sequence[Mapping[str, Any]], column_order: Optional[Sequence[str]] = None
) -> str:
    """Join rows with commas under a single header line.

    Fields are not quoted, so a value containing a comma shifts the columns
    of its line.
    """
    if not rows:
        return ""
    columns = list(column_order) if column_order else list(rows[0].keys())
    lines = [",".join(columns)]
    for row in rows:
        lines.append(",".join(_format_cell(row.get(column)) for column in columns))
    return "\n".join(lines)


def export_filename(kind: ExportKind | str, today: date) -> str:
    return f"{ExportKind(kind).value}_{today.isoformat()}.csv"


def reading_rows(readings: Iterable[Reading]) -> List[dict[str, Any]]:
    return [
        {
            "Timestamp": format_instant(reading.timestamp),
            "Vessel": reading.vessel,
            "Equipment Code": reading.equipment_code,
            "Component": reading.component,
            "Parameter": reading.parameter,
            "Value": reading.value,
        }
        for reading in readings
    ]


def missing_rows(items: Iterable[MissingEquipment]) -> List[dict[str, Any]]:
    ordered = sorted(items, key=lambda item: item.days_since_last_reading, reverse=True)
    return [
        {
            "vessel": item.vessel,
            "equipmentCode": item.equipment_code,
            "component": item.component,
            "lastReading": format_instant(item.last_reading),
            "daysSinceLastReading": item.days_since_last_reading,
        }
        for item in ordered
    ]


def build_export(
    kind: ExportKind | str,
    rows: Sequence[Mapping[str, Any]],
    today: date,
    column_order: Optional[Sequence[str]] = None,
) -> Optional[ExportFile]:
    """Assemble a download, or ``None`` when there is nothing to export."""
    if not rows:
        return None
    return ExportFile(
        filename=export_filename(kind, today),
        content=to_delimited_text(rows, column_order),
        row_count=len(rows),
    )


def export_readings(
    kind: ExportKind | str, readings: Iterable[Reading], today: date
) -> Optional[ExportFile]:
    return build_export(kind, reading_rows(readings), today, READING_COLUMNS)


def export_missing(items: Iterable[MissingEquipment], today: date) -> Optional[ExportFile]:
    return build_export(ExportKind.missing_readings, missing_rows(items), today, MISSING_COLUMNS)
