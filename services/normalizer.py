"""Conversion of raw spreadsheet rows into canonical readings."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from datastore.reading_store import ReadingStore
from models.records import (
    AMPERE_PARAMETER,
    COMPONENT_COLUMN,
    DATE_COLUMN,
    EQUIPMENT_CODE_COLUMN,
    MEASUREMENT_POINT_COLUMN,
    RESERVED_COLUMNS,
    RPM_PARAMETER,
    SUB_COMPONENT_COLUMN,
    TIME_COLUMN,
    TIMESTAMP_COLUMN,
    VIBRATION_PARAMETERS,
    Reading,
    RowMetadata,
)
from services.timestamps import resolve_instant

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProcessingOptions:
    """Caller-supplied switches controlling which columns become readings.

    With ``extract_all_numeric`` off only the built-in parameters are read,
    each behind its toggle. With it on every numeric column is read and
    ``toggles_gate_builtins`` decides whether the toggles still apply to the
    built-in parameters.
    """

    process_vibration: bool = True
    process_rpm: bool = True
    process_ampere: bool = True
    extract_all_numeric: bool = True
    toggles_gate_builtins: bool = True

    def _builtin_toggle(self, parameter: str) -> Optional[bool]:
        if parameter in VIBRATION_PARAMETERS:
            return self.process_vibration
        if parameter == RPM_PARAMETER:
            return self.process_rpm
        if parameter == AMPERE_PARAMETER:
            return self.process_ampere
        return None

    def accepts(self, parameter: str) -> bool:
        toggle = self._builtin_toggle(parameter)
        if not self.extract_all_numeric:
            return bool(toggle)
        if toggle is None or not self.toggles_gate_builtins:
            return True
        return toggle


@dataclass
class NormalizedRow:
    readings: List[Reading] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    equipment_code: str = ""
    timestamp: Optional[datetime] = None
    timestamp_defect: bool = False
    skipped: bool = False


def cell_text(value: Any) -> str:
    """Render an identifier cell as text, dropping the ``.0`` of integral floats."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _finite(number: float) -> Optional[float]:
    return number if math.isfinite(number) else None


def parse_number(value: Any) -> Optional[float]:
    """Read a measurement cell as a number.

    Text counts when it starts with a number, so ``"12.5 mm/s"`` reads as
    ``12.5``. Booleans, blanks and non-finite values do not.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return _finite(float(value))
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match is None:
            return None
        return _finite(float(match.group(1)))
    return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _numeric_text(value: Any) -> Any:
    # Delimited text carries day counts and day fractions as strings.
    # Only whole-cell numbers qualify; "2024-01-15" must stay a date.
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return value
        if math.isfinite(number):
            return number
    return value


class RowNormalizer:
    """Turns one raw row into readings and records them in the store."""

    def __init__(
        self,
        store: ReadingStore,
        options: Optional[ProcessingOptions] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.options = options or ProcessingOptions()
        self.clock = clock

    def inspect(self, row: Mapping[str, Any], vessel: str) -> NormalizedRow:
        """Normalize ``row`` without touching the store."""
        equipment_code = cell_text(row.get(EQUIPMENT_CODE_COLUMN))
        if not equipment_code:
            return NormalizedRow(skipped=True)

        component = cell_text(row.get(COMPONENT_COLUMN))
        measurement_point = cell_text(row.get(MEASUREMENT_POINT_COLUMN))
        sub_component_code = cell_text(row.get(SUB_COMPONENT_COLUMN))

        date_cell = row.get(DATE_COLUMN)
        if _is_blank(date_cell):
            date_cell = row.get(TIMESTAMP_COLUMN)
        timestamp = resolve_instant(_numeric_text(date_cell), _numeric_text(row.get(TIME_COLUMN)))
        timestamp_defect = timestamp is None
        if timestamp is None:
            timestamp = self.clock()

        outcome = NormalizedRow(
            equipment_code=equipment_code, timestamp=timestamp, timestamp_defect=timestamp_defect
        )
        for column, raw_value in row.items():
            if column in RESERVED_COLUMNS:
                continue
            value = parse_number(raw_value)
            if value is None:
                if not _is_blank(raw_value):
                    outcome.metadata[column] = raw_value
                continue
            if not self.options.accepts(column):
                continue
            outcome.readings.append(
                Reading(
                    vessel=vessel,
                    equipment_code=equipment_code,
                    component=component,
                    parameter=column,
                    value=value,
                    timestamp=timestamp,
                    measurement_point=measurement_point,
                    sub_component_code=sub_component_code,
                    timestamp_defect=timestamp_defect,
                )
            )
        return outcome

    def normalize(
        self, row: Mapping[str, Any], vessel: str, row_number: Optional[int] = None
    ) -> List[Reading]:
        """Normalize ``row`` and append its readings to the store."""
        quality = self.store.quality_for(vessel)
        outcome = self.inspect(row, vessel)
        if outcome.skipped:
            quality.skipped_rows += 1
            return []

        quality.rows += 1
        if outcome.timestamp_defect:
            quality.timestamp_defects += 1
            logger.warning(
                "Unresolvable timestamp; substituting current time",
                extra={
                    "vessel": vessel,
                    "row_number": row_number,
                    "reason": f"date={row.get(DATE_COLUMN)!r} time={row.get(TIME_COLUMN)!r}",
                },
            )

        if outcome.metadata:
            self.store.record_metadata(
                RowMetadata(
                    vessel=vessel,
                    equipment_code=outcome.equipment_code,
                    timestamp=outcome.timestamp,
                    values=dict(outcome.metadata),
                    row_number=row_number,
                )
            )

        if not outcome.readings:
            return []

        for reading in outcome.readings:
            self.store.append(reading)
        first = outcome.readings[0]
        self.store.index.register(
            vessel,
            first.equipment_code,
            first.component,
            first.measurement_point,
            first.sub_component_code,
        )
        quality.readings += len(outcome.readings)
        return list(outcome.readings)
