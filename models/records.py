"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional


EQUIPMENT_CODE_COLUMN = "MP_NUMBER"
COMPONENT_COLUMN = "COMP_NAME"
MEASUREMENT_POINT_COLUMN = "MP_NAME"
SUB_COMPONENT_COLUMN = "COMP_NUMBER"
DATE_COLUMN = "DATE"
TIME_COLUMN = "TIME"
TIMESTAMP_COLUMN = "TIMESTAMP"

RESERVED_COLUMNS = frozenset(
    {
        DATE_COLUMN,
        TIME_COLUMN,
        TIMESTAMP_COLUMN,
        EQUIPMENT_CODE_COLUMN,
        MEASUREMENT_POINT_COLUMN,
        SUB_COMPONENT_COLUMN,
        COMPONENT_COLUMN,
    }
)

VELOCITY_RMS = "Vel, Rms (RMS)"
DISPLACEMENT_RMS = "Disp, Rms (RMS)"
ACCELERATION_RMS = "Acc, Rms (RMS)"
RPM_PARAMETER = "RPM1"
AMPERE_PARAMETER = "ALT_1"

VIBRATION_PARAMETERS = (VELOCITY_RMS, DISPLACEMENT_RMS, ACCELERATION_RMS)


class Dimension(str, Enum):
    """Filterable dimensions of the relationship index."""

    vessel = "vessel"
    equipment_code = "equipment_code"
    component = "component"
    measurement_point = "measurement_point"
    sub_component_code = "sub_component_code"


class ReadingStatus(str, Enum):
    good = "good"
    warning = "warning"
    critical = "critical"


@dataclass(frozen=True, slots=True)
class Reading:
    """One timestamped scalar measurement of a parameter on a piece of equipment."""

    vessel: str
    equipment_code: str
    component: str
    parameter: str
    value: float
    timestamp: datetime
    measurement_point: str = ""
    sub_component_code: str = ""
    timestamp_defect: bool = False

    def dimension(self, dimension: Dimension) -> str:
        return getattr(self, dimension.value)


@dataclass
class RowMetadata:
    """Non-numeric cells of one ingested row, kept beside its readings."""

    vessel: str
    equipment_code: str
    timestamp: datetime
    values: Dict[str, Any] = field(default_factory=dict)
    row_number: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ParameterInfo:
    unit: str = ""
    threshold_warning: Optional[float] = None
    threshold_critical: Optional[float] = None

    def status_for(self, value: float) -> ReadingStatus:
        if self.threshold_critical is not None and value >= self.threshold_critical:
            return ReadingStatus.critical
        if self.threshold_warning is not None and value >= self.threshold_warning:
            return ReadingStatus.warning
        return ReadingStatus.good


BUILTIN_PARAMETERS: Dict[str, ParameterInfo] = {
    VELOCITY_RMS: ParameterInfo(unit="mm/s", threshold_warning=4.5, threshold_critical=7.1),
    DISPLACEMENT_RMS: ParameterInfo(unit="µm", threshold_warning=50.0, threshold_critical=100.0),
    ACCELERATION_RMS: ParameterInfo(unit="g", threshold_warning=1.5, threshold_critical=3.0),
    RPM_PARAMETER: ParameterInfo(unit="rpm"),
    AMPERE_PARAMETER: ParameterInfo(unit="A"),
}


@dataclass
class ParameterMetadata:
    """Parameter name to unit/threshold lookup, seeded with the built-in table."""

    entries: Dict[str, ParameterInfo] = field(
        default_factory=lambda: dict(BUILTIN_PARAMETERS)
    )

    def get(self, parameter: str) -> ParameterInfo:
        return self.entries.get(parameter) or ParameterInfo()

    def register(self, parameter: str) -> bool:
        """Add an unknown parameter with an empty unit; return True if it was new."""
        if parameter in self.entries:
            return False
        self.entries[parameter] = ParameterInfo()
        return True

    def update(self, entries: Iterable[tuple[str, ParameterInfo]]) -> None:
        for name, info in entries:
            self.entries[name] = info

    def reset(self) -> None:
        self.entries = dict(BUILTIN_PARAMETERS)

    def __contains__(self, parameter: object) -> bool:
        return parameter in self.entries
