"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import Reading, ReadingStatus


class ProcessingStatus(str, Enum):
    """Outcome of an ingestion batch."""

    processed = "processed"
    partial = "partial"
    failed = "failed"


class FailureCategory(str, Enum):
    empty = "empty"
    unsupported = "unsupported"
    parse = "parse"


class FileFailure(BaseModel):
    """A file that could not be read; the rest of the batch still ran."""

    filename: str
    category: FailureCategory
    reason: str


class VesselQualityReport(BaseModel):
    vessel: str
    rows: int = Field(..., ge=0)
    skipped_rows: int = Field(..., ge=0)
    readings: int = Field(..., ge=0)
    timestamp_defects: int = Field(..., ge=0)
    quality_score: float = Field(..., ge=0, le=100)


class IngestionResult(BaseModel):
    """Summary returned once every file of a batch has been handled."""

    status: ProcessingStatus
    started_at: datetime
    finished_at: datetime
    processing_ms: int = Field(..., ge=0)
    processed_files: int = Field(..., ge=0)
    failed_files: int = Field(..., ge=0)
    record_count: int = Field(..., ge=0)
    row_errors: int = Field(default=0, ge=0)
    vessels: List[str] = Field(default_factory=list)
    failures: List[FileFailure] = Field(default_factory=list)
    quality: List[VesselQualityReport] = Field(default_factory=list)
    persisted: bool = False


class StoreSummary(BaseModel):
    reading_count: int
    vessels: List[str]
    parameters: List[str]


class ParameterOut(BaseModel):
    name: str
    unit: str = ""
    threshold_warning: Optional[float] = None
    threshold_critical: Optional[float] = None


class ReadingOut(BaseModel):
    timestamp: datetime
    vessel: str
    equipment_code: str
    component: str
    measurement_point: str = ""
    sub_component_code: str = ""
    parameter: str
    value: float
    unit: str = ""
    timestamp_defect: bool = False

    @classmethod
    def from_reading(cls, reading: Reading, unit: str = "") -> "ReadingOut":
        return cls(
            timestamp=reading.timestamp,
            vessel=reading.vessel,
            equipment_code=reading.equipment_code,
            component=reading.component,
            measurement_point=reading.measurement_point,
            sub_component_code=reading.sub_component_code,
            parameter=reading.parameter,
            value=reading.value,
            unit=unit,
            timestamp_defect=reading.timestamp_defect,
        )


class RecentReadingOut(ReadingOut):
    status: ReadingStatus


class ChartOut(BaseModel):
    """Series + labels contract consumed by a chart renderer."""

    parameter: str
    unit: str
    label: str
    labels: List[str]
    values: List[float]
    warning_line: Optional[List[float]] = None
    critical_line: Optional[List[float]] = None


class EquipmentSeriesResponse(BaseModel):
    readings: List[ReadingOut]
    chart: Optional[ChartOut] = None


class PairedPointOut(BaseModel):
    timestamp: datetime
    rpm: float
    ampere: float


class TrendPointOut(BaseModel):
    x: datetime
    y: float


class TrendStatsOut(BaseModel):
    average: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    stddev: Optional[float] = None


class TrendResponse(BaseModel):
    parameter: str
    unit: str = ""
    series_by_vessel: Dict[str, List[TrendPointOut]] = Field(default_factory=dict)
    counts_by_vessel: Dict[str, int] = Field(
        default_factory=dict, description="Readings per vessel in the selection."
    )
    stats: TrendStatsOut
    display: Dict[str, str] = Field(
        default_factory=dict, description="Two-decimal statistics, '-' when empty."
    )
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None


class RawPageResponse(BaseModel):
    total_count: int
    total_pages: int
    page: int
    page_size: int
    items: List[ReadingOut]


class MissingEquipmentOut(BaseModel):
    vessel: str
    equipment_code: str
    component: str
    last_reading: datetime
    days_since_last_reading: int
    severity: str


class MissingResponse(BaseModel):
    count: int
    items: List[MissingEquipmentOut]


class OptionsResponse(BaseModel):
    dimension: str
    options: List[str]


class DependentOptionsResponse(BaseModel):
    changed: str
    options: Dict[str, List[str]]
