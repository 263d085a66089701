from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Dict, Iterable, List, Optional, Tuple

from models.records import ParameterMetadata, Reading, RowMetadata
from services.relationships import FilterCache, RelationshipIndex


@dataclass
class VesselQuality:
    """Data-quality counters accumulated for one vessel during ingestion."""

    rows: int = 0
    skipped_rows: int = 0
    readings: int = 0
    timestamp_defects: int = 0

    @property
    def quality_score(self) -> float:
        if self.rows == 0:
            return 100.0
        return round(100.0 * (1 - self.timestamp_defects / self.rows), 1)


def _add_unique(bucket: Dict[str, List[str]], key: str, value: str) -> None:
    values = bucket.setdefault(key, [])
    if value not in values:
        values.append(value)


class ReadingStore:
    """The single owning table of readings and everything derived from it.

    Vocabularies are only ever written by :meth:`append`, so they remain a
    projection of ``readings``.
    """

    def __init__(self, index: Optional[RelationshipIndex] = None) -> None:
        self.index = index or RelationshipIndex(cache=FilterCache())
        self.parameter_metadata = ParameterMetadata()
        self._readings: List[Reading] = []
        self.vessels: List[str] = []
        self.equipment_codes: Dict[str, List[str]] = {}
        self.components: Dict[str, List[str]] = {}
        self.measurement_points: Dict[str, List[str]] = {}
        self.sub_component_codes: Dict[str, List[str]] = {}
        self.parameters: List[str] = []
        self.quality: Dict[str, VesselQuality] = {}
        self.row_metadata: List[RowMetadata] = []
        self._lock = RLock()

    @property
    def cache(self) -> FilterCache:
        return self.index.cache

    def reset(self) -> None:
        with self._lock:
            self._readings = []
            self.vessels = []
            self.equipment_codes = {}
            self.components = {}
            self.measurement_points = {}
            self.sub_component_codes = {}
            self.parameters = []
            self.quality = {}
            self.row_metadata = []
            self.parameter_metadata.reset()
            self.index.clear()

    def append(self, reading: Reading) -> None:
        with self._lock:
            self._readings.append(reading)
            if reading.vessel not in self.vessels:
                self.vessels.append(reading.vessel)
            _add_unique(self.equipment_codes, reading.vessel, reading.equipment_code)
            _add_unique(self.components, reading.equipment_code, reading.component)
            if reading.measurement_point:
                _add_unique(
                    self.measurement_points, reading.equipment_code, reading.measurement_point
                )
            if reading.sub_component_code:
                _add_unique(
                    self.sub_component_codes, reading.equipment_code, reading.sub_component_code
                )
            if reading.parameter not in self.parameters:
                self.parameters.append(reading.parameter)
            self.parameter_metadata.register(reading.parameter)

    def extend(self, readings: Iterable[Reading]) -> None:
        with self._lock:
            for reading in readings:
                self.append(reading)

    def finalize(self) -> None:
        """Sort the vocabularies once a batch is complete."""
        with self._lock:
            self.vessels.sort()
            self.parameters.sort()
            for bucket in (
                self.equipment_codes,
                self.components,
                self.measurement_points,
                self.sub_component_codes,
            ):
                for values in bucket.values():
                    values.sort()

    def record_metadata(self, entry: RowMetadata) -> None:
        with self._lock:
            self.row_metadata.append(entry)

    def quality_for(self, vessel: str) -> VesselQuality:
        with self._lock:
            return self.quality.setdefault(vessel, VesselQuality())

    def all(self) -> Tuple[Reading, ...]:
        """Snapshot of every reading in insertion order."""
        with self._lock:
            return tuple(self._readings)

    def rebuild_index(self) -> None:
        with self._lock:
            self.index.clear()
            for reading in self._readings:
                self.index.register_reading(reading)

    def __len__(self) -> int:
        return len(self._readings)
