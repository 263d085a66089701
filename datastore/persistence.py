from __future__ import annotations

import json
import logging
from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from datastore.reading_store import ReadingStore
from models.records import ParameterInfo, Reading
from services.timestamps import format_instant, parse_instant
from settings import get_settings
from storage.local_storage import ScopedKeyValueStorage, build_default_storage

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoredReading(_CamelModel):
    vessel: str = Field(..., min_length=1)
    equipment_code: str = Field(..., min_length=1)
    component: str = ""
    measurement_point: str = ""
    sub_component_code: str = ""
    parameter: str
    value: float
    timestamp: str
    timestamp_defect: bool = False

    @classmethod
    def from_reading(cls, reading: Reading) -> "StoredReading":
        return cls(
            vessel=reading.vessel,
            equipment_code=reading.equipment_code,
            component=reading.component,
            measurement_point=reading.measurement_point,
            sub_component_code=reading.sub_component_code,
            parameter=reading.parameter,
            value=reading.value,
            timestamp=format_instant(reading.timestamp),
            timestamp_defect=reading.timestamp_defect,
        )

    def to_reading(self) -> Reading:
        return Reading(
            vessel=self.vessel,
            equipment_code=self.equipment_code,
            component=self.component,
            parameter=self.parameter,
            value=self.value,
            timestamp=parse_instant(self.timestamp),
            measurement_point=self.measurement_point,
            sub_component_code=self.sub_component_code,
            timestamp_defect=self.timestamp_defect,
        )


class StoredParameter(_CamelModel):
    unit: str = ""
    threshold_warning: Optional[float] = None
    threshold_critical: Optional[float] = None


class PersistedState(_CamelModel):
    """Serializable subset of the reading store."""

    saved_at: Optional[datetime] = None
    vessels: List[str] = Field(default_factory=list)
    equipment_codes: Dict[str, List[str]] = Field(default_factory=dict)
    components: Dict[str, List[str]] = Field(default_factory=dict)
    measurement_points: Dict[str, List[str]] = Field(default_factory=dict)
    sub_component_codes: Dict[str, List[str]] = Field(default_factory=dict)
    parameters: Dict[str, StoredParameter] = Field(default_factory=dict)
    readings: List[StoredReading] = Field(default_factory=list)
    relationships: Optional[Dict[str, Dict[str, Dict[str, List[str]]]]] = None


class StorePersistence:
    """Saves and restores a :class:`ReadingStore` under a single storage key."""

    def __init__(self, storage: ScopedKeyValueStorage, key: str = "cbm_dashboard_data") -> None:
        self.storage = storage
        self.key = key

    def snapshot(self, store: ReadingStore) -> PersistedState:
        return PersistedState(
            saved_at=datetime.now().astimezone(),
            vessels=list(store.vessels),
            equipment_codes={k: list(v) for k, v in store.equipment_codes.items()},
            components={k: list(v) for k, v in store.components.items()},
            measurement_points={k: list(v) for k, v in store.measurement_points.items()},
            sub_component_codes={k: list(v) for k, v in store.sub_component_codes.items()},
            parameters={
                name: StoredParameter(
                    unit=info.unit,
                    threshold_warning=info.threshold_warning,
                    threshold_critical=info.threshold_critical,
                )
                for name, info in store.parameter_metadata.entries.items()
            },
            readings=[StoredReading.from_reading(reading) for reading in store.all()],
            relationships=store.index.to_dict(),
        )

    def save(self, store: ReadingStore) -> bool:
        try:
            payload = self.snapshot(store).model_dump_json(by_alias=True)
            self.storage.set_item(self.key, payload)
        except (OSError, ValueError) as exc:
            logger.error(
                "Failed to save reading store",
                extra={"storage_key": self.key, "reason": str(exc)},
            )
            return False
        logger.info(
            "Reading store saved",
            extra={"storage_key": self.key, "record_count": len(store)},
        )
        return True

    def load(self, store: ReadingStore) -> bool:
        """Replace ``store`` with the persisted state.

        A missing or corrupt payload leaves ``store`` empty and returns False.
        """
        store.reset()
        raw = self.storage.get_item(self.key)
        if not raw:
            return False

        try:
            state = PersistedState.model_validate(json.loads(raw))
            readings = [stored.to_reading() for stored in state.readings]
        except (json.JSONDecodeError, ValidationError, ValueError) as exc:
            logger.warning(
                "Discarding unreadable stored state",
                extra={"storage_key": self.key, "reason": str(exc).splitlines()[0]},
            )
            store.reset()
            return False

        store.extend(readings)
        store.parameter_metadata.update(
            (
                name,
                ParameterInfo(
                    unit=stored.unit,
                    threshold_warning=stored.threshold_warning,
                    threshold_critical=stored.threshold_critical,
                ),
            )
            for name, stored in state.parameters.items()
        )
        store.finalize()
        if state.relationships is None:
            store.rebuild_index()
        else:
            try:
                store.index.load(state.relationships)
            except ValueError as exc:
                logger.warning(
                    "Stored relationships invalid; rebuilding from readings",
                    extra={"storage_key": self.key, "reason": str(exc)},
                )
                store.rebuild_index()

        logger.info(
            "Reading store loaded",
            extra={"storage_key": self.key, "record_count": len(store)},
        )
        return True

    def clear(self) -> None:
        self.storage.remove_item(self.key)


@lru_cache
def build_default_persistence(key: Optional[str] = None) -> StorePersistence:
    settings = get_settings()
    storage_key = settings.storage_key if key is None else key
    return StorePersistence(storage=build_default_storage(), key=storage_key)
