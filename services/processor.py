"""Batch ingestion of spreadsheet exports into the reading store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from threading import Lock
from typing import List, Optional, Sequence

from app.schemas import (
    FailureCategory,
    FileFailure,
    IngestionResult,
    ProcessingStatus,
    VesselQualityReport,
)
from datastore.persistence import StorePersistence, build_default_persistence
from datastore.reading_store import ReadingStore
from services.normalizer import Clock, ProcessingOptions, RowNormalizer, utc_now
from services.queries import QueryEngine
from services.spreadsheets import UnsupportedFileError, extract_vessel_name, read_rows
from settings import get_settings

logger = logging.getLogger(__name__)


class IngestionInProgressError(RuntimeError):
    """Raised when a batch is submitted while another one is still running."""


@dataclass(frozen=True)
class SourceFile:
    filename: str
    content: bytes


@dataclass
class _FileOutcome:
    records: int = 0
    row_errors: int = 0
    failure: Optional[FileFailure] = None


class IngestionService:
    """Owns the reading store and rebuilds it from batches of uploaded files."""

    def __init__(
        self,
        store: ReadingStore,
        persistence: Optional[StorePersistence] = None,
        options: Optional[ProcessingOptions] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.persistence = persistence
        self.options = options or ProcessingOptions()
        self.clock = clock
        self.engine = QueryEngine(store, clock=clock)
        self._batch_lock = Lock()

    def restore(self) -> bool:
        """Load previously persisted readings, if any."""
        if self.persistence is None:
            return False
        return self.persistence.load(self.store)

    def ingest(
        self, files: Sequence[SourceFile], options: Optional[ProcessingOptions] = None
    ) -> IngestionResult:
        """Replace the store with the readings found in ``files``.

        Files are processed strictly in order. A file that cannot be read is
        recorded as a failure and the batch moves on to the next one.
        """
        if not files:
            raise ValueError("No files supplied.")
        if not self._batch_lock.acquire(blocking=False):
            raise IngestionInProgressError("An ingestion batch is already running.")

        try:
            return self._run_batch(files, options or self.options)
        finally:
            self._batch_lock.release()

    @property
    def is_ingesting(self) -> bool:
        return self._batch_lock.locked()

    def _run_batch(
        self, files: Sequence[SourceFile], options: ProcessingOptions
    ) -> IngestionResult:
        start_time = time.perf_counter()
        started_at = self.clock()
        self.store.reset()
        normalizer = RowNormalizer(self.store, options=options, clock=self.clock)

        failures: List[FileFailure] = []
        record_count = 0
        row_errors = 0
        processed_files = 0

        for source in files:
            outcome = self._process_file(normalizer, source)
            row_errors += outcome.row_errors
            if outcome.failure is not None:
                failures.append(outcome.failure)
                continue
            processed_files += 1
            record_count += outcome.records

        self.store.finalize()
        persisted = self.persistence.save(self.store) if self.persistence else False

        if processed_files == 0:
            status = ProcessingStatus.failed
        elif failures:
            status = ProcessingStatus.partial
        else:
            status = ProcessingStatus.processed

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Ingestion batch finished",
            extra={
                "file_count": len(files),
                "failed_count": len(failures),
                "record_count": record_count,
                "processing_ms": processing_ms,
            },
        )

        return IngestionResult(
            status=status,
            started_at=started_at,
            finished_at=self.clock(),
            processing_ms=processing_ms,
            processed_files=processed_files,
            failed_files=len(failures),
            record_count=record_count,
            row_errors=row_errors,
            vessels=list(self.store.vessels),
            failures=failures,
            quality=[
                VesselQualityReport(
                    vessel=vessel,
                    rows=quality.rows,
                    skipped_rows=quality.skipped_rows,
                    readings=quality.readings,
                    timestamp_defects=quality.timestamp_defects,
                    quality_score=quality.quality_score,
                )
                for vessel, quality in sorted(self.store.quality.items())
            ],
            persisted=persisted,
        )

    def _process_file(self, normalizer: RowNormalizer, source: SourceFile) -> _FileOutcome:
        vessel = extract_vessel_name(source.filename)
        if not source.content:
            return self._fail(source, FailureCategory.empty, "File is empty.")

        try:
            rows = read_rows(source.filename, source.content)
        except UnsupportedFileError as exc:
            return self._fail(source, FailureCategory.unsupported, str(exc))
        except Exception as exc:  # noqa: BLE001 - any reader error only sinks this file
            return self._fail(source, FailureCategory.parse, f"{type(exc).__name__}: {exc}")

        outcome = _FileOutcome()
        for row_number, row in enumerate(rows, start=2):
            try:
                outcome.records += len(normalizer.normalize(row, vessel, row_number=row_number))
            except Exception as exc:  # noqa: BLE001 - one bad row never aborts the file
                outcome.row_errors += 1
                logger.warning(
                    "Skipping row",
                    extra={
                        "source_file": source.filename,
                        "vessel": vessel,
                        "row_number": row_number,
                        "reason": str(exc),
                    },
                )

        logger.info(
            "File processed",
            extra={
                "source_file": source.filename,
                "vessel": vessel,
                "record_count": outcome.records,
            },
        )
        return outcome

    @staticmethod
    def _fail(source: SourceFile, category: FailureCategory, reason: str) -> _FileOutcome:
        logger.error(
            "Error processing file",
            extra={"source_file": source.filename, "category": category.value, "reason": reason},
        )
        return _FileOutcome(
            failure=FileFailure(filename=source.filename, category=category, reason=reason)
        )


@lru_cache
def build_default_service() -> IngestionService:
    """Factory that wires the service to the configured storage and restores saved state."""
    settings = get_settings()
    service = IngestionService(
        store=ReadingStore(),
        persistence=build_default_persistence(),
        options=ProcessingOptions(extract_all_numeric=settings.extract_all_numeric),
    )
    service.restore()
    return service
