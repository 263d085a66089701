"""Row extraction from uploaded spreadsheet files."""

from __future__ import annotations

import csv
import io
import re
from pathlib import PurePath
from typing import Any, Dict, List

import openpyxl

WORKBOOK_SUFFIXES = frozenset({".xlsx", ".xlsm"})
CSV_SUFFIXES = frozenset({".csv"})

_CBM_MARKER = re.compile("CBM", re.IGNORECASE)


class UnsupportedFileError(ValueError):
    """Raised for uploads that are neither workbooks nor CSV files."""


def extract_vessel_name(filename: str) -> str:
    """Derive the vessel name from an export filename such as ``Ocean Star CBM.xlsx``."""
    stem = PurePath(filename).name
    if "." in stem:
        stem = stem.rsplit(".", 1)[0]
    vessel = _CBM_MARKER.sub("", stem, count=1).strip()
    return vessel or stem.strip() or "Unknown"


def _header(value: Any, position: int) -> str:
    if value is None:
        return f"__EMPTY_{position}" if position else "__EMPTY"
    return str(value).strip()


def _read_workbook(content: bytes) -> List[Dict[str, Any]]:
    workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            return []
        headers = [_header(value, position) for position, value in enumerate(header_row)]

        records: List[Dict[str, Any]] = []
        for values in rows:
            record: Dict[str, Any] = {}
            for header, value in zip(headers, values):
                if value is None or (isinstance(value, str) and not value.strip()):
                    continue
                record[header] = value
            if record:
                records.append(record)
        return records
    finally:
        workbook.close()


def _read_csv(content: bytes) -> List[Dict[str, Any]]:
    text = content.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        return []

    records: List[Dict[str, Any]] = []
    for row in reader:
        record: Dict[str, Any] = {}
        for name, value in row.items():
            if name is None or value is None:
                continue
            candidate = value.strip() if isinstance(value, str) else value
            if candidate == "":
                continue
            record[name.strip()] = candidate
        if record:
            records.append(record)
    return records


def read_rows(filename: str, content: bytes) -> List[Dict[str, Any]]:
    """Return the first sheet of ``content`` as column-name to cell-value mappings."""
    suffix = PurePath(filename).suffix.lower()
    if suffix in WORKBOOK_SUFFIXES:
        return _read_workbook(content)
    if suffix in CSV_SUFFIXES:
        return _read_csv(content)
    raise UnsupportedFileError(f"Unsupported file type for {filename!r}.")
