from __future__ import annotations

import io

import pytest
from openpyxl import Workbook

from services.spreadsheets import UnsupportedFileError, extract_vessel_name, read_rows


def _workbook_bytes(rows: list[list]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.mark.parametrize(
    ("filename", "vessel"),
    [
        ("Ocean Star CBM.xlsx", "Ocean Star"),
        ("CBM Sea Breeze.xlsx", "Sea Breeze"),
        ("Harbor cbm Light CBM.csv", "Harbor  Light CBM"),
        ("uploads/Ocean Star CBM.xlsx", "Ocean Star"),
        ("Sea.Breeze.xlsx", "Sea.Breeze"),
        ("CBM.xlsx", "CBM"),
        ("", "Unknown"),
    ],
)
def test_extract_vessel_name(filename: str, vessel: str) -> None:
    assert extract_vessel_name(filename) == vessel


def test_read_workbook_rows() -> None:
    content = _workbook_bytes(
        [
            ["MP_NUMBER", "COMP_NAME", "DATE", "TIME", "RPM1"],
            ["EQ-1", "Main Engine", 45306, 0.5, 1500],
            [None, None, None, None, None],
            ["EQ-2", None, 45307, 0.25, 1400],
        ]
    )

    rows = read_rows("Ocean Star CBM.xlsx", content)

    assert rows == [
        {"MP_NUMBER": "EQ-1", "COMP_NAME": "Main Engine", "DATE": 45306, "TIME": 0.5, "RPM1": 1500},
        {"MP_NUMBER": "EQ-2", "DATE": 45307, "TIME": 0.25, "RPM1": 1400},
    ]


def test_read_empty_workbook() -> None:
    assert read_rows("empty.xlsx", _workbook_bytes([])) == []


def test_read_csv_rows_strips_bom_and_blanks() -> None:
    content = "\ufeffMP_NUMBER,DATE,RPM1\nEQ-1,2024-01-15,1500\n,,\nEQ-2, ,1400\n".encode("utf-8")

    rows = read_rows("Sea Breeze CBM.csv", content)

    assert rows == [
        {"MP_NUMBER": "EQ-1", "DATE": "2024-01-15", "RPM1": "1500"},
        {"MP_NUMBER": "EQ-2", "RPM1": "1400"},
    ]


def test_unsupported_extension_is_rejected() -> None:
    with pytest.raises(UnsupportedFileError):
        read_rows("notes.txt", b"hello")
