import io
from datetime import datetime, timezone
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from app.api import NOTHING_TO_EXPORT
from app.main import create_app
from datastore.persistence import StorePersistence, build_default_persistence
from datastore.reading_store import ReadingStore
from services.processor import IngestionService, build_default_service
from settings import get_settings
from storage.local_storage import ScopedKeyValueStorage, build_default_storage

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _clock() -> datetime:
    return NOW


def _workbook_bytes() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["MP_NUMBER", "COMP_NAME", "DATE", "TIME", "Vel, Rms (RMS)", "RPM1", "ALT_1"])
    sheet.append(["EQ-1", "Main Engine", 45306, 0.5, 2.5, 1500, 12.0])
    sheet.append(["EQ-1", "Main Engine", 45307, 0.5, 5.0, 1480, 11.0])
    sheet.append(["EQ-2", "Cooling Pump", 45400, 0.25, 1.0, None, None])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def service(tmp_path) -> IngestionService:
    return IngestionService(
        store=ReadingStore(),
        persistence=StorePersistence(
            ScopedKeyValueStorage(scope="test", root_path=tmp_path), key="state"
        ),
        clock=_clock,
    )


@pytest.fixture
def api_client(service: IngestionService, monkeypatch) -> Iterator[TestClient]:
    def build_test_service() -> IngestionService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)
    monkeypatch.setattr("services.processor.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


def _upload(client: TestClient, **form) -> dict:
    response = client.post(
        "/ingest",
        files=[("files", ("Ocean Star CBM.xlsx", _workbook_bytes(), XLSX_TYPE))],
        data={key: str(value).lower() for key, value in form.items()},
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_lifespan_clears_default_service_cache(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("CBM_STORAGE_ROOT", str(tmp_path))
    build_default_service.cache_clear()
    caches = (get_settings, build_default_storage, build_default_persistence)
    for cache in caches:
        cache.cache_clear()
    try:
        app = create_app()
        with TestClient(app):
            during = build_default_service()
        after = build_default_service()
        assert after is not during
    finally:
        build_default_service.cache_clear()
        for cache in caches:
            cache.cache_clear()


def test_ingest_and_summary(api_client: TestClient) -> None:
    payload = _upload(api_client)

    assert payload["status"] == "processed"
    assert payload["record_count"] == 7
    assert payload["vessels"] == ["Ocean Star"]
    assert payload["quality"][0]["quality_score"] == 100.0
    assert payload["persisted"] is True

    summary = api_client.get("/summary").json()
    assert summary["reading_count"] == 7
    assert api_client.get("/vessels").json() == ["Ocean Star"]

    parameters = {item["name"]: item for item in api_client.get("/parameters").json()}
    assert parameters["Vel, Rms (RMS)"]["unit"] == "mm/s"
    assert parameters["Vel, Rms (RMS)"]["threshold_critical"] == 7.1


def test_ingest_form_options_are_applied(api_client: TestClient) -> None:
    payload = _upload(api_client, process_ampere=False, process_rpm=False)

    assert payload["record_count"] == 3
    assert api_client.get("/summary").json()["parameters"] == ["Vel, Rms (RMS)"]


def test_ingest_while_busy_returns_conflict(api_client: TestClient, service: IngestionService) -> None:
    service._batch_lock.acquire()
    try:
        response = api_client.post(
            "/ingest",
            files=[("files", ("Ocean Star CBM.xlsx", _workbook_bytes(), XLSX_TYPE))],
        )
    finally:
        service._batch_lock.release()

    assert response.status_code == 409


def test_cascading_filters(api_client: TestClient) -> None:
    _upload(api_client)

    options = api_client.get("/options/component", params={"vessel": "Ocean Star"}).json()
    assert options == {"dimension": "component", "options": ["Cooling Pump", "Main Engine"]}

    narrowed = api_client.get(
        "/options/component", params={"vessel": "Ocean Star", "equipment_code": "EQ-2"}
    ).json()
    assert narrowed["options"] == ["Cooling Pump"]

    dependents = api_client.get(
        "/filters", params={"changed": "vessel", "vessel": "Ocean Star"}
    ).json()
    assert dependents["changed"] == "vessel"
    assert dependents["options"]["equipment_code"] == ["EQ-1", "EQ-2"]
    assert "vessel" not in dependents["options"]


def test_unknown_dimension_is_rejected(api_client: TestClient) -> None:
    assert api_client.get("/options/hull").status_code == 422


def test_equipment_views(api_client: TestClient) -> None:
    _upload(api_client)

    series = api_client.get(
        "/equipment/series",
        params={"vessel": "Ocean Star", "equipment_code": "EQ-1", "parameter": "Vel, Rms (RMS)"},
    ).json()
    assert [reading["value"] for reading in series["readings"]] == [2.5, 5.0]
    assert series["chart"]["warning_line"] == [4.5, 4.5]
    assert series["chart"]["labels"][0] == "2024-01-15T12:00:00.000Z"

    paired = api_client.get("/equipment/paired", params={"equipment_code": "EQ-1"}).json()
    assert [(point["rpm"], point["ampere"]) for point in paired] == [(1500.0, 12.0), (1480.0, 11.0)]

    recent = api_client.get(
        "/equipment/recent",
        params={"equipment_code": "EQ-1", "parameter": "Vel, Rms (RMS)", "limit": 1},
    ).json()
    assert len(recent) == 1
    assert recent[0]["value"] == 5.0
    assert recent[0]["status"] == "warning"


def test_trend_endpoint(api_client: TestClient) -> None:
    _upload(api_client)

    payload = api_client.get("/trend", params={"parameter": "RPM1"}).json()

    assert payload["unit"] == "rpm"
    assert payload["display"]["average"] == "1490.00 rpm"
    assert len(payload["series_by_vessel"]["Ocean Star"]) == 2
    assert payload["counts_by_vessel"] == {"Ocean Star": 2}

    empty = api_client.get("/trend", params={"parameter": "RPM1", "range_days": 7}).json()
    assert empty["display"]["average"] == "-"
    assert empty["stats"]["average"] is None
    assert empty["counts_by_vessel"] == {}


def test_raw_listing_clamps_page(api_client: TestClient) -> None:
    _upload(api_client)

    payload = api_client.get("/raw", params={"page": 99, "page_size": 5}).json()

    assert payload["total_count"] == 7
    assert payload["total_pages"] == 2
    assert payload["page"] == 2
    assert len(payload["items"]) == 2

    searched = api_client.get("/raw", params={"search": "cooling"}).json()
    assert searched["total_count"] == 1


def test_missing_readings(api_client: TestClient) -> None:
    _upload(api_client)

    payload = api_client.get("/missing", params={"threshold_days": 30}).json()

    items: List[dict] = payload["items"]
    assert payload["count"] == 2
    assert items[0]["equipment_code"] == "EQ-1"
    assert items[0]["days_since_last_reading"] == 136
    assert items[0]["severity"] == "critical"


def test_export_raw_data(api_client: TestClient) -> None:
    _upload(api_client)

    response = api_client.get("/export/raw_data", params={"parameter": "RPM1"})

    assert response.status_code == 200
    assert 'filename="raw_data_2024-06-01.csv"' in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == "Timestamp,Vessel,Equipment Code,Component,Parameter,Value"
    assert lines[1] == "2024-01-15T12:00:00.000Z,Ocean Star,EQ-1,Main Engine,RPM1,1500"
    assert len(lines) == 3


def test_export_missing_readings(api_client: TestClient) -> None:
    _upload(api_client)

    response = api_client.get("/export/missing_readings", params={"threshold_days": 0})

    assert response.status_code == 200
    assert response.text.splitlines()[0] == (
        "vessel,equipmentCode,component,lastReading,daysSinceLastReading"
    )


def test_export_with_nothing_to_export(api_client: TestClient) -> None:
    response = api_client.get("/export/equipment_data")

    assert response.status_code == 404
    assert response.json()["detail"] == NOTHING_TO_EXPORT


def test_trend_export_requires_parameter(api_client: TestClient) -> None:
    _upload(api_client)

    assert api_client.get("/export/trend_data").status_code == 400


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok", "readings": "0"}
    assert api_client.get("/").json()["status"] == "ok"
