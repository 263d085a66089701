"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status

from app.schemas import (
    ChartOut,
    DependentOptionsResponse,
    EquipmentSeriesResponse,
    IngestionResult,
    MissingEquipmentOut,
    MissingResponse,
    OptionsResponse,
    PairedPointOut,
    ParameterOut,
    RawPageResponse,
    ReadingOut,
    RecentReadingOut,
    StoreSummary,
    TrendPointOut,
    TrendResponse,
    TrendStatsOut,
)
from models.records import Dimension, Reading
from services.exporter import ExportKind, export_missing, export_readings
from services.normalizer import ProcessingOptions
from services.processor import (
    IngestionInProgressError,
    IngestionService,
    SourceFile,
    build_default_service,
)
from services.queries import MissingSortKey
from settings import get_settings

router = APIRouter()

NOTHING_TO_EXPORT = "No data to export."


def get_service() -> IngestionService:
    return build_default_service()


def dimension_selections(
    vessel: Optional[str] = Query(None),
    equipment_code: Optional[str] = Query(None),
    component: Optional[str] = Query(None),
    measurement_point: Optional[str] = Query(None),
    sub_component_code: Optional[str] = Query(None),
) -> Dict[Dimension, Optional[str]]:
    return {
        Dimension.vessel: vessel,
        Dimension.equipment_code: equipment_code,
        Dimension.component: component,
        Dimension.measurement_point: measurement_point,
        Dimension.sub_component_code: sub_component_code,
    }


def _reading_out(service: IngestionService, reading: Reading) -> ReadingOut:
    unit = service.store.parameter_metadata.get(reading.parameter).unit
    return ReadingOut.from_reading(reading, unit=unit)


@router.post(
    "/ingest",
    response_model=IngestionResult,
    summary="Replace the reading store with the contents of the uploaded spreadsheets.",
)
async def ingest_files(
    files: List[UploadFile] = File(..., description="CBM spreadsheet exports, one per vessel."),
    process_vibration: bool = Form(True),
    process_rpm: bool = Form(True),
    process_ampere: bool = Form(True),
    extract_all_numeric: Optional[bool] = Form(None),
    toggles_gate_builtins: bool = Form(True),
    service: IngestionService = Depends(get_service),
) -> IngestionResult:
    sources: List[SourceFile] = []
    for upload in files:
        content = await upload.read()
        sources.append(SourceFile(filename=upload.filename or "upload.xlsx", content=content))
        await upload.close()

    options = ProcessingOptions(
        process_vibration=process_vibration,
        process_rpm=process_rpm,
        process_ampere=process_ampere,
        extract_all_numeric=(
            get_settings().extract_all_numeric if extract_all_numeric is None else extract_all_numeric
        ),
        toggles_gate_builtins=toggles_gate_builtins,
    )
    try:
        return service.ingest(sources, options)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except IngestionInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get("/summary", response_model=StoreSummary, summary="Reading count and vocabularies.")
async def store_summary(service: IngestionService = Depends(get_service)) -> StoreSummary:
    store = service.store
    return StoreSummary(
        reading_count=len(store),
        vessels=list(store.vessels),
        parameters=list(store.parameters),
    )


@router.get("/vessels", response_model=List[str], summary="Known vessels, sorted.")
async def list_vessels(service: IngestionService = Depends(get_service)) -> List[str]:
    return list(service.store.vessels)


@router.get("/parameters", response_model=List[ParameterOut], summary="Parameter units and thresholds.")
async def list_parameters(service: IngestionService = Depends(get_service)) -> List[ParameterOut]:
    metadata = service.store.parameter_metadata
    return [
        ParameterOut(
            name=name,
            unit=metadata.get(name).unit,
            threshold_warning=metadata.get(name).threshold_warning,
            threshold_critical=metadata.get(name).threshold_critical,
        )
        for name in service.store.parameters
    ]


@router.get(
    "/options/{dimension}",
    response_model=OptionsResponse,
    summary="Options for one dimension consistent with every other selection.",
)
async def dimension_options(
    dimension: Dimension,
    selections: Dict[Dimension, Optional[str]] = Depends(dimension_selections),
    service: IngestionService = Depends(get_service),
) -> OptionsResponse:
    options = service.store.index.options_for(dimension, selections)
    return OptionsResponse(dimension=dimension.value, options=options)


@router.get(
    "/filters",
    response_model=DependentOptionsResponse,
    summary="Options for every dropdown that depends on the one just changed.",
)
async def dependent_filters(
    changed: Dimension = Query(..., description="Dimension the user changed last."),
    selections: Dict[Dimension, Optional[str]] = Depends(dimension_selections),
    service: IngestionService = Depends(get_service),
) -> DependentOptionsResponse:
    options = service.store.index.dependent_options(selections, changed)
    return DependentOptionsResponse(changed=changed.value, options=options)


@router.get(
    "/equipment/series",
    response_model=EquipmentSeriesResponse,
    summary="Readings of one equipment selection in time order.",
)
async def equipment_series(
    vessel: Optional[str] = Query(None),
    equipment_code: Optional[str] = Query(None),
    component: Optional[str] = Query(None),
    parameter: Optional[str] = Query(None),
    service: IngestionService = Depends(get_service),
) -> EquipmentSeriesResponse:
    readings = service.engine.equipment_series(
        vessel=vessel, equipment_code=equipment_code, component=component, parameter=parameter
    )
    chart: Optional[ChartOut] = None
    if parameter and readings:
        trend = service.engine.trend_chart(parameter, readings)
        chart = ChartOut(
            parameter=trend.parameter,
            unit=trend.unit,
            label=trend.label,
            labels=trend.labels,
            values=trend.values,
            warning_line=trend.warning_line,
            critical_line=trend.critical_line,
        )
    return EquipmentSeriesResponse(
        readings=[_reading_out(service, reading) for reading in readings],
        chart=chart,
    )


@router.get(
    "/equipment/paired",
    response_model=List[PairedPointOut],
    summary="RPM against current for readings sharing a timestamp.",
)
async def equipment_paired(
    vessel: Optional[str] = Query(None),
    equipment_code: Optional[str] = Query(None),
    component: Optional[str] = Query(None),
    service: IngestionService = Depends(get_service),
) -> List[PairedPointOut]:
    points = service.engine.paired_series(
        vessel=vessel, equipment_code=equipment_code, component=component
    )
    return [
        PairedPointOut(timestamp=point.timestamp, rpm=point.rpm, ampere=point.ampere)
        for point in points
    ]


@router.get(
    "/equipment/recent",
    response_model=List[RecentReadingOut],
    summary="Newest readings of an equipment selection with threshold status.",
)
async def equipment_recent(
    vessel: Optional[str] = Query(None),
    equipment_code: Optional[str] = Query(None),
    component: Optional[str] = Query(None),
    parameter: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=500),
    service: IngestionService = Depends(get_service),
) -> List[RecentReadingOut]:
    recent = service.engine.recent_readings(
        vessel=vessel,
        equipment_code=equipment_code,
        component=component,
        parameter=parameter,
        limit=limit,
    )
    return [
        RecentReadingOut(
            **ReadingOut.from_reading(item.reading, unit=item.unit).model_dump(),
            status=item.status,
        )
        for item in recent
    ]


@router.get("/trend", response_model=TrendResponse, summary="Fleet-wide trend of one parameter.")
async def fleet_trend(
    parameter: str = Query(..., min_length=1),
    vessel: Optional[str] = Query(None),
    range_days: Optional[int] = Query(None, ge=0),
    service: IngestionService = Depends(get_service),
) -> TrendResponse:
    trend = service.engine.fleet_trend(parameter, vessel=vessel, range_days=range_days)
    info = service.store.parameter_metadata.get(parameter)
    return TrendResponse(
        parameter=parameter,
        unit=info.unit,
        series_by_vessel={
            name: [TrendPointOut(x=point.x, y=point.y) for point in points]
            for name, points in trend.series_by_vessel.items()
        },
        counts_by_vessel=trend.counts_by_vessel,
        stats=TrendStatsOut(
            average=trend.stats.average,
            minimum=trend.stats.minimum,
            maximum=trend.stats.maximum,
            stddev=trend.stats.stddev,
        ),
        display=trend.stats.formatted(info.unit),
        warning_threshold=info.threshold_warning,
        critical_threshold=info.threshold_critical,
    )


@router.get("/raw", response_model=RawPageResponse, summary="Searchable, paginated reading listing.")
async def raw_listing(
    search: Optional[str] = Query(None),
    vessel: Optional[str] = Query(None),
    parameter: Optional[str] = Query(None),
    range_days: Optional[int] = Query(None, ge=0),
    page: int = Query(1),
    page_size: Optional[int] = Query(None, ge=1, le=1000),
    service: IngestionService = Depends(get_service),
) -> RawPageResponse:
    result = service.engine.raw_listing(
        search=search,
        vessel=vessel,
        parameter=parameter,
        range_days=range_days,
        page=page,
        page_size=page_size or get_settings().raw_page_size,
    )
    return RawPageResponse(
        total_count=result.total_count,
        total_pages=result.total_pages,
        page=result.page,
        page_size=result.page_size,
        items=[_reading_out(service, reading) for reading in result.items],
    )


@router.get(
    "/missing",
    response_model=MissingResponse,
    summary="Equipment without a reading for at least the threshold number of days.",
)
async def missing_readings(
    vessel: Optional[str] = Query(None),
    threshold_days: int = Query(30, ge=0),
    sort_by: MissingSortKey = Query(MissingSortKey.days),
    service: IngestionService = Depends(get_service),
) -> MissingResponse:
    items = service.engine.missing_equipment(threshold_days, vessel=vessel, sort_by=sort_by)
    return MissingResponse(
        count=len(items),
        items=[
            MissingEquipmentOut(
                vessel=item.vessel,
                equipment_code=item.equipment_code,
                component=item.component,
                last_reading=item.last_reading,
                days_since_last_reading=item.days_since_last_reading,
                severity=item.severity.value,
            )
            for item in items
        ],
    )


@router.get(
    "/export/{kind}",
    summary="Download a query result as CSV.",
    response_class=Response,
)
async def export_csv(
    kind: ExportKind,
    vessel: Optional[str] = Query(None),
    equipment_code: Optional[str] = Query(None),
    component: Optional[str] = Query(None),
    parameter: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    range_days: Optional[int] = Query(None, ge=0),
    threshold_days: int = Query(30, ge=0),
    service: IngestionService = Depends(get_service),
) -> Response:
    engine = service.engine
    today = service.clock().date()

    if kind is ExportKind.equipment_data:
        readings = engine.equipment_series(
            vessel=vessel, equipment_code=equipment_code, component=component, parameter=parameter
        )
        export = export_readings(kind, readings, today)
    elif kind is ExportKind.trend_data:
        if not parameter:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A parameter is required for trend exports.",
            )
        trend = engine.fleet_trend(parameter, vessel=vessel, range_days=range_days)
        export = export_readings(kind, trend.readings, today)
    elif kind is ExportKind.raw_data:
        readings = engine.filter_raw(
            search=search, vessel=vessel, parameter=parameter, range_days=range_days
        )
        export = export_readings(
            kind, sorted(readings, key=lambda reading: reading.timestamp), today
        )
    else:
        items = engine.missing_equipment(threshold_days, vessel=vessel)
        export = export_missing(items, today)

    if export is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOTHING_TO_EXPORT)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(service: IngestionService = Depends(get_service)) -> dict[str, str]:
    return {"status": "ok", "readings": str(len(service.store))}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
