from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_ingestion(payload: Dict[str, Any]) -> None:
    echo_heading("Ingestion Result")
    echo_key_values(
        [
            ("status", payload.get("status")),
            ("processed_files", payload.get("processed_files")),
            ("failed_files", payload.get("failed_files")),
            ("record_count", payload.get("record_count")),
            ("processing_ms", payload.get("processing_ms")),
            ("persisted", payload.get("persisted")),
        ]
    )

    quality = payload.get("quality") or []
    typer.echo()
    echo_heading("Data Quality")
    if quality:
        for item in quality:
            typer.echo(
                f"  - {item.get('vessel')}: {item.get('readings')} readings, "
                f"{item.get('timestamp_defects')} timestamp defects, "
                f"score {item.get('quality_score')}"
            )
    else:
        typer.echo("No vessels ingested.")

    failures = payload.get("failures") or []
    typer.echo()
    echo_heading("Failures")
    if failures:
        for failure in failures:
            typer.secho(
                f"  - {failure.get('filename')} ({failure.get('category')}): {failure.get('reason')}",
                fg=typer.colors.RED,
            )
    else:
        typer.echo("No failures recorded.")


def render_trend(payload: Dict[str, Any]) -> None:
    unit = payload.get("unit") or ""
    echo_heading(f"Trend: {payload.get('parameter')}" + (f" ({unit})" if unit else ""))
    display = payload.get("display") or {}
    echo_key_values(
        [
            ("average", display.get("average", "-")),
            ("minimum", display.get("minimum", "-")),
            ("maximum", display.get("maximum", "-")),
            ("stddev", display.get("stddev", "-")),
        ]
    )
    series: Dict[str, List[Dict[str, Any]]] = payload.get("series_by_vessel") or {}
    typer.echo()
    echo_heading("Series")
    if not series:
        typer.echo("No data available.")
        return
    counts: Dict[str, int] = payload.get("counts_by_vessel") or {}
    for vessel, points in series.items():
        typer.echo(f"  - {vessel}: {counts.get(vessel, len(points))} points")


def render_missing(payload: Dict[str, Any]) -> None:
    echo_heading(f"Missing Readings ({payload.get('count', 0)})")
    items = payload.get("items") or []
    if not items:
        typer.echo("No missing readings found.")
        return
    colors = {"critical": typer.colors.RED, "warning": typer.colors.YELLOW}
    for item in items:
        typer.secho(
            f"  - {item.get('vessel')} | {item.get('equipment_code')} | {item.get('component')} | "
            f"last {item.get('last_reading')} | {item.get('days_since_last_reading')} days",
            fg=colors.get(item.get("severity")),
        )


def render_raw(payload: Dict[str, Any]) -> None:
    echo_heading(
        f"Readings {payload.get('total_count', 0)} "
        f"(page {payload.get('page')}/{payload.get('total_pages')})"
    )
    items = payload.get("items") or []
    if not items:
        typer.echo("No data available.")
        return
    for item in items:
        unit = item.get("unit") or ""
        typer.echo(
            f"  {item.get('timestamp')} | {item.get('vessel')} | {item.get('equipment_code')} | "
            f"{item.get('component')} | {item.get('parameter')} | {item.get('value')} {unit}".rstrip()
        )
