from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_ingestion, render_missing, render_raw, render_trend


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the vessel CBM dashboard service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Dashboard API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for a response.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Spreadsheet exports, one per vessel."
    ),
    vibration: bool = typer.Option(True, "--vibration/--no-vibration", help="Extract vibration parameters."),
    rpm: bool = typer.Option(True, "--rpm/--no-rpm", help="Extract RPM1."),
    ampere: bool = typer.Option(True, "--ampere/--no-ampere", help="Extract ALT_1."),
    all_numeric: Optional[bool] = typer.Option(
        None,
        "--all-numeric/--builtin-only",
        help="Read every numeric column or only the built-in parameters (server default when omitted).",
    ),
    ignore_toggles: bool = typer.Option(
        False,
        "--ignore-toggles",
        help="With --all-numeric, extract built-in parameters regardless of their toggles.",
    ),
) -> None:
    """Replace the server's readings with the given files."""
    state = _get_state(ctx)
    typer.echo(f"Uploading {len(files)} file(s) to {state.config.base_url} ...")
    payload = state.client.ingest_files(
        files,
        {
            "process_vibration": vibration,
            "process_rpm": rpm,
            "process_ampere": ampere,
            "extract_all_numeric": all_numeric,
            "toggles_gate_builtins": not ignore_toggles,
        },
    )
    render_ingestion(payload)
    if payload.get("status") == "failed":
        raise typer.Exit(code=1)


@app.command("trend")
def trend_command(
    ctx: typer.Context,
    parameter: str = typer.Argument(..., help="Parameter name, e.g. 'Vel, Rms (RMS)'."),
    vessel: Optional[str] = typer.Option(None, "--vessel", help="Limit to one vessel."),
    range_days: Optional[int] = typer.Option(None, "--range-days", min=0, help="Only the last N days."),
) -> None:
    """Show fleet trend statistics for a parameter."""
    state = _get_state(ctx)
    payload = state.client.get_json(
        "/trend", {"parameter": parameter, "vessel": vessel, "range_days": range_days}
    )
    render_trend(payload)


@app.command("missing")
def missing_command(
    ctx: typer.Context,
    threshold_days: int = typer.Option(30, "--threshold-days", min=0, help="Minimum days without a reading."),
    vessel: Optional[str] = typer.Option(None, "--vessel", help="Limit to one vessel."),
    sort_by: str = typer.Option("days", "--sort-by", help="days, vessel or equipment."),
) -> None:
    """List equipment whose last reading is older than the threshold."""
    state = _get_state(ctx)
    payload = state.client.get_json(
        "/missing", {"threshold_days": threshold_days, "vessel": vessel, "sort_by": sort_by}
    )
    render_missing(payload)


@app.command("raw")
def raw_command(
    ctx: typer.Context,
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Substring to look for."),
    vessel: Optional[str] = typer.Option(None, "--vessel"),
    parameter: Optional[str] = typer.Option(None, "--parameter"),
    range_days: Optional[int] = typer.Option(None, "--range-days", min=0),
    page: int = typer.Option(1, "--page"),
) -> None:
    """Page through the raw readings, newest first."""
    state = _get_state(ctx)
    payload = state.client.get_json(
        "/raw",
        {
            "search": search,
            "vessel": vessel,
            "parameter": parameter,
            "range_days": range_days,
            "page": page,
        },
    )
    render_raw(payload)


@app.command("export")
def export_command(
    ctx: typer.Context,
    kind: str = typer.Argument(
        ..., help="equipment_data, trend_data, raw_data or missing_readings."
    ),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", file_okay=False),
    vessel: Optional[str] = typer.Option(None, "--vessel"),
    equipment_code: Optional[str] = typer.Option(None, "--equipment-code"),
    component: Optional[str] = typer.Option(None, "--component"),
    parameter: Optional[str] = typer.Option(None, "--parameter"),
    search: Optional[str] = typer.Option(None, "--search"),
    range_days: Optional[int] = typer.Option(None, "--range-days", min=0),
    threshold_days: Optional[int] = typer.Option(None, "--threshold-days", min=0),
) -> None:
    """Download a CSV export."""
    state = _get_state(ctx)
    destination = state.client.download_export(
        kind,
        {
            "vessel": vessel,
            "equipment_code": equipment_code,
            "component": component,
            "parameter": parameter,
            "search": search,
            "range_days": range_days,
            "threshold_days": threshold_days,
        },
        output_dir,
    )
    if destination is None:
        typer.secho("No data to export.", fg=typer.colors.YELLOW)
        return
    typer.secho(f"Exported to {destination}", fg=typer.colors.GREEN)
