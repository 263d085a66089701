from __future__ import annotations

import re
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx
import typer

from cli.config import CLIConfig

_SPREADSHEET_TYPES = {
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xlsm": "application/vnd.ms-excel.sheet.macroEnabled.12",
    ".csv": "text/csv",
}
_FILENAME_PATTERN = re.compile(r'filename="?([^";]+)"?')


class ApiClient:
    """Minimal HTTP client for the dashboard service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def ingest_files(self, paths: Sequence[Path], form: Mapping[str, Any]) -> Dict[str, Any]:
        for path in paths:
            if not path.is_file():
                raise typer.BadParameter(f"Path {path} is not a file.")

        with ExitStack() as stack:
            files = [
                (
                    "files",
                    (
                        path.name,
                        stack.enter_context(path.open("rb")),
                        _SPREADSHEET_TYPES.get(path.suffix.lower(), "application/octet-stream"),
                    ),
                )
                for path in paths
            ]
            data = {key: str(value).lower() for key, value in form.items() if value is not None}
            try:
                response = self._client.post("/ingest", files=files, data=data)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                self._handle_http_error(exc)
        return response.json()

    def get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        try:
            response = self._client.get(path, params=self._clean(params))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def download_export(
        self, kind: str, params: Mapping[str, Any], output_dir: Path
    ) -> Optional[Path]:
        """Save an export to ``output_dir``; None when the server has nothing to export."""
        try:
            response = self._client.get(f"/export/{kind}", params=self._clean(params))
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

        disposition = response.headers.get("content-disposition", "")
        match = _FILENAME_PATTERN.search(disposition)
        filename = match.group(1) if match else f"{kind}.csv"
        output_dir.mkdir(parents=True, exist_ok=True)
        destination = output_dir / filename
        destination.write_bytes(response.content)
        return destination

    @staticmethod
    def _clean(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {key: value for key, value in (params or {}).items() if value not in (None, "")}

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        if isinstance(detail, list):
            detail = "; ".join(
                str(item.get("msg", item)) if isinstance(item, dict) else str(item)
                for item in detail
            )
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
