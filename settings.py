from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORAGE_SCOPE_ENV = "CBM_STORAGE_SCOPE"
_STORAGE_ROOT_ENV = "CBM_STORAGE_ROOT"
_STORAGE_KEY_ENV = "CBM_STORAGE_KEY"
_PAGE_SIZE_ENV = "CBM_RAW_PAGE_SIZE"
_EXTRACT_ALL_ENV = "CBM_EXTRACT_ALL_NUMERIC"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    storage_scope: str
    storage_root_path: Optional[str]
    storage_key: str
    raw_page_size: int
    extract_all_numeric: bool
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        storage_scope=_read_str_env(_STORAGE_SCOPE_ENV, "cbm_dashboard"),
        storage_root_path=_read_optional_env(_STORAGE_ROOT_ENV, "./tmp/cbm_storage"),
        storage_key=_read_str_env(_STORAGE_KEY_ENV, "cbm_dashboard_data"),
        raw_page_size=_read_positive_int(_PAGE_SIZE_ENV, 20),
        extract_all_numeric=_read_bool(_EXTRACT_ALL_ENV, True),
        log_level=_read_log_level("INFO"),
    )
