from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Optional

from settings import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class ScopedKeyValueStorage:
    """String key-value storage confined to one scope.

    Values are kept in memory and, when ``root_path`` is set, mirrored to
    ``<root_path>/<scope>/<key>.json`` so they survive a restart.
    """

    def __init__(self, scope: str, root_path: Optional[Path] = None) -> None:
        self.scope = scope
        self._items: Dict[str, str] = {}
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            self.scope_path.mkdir(parents=True, exist_ok=True)

    @property
    def scope_path(self) -> Path:
        assert self.root_path is not None
        return self.root_path / _UNSAFE_KEY_CHARS.sub("_", self.scope)

    def _path_for(self, key: str) -> Path:
        return self.scope_path / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value
            if self.root_path:
                self._path_for(key).write_text(value, encoding="utf-8")

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._items.get(key)
            if value is not None:
                return value

        if self.root_path:
            path = self._path_for(key)
            if path.exists():
                try:
                    value = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    logger.warning(
                        "Stored value could not be read", extra={"storage_key": key}
                    )
                    return None
                with self._lock:
                    self._items[key] = value
                return value
        return None

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)
            if self.root_path:
                self._path_for(key).unlink(missing_ok=True)

    def keys(self) -> Iterable[str]:
        with self._lock:
            keys = set(self._items.keys())
        if self.root_path:
            for path in self.scope_path.glob("*.json"):
                keys.add(path.stem)
        return sorted(keys)


@lru_cache
def build_default_storage(
    scope: Optional[str] = None,
    root_path: Optional[str] = None,
) -> ScopedKeyValueStorage:
    settings = get_settings()
    storage_scope = settings.storage_scope if scope is None else scope
    storage_root = settings.storage_root_path if root_path is None else root_path
    path = Path(storage_root) if storage_root else None
    return ScopedKeyValueStorage(scope=storage_scope, root_path=path)
