"""Key-value record stores used for saves and settings.

Every write replaces a whole record; nothing is patched in place.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import string
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

IS_WEB = sys.platform == "emscripten"

_VALID_KEY_CHARS = set(string.ascii_letters + string.digits + "-_.")


class StoreError(Exception):
    """Raised when a record cannot be read from or written to a store."""


def get_local_storage() -> Optional[Any]:
    if not IS_WEB:
        return None
    try:
        from js import localStorage  # type: ignore
    except ImportError:
        return None
    return localStorage


def _encode(record: Any) -> str:
    try:
        return json.dumps(record, indent=2)
    except (TypeError, ValueError) as exc:
        raise StoreError(f"Record is not JSON serialisable: {exc}") from exc


def _decode(raw: str, key: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StoreError(f"Invalid JSON in '{key}': {exc}") from exc


class MemoryStore:
    """In-process store; records are kept as JSON text to avoid aliasing."""

    def __init__(self) -> None:
        self._records: Dict[str, str] = {}

    def put(self, key: str, record: Any) -> None:
        self._records[key] = _encode(record)

    def get(self, key: str) -> Any:
        raw = self._records.get(key)
        if raw is None:
            return None
        return _decode(raw, key)

    def delete(self, key: str) -> None:
        self._records.pop(key, None)


class JsonFileStore:
    """One JSON file per key under ``base_path``, replaced atomically."""

    BACKUP_SUFFIX = ".bak"

    def __init__(self, base_path: Path | str = "saves", *, keep_backup: bool = True) -> None:
        self.base_path = Path(base_path)
        self.keep_backup = keep_backup

    def path_for(self, key: str) -> Path:
        cleaned = "".join(ch for ch in key if ch in _VALID_KEY_CHARS).strip(".")
        if not cleaned:
            raise StoreError(f"Invalid store key {key!r}.")
        return self.base_path / f"{cleaned}.json"

    def put(self, key: str, record: Any) -> None:
        payload = _encode(record)
        path = self.path_for(key)
        tmp_path: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", delete=False, dir=path.parent, prefix=path.name, suffix=".tmp", encoding="utf-8"
            ) as tmp_file:
                tmp_file.write(payload)
                tmp_file.write("\n")
                tmp_path = Path(tmp_file.name)
            if self.keep_backup and path.exists():
                shutil.copy2(path, path.with_suffix(path.suffix + self.BACKUP_SUFFIX))
            os.replace(str(tmp_path), str(path))
        except OSError as exc:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
            raise StoreError(f"Failed to write {path}: {exc}") from exc

    def get(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Failed to read {path}: {exc}") from exc
        return _decode(raw, key)

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        for target in (path, path.with_suffix(path.suffix + self.BACKUP_SUFFIX)):
            try:
                target.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StoreError(f"Failed to delete {target}: {exc}") from exc


class LocalStorageStore:
    """Browser ``localStorage`` store for the Pyodide build."""

    PREFIX = "vn."

    def __init__(self, local_storage: Any) -> None:
        if local_storage is None:
            raise StoreError("localStorage is unavailable.")
        self._local_storage = local_storage

    def _key(self, key: str) -> str:
        return f"{self.PREFIX}{key}"

    def put(self, key: str, record: Any) -> None:
        payload = _encode(record)
        try:
            self._local_storage.setItem(self._key(key), payload)
        except Exception as exc:
            # Pyodide surfaces quota and security errors as JsException.
            raise StoreError(f"localStorage write failed for '{key}': {exc}") from exc

    def get(self, key: str) -> Any:
        try:
            raw = self._local_storage.getItem(self._key(key))
        except Exception as exc:
            raise StoreError(f"localStorage read failed for '{key}': {exc}") from exc
        if raw is None:
            return None
        return _decode(str(raw), key)

    def delete(self, key: str) -> None:
        try:
            self._local_storage.removeItem(self._key(key))
        except Exception as exc:
            raise StoreError(f"localStorage delete failed for '{key}': {exc}") from exc


def default_store(base_path: Path | str = "saves"):
    local_storage = get_local_storage()
    if local_storage is not None:
        return LocalStorageStore(local_storage)
    if IS_WEB:
        logger.warning("localStorage unavailable in web build; falling back to filesystem storage.")
    return JsonFileStore(base_path)
