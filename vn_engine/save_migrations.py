"""Upgrade older save records to the current shape."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict

CURRENT_VERSION = 1


class SaveMigrationError(Exception):
    """Raised when a save record cannot be migrated to the current shape."""


Migration = Callable[[Dict[str, Any]], Dict[str, Any]]


def detect_version(record: Dict[str, Any]) -> int:
    # Records carry no explicit version; the browser build wrote ``seenScenes``.
    if "visitedScenes" in record:
        return 1
    return 0


def _migrate_v0_to_v1(record: Dict[str, Any]) -> Dict[str, Any]:
    if "sceneId" not in record:
        raise SaveMigrationError("Missing scene for legacy save.")
    seen = record.get("seenScenes")
    if not isinstance(seen, list):
        seen = []
    upgraded = {
        "sceneId": record.get("sceneId"),
        "lineIndex": record.get("lineIndex") or 0,
        "flags": record.get("flags") or {},
        "visitedScenes": list(dict.fromkeys(v for v in seen if isinstance(v, str))),
    }
    return upgraded


MIGRATIONS: Dict[int, Migration] = {
    0: _migrate_v0_to_v1,
}


def migrate_record(record: Any, target_version: int = CURRENT_VERSION) -> Dict[str, Any]:
    if not isinstance(record, dict):
        raise SaveMigrationError("Save record was not an object.")

    version = detect_version(record)
    if version > target_version:
        raise SaveMigrationError(
            f"Save schema {version} is newer than supported {target_version}."
        )

    current = copy.deepcopy(record)
    while version < target_version:
        migrator = MIGRATIONS.get(version)
        if migrator is None:
            raise SaveMigrationError(f"No migration available for save schema {version}.")
        current = migrator(current)
        next_version = detect_version(current)
        if next_version <= version:
            raise SaveMigrationError("Migration did not advance the save schema.")
        version = next_version

    return current
