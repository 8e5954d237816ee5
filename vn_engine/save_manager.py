"""Save/continue for the narrative state."""

from __future__ import annotations

import logging
from typing import Optional

from .content import ContentStore
from .interfaces import Store
from .save_migrations import SaveMigrationError, migrate_record
from .state import NarrativeState, StateRecordError
from .storage import StoreError

logger = logging.getLogger(__name__)

SAVE_KEY = "vn_save_v1"


class SaveError(Exception):
    """Base class for save related failures."""


class PersistenceReadError(SaveError):
    """Raised when the persisted record is missing or malformed."""


class PersistenceWriteError(SaveError):
    """Raised when the store refuses a save."""


class SaveManager:
    """Whole-record save/load of a ``NarrativeState`` through a store.

    Read failures mean "no save" and write failures are logged; neither
    interrupts a running story.
    """

    def __init__(self, store: Store, *, content: Optional[ContentStore] = None, key: str = SAVE_KEY) -> None:
        self.store = store
        self.content = content
        self.key = key
        self.last_error: Optional[SaveError] = None

    # ---------- Public API ----------
    def has_save(self) -> bool:
        try:
            return self.store.get(self.key) is not None
        except StoreError as exc:
            logger.warning("Save store unreadable: %s", exc)
            return False

    def save(self, state: NarrativeState) -> bool:
        try:
            self.write(state)
        except PersistenceWriteError as err:
            self.last_error = err
            logger.warning("%s Progress is kept in memory for this session.", err)
            return False
        self.last_error = None
        return True

    def write(self, state: NarrativeState) -> None:
        record = state.to_record()
        try:
            self.store.put(self.key, record)
        except (StoreError, OSError) as exc:
            raise PersistenceWriteError(f"Failed to save progress: {exc}") from exc

    def load(self) -> Optional[NarrativeState]:
        try:
            state = self.read()
        except PersistenceReadError as err:
            self.last_error = err
            logger.warning("Ignoring saved progress: %s", err)
            return None
        self.last_error = None
        return state

    def read(self) -> NarrativeState:
        try:
            raw = self.store.get(self.key)
        except (StoreError, OSError) as exc:
            raise PersistenceReadError(f"Save record unreadable: {exc}") from exc
        if raw is None:
            raise PersistenceReadError("No save found.")
        try:
            record = migrate_record(raw)
            state = NarrativeState.from_record(record)
        except (SaveMigrationError, StateRecordError) as exc:
            raise PersistenceReadError(f"Save record malformed: {exc}") from exc
        self._normalize_loaded_state(state)
        return state

    def clear(self) -> None:
        try:
            self.store.delete(self.key)
        except StoreError as exc:
            logger.warning("Failed to clear save: %s", exc)

    # ---------- Internal helpers ----------
    def _normalize_loaded_state(self, state: NarrativeState) -> None:
        if self.content is None:
            return
        if not self.content.has_scene(state.scene_id):
            raise PersistenceReadError(
                f"Save scene '{state.scene_id}' missing in current content."
            )
        scene = self.content.get_scene(state.scene_id)
        if state.line_index > scene.last_index:
            logger.warning(
                "Save line %s is past the end of scene '%s'; resuming at line %s.",
                state.line_index,
                scene.id,
                scene.last_index,
            )
            state.commit(line_index=scene.last_index)
        known = [scene_id for scene_id in state.visited_scenes if scene_id in self.content]
        if known != state.visited_scenes:
            state.commit(visited=known)
