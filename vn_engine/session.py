"""Top-level story session: new game, continue, routes and dev tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .choices import ChoiceResolver, Selection
from .clock import AsyncioClock
from .content import ContentError, ContentStore
from .dialogue import DialogueAdvancer, LinePhase
from .interfaces import DialogueView, NullView, RevealClock, SelectionUI, Store, TransitionEffect
from .save_manager import SaveManager
from .settings import Settings, compute_char_delay
from .state import NarrativeState
from .storage import MemoryStore
from .transitions import RunResult, SceneTransitionController

logger = logging.getLogger(__name__)


class NarrativeSession:
    """Wire the narrative core to its collaborators.

    The session holds the current ``NarrativeState`` but only the running
    ``SceneTransitionController`` writes to it while a run is active. Dev
    jumps are therefore delivered to the run as redirects.
    """

    def __init__(
        self,
        content: ContentStore,
        store: Optional[Store] = None,
        *,
        view: Optional[DialogueView] = None,
        selection_ui: Optional[SelectionUI] = None,
        effect: Optional[TransitionEffect] = None,
        clock: Optional[RevealClock] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.content = content
        self.store = store if store is not None else MemoryStore()
        self.settings = (settings or Settings()).copy()
        self.view = view if view is not None else NullView()
        self.saves = SaveManager(self.store, content=content)
        self.state = NarrativeState()
        self.advancer = DialogueAdvancer(
            clock if clock is not None else AsyncioClock(),
            self.view,
            char_delay=compute_char_delay(self.settings),
            chars_per_tick=self.settings.chars_per_tick,
        )
        self.resolver = ChoiceResolver(content, selection_ui, self.saves)
        self.transitions = SceneTransitionController(
            content,
            self.advancer,
            self.resolver,
            self.saves,
            effect=effect,
            view=self.view,
            transitions_enabled=self.settings.transitions_enabled
            and not self.settings.reduce_animations,
        )

    # ---------- Game lifecycle ----------
    def has_save(self) -> bool:
        return self.saves.has_save()

    def new_game(self, scene_id: Optional[str] = None) -> NarrativeState:
        self._require_idle("start a new game")
        start = scene_id or self.content.first_scene_id()
        self.content.get_scene(start)
        self.saves.clear()
        self.state = NarrativeState(scene_id=start, line_index=0)
        logger.info("New game at scene '%s'.", start)
        return self.state

    def start_route(self, route_id: str) -> NarrativeState:
        route = self.content.get_route(route_id)
        return self.new_game(route.scene)

    def continue_game(self) -> bool:
        self._require_idle("continue")
        loaded = self.saves.load()
        if loaded is None:
            return False
        self.state = loaded
        logger.info("Continuing at scene '%s' line %s.", loaded.scene_id, loaded.line_index)
        return True

    def clear_save(self) -> None:
        self._require_idle("clear the save")
        self.saves.clear()

    @property
    def running(self) -> bool:
        return self.transitions.running

    async def run(self) -> RunResult:
        if self.state.scene_id is None:
            raise RuntimeError("No game in progress; start a new game or continue first.")
        result = await self.transitions.run(self.state, reset_to_start=False)
        self.view.stop_music()
        return result

    # ---------- Player input ----------
    def signal(self) -> LinePhase:
        return self.advancer.signal()

    def select(self, selection: Selection) -> bool:
        return self.resolver.select(selection)

    def dismiss_choice(self) -> bool:
        return self.resolver.dismiss()

    @property
    def awaiting_choice(self) -> bool:
        return self.resolver.awaiting

    def quit_to_title(self) -> bool:
        return self.transitions.abandon()

    # ---------- Dev console ----------
    def jump(self, scene_id: str, line_index: int = 0) -> None:
        scene = self.content.get_scene(scene_id)
        if not 0 <= line_index <= scene.last_index:
            raise ContentError(
                f"Scene '{scene_id}' has no line {line_index}.", scene_id=scene_id
            )
        if self.running:
            self.transitions.abandon((scene_id, line_index))
            return
        self.state.commit(scene_id=scene_id, line_index=line_index)
        self.saves.save(self.state)

    def skip_to_end(self) -> None:
        scene = self.content.get_scene(self.state.scene_id or self.content.first_scene_id())
        self.jump(scene.id, scene.last_index)

    def snapshot(self) -> Dict[str, Any]:
        snapshot = self.state.snapshot()
        snapshot.update(
            {
                "hasSave": self.has_save(),
                "phase": self.advancer.phase.value,
                "awaitingChoice": self.awaiting_choice,
                "settings": self.settings.to_dict(),
                "lastSaveError": str(self.saves.last_error) if self.saves.last_error else None,
            }
        )
        return snapshot

    def _require_idle(self, action: str) -> None:
        if self.running:
            raise RuntimeError(f"Cannot {action} while a story is running; quit to the title first.")
