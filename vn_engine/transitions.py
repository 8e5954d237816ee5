"""Scene entry and the per-scene line loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .choices import ChoiceResolver
from .content import Choice, ContentError, ContentStore, Scene
from .dialogue import Abandoned, DialogueAdvancer
from .interfaces import DialogueView, NoTransition, NullView, TransitionEffect
from .save_manager import SaveManager
from .state import NarrativeState

logger = logging.getLogger(__name__)


class RunOutcome(Enum):
    TERMINAL = "terminal"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"
    CONTENT_ERROR = "content_error"


@dataclass(frozen=True)
class RunResult:
    outcome: RunOutcome
    scene_id: Optional[str]
    line_index: int
    error: Optional[str] = None


class SceneTransitionController:
    """Enter scenes and feed their lines to the advancer and the resolver."""

    def __init__(
        self,
        content: ContentStore,
        advancer: DialogueAdvancer,
        resolver: ChoiceResolver,
        saves: Optional[SaveManager] = None,
        *,
        effect: Optional[TransitionEffect] = None,
        view: Optional[DialogueView] = None,
        transitions_enabled: bool = True,
    ) -> None:
        self.content = content
        self.advancer = advancer
        self.resolver = resolver
        self.saves = saves
        self.effect = effect if effect is not None else NoTransition()
        self.view = view if view is not None else NullView()
        self.transitions_enabled = transitions_enabled
        self.running = False
        self._effect_task: Optional[asyncio.Future] = None
        self._abandoned: Optional[Abandoned] = None

    async def enter_scene(
        self, state: NarrativeState, scene_id: str, *, reset_to_start: bool = True
    ) -> Scene:
        scene = self.content.get_scene(scene_id)
        line_index = 0 if reset_to_start else min(state.line_index, scene.last_index)
        state.commit(scene_id=scene.id, line_index=line_index, visit=scene.id)
        self._save(state)

        self.view.set_background(scene.background)
        if self.transitions_enabled:
            # The portrait belongs to the new scene and only appears once the wipe is done.
            self.view.set_portrait(None)
            await self._play_effect()
        self.view.set_portrait(scene.portrait)
        self.view.play_music(scene.music)
        return scene

    async def run(
        self,
        state: NarrativeState,
        scene_id: Optional[str] = None,
        *,
        reset_to_start: bool = True,
    ) -> RunResult:
        if self.running:
            raise RuntimeError("A run is already in progress.")
        target = scene_id or state.scene_id
        if target is None:
            raise ValueError("No scene to enter.")
        reset = reset_to_start
        self.running = True
        self._abandoned = None
        try:
            while True:
                try:
                    scene = await self.enter_scene(state, target, reset_to_start=reset)
                    outcome, next_scene = await self._play_lines(state, scene)
                    self._raise_if_abandoned()
                except ContentError as err:
                    logger.error("Run aborted: %s", err)
                    return RunResult(
                        RunOutcome.CONTENT_ERROR, state.scene_id, state.line_index, str(err)
                    )
                except Abandoned as reason:
                    self._abandoned = None
                    if reason.redirect is None:
                        return RunResult(RunOutcome.ABANDONED, state.scene_id, state.line_index)
                    target, line_index = reason.redirect
                    if not self.content.has_scene(target):
                        logger.error("Ignoring redirect to unknown scene '%s'.", target)
                        return RunResult(RunOutcome.ABANDONED, state.scene_id, state.line_index)
                    state.commit(scene_id=target, line_index=line_index)
                    reset = False
                    continue
                if outcome is not None:
                    return RunResult(outcome, state.scene_id, state.line_index)
                target, reset = next_scene, True
        finally:
            self.running = False
            self._abandoned = None

    def abandon(self, redirect: Optional[Tuple[str, int]] = None) -> bool:
        """Drop whatever the run is waiting on; nothing pending is committed.

        Between suspension points the request is held and taken by the run
        loop before its next step, so the run stays the only writer.
        """
        reason = Abandoned(redirect)
        if self.advancer.abandon(reason):
            return True
        if self.resolver.abandon(reason):
            return True
        if self._effect_task is not None and not self._effect_task.done():
            self._abandoned = reason
            self._effect_task.cancel()
            return True
        if self.running:
            self._abandoned = reason
            return True
        return False

    async def _play_lines(
        self, state: NarrativeState, scene: Scene
    ) -> Tuple[Optional[RunOutcome], Optional[str]]:
        """Play from the current line; returns an outcome, or the next scene to enter."""
        while True:
            self._raise_if_abandoned()
            index = state.line_index
            line = scene.lines[index]
            if isinstance(line, Choice):
                option = await self.resolver.resolve(line, state)
                if option.next_scene is not None:
                    return None, option.next_scene
                if state.line_index == index:
                    break
                continue

            await self.advancer.present(line, state)
            if line.terminal:
                logger.info("Reached the end of '%s'.", scene.id)
                return RunOutcome.TERMINAL, None
            if index >= scene.last_index:
                break
            state.advance_line()
            self._save(state)

        logger.warning(
            "Scene '%s' ran out of lines without an ending or a redirect; returning to title.",
            scene.id,
        )
        return RunOutcome.EXHAUSTED, None

    async def _play_effect(self) -> None:
        self._effect_task = asyncio.ensure_future(self.effect.play())
        try:
            await self._effect_task
        except asyncio.CancelledError:
            if self._abandoned is None:
                raise
        finally:
            self._effect_task = None
        self._raise_if_abandoned()

    def _raise_if_abandoned(self) -> None:
        if self._abandoned is not None:
            raise self._abandoned

    def _save(self, state: NarrativeState) -> None:
        if self.saves is not None:
            self.saves.save(state)
