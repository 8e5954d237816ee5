"""Per-line dialogue presentation: typed reveal plus the skip/advance gate."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Iterator, Optional, Tuple

from .content import Dialogue
from .interfaces import DialogueView, NullView, RevealClock
from .state import NarrativeState

logger = logging.getLogger(__name__)

DEFAULT_CHAR_DELAY = 25.0


class LinePhase(Enum):
    IDLE = "idle"
    TYPING = "typing"
    READY = "ready"
    ADVANCING = "advancing"


class Abandoned(Exception):
    """Delivered to a suspended line, choice or transition when the run is dropped.

    ``redirect`` is a ``(scene_id, line_index)`` pair when the run should
    resume elsewhere instead of ending.
    """

    def __init__(self, redirect: Optional[Tuple[str, int]] = None) -> None:
        super().__init__("narrative run abandoned")
        self.redirect = redirect


class DialogueAdvancer:
    """Drive one dialogue line at a time through IDLE, TYPING, READY, ADVANCING.

    Skip and advance share one input. While the text is still typing, the
    first signal only completes the reveal. Leaving the line takes a second
    signal once the line is READY.
    """

    def __init__(
        self,
        clock: RevealClock,
        view: Optional[DialogueView] = None,
        *,
        char_delay: float = DEFAULT_CHAR_DELAY,
        chars_per_tick: int = 1,
    ) -> None:
        self.clock = clock
        self.view = view if view is not None else NullView()
        self.char_delay = max(float(char_delay), 0.0)
        self.chars_per_tick = max(int(chars_per_tick), 1)
        self.phase = LinePhase.IDLE
        self.speaker: Optional[str] = None
        self.text = ""
        self.shown = ""
        self._tick: Optional[asyncio.Future] = None
        self._advance: Optional[asyncio.Future] = None
        self._abandoned: Optional[Abandoned] = None

    @property
    def active(self) -> bool:
        return self.phase is not LinePhase.IDLE

    def begin_line(self, line: Dialogue, state: NarrativeState) -> str:
        if self.active:
            raise RuntimeError(f"Cannot begin a line while {self.phase.value}.")
        self._abandoned = None
        self.speaker = line.speaker
        self.text = line.text.resolve(state)
        self.shown = ""
        self._set_phase(LinePhase.TYPING)
        self.view.show_speaker(self.speaker)
        self.view.show_text("")
        return self.text

    def reveal_sequence(self) -> Iterator[str]:
        text = self.text
        step = self.chars_per_tick
        for start in range(0, len(text), step):
            yield text[start : start + step]

    async def type_out(self) -> None:
        for chunk in self.reveal_sequence():
            if self.phase is not LinePhase.TYPING:
                break
            self.shown += chunk
            self.view.show_text(self.shown)
            if len(self.shown) >= len(self.text):
                break
            self._tick = asyncio.ensure_future(self.clock.tick(self.char_delay))
            try:
                await self._tick
            except asyncio.CancelledError:
                # A skip or abandon cancels the tick; anything else is a real cancellation.
                if self.phase is LinePhase.TYPING:
                    raise
            finally:
                self._tick = None
        self._raise_if_abandoned()
        if self.phase is LinePhase.TYPING:
            self._complete_reveal()

    async def wait_for_advance(self) -> None:
        self._raise_if_abandoned()
        if self.phase is LinePhase.READY:
            self._advance = asyncio.get_running_loop().create_future()
            try:
                await self._advance
            finally:
                self._advance = None
        self._raise_if_abandoned()

    async def present(self, line: Dialogue, state: NarrativeState) -> str:
        text = self.begin_line(line, state)
        try:
            await self.type_out()
            await self.wait_for_advance()
        finally:
            self._set_phase(LinePhase.IDLE)
        return text

    def signal(self) -> LinePhase:
        """Deliver one skip/advance input and return the resulting phase."""
        if self.phase is LinePhase.TYPING:
            self._complete_reveal()
        elif self.phase is LinePhase.READY:
            self._set_phase(LinePhase.ADVANCING)
            if self._advance is not None and not self._advance.done():
                self._advance.set_result(None)
        else:
            logger.debug("Ignoring signal while %s.", self.phase.value)
        return self.phase

    def skip(self) -> bool:
        if self.phase is not LinePhase.TYPING:
            return False
        self._complete_reveal()
        return True

    def abandon(self, reason: Optional[Abandoned] = None) -> bool:
        if not self.active:
            return False
        reason = reason or Abandoned()
        self._abandoned = reason
        self._set_phase(LinePhase.IDLE)
        self.text = ""
        self.shown = ""
        if self._tick is not None and not self._tick.done():
            self._tick.cancel()
        if self._advance is not None and not self._advance.done():
            self._advance.set_exception(reason)
        return True

    def _complete_reveal(self) -> None:
        self.shown = self.text
        self._set_phase(LinePhase.READY)
        if self._tick is not None and not self._tick.done():
            self._tick.cancel()
        self.view.show_text(self.shown)
        self.view.mark_ready()

    def _raise_if_abandoned(self) -> None:
        if self._abandoned is not None:
            raise self._abandoned

    def _set_phase(self, phase: LinePhase) -> None:
        if phase is not self.phase:
            logger.debug("Line phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
