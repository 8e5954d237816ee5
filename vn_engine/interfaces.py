"""Contracts for the collaborators the narrative core talks to."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .content import Choice


class Store(Protocol):
    def put(self, key: str, record: Any) -> None:
        ...

    def get(self, key: str) -> Any:
        ...

    def delete(self, key: str) -> None:
        ...


class RevealClock(Protocol):
    """Paces the text reveal. Awaiting ``tick`` must be cancelable."""

    async def tick(self, delay_units: float) -> None:
        ...


class TransitionEffect(Protocol):
    async def play(self) -> None:
        ...


class SelectionUI(Protocol):
    def present_choice(self, choice: Choice) -> None:
        ...

    def dismiss_choice(self) -> None:
        ...


class DialogueView(Protocol):
    def show_speaker(self, speaker: Optional[str]) -> None:
        ...

    def show_text(self, text: str) -> None:
        ...

    def mark_ready(self) -> None:
        ...

    def set_background(self, handle: Optional[str]) -> None:
        ...

    def set_portrait(self, handle: Optional[str]) -> None:
        ...

    def play_music(self, handle: Optional[str]) -> None:
        ...

    def stop_music(self) -> None:
        ...


class NullView:
    """View that draws nothing; used when running headless."""

    def show_speaker(self, speaker: Optional[str]) -> None:
        pass

    def show_text(self, text: str) -> None:
        pass

    def mark_ready(self) -> None:
        pass

    def set_background(self, handle: Optional[str]) -> None:
        pass

    def set_portrait(self, handle: Optional[str]) -> None:
        pass

    def play_music(self, handle: Optional[str]) -> None:
        pass

    def stop_music(self) -> None:
        pass

    def present_choice(self, choice: Choice) -> None:
        pass

    def dismiss_choice(self) -> None:
        pass


class NoTransition:
    async def play(self) -> None:
        return None
