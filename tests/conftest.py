import asyncio
from typing import List, Optional

import pytest

from vn_engine.content import Choice, ContentStore, Dialogue, Option, Scene
from vn_engine.storage import MemoryStore, StoreError


class ManualClock:
    """Reveal clock whose ticks only finish when the test calls ``release``."""

    def __init__(self) -> None:
        self.pending: List[asyncio.Future] = []
        self.started = 0

    async def tick(self, delay_units: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        self.started += 1
        try:
            await future
        finally:
            self.pending.remove(future)

    def release(self) -> None:
        for future in list(self.pending):
            if not future.done():
                future.set_result(None)


class RecordingView:
    """Dialogue view and selection UI that records every call."""

    def __init__(self) -> None:
        self.events: List[tuple] = []
        self.text = ""
        self.speaker: Optional[str] = "unset"
        self.presented: List[Choice] = []

    def show_speaker(self, speaker):
        self.speaker = speaker
        self.events.append(("speaker", speaker))

    def show_text(self, text):
        self.text = text

    def mark_ready(self):
        self.events.append(("ready", self.text))

    def set_background(self, handle):
        self.events.append(("background", handle))

    def set_portrait(self, handle):
        self.events.append(("portrait", handle))

    def play_music(self, handle):
        self.events.append(("music", handle))

    def stop_music(self):
        self.events.append(("stop_music",))

    def present_choice(self, choice):
        self.presented.append(choice)
        self.events.append(("choice", choice.prompt))

    def dismiss_choice(self):
        self.events.append(("dismiss",))


class GatedEffect:
    """Transition effect that completes only when ``finish`` is called."""

    def __init__(self, view: Optional[RecordingView] = None) -> None:
        self.view = view
        self.plays = 0
        self._gate: Optional[asyncio.Future] = None

    @property
    def playing(self) -> bool:
        return self._gate is not None and not self._gate.done()

    async def play(self) -> None:
        self.plays += 1
        if self.view is not None:
            self.view.events.append(("wipe",))
        self._gate = asyncio.get_running_loop().create_future()
        await self._gate

    def finish(self) -> None:
        if self._gate is not None and not self._gate.done():
            self._gate.set_result(None)


class CountingStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.writes: List[dict] = []

    def put(self, key, record):
        self.writes.append(record)
        super().put(key, record)


class FailingStore(MemoryStore):
    def put(self, key, record):
        raise StoreError("disk full")


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate, rounds: int = 500) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def build_demo_store(*, strict: bool = True) -> ContentStore:
    scene1 = Scene(
        id="scene1",
        background="bg_home.png",
        portrait="char_a.png",
        lines=(
            Dialogue("Narrator", "A soft breeze greets the morning."),
            Dialogue("Alex", "I should head out."),
            Choice(
                "What do you do?",
                (
                    Option("Take a detour through the park", {"tookPark": True}, "scene2"),
                    Option("Stick to the usual route", {"tookPark": False}, "scene2"),
                ),
            ),
        ),
    )
    scene2 = Scene(
        id="scene2",
        background="bg_classroom.png",
        portrait="char_b.png",
        lines=(
            Dialogue(
                "Taylor",
                lambda state: "Through the park again?" if state.flags.get("tookPark") else "Stuck to the plan?",
            ),
            Dialogue(None, "The bell rings."),
            Dialogue("System", "Demo complete.", terminal=True),
        ),
    )
    return ContentStore([scene1, scene2], strict=strict)


@pytest.fixture
def demo_store() -> ContentStore:
    return build_demo_store()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()
