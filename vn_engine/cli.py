#!/usr/bin/env python3
"""
Terminal reader for vn-engine stories.
- Title screen with Continue / New Game / Story Select.
- Typed dialogue: Enter skips the typing, Enter again advances.
- Numbered choices; C dismisses the list, Q returns to the title.
- Debug commands (--debug): /goto <scene>, /end, /state.
Usage: python3 -m vn_engine [story.json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import textwrap
from pathlib import Path
from typing import Optional

from .clock import AsyncioClock
from .content import Choice, ContentError, ContentStore, load_content
from .session import NarrativeSession
from .settings import load_settings
from .storage import default_store
from .transitions import RunOutcome

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_PATH = Path(__file__).resolve().parent / "data" / "demo.json"
LINE_WIDTH = 72
WIPE_STEP_SECONDS = 0.01


def emit_print(*args, **kwargs) -> None:
    print(*args, **kwargs)


async def read_input(prompt: str = "") -> str:
    return await asyncio.to_thread(input, prompt)


class TerminalView:
    """Draws dialogue, scene resources and choices as plain text."""

    def __init__(self, *, width: int = LINE_WIDTH, muted: bool = False) -> None:
        self.width = width
        self.muted = muted
        self._printed = 0
        self._music: Optional[str] = None

    def show_speaker(self, speaker: Optional[str]) -> None:
        self._printed = 0
        emit_print("")
        if speaker:
            emit_print(f"[{speaker}]")

    def show_text(self, text: str) -> None:
        fresh = text[self._printed :]
        if fresh:
            emit_print(fresh, end="", flush=True)
        self._printed = len(text)

    def mark_ready(self) -> None:
        emit_print("  ▼")

    def set_background(self, handle: Optional[str]) -> None:
        if handle:
            emit_print(f"[Background: {handle}]")

    def set_portrait(self, handle: Optional[str]) -> None:
        if handle:
            emit_print(f"[Portrait: {handle}]")

    def play_music(self, handle: Optional[str]) -> None:
        if not handle or handle == self._music:
            return
        self._music = handle
        if not self.muted:
            emit_print(f"[Music: {handle}]")

    def stop_music(self) -> None:
        self._music = None

    def present_choice(self, choice: Choice) -> None:
        emit_print("")
        if choice.prompt:
            for line in textwrap.wrap(choice.prompt, width=self.width):
                emit_print(line)
        for idx, option in enumerate(choice.options, start=1):
            emit_print(f"  {idx}. {option.text}")
        emit_print("  C. Close")

    def dismiss_choice(self) -> None:
        pass


class WipeEffect:
    """Left-to-right wipe drawn as a bar of characters."""

    def __init__(self, *, width: int = LINE_WIDTH, step_seconds: float = WIPE_STEP_SECONDS) -> None:
        self.width = width
        self.step_seconds = step_seconds

    async def play(self) -> None:
        emit_print("")
        for _ in range(self.width):
            emit_print("=", end="", flush=True)
            await asyncio.sleep(self.step_seconds)
        emit_print("")


class ConsoleInput:
    """Single stdin reader shared by the title menu and the running story.

    A read that is still pending when a run ends is handed to the next caller
    instead of starting a second reader thread.
    """

    def __init__(self, reader=read_input) -> None:
        self._reader = reader
        self._pending: Optional[asyncio.Future] = None

    def pending(self) -> asyncio.Future:
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._reader(""))
        return self._pending

    def take(self) -> str:
        task = self.pending()
        self._pending = None
        return task.result()

    async def readline(self, prompt: str = "") -> str:
        if prompt:
            emit_print(prompt, end="", flush=True)
        task = self.pending()
        try:
            return await task
        finally:
            self._pending = None


def handle_play_command(session: NarrativeSession, raw: str, *, debug: bool = False) -> Optional[str]:
    """Route one line of player input; returns a message to print, if any."""
    command = raw.strip()
    lowered = command.lower()

    if debug and command.startswith("/"):
        parts = command.split()
        name = parts[0].lower()
        if name == "/goto":
            if len(parts) < 2:
                return "Usage: /goto <scene_id>"
            try:
                session.jump(parts[1])
            except ContentError as exc:
                return f"[!] {exc}"
            return f"[#] Debug: moved to {parts[1]}."
        if name == "/end":
            try:
                session.skip_to_end()
            except ContentError as exc:
                return f"[!] {exc}"
            return "[#] Debug: skipped to the last line."
        if name == "/state":
            return json.dumps(session.snapshot(), indent=2)
        return "Unknown debug command."

    if lowered in {"q", "quit"}:
        session.quit_to_title()
        return None

    if session.awaiting_choice:
        if lowered in {"c", "close", "cancel"}:
            session.dismiss_choice()
            return None
        if lowered.isdigit() and session.select(int(lowered) - 1):
            return None
        return "Pick a valid choice number."

    if lowered in {"", "n", "next"}:
        session.signal()
        return None
    return "Press Enter to continue, or Q to return to the title."


async def play(session: NarrativeSession, console: ConsoleInput, *, debug: bool = False) -> None:
    run_task = asyncio.ensure_future(session.run())
    while not run_task.done():
        line_task = console.pending()
        done, _ = await asyncio.wait({run_task, line_task}, return_when=asyncio.FIRST_COMPLETED)
        if line_task in done:
            message = handle_play_command(session, console.take(), debug=debug)
            if message:
                emit_print(message)
    result = run_task.result()
    if result.outcome is RunOutcome.CONTENT_ERROR:
        emit_print(f"\n[!] Story error: {result.error}")
    elif result.outcome is RunOutcome.ABANDONED:
        emit_print("\n[Title] Returning to the title screen.")
    else:
        emit_print("\n*** The End ***")


async def story_select(content: ContentStore, console: ConsoleInput) -> Optional[str]:
    routes = content.routes
    if not routes:
        emit_print("No stories to choose from.")
        return None
    while True:
        emit_print("\nChoose a story:")
        for idx, route in enumerate(routes, start=1):
            emit_print(f"  {idx}. {route.title}")
            if route.description:
                for line in textwrap.wrap(route.description, width=LINE_WIDTH - 5):
                    emit_print(f"     {line}")
        emit_print("  B. Back")
        selection = (await console.readline("> ")).strip().lower()
        if selection in {"b", "back"}:
            return None
        if selection.isdigit() and 1 <= int(selection) <= len(routes):
            return routes[int(selection) - 1].id
        emit_print("Pick a valid number or B to go back.")


async def title_screen(session: NarrativeSession, console: ConsoleInput, *, debug: bool = False) -> None:
    title = session.content.title or "Visual Novel"
    while True:
        can_continue = session.has_save()
        emit_print(f"\n=== {title} ===")
        emit_print(f"1. Continue{'' if can_continue else ' (no save)'}")
        emit_print("2. New Game")
        emit_print("3. Story Select")
        emit_print("Q. Quit")
        selection = (await console.readline("> ")).strip().lower()

        if selection in {"q", "quit"}:
            return
        if selection == "1":
            if not session.continue_game():
                emit_print("[!] No save to continue.")
                continue
        elif selection == "2":
            session.new_game()
        elif selection == "3":
            route_id = await story_select(session.content, console)
            if route_id is None:
                continue
            session.start_route(route_id)
        else:
            emit_print("Pick 1, 2, 3 or Q.")
            continue
        await play(session, console, debug=debug)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Read a vn-engine story in the terminal.")
    parser.add_argument("content", nargs="?", default=str(DEFAULT_CONTENT_PATH))
    parser.add_argument("--saves", default="saves", help="Directory for save and settings records.")
    parser.add_argument("--debug", action="store_true", help="Enable debug commands.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        content = load_content(args.content)
    except (OSError, ContentError) as exc:
        emit_print(f"[!] Could not load story: {exc}")
        return 1

    store = default_store(args.saves)
    settings = load_settings(store)
    view = TerminalView(muted=settings.muted)
    session = NarrativeSession(
        content,
        store,
        view=view,
        selection_ui=view,
        effect=WipeEffect(),
        clock=AsyncioClock(),
        settings=settings,
    )
    await title_screen(session, ConsoleInput(), debug=args.debug)
    return 0


def run(argv=None) -> int:
    try:
        return asyncio.run(main(argv))
    except (KeyboardInterrupt, EOFError):
        emit_print("\n[Interrupted] Bye.")
        return 130
