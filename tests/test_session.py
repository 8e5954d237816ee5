import asyncio

import pytest
from conftest import FailingStore, GatedEffect, ManualClock, RecordingView, wait_until

from vn_engine.clock import InstantClock
from vn_engine.content import Choice, ContentError, ContentStore, Dialogue, Option, Route, Scene
from vn_engine.dialogue import LinePhase
from vn_engine.save_manager import SAVE_KEY
from vn_engine.session import NarrativeSession
from vn_engine.settings import Settings
from vn_engine.storage import MemoryStore
from vn_engine.transitions import RunOutcome


def make_session(demo_store, **kwargs):
    kwargs.setdefault("clock", InstantClock())
    return NarrativeSession(demo_store, kwargs.pop("store", MemoryStore()), **kwargs)


async def play_through(session, selections=()):
    queue = list(selections)
    task = asyncio.ensure_future(session.run())
    while not task.done():
        if session.awaiting_choice:
            session.select(queue.pop(0) if queue else 0)
        elif session.advancer.phase in (LinePhase.TYPING, LinePhase.READY):
            session.signal()
        await asyncio.sleep(0)
    return task.result()


def test_new_game_starts_at_first_route_and_clears_save(demo_store) -> None:
    store = MemoryStore()
    store.put(SAVE_KEY, {"sceneId": "scene2", "lineIndex": 1, "flags": {}, "visitedScenes": []})
    session = make_session(demo_store, store=store)

    state = session.new_game()

    assert state.scene_id == "scene1"
    assert state.line_index == 0
    assert not session.has_save()


def test_new_game_rejects_unknown_scene(demo_store) -> None:
    session = make_session(demo_store)
    with pytest.raises(ContentError):
        session.new_game("ghost")


def test_run_requires_a_game(demo_store) -> None:
    session = make_session(demo_store)
    with pytest.raises(RuntimeError):
        asyncio.run(session.run())


def test_continue_resumes_where_the_save_left_off(demo_store) -> None:
    store = MemoryStore()
    first = make_session(demo_store, store=store)
    first.new_game()
    first.jump("scene2", 1)
    assert first.has_save()

    second = make_session(demo_store, store=store)
    assert second.continue_game() is True
    assert (second.state.scene_id, second.state.line_index) == ("scene2", 1)

    result = asyncio.run(play_through(second))
    assert result.outcome is RunOutcome.TERMINAL
    assert (result.scene_id, result.line_index) == ("scene2", 2)


def test_continue_without_save(demo_store) -> None:
    session = make_session(demo_store)
    assert session.continue_game() is False
    assert session.state.scene_id is None


def test_start_route(demo_store) -> None:
    store = ContentStore(
        demo_store.scenes.values(), routes=[Route("late", "Late start", "scene2")], strict=True
    )
    session = make_session(store)
    assert session.start_route("late").scene_id == "scene2"
    with pytest.raises(ContentError):
        session.start_route("missing")


def test_full_playthrough_records_flags_and_visits(demo_store) -> None:
    view = RecordingView()
    session = make_session(demo_store, view=view, selection_ui=view)
    session.new_game()

    result = asyncio.run(play_through(session, [1]))

    assert result.outcome is RunOutcome.TERMINAL
    assert session.state.flags == {"tookPark": False}
    assert session.state.visited_scenes == ["scene1", "scene2"]
    assert view.events[-1] == ("stop_music",)
    saved = session.saves.load()
    assert (saved.scene_id, saved.line_index) == ("scene2", 2)


def test_jump_while_running_redirects_the_run(demo_store) -> None:
    clock = ManualClock()
    session = make_session(demo_store, clock=clock)
    session.new_game()

    async def scenario():
        task = asyncio.ensure_future(session.run())
        await wait_until(lambda: clock.pending)
        session.jump("scene2", 1)
        await wait_until(lambda: session.state.scene_id == "scene2" and clock.pending)
        assert session.state.line_index == 1
        session.quit_to_title()
        return await task

    result = asyncio.run(scenario())
    assert result.outcome is RunOutcome.ABANDONED
    assert (result.scene_id, result.line_index) == ("scene2", 1)


def test_jump_rejects_bad_targets(demo_store) -> None:
    session = make_session(demo_store)
    session.new_game()
    with pytest.raises(ContentError):
        session.jump("ghost")
    with pytest.raises(ContentError):
        session.jump("scene1", 3)
    assert (session.state.scene_id, session.state.line_index) == ("scene1", 0)


def test_skip_to_end_moves_to_last_line(demo_store) -> None:
    session = make_session(demo_store)
    session.new_game("scene2")
    session.skip_to_end()
    assert session.state.line_index == 2
    assert session.saves.load().line_index == 2


def test_snapshot_reports_state_and_settings(demo_store) -> None:
    session = make_session(demo_store, settings=Settings(chars_per_tick=4))
    session.new_game()
    snapshot = session.snapshot()
    assert snapshot["sceneId"] == "scene1"
    assert snapshot["hasSave"] is False
    assert snapshot["phase"] == "idle"
    assert snapshot["awaitingChoice"] is False
    assert snapshot["settings"]["chars_per_tick"] == 4
    snapshot["flags"]["x"] = True
    assert session.state.flags == {}


def test_reduce_animations_disables_transitions(demo_store) -> None:
    effect = GatedEffect()
    session = make_session(
        demo_store, effect=effect, settings=Settings(reduce_animations=True)
    )
    assert session.transitions.transitions_enabled is False
    assert session.advancer.char_delay == 0.0
    session.new_game()
    asyncio.run(play_through(session))
    assert effect.plays == 0


def build_detour_store() -> ContentStore:
    scene_a = Scene(
        id="a",
        lines=(
            Choice("Stay a while?", (Option("Stay", {"picked": True}),)),
            Dialogue("Alex", "We stayed."),
            Dialogue("System", "End of a.", terminal=True),
        ),
    )
    scene_b = Scene(
        id="b",
        lines=(
            Dialogue("Taylor", "One."),
            Dialogue("Taylor", "Two."),
            Dialogue("Taylor", "Three."),
            Dialogue("System", "End of b.", terminal=True),
        ),
    )
    return ContentStore([scene_a, scene_b])


def test_jump_right_after_select_waits_for_the_run() -> None:
    session = make_session(build_detour_store())
    session.new_game("a")

    async def scenario():
        task = asyncio.ensure_future(session.run())
        await wait_until(lambda: session.awaiting_choice)
        assert session.select(0) is True
        session.jump("b", 3)
        assert (session.state.scene_id, session.state.line_index) == ("a", 0)
        while not task.done():
            if session.advancer.phase in (LinePhase.TYPING, LinePhase.READY):
                session.signal()
            await asyncio.sleep(0)
        return task.result()

    result = asyncio.run(scenario())
    assert result.outcome is RunOutcome.TERMINAL
    assert (result.scene_id, result.line_index) == ("b", 3)
    assert session.state.flags == {"picked": True}
    assert session.state.visited_scenes == ["a", "b"]


def test_quit_right_after_select_keeps_the_choice() -> None:
    session = make_session(build_detour_store())
    session.new_game("a")

    async def scenario():
        task = asyncio.ensure_future(session.run())
        await wait_until(lambda: session.awaiting_choice)
        session.select(0)
        assert session.quit_to_title() is True
        return await task

    result = asyncio.run(scenario())
    assert result.outcome is RunOutcome.ABANDONED
    assert (result.scene_id, result.line_index) == ("a", 1)
    assert session.saves.load().flags == {"picked": True}


def test_lifecycle_calls_are_refused_while_running(demo_store) -> None:
    store = ContentStore(
        demo_store.scenes.values(), routes=[Route("late", "Late start", "scene2")], strict=True
    )
    clock = ManualClock()
    session = make_session(store, clock=clock)
    session.new_game()

    async def scenario():
        task = asyncio.ensure_future(session.run())
        await wait_until(lambda: clock.pending)
        refused = (session.new_game, lambda: session.start_route("late"), session.continue_game, session.clear_save)
        for call in refused:
            with pytest.raises(RuntimeError):
                call()
        assert session.state.scene_id == "scene1"
        session.quit_to_title()
        return await task

    result = asyncio.run(scenario())
    assert result.outcome is RunOutcome.ABANDONED
    assert not session.running
    assert session.new_game().scene_id == "scene1"


def test_snapshot_reports_the_last_save_failure(demo_store) -> None:
    session = make_session(demo_store, store=FailingStore())
    session.new_game()
    assert session.snapshot()["lastSaveError"] is None

    session.jump("scene1", 1)

    assert "disk full" in session.snapshot()["lastSaveError"]


def test_final_choice_without_target_resumes_on_the_choice() -> None:
    content = ContentStore(
        [
            Scene(
                id="porch",
                lines=(
                    Dialogue("Alex", "Nice evening."),
                    Choice("Wave goodbye?", (Option("Wave", {"waved": True}),)),
                ),
            )
        ]
    )
    store = MemoryStore()
    first = make_session(content, store=store)
    first.new_game()

    result = asyncio.run(play_through(first))
    assert result.outcome is RunOutcome.EXHAUSTED
    saved = first.saves.load()
    assert (saved.line_index, saved.flags) == (1, {"waved": True})

    view = RecordingView()
    second = make_session(content, store=store, selection_ui=view)
    assert second.continue_game() is True
    result = asyncio.run(play_through(second))
    assert result.outcome is RunOutcome.EXHAUSTED
    assert [choice.prompt for choice in view.presented] == ["Wave goodbye?"]
    assert second.state.flags == {"waved": True}
