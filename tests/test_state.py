import pytest

from vn_engine.state import NarrativeState, StateRecordError


def test_commit_applies_all_fields_together() -> None:
    state = NarrativeState(scene_id="a")
    state.commit(scene_id="b", line_index=3, flags={"x": 1}, visit="b")
    assert state == NarrativeState(scene_id="b", line_index=3, flags={"x": 1}, visited_scenes=["b"])


def test_rejected_commit_changes_nothing() -> None:
    state = NarrativeState(scene_id="a", line_index=1, flags={"x": 1})
    for bad in (-1, True, 1.5):
        with pytest.raises(ValueError):
            state.commit(scene_id="b", line_index=bad, flags={})
    assert state == NarrativeState(scene_id="a", line_index=1, flags={"x": 1})


def test_commit_copies_flags() -> None:
    flags = {"x": 1}
    state = NarrativeState()
    state.commit(flags=flags)
    flags["x"] = 2
    assert state.flags == {"x": 1}


def test_merged_flags_does_not_mutate() -> None:
    state = NarrativeState(flags={"a": 1, "b": 1})
    merged = state.merged_flags({"b": 2, "c": 3})
    assert merged == {"a": 1, "b": 2, "c": 3}
    assert state.flags == {"a": 1, "b": 1}


def test_reset_clears_progress() -> None:
    state = NarrativeState(scene_id="a", line_index=2, flags={"x": True}, visited_scenes=["a"])
    state.reset()
    assert state == NarrativeState()


def test_copy_and_snapshot_are_detached() -> None:
    state = NarrativeState(scene_id="a", flags={"x": True}, visited_scenes=["a"])
    clone = state.copy()
    snapshot = state.snapshot()
    clone.flags["x"] = False
    snapshot["flags"]["x"] = False
    snapshot["visitedScenes"].append("b")
    assert state.flags == {"x": True}
    assert state.visited_scenes == ["a"]
    assert NarrativeState().copy() == NarrativeState()


def test_record_round_trip() -> None:
    state = NarrativeState(
        scene_id="scene2", line_index=4, flags={"tookPark": True, "mood": "calm"}, visited_scenes=["scene2", "scene1"]
    )
    record = state.to_record()
    assert record == {
        "sceneId": "scene2",
        "lineIndex": 4,
        "flags": {"tookPark": True, "mood": "calm"},
        "visitedScenes": ["scene2", "scene1"],
    }
    assert NarrativeState.from_record(record) == state


def test_record_keeps_first_visit_order() -> None:
    record = {"sceneId": "a", "lineIndex": 0, "flags": {}, "visitedScenes": ["b", "a"]}
    state = NarrativeState.from_record(record)
    assert state.to_record() == record

    state.commit(visit="c")
    state.commit(visit="b")
    assert state.visited_scenes == ["b", "a", "c"]


@pytest.mark.parametrize(
    "record",
    [
        None,
        [],
        {"lineIndex": 0},
        {"sceneId": "", "lineIndex": 0},
        {"sceneId": "a", "lineIndex": -1},
        {"sceneId": "a", "lineIndex": "3"},
        {"sceneId": "a", "lineIndex": 0, "flags": []},
        {"sceneId": "a", "lineIndex": 0, "flags": {"x": None}},
        {"sceneId": "a", "lineIndex": 0, "visitedScenes": "a"},
        {"sceneId": "a", "lineIndex": 0, "visitedScenes": [1]},
        {"sceneId": "a", "lineIndex": 0, "visitedScenes": ["a", "b", "a"]},
    ],
)
def test_malformed_records_are_rejected(record) -> None:
    with pytest.raises(StateRecordError):
        NarrativeState.from_record(record)
