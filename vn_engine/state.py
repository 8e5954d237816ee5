"""Player progress: the single mutable record owned by a running story."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

FlagValue = Union[bool, str, int, float]

_UNSET: Any = object()


class StateRecordError(ValueError):
    """Raised when a persisted record does not describe a valid narrative state."""


@dataclass
class NarrativeState:
    scene_id: Optional[str] = None
    line_index: int = 0
    flags: Dict[str, FlagValue] = field(default_factory=dict)
    # Scene ids in first-visit order; no repeats.
    visited_scenes: List[str] = field(default_factory=list)

    def reset(self) -> None:
        self.commit(scene_id=None, line_index=0, flags={}, visited=())

    def commit(
        self,
        *,
        scene_id: Optional[str] = _UNSET,
        line_index: Optional[int] = None,
        flags: Optional[Mapping[str, FlagValue]] = None,
        visit: Optional[str] = None,
        visited: Optional[Iterable[str]] = None,
    ) -> None:
        """Apply a step as one transition.

        Values are checked before anything is assigned, so a rejected commit
        leaves the state untouched.
        """
        if line_index is not None and (
            isinstance(line_index, bool) or not isinstance(line_index, int) or line_index < 0
        ):
            raise ValueError(f"line index must be a non-negative integer, got {line_index!r}")
        new_flags = dict(flags) if flags is not None else None
        new_visited = list(dict.fromkeys(visited)) if visited is not None else None

        if scene_id is not _UNSET:
            self.scene_id = scene_id
        if line_index is not None:
            self.line_index = line_index
        if new_flags is not None:
            self.flags = new_flags
        if new_visited is not None:
            self.visited_scenes = new_visited
        if visit is not None and visit not in self.visited_scenes:
            self.visited_scenes.append(visit)

    def advance_line(self) -> int:
        self.commit(line_index=self.line_index + 1)
        return self.line_index

    def merged_flags(self, updates: Mapping[str, FlagValue]) -> Dict[str, FlagValue]:
        merged = dict(self.flags)
        merged.update(updates)
        return merged

    def has_visited(self, scene_id: str) -> bool:
        return scene_id in self.visited_scenes

    def copy(self) -> "NarrativeState":
        return NarrativeState(
            scene_id=self.scene_id,
            line_index=self.line_index,
            flags=copy.deepcopy(self.flags),
            visited_scenes=list(self.visited_scenes),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "sceneId": self.scene_id,
            "lineIndex": self.line_index,
            "flags": copy.deepcopy(self.flags),
            "visitedScenes": list(self.visited_scenes),
        }

    def snapshot(self) -> Dict[str, Any]:
        """Detached copy for read-only consumers such as a diagnostics view."""
        return self.to_record()

    @classmethod
    def from_record(cls, record: Any) -> "NarrativeState":
        if not isinstance(record, Mapping):
            raise StateRecordError("Save record was not an object.")

        scene_id = record.get("sceneId")
        if not isinstance(scene_id, str) or not scene_id.strip():
            raise StateRecordError("Save record has no scene.")

        line_index = record.get("lineIndex", 0)
        if isinstance(line_index, bool) or not isinstance(line_index, int) or line_index < 0:
            raise StateRecordError(f"Invalid line index: {line_index!r}")

        flags = record.get("flags", {})
        if not isinstance(flags, Mapping):
            raise StateRecordError("Flags block malformed.")
        for key, value in flags.items():
            if not isinstance(key, str) or not isinstance(value, (bool, str, int, float)):
                raise StateRecordError(f"Invalid flag entry: {key!r}={value!r}")

        visited = record.get("visitedScenes", [])
        if not isinstance(visited, list) or not all(isinstance(v, str) for v in visited):
            raise StateRecordError("Visited scenes must be a list of scene ids.")
        if len(set(visited)) != len(visited):
            raise StateRecordError("Visited scenes must not repeat.")

        return cls(
            scene_id=scene_id,
            line_index=line_index,
            flags=dict(flags),
            visited_scenes=list(visited),
        )
