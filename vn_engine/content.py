"""Authored story content: scenes, lines, choices and the read-only store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from .content_schema import normalize_scenes, validate_content
from .state import FlagValue, NarrativeState

_TRUTHY: Any = object()


class ContentError(ValueError):
    """Raised when authored content is malformed or references a missing scene."""

    def __init__(self, message: str, *, scene_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.scene_id = scene_id


@dataclass(frozen=True)
class Literal:
    value: str

    def resolve(self, state: NarrativeState) -> str:
        return self.value


@dataclass(frozen=True)
class Computed:
    """Text derived from the narrative state; evaluated on every visit."""

    fn: Callable[[NarrativeState], str]

    def resolve(self, state: NarrativeState) -> str:
        return str(self.fn(state))


Text = Union[Literal, Computed]


def flag_text(flag: str, then: str, otherwise: str, *, value: Any = _TRUTHY) -> Computed:
    """Pick between two strings from a flag.

    Without ``value`` the flag's truthiness decides; otherwise it must equal ``value``.
    """

    def pick(state: NarrativeState) -> str:
        current = state.flags.get(flag)
        matched = bool(current) if value is _TRUTHY else current == value
        return then if matched else otherwise

    return Computed(pick)


def as_text(value: Any) -> Text:
    if isinstance(value, (Literal, Computed)):
        return value
    if isinstance(value, str):
        return Literal(value)
    if callable(value):
        return Computed(value)
    raise ContentError(f"Dialogue text must be a string or a callable, got {type(value).__name__}.")


@dataclass(frozen=True)
class Dialogue:
    speaker: Optional[str]
    text: Text
    terminal: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", as_text(self.text))


@dataclass(frozen=True, eq=False)
class Option:
    text: str
    flags: Mapping[str, FlagValue] = field(default_factory=dict)
    next_scene: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))


@dataclass(frozen=True)
class Choice:
    prompt: str
    options: Tuple[Option, ...]

    def __post_init__(self) -> None:
        options = tuple(self.options)
        if not options:
            raise ContentError("A choice needs at least one option.")
        object.__setattr__(self, "options", options)

    def index_of(self, option: Option) -> int:
        for index, candidate in enumerate(self.options):
            if candidate is option:
                return index
        return -1


Line = Union[Dialogue, Choice]


@dataclass(frozen=True)
class Scene:
    id: str
    lines: Tuple[Line, ...]
    background: Optional[str] = None
    portrait: Optional[str] = None
    music: Optional[str] = None

    def __post_init__(self) -> None:
        lines = tuple(self.lines)
        if not lines:
            raise ContentError(f"Scene '{self.id}' has no lines.", scene_id=self.id)
        object.__setattr__(self, "lines", lines)

    @property
    def last_index(self) -> int:
        return len(self.lines) - 1


@dataclass(frozen=True)
class Route:
    id: str
    title: str
    scene: str
    description: str = ""


class ContentStore:
    """Immutable registry of scenes keyed by id.

    With ``strict=True`` every option target and route is checked up front;
    otherwise a dangling reference surfaces as ``ContentError`` the first time
    something tries to load it.
    """

    def __init__(
        self,
        scenes: Iterable[Scene],
        *,
        routes: Iterable[Route] = (),
        title: Optional[str] = None,
        strict: bool = False,
    ) -> None:
        registry: Dict[str, Scene] = {}
        for scene in scenes:
            if scene.id in registry:
                raise ContentError(f"Duplicate scene id '{scene.id}'.", scene_id=scene.id)
            registry[scene.id] = scene
        self._scenes = MappingProxyType(registry)
        self._routes: Tuple[Route, ...] = tuple(routes)
        self.title = title
        if strict:
            errors = self.validate()
            if errors:
                raise ContentError("Invalid content:\n- " + "\n- ".join(errors))

    @property
    def scenes(self) -> Mapping[str, Scene]:
        return self._scenes

    @property
    def routes(self) -> Tuple[Route, ...]:
        return self._routes

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._scenes

    def __iter__(self) -> Iterator[str]:
        return iter(self._scenes)

    def __len__(self) -> int:
        return len(self._scenes)

    def has_scene(self, scene_id: Optional[str]) -> bool:
        return scene_id is not None and scene_id in self._scenes

    def get_scene(self, scene_id: Optional[str]) -> Scene:
        scene = self._scenes.get(scene_id) if scene_id is not None else None
        if scene is None:
            raise ContentError(f"Unknown scene '{scene_id}'.", scene_id=scene_id)
        return scene

    def get_route(self, route_id: str) -> Route:
        for route in self._routes:
            if route.id == route_id:
                return route
        raise ContentError(f"Unknown route '{route_id}'.")

    def first_scene_id(self) -> Optional[str]:
        if self._routes:
            return self._routes[0].scene
        return next(iter(self._scenes), None)

    def validate(self) -> List[str]:
        errors: List[str] = []
        for scene in self._scenes.values():
            for index, line in enumerate(scene.lines):
                if not isinstance(line, Choice):
                    continue
                for opt_index, option in enumerate(line.options):
                    target = option.next_scene
                    if target is not None and target not in self._scenes:
                        errors.append(
                            f"scenes.{scene.id}.lines[{index}].options[{opt_index}].next: "
                            f"targets unknown scene '{target}'."
                        )
        for route in self._routes:
            if route.scene not in self._scenes:
                errors.append(f"routes.{route.id}: references unknown scene '{route.scene}'.")
        return errors


def _build_text(raw: Any) -> Text:
    if isinstance(raw, str):
        return Literal(raw)
    when = raw["when"]
    if "value" in when:
        return flag_text(when["flag"], raw["then"], raw["else"], value=when["value"])
    return flag_text(when["flag"], raw["then"], raw["else"])


def _build_line(raw: Mapping[str, Any]) -> Line:
    if raw.get("type") == "choice":
        options = tuple(
            Option(
                text=entry["text"],
                flags=entry.get("set") or {},
                next_scene=entry.get("next"),
            )
            for entry in raw["options"]
        )
        return Choice(prompt=raw.get("prompt", ""), options=options)
    return Dialogue(
        speaker=raw.get("name", raw.get("speaker")),
        text=_build_text(raw["text"]),
        terminal=bool(raw.get("end", False)),
    )


def content_from_dict(data: Mapping[str, Any]) -> ContentStore:
    errors = validate_content(data)
    if errors:
        raise ContentError("Invalid content:\n- " + "\n- ".join(errors))

    raw_scenes, _ = normalize_scenes(data.get("scenes"))
    scenes = [
        Scene(
            id=scene_id,
            lines=tuple(_build_line(line) for line in raw["lines"]),
            background=raw.get("background", raw.get("bg")),
            portrait=raw.get("portrait"),
            music=raw.get("music"),
        )
        for scene_id, raw in raw_scenes.items()
    ]
    routes = [
        Route(
            id=entry["id"],
            title=entry.get("title") or entry["id"],
            scene=entry.get("scene", entry.get("startScene")),
            description=entry.get("description", ""),
        )
        for entry in data.get("routes", [])
    ]
    return ContentStore(scenes, routes=routes, title=data.get("title"), strict=True)


def load_content(path: Path | str) -> ContentStore:
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ContentError(f"Failed to parse JSON from {path}: {exc}") from exc
    return content_from_dict(data)
