"""Schema validation for authored story content."""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Dict, List, Mapping, MutableMapping, Sequence, Tuple

LINE_TYPES = ("dialogue", "choice")


def path(*parts: object) -> str:
    path_str = ""
    for part in parts:
        if isinstance(part, int):
            path_str = f"{path_str}[{part}]"
            continue
        if not isinstance(part, str):
            part = str(part)
        if part.isidentifier():
            path_str = f"{path_str}.{part}" if path_str else part
        else:
            path_str = f'{path_str}[{json.dumps(part)}]'
    return path_str


def format_validation_message(path_str: str, context: str, message: str) -> str:
    if context:
        return f"{path_str}: {context}: {message}"
    return f"{path_str}: {message}"


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_flag_value(value: Any) -> bool:
    return isinstance(value, (bool, str, int, float))


def is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


class ValidationContext:
    """Utility container for accumulating validation errors."""

    def __init__(self) -> None:
        self.errors: List[str] = []

    def add(self, context: str, path_str: str, message: str) -> None:
        self.errors.append(format_validation_message(path_str, context, message))


def normalize_scenes(
    raw_scenes: Any, ctx: ValidationContext | None = None
) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
    """Accept scenes as ``{id: scene}`` or ``[{"id": ..., ...}]`` and return a dict."""
    scenes: Dict[str, Dict[str, Any]] = {}
    errors: List[str] = []
    scene_ids: List[str] = []

    def add_error(context: str, path_parts: Sequence[object], message: str) -> None:
        path_str = path(*path_parts)
        errors.append(format_validation_message(path_str, context, message))
        if ctx is not None:
            ctx.add(context, path_str, message)

    if isinstance(raw_scenes, dict):
        for scene_id, payload in raw_scenes.items():
            if not is_non_empty_str(scene_id):
                add_error("Scenes", ("scenes",), "scene identifiers must be non-empty strings.")
                continue
            if not isinstance(payload, dict):
                add_error("Scenes", ("scenes", scene_id), f"scene '{scene_id}' must be an object.")
                continue
            scenes[scene_id] = payload
        scene_ids = list(scenes.keys())
    elif isinstance(raw_scenes, list):
        for idx, entry in enumerate(raw_scenes, start=1):
            if not isinstance(entry, MutableMapping):
                add_error(f"Scene entry {idx}", ("scenes", idx - 1), "must be an object.")
                continue
            scene_id = entry.get("id")
            if not is_non_empty_str(scene_id):
                add_error(f"Scene entry {idx}", ("scenes", idx - 1, "id"), "is missing a valid 'id'.")
                continue
            scene_ids.append(scene_id)
            payload = dict(entry)
            payload.pop("id", None)
            scenes[scene_id] = payload
    else:
        add_error(
            "Content",
            ("scenes",),
            "must be an object mapping IDs to scene definitions or a list of scene entries.",
        )

    duplicates = [scene_id for scene_id, count in Counter(scene_ids).items() if count > 1]
    if duplicates:
        dup_list = ", ".join(sorted(set(duplicates)))
        add_error("Scenes", ("scenes",), f"Duplicate scene IDs found: {dup_list}.")

    return scenes, errors


def line_type(line: Mapping[str, Any]) -> str:
    return str(line.get("type") or "dialogue")


def validate_text(
    text: Any, context: str, path_parts: Sequence[object], ctx: ValidationContext
) -> None:
    if isinstance(text, str):
        return
    if not isinstance(text, Mapping):
        ctx.add(context, path(*path_parts), "'text' must be a string or a conditional text object.")
        return
    when = text.get("when")
    if not isinstance(when, Mapping) or not is_non_empty_str(when.get("flag")):
        ctx.add(context, path(*path_parts, "when"), "conditional text needs 'when' with a non-empty 'flag'.")
    elif "value" in when and not is_flag_value(when.get("value")):
        ctx.add(context, path(*path_parts, "when", "value"), "must be a boolean, string or number.")
    for key in ("then", "else"):
        if not isinstance(text.get(key), str):
            ctx.add(context, path(*path_parts, key), f"conditional text requires a string '{key}'.")


def validate_option(
    option: Any,
    context: str,
    scenes: Mapping[str, Any],
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> None:
    if not isinstance(option, Mapping):
        ctx.add(context, path(*path_parts), "must be an object.")
        return
    if not is_non_empty_str(option.get("text")):
        ctx.add(context, path(*path_parts, "text"), "requires non-empty 'text'.")

    flags = option.get("set")
    if flags is not None:
        if not isinstance(flags, Mapping):
            ctx.add(context, path(*path_parts, "set"), "'set' must be an object of flag values.")
        else:
            for flag, value in flags.items():
                if not is_non_empty_str(flag):
                    ctx.add(context, path(*path_parts, "set"), "flag names must be non-empty strings.")
                elif not is_flag_value(value):
                    ctx.add(
                        context,
                        path(*path_parts, "set", flag),
                        "flag values must be booleans, strings or numbers.",
                    )

    target = option.get("next")
    if target is None:
        return
    if not is_non_empty_str(target):
        ctx.add(context, path(*path_parts, "next"), "must use a non-empty string 'next'.")
    elif target not in scenes:
        ctx.add(context, path(*path_parts, "next"), f"targets unknown scene '{target}'.")


def validate_line(
    line: Any,
    scene_id: str,
    index: int,
    scenes: Mapping[str, Any],
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> None:
    context = f"Line {index} in scene '{scene_id}'"
    if not isinstance(line, Mapping):
        ctx.add(context, path(*path_parts), "must be an object.")
        return
    kind = line_type(line)
    if kind not in LINE_TYPES:
        ctx.add(context, path(*path_parts, "type"), f"unsupported line type '{kind}'.")
        return

    if kind == "dialogue":
        speaker = line.get("name", line.get("speaker"))
        if speaker is not None and not isinstance(speaker, str):
            ctx.add(context, path(*path_parts, "name"), "speaker name must be a string if present.")
        if "text" not in line:
            ctx.add(context, path(*path_parts, "text"), "dialogue requires 'text'.")
        else:
            validate_text(line.get("text"), context, (*path_parts, "text"), ctx)
        if "end" in line and not isinstance(line.get("end"), bool):
            ctx.add(context, path(*path_parts, "end"), "'end' must be a boolean.")
        return

    if not isinstance(line.get("prompt", ""), str):
        ctx.add(context, path(*path_parts, "prompt"), "'prompt' must be a string.")
    options = line.get("options")
    if not is_sequence(options) or not options:
        ctx.add(context, path(*path_parts, "options"), "choices need a non-empty 'options' list.")
        return
    for opt_index, option in enumerate(options, start=1):
        validate_option(
            option,
            f"{context}, option {opt_index}",
            scenes,
            (*path_parts, "options", opt_index - 1),
            ctx,
        )


def validate_content(data: Mapping[str, Any]) -> List[str]:
    ctx = ValidationContext()
    if not isinstance(data, Mapping):
        ctx.add("Content", "", "content data must be a JSON object.")
        return ctx.errors

    if "scenes" not in data:
        ctx.add("Content", path("scenes"), "must include a 'scenes' section.")
        return ctx.errors
    title = data.get("title")
    if title is not None and not isinstance(title, str):
        ctx.add("Content", path("title"), "'title' must be a string if present.")

    scenes, _errors = normalize_scenes(data.get("scenes"), ctx)

    for scene_id, scene in scenes.items():
        for key in ("bg", "background", "portrait", "music"):
            value = scene.get(key)
            if value is not None and not isinstance(value, str):
                ctx.add(f"Scene '{scene_id}'", path("scenes", scene_id, key), "resource handles must be strings.")
        lines = scene.get("lines")
        if not is_sequence(lines) or not lines:
            ctx.add(
                f"Scene '{scene_id}'",
                path("scenes", scene_id, "lines"),
                "must provide a non-empty 'lines' list.",
            )
            continue
        for index, line in enumerate(lines, start=1):
            validate_line(line, scene_id, index, scenes, ("scenes", scene_id, "lines", index - 1), ctx)

    routes = data.get("routes", [])
    if not is_sequence(routes):
        ctx.add("Content", path("routes"), "'routes' must be a list of route definitions if present.")
        return ctx.errors
    seen_routes = set()
    for idx, route in enumerate(routes, start=1):
        context = f"Route entry {idx}"
        if not isinstance(route, Mapping):
            ctx.add(context, path("routes", idx - 1), "must be an object.")
            continue
        route_id = route.get("id")
        if not is_non_empty_str(route_id):
            ctx.add(context, path("routes", idx - 1, "id"), "requires a non-empty 'id'.")
        elif route_id in seen_routes:
            ctx.add(context, path("routes", idx - 1, "id"), f"duplicate route id '{route_id}'.")
        else:
            seen_routes.add(route_id)
        scene_ref = route.get("scene", route.get("startScene"))
        if not is_non_empty_str(scene_ref):
            ctx.add(context, path("routes", idx - 1, "scene"), "requires a non-empty 'scene'.")
        elif scene_ref not in scenes:
            ctx.add(context, path("routes", idx - 1, "scene"), f"references unknown scene '{scene_ref}'.")

    return ctx.errors


def analyze_open_endings(scenes: Mapping[str, Any]) -> List[str]:
    """Warn about scenes whose last line neither ends the run nor redirects.

    Such scenes fall through to the title screen when played, which is almost
    always an authoring oversight.
    """
    warnings: List[str] = []
    for scene_id, scene in scenes.items():
        lines = scene.get("lines") if isinstance(scene, Mapping) else None
        if not is_sequence(lines) or not lines:
            continue
        last = lines[-1]
        if not isinstance(last, Mapping):
            continue
        if line_type(last) == "choice":
            options = last.get("options") or []
            if is_sequence(options) and all(
                isinstance(opt, Mapping) and opt.get("next") for opt in options
            ):
                continue
            message = "final choice has options without 'next'; those fall through to the title."
        elif last.get("end") is True:
            continue
        else:
            message = "last line is not marked 'end'; the run falls through to the title."
        warnings.append(
            format_validation_message(
                path("scenes", scene_id, "lines", len(lines) - 1), f"Scene '{scene_id}'", message
            )
        )
    return warnings
