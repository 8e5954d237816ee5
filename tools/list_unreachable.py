"""List scenes that no route can reach through choices."""

import json
import sys
from pathlib import Path

DEFAULT_CONTENT_PATH = Path(__file__).resolve().parents[1] / "vn_engine" / "data" / "demo.json"


def load_content(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _scenes(content: dict) -> dict:
    scenes = content.get("scenes", {})
    if isinstance(scenes, list):
        return {entry.get("id"): entry for entry in scenes if isinstance(entry, dict)}
    return scenes if isinstance(scenes, dict) else {}


def build_graph(content: dict):
    """Return ``(graph, missing)``: scene -> reachable scenes, plus dangling targets."""
    scenes = _scenes(content)
    graph = {scene_id: [] for scene_id in scenes}
    missing = []
    for scene_id, scene in scenes.items():
        for index, line in enumerate(scene.get("lines", []) or []):
            if not isinstance(line, dict) or line.get("type") != "choice":
                continue
            for option in line.get("options", []) or []:
                target = option.get("next") if isinstance(option, dict) else None
                if not isinstance(target, str):
                    continue
                if target in scenes:
                    if target not in graph[scene_id]:
                        graph[scene_id].append(target)
                else:
                    missing.append(f"{scene_id} line {index} -> missing scene {target}")
    return graph, missing


def traverse_from(start_scene: str, graph: dict) -> set:
    if start_scene not in graph:
        return set()
    visited = set()
    stack = [start_scene]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        stack.extend(graph.get(current, []))
    return visited


def find_unreachable(content: dict) -> list:
    graph, _missing = build_graph(content)
    reached = set()
    for route in content.get("routes", []) or []:
        scene = route.get("scene", route.get("startScene")) if isinstance(route, dict) else None
        if isinstance(scene, str):
            reached.update(traverse_from(scene, graph))
    return sorted(set(graph) - reached)


def main() -> None:
    content_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_CONTENT_PATH
    content = load_content(content_path)
    graph, missing = build_graph(content)
    unreachable = find_unreachable(content)

    print(f"Content file: {content_path}")
    print(f"Total scenes: {len(graph)}")
    print(f"Reachable scenes: {len(graph) - len(unreachable)}")
    for message in missing:
        print(f"  ! {message}")
    if unreachable:
        print("Unreachable scenes:")
        for scene_id in unreachable:
            print(f"  - {scene_id}")
    else:
        print("All scenes reachable from the defined routes.")


if __name__ == "__main__":
    main()
