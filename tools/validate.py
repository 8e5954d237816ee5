#!/usr/bin/env python3
"""Validate authored story content for common mistakes."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONTENT = REPO_ROOT / "vn_engine" / "data" / "demo.json"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from vn_engine.content_schema import analyze_open_endings, normalize_scenes, validate_content


def load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate vn-engine story content.")
    parser.add_argument(
        "content_path",
        nargs="?",
        default=str(DEFAULT_CONTENT),
        help="Path to the story JSON file.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat open-ended scenes as errors.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> None:
    args = parse_args(argv[1:])
    content_path = Path(args.content_path).resolve()
    try:
        data = load_json(content_path)
    except json.JSONDecodeError as exc:
        print(f"Failed to parse JSON from {content_path}: {exc}")
        sys.exit(1)

    errors = validate_content(data)
    if errors:
        print("Validation failed (path: message):")
        for err in errors:
            print(f" - {err}")
        sys.exit(1)

    scenes, _ = normalize_scenes(data.get("scenes"))
    warnings = analyze_open_endings(scenes)
    if warnings:
        print("Open-ending warnings (path: message):")
        for warning in warnings:
            print(f" - {warning}")
        if args.strict:
            sys.exit(1)

    print(f"Validation passed for {content_path}.")


if __name__ == "__main__":
    main(sys.argv)
