#!/usr/bin/env python3
"""Validate story data for common authoring mistakes."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_STORY = REPO_ROOT / "story" / "story.json"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from taleroute.schema import validate_story
from tools.softlock import analyze_softlocks


def load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate Taleroute story content.")
    parser.add_argument(
        "story_path",
        nargs="?",
        default=str(DEFAULT_STORY),
        help="Path to the story JSON file.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> None:
    args = parse_args(argv[1:])
    story_path = Path(args.story_path).resolve()
    try:
        story = load_json(story_path)
    except json.JSONDecodeError as exc:
        print(f"Failed to parse JSON from {story_path}: {exc}")
        sys.exit(1)
    if not isinstance(story, dict):
        print(f"Validation failed: {story_path} must contain a JSON object.")
        sys.exit(1)

    errors = validate_story(story)
    if errors:
        print("Validation failed (path: message):")
        for err in errors:
            print(f" - {err}")
        sys.exit(1)

    warnings = analyze_softlocks(story)
    if warnings:
        print("Soft-lock warnings (path: message):")
        for warning in warnings:
            print(f" - {warning}")

    print(f"Validation passed for {story_path}.")


if __name__ == "__main__":
    main(sys.argv)
