"""Read, validate and build story graphs from JSON documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import MalformedGraphError
from .schema import validate_story
from .story import StoryGraph, build_graph
from .story_schema import normalize_scenes

logger = logging.getLogger(__name__)


def parse_story(document: Any, source: Optional[str] = None) -> StoryGraph:
    """Validate an already-decoded story document and build its graph."""
    if not isinstance(document, Mapping):
        raise MalformedGraphError(["Story data must be a JSON object."], source)

    errors = validate_story(document)
    if errors:
        logger.debug("Story %s failed validation with %d error(s)", source or "<memory>", len(errors))
        raise MalformedGraphError(errors, source)

    scenes, scene_errors = normalize_scenes(document.get("scenes"))
    if scene_errors:
        raise MalformedGraphError(scene_errors, source)
    graph = build_graph(document, scenes)
    logger.info("Loaded story '%s' with %d scenes", graph.title, len(graph.scenes))
    return graph


def load_story(path: Path | str) -> StoryGraph:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
    except json.JSONDecodeError as exc:
        raise MalformedGraphError([f"{exc.msg} (line {exc.lineno}, column {exc.colno})"], str(path)) from exc
    return parse_story(document, str(path))
