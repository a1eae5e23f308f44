"""Soft-lock analysis helpers for Taleroute validation."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from taleroute.routing import find_shadowed_routes
from taleroute.story import Option, Scene
from taleroute.story_schema import normalize_scenes, path


def _is_gated_option(option: Option) -> bool:
    if not option.default_visible:
        return True
    return option.requires is not None and not option.requires.is_unconditional


def _iter_routes(
    scenes: Mapping[str, Scene],
) -> Iterable[Tuple[str, Option, int, str, bool, Tuple[object, ...]]]:
    for scene_id, scene in scenes.items():
        for option_index, option in enumerate(scene.options):
            option_gated = _is_gated_option(option) and scene.mode != "combat"
            for route_index, route in enumerate(option.routes):
                if route.to is None:
                    continue
                yield (
                    scene_id,
                    option,
                    option_index,
                    route.to,
                    option_gated or not route.is_unconditional,
                    ("scenes", scene_id, "options", option_index, "next", route_index, "to"),
                )


def analyze_softlocks(story: Mapping[str, Any]) -> List[str]:
    raw_scenes, _ = normalize_scenes(story.get("scenes"))
    scenes = {scene_id: Scene.from_dict(scene_id, payload) for scene_id, payload in raw_scenes.items()}

    warnings: List[str] = []

    for scene_id, scene in scenes.items():
        for option_index, option in enumerate(scene.options):
            option_path = ("scenes", scene_id, "options", option_index)
            for route_index in find_shadowed_routes(option.routes):
                warnings.append(
                    f"{path(*option_path, 'next', route_index)}: route can never match; "
                    "an earlier route has no conditions."
                )
            if option.routes and not any(route.is_unconditional for route in option.routes):
                warnings.append(
                    f"{path(*option_path, 'next')}: every route is gated; "
                    f"option '{option.id}' can leave the player with no destination."
                )

    edges: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for scene_id, option, _option_index, target, gated, route_path in _iter_routes(scenes):
        edges[scene_id].append({"option": option.id, "target": target, "gated": gated, "path": path(*route_path)})

    start_id = story.get("startSceneId")
    if not isinstance(start_id, str) or start_id not in scenes:
        return warnings

    def traverse(ungated_only: bool) -> Tuple[set[str], List[str]]:
        visited: set[str] = set()
        queue: deque[str] = deque([start_id])
        chain_warnings: List[str] = []
        while queue:
            scene_id = queue.popleft()
            if scene_id in visited:
                continue
            visited.add(scene_id)
            scene_edges = edges.get(scene_id, [])
            if ungated_only and not scenes[scene_id].is_ending:
                if not any(not edge["gated"] for edge in scene_edges):
                    route_paths = ", ".join(edge["path"] for edge in scene_edges) or "none"
                    chain_warnings.append(
                        f"{path('scenes', scene_id)}: traversal from start '{start_id}'"
                        f" hit a scene with no ungated exits. Routes: {route_paths}."
                    )
            for edge in scene_edges:
                if ungated_only and edge["gated"]:
                    continue
                if edge["target"] in scenes:
                    queue.append(edge["target"])
        return visited, chain_warnings

    reachable, _ = traverse(ungated_only=False)
    open_reachable, chain_warnings = traverse(ungated_only=True)
    warnings.extend(chain_warnings)
    for scene_id in sorted(reachable - open_reachable):
        warnings.append(f"{path('scenes', scene_id)}: reachable only through gated routes or options.")

    return warnings
