"""Ordered route resolution: the first matching route wins."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List, Optional, Sequence, Union

from .conditions import evaluate
from .story import Route


@dataclass(frozen=True)
class GoTo:
    scene_id: str
    route_index: int


@dataclass(frozen=True)
class Stay:
    """No transition. `route_index` is None when no route matched at all."""

    route_index: Optional[int] = None

    @property
    def authoring_gap(self) -> bool:
        return self.route_index is None


Resolution = Union[GoTo, Stay]


def resolve(
    routes: Sequence[Route],
    global_tags: AbstractSet[str],
    scene_tags: AbstractSet[str],
    action_ids: AbstractSet[str] = frozenset(),
) -> Resolution:
    for index, route in enumerate(routes):
        if not evaluate(route, global_tags, scene_tags, action_ids):
            continue
        if route.to is None:
            return Stay(index)
        return GoTo(route.to, index)
    return Stay()


def resolve_scene_id(
    routes: Sequence[Route],
    global_tags: AbstractSet[str],
    scene_tags: AbstractSet[str],
    action_ids: AbstractSet[str] = frozenset(),
) -> Optional[str]:
    resolution = resolve(routes, global_tags, scene_tags, action_ids)
    if isinstance(resolution, GoTo):
        return resolution.scene_id
    return None


def find_shadowed_routes(routes: Sequence[Route]) -> List[int]:
    """Indexes of routes that can never match because an earlier route is unconditional."""
    for index, route in enumerate(routes):
        if route.is_unconditional:
            return list(range(index + 1, len(routes)))
    return []
