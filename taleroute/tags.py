"""Global and scene tag pools."""

from __future__ import annotations

from typing import FrozenSet, Iterable, Optional, Set

from .story import TagSet


class TagStore:
    """Two set-valued pools: global tags for the playthrough, scene tags for one visit."""

    def __init__(
        self,
        global_tags: Optional[Iterable[str]] = None,
        scene_tags: Optional[Iterable[str]] = None,
    ) -> None:
        self._global: Set[str] = set(global_tags or ())
        self._scene: Set[str] = set(scene_tags or ())

    @property
    def global_tags(self) -> FrozenSet[str]:
        return frozenset(self._global)

    @property
    def scene_tags(self) -> FrozenSet[str]:
        return frozenset(self._scene)

    def add_global(self, tag: str) -> bool:
        if tag in self._global:
            return False
        self._global.add(tag)
        return True

    def add_scene(self, tag: str) -> bool:
        if tag in self._scene:
            return False
        self._scene.add(tag)
        return True

    def has_global(self, tag: str) -> bool:
        return tag in self._global

    def has_scene(self, tag: str) -> bool:
        return tag in self._scene

    def reset_scene(self) -> None:
        self._scene.clear()

    def apply(self, tags: TagSet) -> None:
        for tag in tags.global_tags:
            self.add_global(tag)
        for tag in tags.scene_tags:
            self.add_scene(tag)

    def copy(self) -> "TagStore":
        return TagStore(self._global, self._scene)

    def __repr__(self) -> str:
        return (
            f"TagStore(global={sorted(self._global)!r}, scene={sorted(self._scene)!r})"
        )
