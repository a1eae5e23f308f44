"""Tag condition evaluation.

A condition is checked against one pool. A route-level guard bundles up to
three conditions (`ifGlobal`, `ifScene`, `ifActions`), each evaluated against
its own pool; every present condition must pass.
"""

from __future__ import annotations

from typing import AbstractSet, Iterable, Optional

from .story import Route, TagCondition


def matches(condition: Optional[TagCondition], tags: AbstractSet[str]) -> bool:
    if condition is None:
        return True
    if condition.all is not None and any(tag not in tags for tag in condition.all):
        return False
    # "any of nothing" cannot be satisfied.
    if condition.any is not None and not any(tag in tags for tag in condition.any):
        return False
    if condition.none is not None and any(tag in tags for tag in condition.none):
        return False
    return True


def evaluate(
    guard: Optional[Route],
    global_tags: AbstractSet[str],
    scene_tags: AbstractSet[str],
    action_ids: AbstractSet[str] = frozenset(),
) -> bool:
    """Check a route-level guard (`if_global`/`if_scene`/`if_actions`) against the pools."""
    if guard is None:
        return True
    if not matches(guard.if_global, global_tags):
        return False
    if not matches(guard.if_scene, scene_tags):
        return False
    return matches(guard.if_actions, action_ids)


def _join(tags: Iterable[str]) -> str:
    return "/".join(tags) or "nothing"


def describe(condition: Optional[TagCondition]) -> str:
    if condition is None or condition.is_empty():
        return "None"
    parts = []
    if condition.all is not None:
        parts.append(f"all {_join(condition.all)}")
    if condition.any is not None:
        parts.append(f"any {_join(condition.any)}")
    if condition.none is not None:
        parts.append(f"none {_join(condition.none)}")
    return ", ".join(parts)


def describe_guard(guard: Optional[Route]) -> str:
    if guard is None:
        return "None"
    parts = []
    labelled = (("Global", guard.if_global), ("Scene", guard.if_scene), ("Actions", guard.if_actions))
    for label, condition in labelled:
        summary = describe(condition)
        if summary != "None":
            parts.append(f"{label}: {summary}")
    return "; ".join(parts) if parts else "None"
