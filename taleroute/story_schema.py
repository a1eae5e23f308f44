"""Machine-readable schema specs for Taleroute story documents."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import json
import math
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Sequence, Tuple

from .story import COMBAT_OUTCOMES, TIMED_KINDS

PayloadValidator = Callable[[Mapping[str, Any], str], List[str]]

CONDITION_CLAUSES = ("all", "any", "none")
ROUTE_GUARDS = ("ifGlobal", "ifScene", "ifActions")


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


def is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def normalize_scenes(
    raw_scenes: Any, ctx: Any | None = None
) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
    """Index scenes by id. Accepts a list of scene entries or an object keyed by id."""
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
                add_error(
                    "Scenes",
                    ("scenes", scene_id),
                    f"scene '{scene_id}' must be an object.",
                )
                continue
            scene_ids.append(scene_id)
            scenes[scene_id] = payload
    elif isinstance(raw_scenes, list):
        for idx, entry in enumerate(raw_scenes, start=1):
            if not isinstance(entry, MutableMapping):
                add_error(
                    f"Scene entry {idx}",
                    ("scenes", idx - 1),
                    "must be an object.",
                )
                continue
            scene_id = entry.get("id")
            if not is_non_empty_str(scene_id):
                add_error(
                    f"Scene entry {idx}",
                    ("scenes", idx - 1, "id"),
                    "is missing a valid 'id'.",
                )
                continue
            scene_ids.append(scene_id)
            if scene_id in scenes:
                continue
            payload = dict(entry)
            payload.pop("id", None)
            scenes[scene_id] = payload
    else:
        add_error(
            "Story data",
            ("scenes",),
            "must be a list of scene entries or an object mapping IDs to scene definitions.",
        )

    duplicates = [scene_id for scene_id, count in Counter(scene_ids).items() if count > 1]
    if duplicates:
        dup_list = ", ".join(sorted(set(duplicates)))
        add_error("Scenes", ("scenes",), f"duplicate scene IDs found: {dup_list}.")

    return scenes, errors


@dataclass(frozen=True)
class PayloadSpec:
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...]
    field_rules: Mapping[str, str]
    validate: PayloadValidator


def _validate_enemy(payload: Mapping[str, Any], context: str) -> List[str]:
    errors: List[str] = []
    if not isinstance(payload.get("enemyName"), str):
        errors.append(f"{context}: 'enemyName' must be a string.")
    enemy_hp = payload.get("enemyHp")
    if not is_number(enemy_hp) or enemy_hp <= 0:
        errors.append(f"{context}: 'enemyHp' must be a positive number.")
    enemy_attack = payload.get("enemyAttack")
    if not is_number(enemy_attack) or enemy_attack < 0:
        errors.append(f"{context}: 'enemyAttack' must be a non-negative number.")
    if "allowRun" in payload and not isinstance(payload.get("allowRun"), bool):
        errors.append(f"{context}: 'allowRun' must be a boolean.")
    outcome_options = payload.get("outcomeOptions")
    if outcome_options is not None:
        if not isinstance(outcome_options, Mapping):
            errors.append(f"{context}: 'outcomeOptions' must map outcomes to option ids.")
        else:
            for outcome, option_id in outcome_options.items():
                if outcome not in COMBAT_OUTCOMES:
                    errors.append(
                        f"{context}: 'outcomeOptions' key '{outcome}' must be one of "
                        f"{', '.join(COMBAT_OUTCOMES)}."
                    )
                if not is_non_empty_str(option_id):
                    errors.append(f"{context}: 'outcomeOptions.{outcome}' must be an option id.")
    return errors


def _validate_timed(payload: Mapping[str, Any], context: str) -> List[str]:
    errors: List[str] = []
    if payload.get("kind") not in TIMED_KINDS:
        errors.append(f"{context}: 'kind' must be one of {', '.join(TIMED_KINDS)}.")
    duration = payload.get("durationSeconds")
    if not is_number(duration) or duration <= 0:
        errors.append(f"{context}: 'durationSeconds' must be a positive number.")
    if "allowEarly" in payload and not isinstance(payload.get("allowEarly"), bool):
        errors.append(f"{context}: 'allowEarly' must be a boolean.")
    status = payload.get("statusText")
    if status is not None and not isinstance(status, str):
        errors.append(f"{context}: 'statusText' must be a string.")
    return errors


def _validate_combat_effect(payload: Mapping[str, Any], context: str) -> List[str]:
    errors: List[str] = []
    for key in ("damage", "block", "enemyAttackDelta"):
        if key in payload and not is_number(payload.get(key)):
            errors.append(f"{context}: '{key}' must be a number.")
    if "run" in payload and not isinstance(payload.get("run"), bool):
        errors.append(f"{context}: 'run' must be a boolean.")
    return errors


def _validate_tag_set(payload: Mapping[str, Any], context: str) -> List[str]:
    errors: List[str] = []
    for key in ("global", "scene"):
        if key in payload and not is_str_list(payload.get(key)):
            errors.append(f"{context}: '{key}' must be a list of tag strings.")
    return errors


SCENE_PAYLOAD_SPECS: Dict[str, PayloadSpec] = {
    "combat": PayloadSpec(
        required_fields=("enemyName", "enemyHp", "enemyAttack"),
        optional_fields=("allowRun", "outcomeOptions"),
        field_rules={
            "enemyName": "string",
            "enemyHp": "positive number",
            "enemyAttack": "non-negative number",
            "allowRun": "optional boolean (default true)",
            "outcomeOptions": "optional object mapping victory/defeat/escape to option ids",
        },
        validate=_validate_enemy,
    ),
    "timed": PayloadSpec(
        required_fields=("kind", "durationSeconds"),
        optional_fields=("allowEarly", "statusText"),
        field_rules={
            "kind": " | ".join(TIMED_KINDS),
            "durationSeconds": "positive number",
            "allowEarly": "optional boolean (default false)",
            "statusText": "optional string",
        },
        validate=_validate_timed,
    ),
}

COMBAT_EFFECT_SPEC = PayloadSpec(
    required_fields=(),
    optional_fields=("damage", "block", "enemyAttackDelta", "run"),
    field_rules={
        "damage": "number dealt to the enemy",
        "block": "number subtracted from the enemy attack",
        "enemyAttackDelta": "number added to the enemy attack this round",
        "run": "boolean retreat signal",
    },
    validate=_validate_combat_effect,
)

TAG_SET_SPEC = PayloadSpec(
    required_fields=(),
    optional_fields=("global", "scene"),
    field_rules={"global": "list of tag strings", "scene": "list of tag strings"},
    validate=_validate_tag_set,
)
