"""Shared schema validation utilities for Taleroute story documents."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Sequence, Set

from .story import SCENE_MODES, infer_scene_mode
from .story_schema import (
    COMBAT_EFFECT_SPEC,
    CONDITION_CLAUSES,
    ROUTE_GUARDS,
    SCENE_PAYLOAD_SPECS,
    TAG_SET_SPEC,
    PayloadSpec,
    format_validation_message,
    is_non_empty_str,
    is_number,
    is_str_list,
    normalize_scenes,
    path,
)


class ValidationContext:
    """Utility container for accumulating validation errors."""

    def __init__(self) -> None:
        self.errors: List[str] = []

    def add(self, context: str, path_str: str, message: str) -> None:
        self.errors.append(format_validation_message(path_str, context, message))

    def extend_with_path(self, messages: Iterable[str], path_str: str) -> None:
        for message in messages:
            self.errors.append(f"{path_str}: {message}")


def require(condition: bool, context: str, path_str: str, message: str, ctx: ValidationContext) -> None:
    if not condition:
        ctx.add(context, path_str, message)


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def validate_payload(
    spec: PayloadSpec,
    payload: Mapping[str, Any],
    context: str,
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> None:
    known = set(spec.required_fields) | set(spec.optional_fields)
    for key in payload:
        if key not in known:
            ctx.add(context, path(*path_parts, key), f"unknown field '{key}'.")
    missing = [key for key in spec.required_fields if key not in payload]
    for key in missing:
        ctx.add(
            context,
            path(*path_parts, key),
            f"is missing '{key}' ({spec.field_rules.get(key, 'required')}).",
        )
    if missing:
        return
    ctx.extend_with_path(spec.validate(payload, context), path(*path_parts))


def validate_condition(
    condition: Any, context: str, path_parts: Sequence[object], ctx: ValidationContext
) -> List[str]:
    """Check one all/any/none condition; returns every tag it mentions."""
    if condition is None:
        return []
    if not isinstance(condition, Mapping):
        ctx.add(context, path(*path_parts), "condition must be an object or null.")
        return []
    mentioned: List[str] = []
    for key, value in condition.items():
        if key not in CONDITION_CLAUSES:
            ctx.add(context, path(*path_parts, key), f"unsupported condition clause '{key}'.")
            continue
        if not is_str_list(value):
            ctx.add(context, path(*path_parts, key), f"'{key}' must be a list of tag strings.")
            continue
        mentioned.extend(value)
    return mentioned


def validate_guard(
    guard: Any,
    context: str,
    action_ids: Set[str],
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> None:
    for key in ROUTE_GUARDS:
        mentioned = validate_condition(guard.get(key), context, (*path_parts, key), ctx)
        if key != "ifActions":
            continue
        for action_id in mentioned:
            if action_id not in action_ids:
                ctx.add(
                    context,
                    path(*path_parts, key),
                    f"references unknown action '{action_id}'.",
                )


def validate_tag_set(value: Any, context: str, path_parts: Sequence[object], ctx: ValidationContext) -> None:
    if value is None:
        return
    if not isinstance(value, Mapping):
        ctx.add(context, path(*path_parts), "'tagsAdded' must be an object with 'global'/'scene' lists.")
        return
    validate_payload(TAG_SET_SPEC, value, context, path_parts, ctx)


def validate_route(
    route: Any,
    context: str,
    scenes: Mapping[str, Any],
    action_ids: Set[str],
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> None:
    if not isinstance(route, Mapping):
        ctx.add(context, path(*path_parts), "must be an object.")
        return
    if "to" not in route:
        ctx.add(context, path(*path_parts, "to"), "is missing 'to' (use null to stay).")
    else:
        target = route.get("to")
        if target is not None:
            if not is_non_empty_str(target):
                ctx.add(context, path(*path_parts, "to"), "must be a scene id or null.")
            elif target not in scenes:
                ctx.add(context, path(*path_parts, "to"), f"targets unknown scene '{target}'.")
    validate_guard(route, context, action_ids, path_parts, ctx)


def validate_option(
    option: Any,
    scene_id: str,
    index: int,
    scenes: Mapping[str, Any],
    option_ids: Set[str],
    action_ids: Set[str],
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> None:
    context = f"Option {index} in scene '{scene_id}'"
    if not isinstance(option, Mapping):
        ctx.add(context, path(*path_parts), "must be an object.")
        return

    require(
        is_non_empty_str(option.get("text")),
        context,
        path(*path_parts, "text"),
        "requires non-empty 'text'.",
        ctx,
    )
    for key in ("defaultVisible", "isRisky"):
        if key in option and not isinstance(option.get(key), bool):
            ctx.add(context, path(*path_parts, key), f"'{key}' must be a boolean.")

    routes = option.get("next")
    if not _is_list(routes) or not routes:
        ctx.add(context, path(*path_parts, "next"), "requires a non-empty 'next' route list.")
    else:
        for route_index, route in enumerate(routes):
            validate_route(
                route,
                f"{context}, route {route_index + 1}",
                scenes,
                action_ids,
                (*path_parts, "next", route_index),
                ctx,
            )

    requires = option.get("requires")
    if requires is not None:
        if not isinstance(requires, Mapping):
            ctx.add(context, path(*path_parts, "requires"), "'requires' must be an object.")
        else:
            validate_guard(requires, context, action_ids, (*path_parts, "requires"), ctx)

    excludes = option.get("excludes")
    if excludes is not None:
        if not is_str_list(excludes):
            ctx.add(context, path(*path_parts, "excludes"), "'excludes' must be a list of option ids.")
        else:
            for excluded in excludes:
                if excluded not in option_ids:
                    ctx.add(
                        context,
                        path(*path_parts, "excludes"),
                        f"excludes unknown option '{excluded}'.",
                    )

    validate_tag_set(option.get("tagsAdded"), context, (*path_parts, "tagsAdded"), ctx)


def validate_steps(
    steps: Any,
    scene_id: str,
    option_ids: Set[str],
    path_parts: Sequence[object],
    ctx: ValidationContext,
) -> Set[str]:
    """Validate a scene's steps and return the action ids they declare."""
    action_ids: Set[str] = set()
    if steps is None:
        return action_ids
    if not _is_list(steps):
        ctx.add(f"Scene '{scene_id}'", path(*path_parts), "'steps' must be a list.")
        return action_ids

    step_ids: Set[str] = set()
    for step_index, step in enumerate(steps):
        step_path = (*path_parts, step_index)
        context = f"Step {step_index + 1} in scene '{scene_id}'"
        if not isinstance(step, Mapping):
            ctx.add(context, path(*step_path), "must be an object.")
            continue
        step_id = step.get("id")
        if not is_non_empty_str(step_id):
            ctx.add(context, path(*step_path, "id"), "is missing a valid 'id'.")
        elif step_id in step_ids:
            ctx.add(context, path(*step_path, "id"), f"duplicate step id '{step_id}'.")
        else:
            step_ids.add(step_id)

        actions = step.get("actions")
        step_actions: Set[str] = set()
        if not _is_list(actions) or not actions:
            ctx.add(context, path(*step_path, "actions"), "requires a non-empty 'actions' list.")
            actions = []
        for action_index, action in enumerate(actions):
            action_path = (*step_path, "actions", action_index)
            if not isinstance(action, Mapping) or not is_non_empty_str(action.get("id")):
                ctx.add(context, path(*action_path), "action requires a non-empty 'id'.")
                continue
            action_id = action["id"]
            if action_id in action_ids:
                ctx.add(context, path(*action_path, "id"), f"duplicate action id '{action_id}'.")
            action_ids.add(action_id)
            step_actions.add(action_id)
            require(
                is_non_empty_str(action.get("text")),
                context,
                path(*action_path, "text"),
                "action requires non-empty 'text'.",
                ctx,
            )

        outcomes = step.get("outcomes")
        if outcomes is None:
            continue
        if not isinstance(outcomes, Mapping):
            ctx.add(context, path(*step_path, "outcomes"), "'outcomes' must be an object keyed by action id.")
            continue
        for action_id, outcome in outcomes.items():
            outcome_path = (*step_path, "outcomes", action_id)
            if action_id not in step_actions:
                ctx.add(context, path(*outcome_path), f"outcome for unknown action '{action_id}'.")
            if not isinstance(outcome, Mapping):
                ctx.add(context, path(*outcome_path), "outcome must be an object.")
                continue
            narration = outcome.get("narration")
            if narration is not None and not isinstance(narration, str):
                ctx.add(context, path(*outcome_path, "narration"), "'narration' must be a string.")
            if "hpDelta" in outcome and not is_number(outcome.get("hpDelta")):
                ctx.add(context, path(*outcome_path, "hpDelta"), "'hpDelta' must be a number.")
            validate_tag_set(outcome.get("tagsAdded"), context, (*outcome_path, "tagsAdded"), ctx)
            unlocks = outcome.get("unlockOptionIds")
            if unlocks is None:
                continue
            if not is_str_list(unlocks):
                ctx.add(
                    context,
                    path(*outcome_path, "unlockOptionIds"),
                    "'unlockOptionIds' must be a list of option ids.",
                )
                continue
            for option_id in unlocks:
                if option_id not in option_ids:
                    ctx.add(
                        context,
                        path(*outcome_path, "unlockOptionIds"),
                        f"unlocks unknown option '{option_id}'.",
                    )
    return action_ids


def validate_combat_rules(combat: Any, required: bool, ctx: ValidationContext) -> None:
    if combat is None:
        require(
            not required,
            "Story data",
            path("combat"),
            "combat scenes need a top-level 'combat' block with party HP and actions.",
            ctx,
        )
        return
    if not isinstance(combat, Mapping):
        ctx.add("Story data", path("combat"), "'combat' must be an object.")
        return
    if "partyHp" in combat:
        party_hp = combat.get("partyHp")
        require(
            is_number(party_hp) and party_hp > 0,
            "Combat",
            path("combat", "partyHp"),
            "'partyHp' must be a positive number.",
            ctx,
        )
    actions = combat.get("actions")
    if not _is_list(actions) or not actions:
        ctx.add("Combat", path("combat", "actions"), "requires a non-empty 'actions' list.")
        return
    seen: Set[str] = set()
    for index, action in enumerate(actions):
        context = f"Combat action {index + 1}"
        if not isinstance(action, Mapping) or not is_non_empty_str(action.get("id")):
            ctx.add(context, path("combat", "actions", index), "requires a non-empty 'id'.")
            continue
        action_id = action["id"]
        if action_id in seen:
            ctx.add(context, path("combat", "actions", index, "id"), f"duplicate action id '{action_id}'.")
        seen.add(action_id)
        require(
            is_non_empty_str(action.get("text")),
            context,
            path("combat", "actions", index, "text"),
            "requires non-empty 'text'.",
            ctx,
        )
        effect = action.get("effect")
        if not isinstance(effect, Mapping):
            ctx.add(context, path("combat", "actions", index, "effect"), "requires an 'effect' object.")
            continue
        validate_payload(COMBAT_EFFECT_SPEC, effect, context, ("combat", "actions", index, "effect"), ctx)


def validate_scene(
    scene_id: str,
    scene: Mapping[str, Any],
    scenes: Mapping[str, Any],
    ctx: ValidationContext,
) -> None:
    context = f"Scene '{scene_id}'"
    base = ("scenes", scene_id)

    text = scene.get("text", scene.get("intro"))
    if text is not None and not isinstance(text, str):
        ctx.add(context, path(*base, "text"), "'text' must be a string.")
    title = scene.get("title")
    if title is not None and not isinstance(title, str):
        ctx.add(context, path(*base, "title"), "'title' must be a string.")

    mode = scene.get("mode")
    if mode is not None and mode not in SCENE_MODES:
        ctx.add(context, path(*base, "mode"), f"'mode' must be one of {', '.join(SCENE_MODES)}.")
    mode = infer_scene_mode(scene)
    spec = SCENE_PAYLOAD_SPECS.get(mode)
    if spec is not None:
        payload = scene.get(mode)
        if not isinstance(payload, Mapping):
            ctx.add(context, path(*base, mode), f"{mode} scenes require a '{mode}' object.")
        else:
            validate_payload(spec, payload, context, (*base, mode), ctx)

    is_ending = scene.get("isEnding", False)
    if not isinstance(is_ending, bool):
        ctx.add(context, path(*base, "isEnding"), "'isEnding' must be a boolean.")
        is_ending = bool(is_ending)

    options = scene.get("options")
    if options is None:
        options = []
    if not _is_list(options):
        ctx.add(context, path(*base, "options"), "options must be provided as a list.")
        options = []
    if is_ending and options:
        ctx.add(context, path(*base, "options"), "ending scenes cannot offer options.")
    if not is_ending and not options:
        ctx.add(context, path(*base, "options"), "non-ending scenes need at least one option.")

    option_ids: Set[str] = set()
    for index, option in enumerate(options):
        if not isinstance(option, Mapping):
            continue
        option_id = option.get("id")
        if not is_non_empty_str(option_id):
            ctx.add(context, path(*base, "options", index, "id"), "option requires a non-empty 'id'.")
        elif option_id in option_ids:
            ctx.add(context, path(*base, "options", index, "id"), f"duplicate option id '{option_id}'.")
        else:
            option_ids.add(option_id)

    steps = scene.get("steps")
    if mode == "combat" and steps:
        ctx.add(context, path(*base, "steps"), "combat scenes cannot have steps.")
    action_ids = validate_steps(steps, scene_id, option_ids, (*base, "steps"), ctx)

    for index, option in enumerate(options):
        validate_option(
            option,
            scene_id,
            index + 1,
            scenes,
            option_ids,
            action_ids,
            (*base, "options", index),
            ctx,
        )

    outcomes = scene.get("outcomeByOption")
    if outcomes is not None:
        if not isinstance(outcomes, Mapping):
            ctx.add(context, path(*base, "outcomeByOption"), "'outcomeByOption' must be an object.")
        else:
            for option_id, outcome in outcomes.items():
                outcome_path = (*base, "outcomeByOption", option_id)
                if option_id not in option_ids:
                    ctx.add(context, path(*outcome_path), f"outcome for unknown option '{option_id}'.")
                if not isinstance(outcome, Mapping):
                    ctx.add(context, path(*outcome_path), "outcome must be an object.")
                    continue
                if "text" in outcome and not isinstance(outcome.get("text"), str):
                    ctx.add(context, path(*outcome_path, "text"), "'text' must be a string.")
                if "hpDelta" in outcome and not is_number(outcome.get("hpDelta")):
                    ctx.add(context, path(*outcome_path, "hpDelta"), "'hpDelta' must be a number.")

    combat = scene.get("combat")
    if mode == "combat" and isinstance(combat, Mapping):
        outcome_options = combat.get("outcomeOptions")
        if isinstance(outcome_options, Mapping):
            for outcome, option_id in outcome_options.items():
                if is_non_empty_str(option_id) and option_id not in option_ids:
                    ctx.add(
                        context,
                        path(*base, "combat", "outcomeOptions", outcome),
                        f"references unknown option '{option_id}'.",
                    )


def validate_story(story: Mapping[str, Any]) -> List[str]:
    ctx = ValidationContext()

    require(
        "scenes" in story,
        "Story data",
        path("scenes"),
        "must include a 'scenes' section.",
        ctx,
    )
    title = story.get("title")
    if title is not None and not isinstance(title, str):
        ctx.add("Story data", path("title"), "'title' must be a string.")
    version = story.get("version")
    if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
        ctx.add("Story data", path("version"), "'version' must be an integer.")
    meta = story.get("meta")
    if meta is not None and not isinstance(meta, Mapping):
        ctx.add("Story data", path("meta"), "'meta' must be an object.")

    scenes, _scene_errors = normalize_scenes(story.get("scenes"), ctx)

    start_id = story.get("startSceneId")
    if not is_non_empty_str(start_id):
        ctx.add("Story data", path("startSceneId"), "requires a non-empty 'startSceneId'.")
    elif scenes and start_id not in scenes:
        ctx.add("Story data", path("startSceneId"), f"references unknown scene '{start_id}'.")

    has_combat = any(infer_scene_mode(scene) == "combat" for scene in scenes.values())
    validate_combat_rules(story.get("combat"), has_combat, ctx)

    for scene_id, scene in scenes.items():
        validate_scene(scene_id, scene, scenes, ctx)

    return ctx.errors
