"""Immutable scene graph built from an authored story document."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

SCENE_MODES = ("story", "combat", "timed")
TIMED_KINDS = ("rest", "travel", "wait")
COMBAT_OUTCOMES = ("victory", "defeat", "escape")
DEFAULT_PARTY_HP = 30


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(item for item in value if isinstance(item, str))
    return ()


def _optional_str_tuple(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    return _str_tuple(value)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class TagCondition:
    """Conjunction (`all`), disjunction (`any`) and negation (`none`) clauses."""

    all: Optional[Tuple[str, ...]] = None
    any: Optional[Tuple[str, ...]] = None
    none: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TagCondition"]:
        if not isinstance(data, Mapping):
            return None
        return cls(
            all=_optional_str_tuple(data.get("all")),
            any=_optional_str_tuple(data.get("any")),
            none=_optional_str_tuple(data.get("none")),
        )

    def is_empty(self) -> bool:
        return self.all is None and self.any is None and self.none is None


@dataclass(frozen=True)
class TagSet:
    global_tags: Tuple[str, ...] = ()
    scene_tags: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "TagSet":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            global_tags=_str_tuple(data.get("global")),
            scene_tags=_str_tuple(data.get("scene")),
        )

    def __bool__(self) -> bool:
        return bool(self.global_tags or self.scene_tags)


@dataclass(frozen=True)
class Route:
    to: Optional[str]
    if_global: Optional[TagCondition] = None
    if_scene: Optional[TagCondition] = None
    if_actions: Optional[TagCondition] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Route":
        target = data.get("to")
        return cls(
            to=target if isinstance(target, str) and target else None,
            if_global=TagCondition.from_dict(data.get("ifGlobal")),
            if_scene=TagCondition.from_dict(data.get("ifScene")),
            if_actions=TagCondition.from_dict(data.get("ifActions")),
        )

    @property
    def is_unconditional(self) -> bool:
        return all(
            cond is None or cond.is_empty()
            for cond in (self.if_global, self.if_scene, self.if_actions)
        )


@dataclass(frozen=True)
class OptionOutcome:
    text: str = ""
    hp_delta: int = 0


@dataclass(frozen=True)
class Option:
    id: str
    text: str
    routes: Tuple[Route, ...]
    default_visible: bool = True
    is_risky: bool = False
    tags_added: TagSet = field(default_factory=TagSet)
    requires: Optional[Route] = None
    excludes: Tuple[str, ...] = ()
    outcome: OptionOutcome = field(default_factory=OptionOutcome)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], outcome: Any = None) -> "Option":
        requires = data.get("requires")
        outcome_data = outcome if isinstance(outcome, Mapping) else {}
        return cls(
            id=str(data.get("id")),
            text=str(data.get("text", "")),
            routes=tuple(
                Route.from_dict(entry)
                for entry in data.get("next") or []
                if isinstance(entry, Mapping)
            ),
            default_visible=data.get("defaultVisible", True) is not False,
            is_risky=bool(data.get("isRisky", False)),
            tags_added=TagSet.from_dict(data.get("tagsAdded")),
            requires=Route.from_dict(requires) if isinstance(requires, Mapping) else None,
            excludes=_str_tuple(data.get("excludes")),
            outcome=OptionOutcome(
                text=str(outcome_data.get("text", "")),
                hp_delta=_int(outcome_data.get("hpDelta", 0)),
            ),
        )


@dataclass(frozen=True)
class StepAction:
    id: str
    text: str


@dataclass(frozen=True)
class StepOutcome:
    narration: str = ""
    tags_added: TagSet = field(default_factory=TagSet)
    unlock_option_ids: Tuple[str, ...] = ()
    hp_delta: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "StepOutcome":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            narration=str(data.get("narration", "")),
            tags_added=TagSet.from_dict(data.get("tagsAdded")),
            unlock_option_ids=_str_tuple(data.get("unlockOptionIds")),
            hp_delta=_int(data.get("hpDelta", 0)),
        )


@dataclass(frozen=True)
class Step:
    id: str
    actions: Tuple[StepAction, ...]
    outcomes: Mapping[str, StepOutcome]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Step":
        actions = tuple(
            StepAction(id=str(entry.get("id")), text=str(entry.get("text", "")))
            for entry in data.get("actions") or []
            if isinstance(entry, Mapping)
        )
        raw_outcomes = data.get("outcomes")
        if not isinstance(raw_outcomes, Mapping):
            raw_outcomes = {}
        outcomes = {
            action.id: StepOutcome.from_dict(raw_outcomes.get(action.id))
            for action in actions
        }
        return cls(id=str(data.get("id")), actions=actions, outcomes=MappingProxyType(outcomes))

    def action(self, action_id: str) -> Optional[StepAction]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


@dataclass(frozen=True)
class CombatEffect:
    damage: int = 0
    block: int = 0
    enemy_attack_delta: int = 0
    run: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "CombatEffect":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            damage=_int(data.get("damage", 0)),
            block=_int(data.get("block", 0)),
            enemy_attack_delta=_int(data.get("enemyAttackDelta", 0)),
            run=bool(data.get("run", False)),
        )

    def describe(self) -> str:
        parts = []
        if self.damage:
            parts.append(f"+{self.damage} dmg")
        if self.block:
            parts.append(f"+{self.block} block")
        if self.enemy_attack_delta:
            parts.append(f"{self.enemy_attack_delta:+d} enemy atk")
        if self.run:
            parts.append("run")
        return ", ".join(parts)


@dataclass(frozen=True)
class CombatAction:
    id: str
    text: str
    effect: CombatEffect


@dataclass(frozen=True)
class CombatRules:
    party_hp: int = DEFAULT_PARTY_HP
    actions: Tuple[CombatAction, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "CombatRules":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            party_hp=max(1, _int(data.get("partyHp", DEFAULT_PARTY_HP), DEFAULT_PARTY_HP)),
            actions=tuple(
                CombatAction(
                    id=str(entry.get("id")),
                    text=str(entry.get("text", "")),
                    effect=CombatEffect.from_dict(entry.get("effect")),
                )
                for entry in data.get("actions") or []
                if isinstance(entry, Mapping)
            ),
        )

    def action(self, action_id: str) -> Optional[CombatAction]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


@dataclass(frozen=True)
class EnemyConfig:
    enemy_name: str
    enemy_hp: int
    enemy_attack: int
    allow_run: bool = True
    outcome_options: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnemyConfig":
        raw_outcomes = data.get("outcomeOptions")
        outcome_options = {}
        if isinstance(raw_outcomes, Mapping):
            outcome_options = {
                key: value
                for key, value in raw_outcomes.items()
                if key in COMBAT_OUTCOMES and isinstance(value, str)
            }
        return cls(
            enemy_name=str(data.get("enemyName", "Enemy")),
            enemy_hp=max(1, _int(data.get("enemyHp", 1), 1)),
            enemy_attack=max(0, _int(data.get("enemyAttack", 0))),
            allow_run=data.get("allowRun", True) is not False,
            outcome_options=MappingProxyType(outcome_options),
        )


@dataclass(frozen=True)
class TimedConfig:
    kind: str
    duration_seconds: float
    allow_early: bool = False
    status_text: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimedConfig":
        status = data.get("statusText")
        try:
            duration = float(data.get("durationSeconds", 0))
        except (TypeError, ValueError):
            duration = 0.0
        return cls(
            kind=str(data.get("kind", "wait")),
            duration_seconds=duration,
            allow_early=bool(data.get("allowEarly", False)),
            status_text=status if isinstance(status, str) else None,
        )


def infer_scene_mode(data: Mapping[str, Any]) -> str:
    mode = data.get("mode")
    if mode == "combat" or isinstance(data.get("combat"), Mapping):
        return "combat"
    if mode == "timed" or isinstance(data.get("timed"), Mapping):
        return "timed"
    return "story"


@dataclass(frozen=True)
class Scene:
    id: str
    title: str
    text: str
    mode: str = "story"
    is_ending: bool = False
    combat: Optional[EnemyConfig] = None
    timed: Optional[TimedConfig] = None
    steps: Tuple[Step, ...] = ()
    options: Tuple[Option, ...] = ()
    meta: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, scene_id: str, data: Mapping[str, Any]) -> "Scene":
        mode = infer_scene_mode(data)
        text = data.get("text")
        if not isinstance(text, str):
            text = data.get("intro", "")
        outcomes = data.get("outcomeByOption")
        if not isinstance(outcomes, Mapping):
            outcomes = {}
        combat = data.get("combat")
        timed = data.get("timed")
        meta = data.get("meta")
        return cls(
            id=scene_id,
            title=str(data.get("title", scene_id)),
            text=str(text or ""),
            mode=mode,
            is_ending=bool(data.get("isEnding", False)),
            combat=EnemyConfig.from_dict(combat) if mode == "combat" and isinstance(combat, Mapping) else None,
            timed=TimedConfig.from_dict(timed) if mode == "timed" and isinstance(timed, Mapping) else None,
            steps=tuple(
                Step.from_dict(entry) for entry in data.get("steps") or [] if isinstance(entry, Mapping)
            ),
            options=tuple(
                Option.from_dict(entry, outcomes.get(entry.get("id")))
                for entry in data.get("options") or []
                if isinstance(entry, Mapping)
            ),
            meta=MappingProxyType(dict(meta) if isinstance(meta, Mapping) else {}),
        )

    def option(self, option_id: str) -> Optional[Option]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


@dataclass(frozen=True)
class StoryGraph:
    start_scene_id: str
    scenes: Mapping[str, Scene]
    combat: CombatRules = field(default_factory=CombatRules)
    title: str = "Untitled Story"
    version: int = 1
    meta: Mapping[str, Any] = field(default_factory=dict)

    def scene(self, scene_id: str) -> Scene:
        return self.scenes[scene_id]

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self.scenes


def build_graph(document: Mapping[str, Any], scenes: Dict[str, Dict[str, Any]]) -> StoryGraph:
    """Build a graph from a validated document and its normalized scene table."""
    meta = document.get("meta")
    if not isinstance(meta, Mapping):
        meta = {}
    title = document.get("title") or meta.get("title") or "Untitled Story"
    return StoryGraph(
        start_scene_id=str(document.get("startSceneId")),
        scenes=MappingProxyType(
            {scene_id: Scene.from_dict(scene_id, payload) for scene_id, payload in scenes.items()}
        ),
        combat=CombatRules.from_dict(document.get("combat")),
        title=str(title),
        version=_int(document.get("version", 1), 1),
        meta=MappingProxyType(dict(meta)),
    )
