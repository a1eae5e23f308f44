"""Story session: sequences scene entry, steps, combat rounds and routing."""

from __future__ import annotations

import copy
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple, Union

from .combat import CombatEncounter, CombatOutcome, RoundLog
from .conditions import evaluate
from .errors import AuthoringGapError, InvalidTransitionError, SessionBusyError
from .routing import GoTo, Resolution, Stay, resolve
from .settings import Settings
from .story import CombatAction, Option, Scene, Step, StepAction, StoryGraph
from .tags import TagStore

logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]
Action = Union[StepAction, CombatAction]


@dataclass(frozen=True)
class ActionResult:
    """What one call to `act`, `choose` or `finish_timed_scene` did."""

    previous_scene_id: str
    scene_id: str
    option_id: Optional[str] = None
    action_id: Optional[str] = None
    resolution: Optional[Resolution] = None
    narration: Tuple[str, ...] = ()
    round_log: Optional[RoundLog] = None
    combat_outcome: Optional[CombatOutcome] = None

    @property
    def moved(self) -> bool:
        return isinstance(self.resolution, GoTo)

    @property
    def authoring_gap(self) -> bool:
        return isinstance(self.resolution, Stay) and self.resolution.authoring_gap


@dataclass(frozen=True)
class SessionSnapshot:
    scene_id: Optional[str]
    mode: Optional[str]
    ended: bool
    party_hp: int
    party_hp_max: int
    global_tags: Tuple[str, ...]
    scene_tags: Tuple[str, ...]
    action_ids: Tuple[str, ...]
    taken_options: Tuple[str, ...]
    step_index: int
    offered_options: Tuple[str, ...]
    combat: Optional[Dict[str, Any]]
    timer_remaining: Optional[float]
    history: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "mode": self.mode,
            "ended": self.ended,
            "party_hp": self.party_hp,
            "party_hp_max": self.party_hp_max,
            "global_tags": list(self.global_tags),
            "scene_tags": list(self.scene_tags),
            "action_ids": list(self.action_ids),
            "taken_options": list(self.taken_options),
            "step_index": self.step_index,
            "offered_options": list(self.offered_options),
            "combat": self.combat,
            "timer_remaining": self.timer_remaining,
            "history": [dict(entry) for entry in self.history],
        }


@dataclass
class _Pending:
    """Working copy of the mutable session state for one action."""

    tags: TagStore
    party_hp: int
    encounter: Optional[CombatEncounter]


class StorySession:
    def __init__(
        self,
        graph: StoryGraph,
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.graph = graph
        self.settings = settings.copy() if isinstance(settings, Settings) else Settings()
        self.settings.clamp()
        self.clock = clock
        self.tags = TagStore()
        self.scene_id: Optional[str] = None
        self.action_ids: Set[str] = set()
        self.taken_options: List[str] = []
        self.unlocked_options: Set[str] = set()
        self.step_index = 0
        self.party_hp_max = graph.combat.party_hp
        self.party_hp = self.party_hp_max
        self.encounter: Optional[CombatEncounter] = None
        self.timer_started: Optional[float] = None
        self.history: List[Dict[str, Any]] = []
        self.ended = False
        self._listeners: List[Listener] = []
        self._busy = False

    # -- events -----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener(event, payload)`; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, **payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Listener %r failed while handling %s", listener, event)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if self._busy:
            raise SessionBusyError("Another action is still being resolved.")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    # -- scene lifecycle --------------------------------------------------

    @property
    def scene(self) -> Scene:
        if self.scene_id is None:
            raise InvalidTransitionError("The session has not been started.")
        return self.graph.scene(self.scene_id)

    @property
    def current_step(self) -> Optional[Step]:
        steps = self.scene.steps
        if self.step_index < len(steps):
            return steps[self.step_index]
        return None

    @property
    def steps_complete(self) -> bool:
        return self.current_step is None

    def start(self) -> Scene:
        with self._exclusive():
            self._reset()
            self._enter(self.graph.start_scene_id)
        return self.scene

    def restart(self) -> Scene:
        logger.info("Restarting story '%s'", self.graph.title)
        return self.start()

    def enter_scene(self, scene_id: str) -> Scene:
        with self._exclusive():
            if scene_id not in self.graph:
                raise InvalidTransitionError(f"Unknown scene '{scene_id}'.")
            self._enter(scene_id)
        return self.scene

    def _reset(self) -> None:
        self.tags = TagStore()
        self.party_hp_max = self.graph.combat.party_hp
        self.party_hp = self.party_hp_max
        self.history = []
        self.ended = False
        self.scene_id = None

    def _enter(self, scene_id: str) -> None:
        scene = self.graph.scene(scene_id)
        self.scene_id = scene_id
        self.tags.reset_scene()
        self.action_ids = set()
        self.taken_options = []
        self.unlocked_options = set()
        self.step_index = 0
        self.encounter = None
        self.timer_started = None
        if scene.mode == "combat" and scene.combat is not None:
            self.encounter = CombatEncounter.from_config(
                scene.combat,
                self.party_hp,
                self.party_hp_max,
                log_size=self.settings.combat_log_size,
            )
        elif scene.mode == "timed":
            self.timer_started = self.clock()
        logger.debug("Entered scene %s (%s)", scene_id, scene.mode)
        self._emit("scene_entered", scene_id=scene_id, mode=scene.mode)
        if scene.is_ending:
            self.ended = True
            logger.info("Story ended at %s", scene_id)
            self._emit("story_ended", scene_id=scene_id)

    def record_transition(self, origin: str, target: str, choice_text: str) -> None:
        self.history.append({"from": origin, "to": target, "choice": choice_text})

    # -- queries ----------------------------------------------------------

    def is_option_available(self, option: Option, tags: Optional[TagStore] = None) -> bool:
        if not option.default_visible and option.id not in self.unlocked_options:
            return False
        if any(option_id in self.taken_options for option_id in option.excludes):
            return False
        tags = self.tags if tags is None else tags
        return evaluate(
            option.requires, tags.global_tags, tags.scene_tags, frozenset(self.action_ids)
        )

    def _first_available(self, scene: Scene, tags: TagStore) -> Optional[Option]:
        for option in scene.options:
            if self.is_option_available(option, tags):
                return option
        return None

    def offered_options(self) -> Tuple[Option, ...]:
        if self.scene_id is None or self.ended:
            return ()
        scene = self.scene
        if scene.mode == "timed":
            return ()
        if scene.mode == "combat":
            if self.encounter is None or not self.encounter.is_over:
                return ()
        elif not self.steps_complete:
            return ()
        return tuple(option for option in scene.options if self.is_option_available(option))

    def available_actions(self) -> Tuple[Action, ...]:
        if self.scene_id is None or self.ended:
            return ()
        if self.scene.mode == "combat":
            if self.encounter is None or self.encounter.is_over:
                return ()
            return tuple(
                action
                for action in self.graph.combat.actions
                if self.encounter.allow_run or not action.effect.run
            )
        step = self.current_step
        return step.actions if step is not None else ()

    def preview(self, option: Option) -> Resolution:
        """Where `option` would lead right now, without committing anything."""
        tags = self.tags.copy()
        tags.apply(option.tags_added)
        return resolve(option.routes, tags.global_tags, tags.scene_tags, frozenset(self.action_ids))

    def timer_remaining(self, now: Optional[float] = None) -> Optional[float]:
        if self.timer_started is None or self.scene.timed is None:
            return None
        now = self.clock() if now is None else now
        return max(0.0, self.scene.timed.duration_seconds - (now - self.timer_started))

    def snapshot(self) -> SessionSnapshot:
        scene = self.graph.scene(self.scene_id) if self.scene_id is not None else None
        return SessionSnapshot(
            scene_id=self.scene_id,
            mode=scene.mode if scene else None,
            ended=self.ended,
            party_hp=self.party_hp,
            party_hp_max=self.party_hp_max,
            global_tags=tuple(sorted(self.tags.global_tags)),
            scene_tags=tuple(sorted(self.tags.scene_tags)),
            action_ids=tuple(sorted(self.action_ids)),
            taken_options=tuple(self.taken_options),
            step_index=self.step_index,
            offered_options=tuple(option.id for option in self.offered_options()),
            combat=self.encounter.snapshot().to_dict() if self.encounter else None,
            timer_remaining=self.timer_remaining() if scene else None,
            history=tuple(dict(entry) for entry in self.history),
        )

    # -- actions ----------------------------------------------------------

    def _require_active(self) -> Scene:
        if self.scene_id is None:
            raise InvalidTransitionError("The session has not been started.")
        if self.ended:
            raise InvalidTransitionError("The story has ended; restart to play again.")
        return self.scene

    def _pending(self) -> _Pending:
        return _Pending(
            tags=self.tags.copy(),
            party_hp=self.party_hp,
            encounter=copy.deepcopy(self.encounter),
        )

    def _commit(self, pending: _Pending) -> None:
        self.tags = pending.tags
        self.party_hp = pending.party_hp
        self.encounter = pending.encounter

    def _adjust_hp(self, pending: _Pending, delta: int) -> None:
        pending.party_hp = max(0, min(self.party_hp_max, pending.party_hp + delta))

    def act(self, action_id: str) -> ActionResult:
        """Take a step action, or a combat action while an encounter is running."""
        with self._exclusive():
            scene = self._require_active()
            if scene.mode == "combat":
                return self._combat_round(scene, action_id)
            return self._step_action(scene, action_id)

    def choose(self, option_id: str) -> ActionResult:
        with self._exclusive():
            scene = self._require_active()
            if scene.mode == "combat" and self.encounter is not None and not self.encounter.is_over:
                return self._combat_round(scene, option_id)
            option = scene.option(option_id)
            offered = {candidate.id for candidate in self.offered_options()}
            if option is None or option.id not in offered:
                raise InvalidTransitionError(
                    f"Option '{option_id}' is not offered in scene '{scene.id}'."
                )
            pending = self._pending()
            return self._resolve_option(scene, option, pending)

    def finish_timed_scene(self, now: Optional[float] = None) -> ActionResult:
        with self._exclusive():
            scene = self._require_active()
            if scene.mode != "timed" or scene.timed is None:
                raise InvalidTransitionError(f"Scene '{scene.id}' is not a timed scene.")
            if not self.steps_complete:
                raise InvalidTransitionError(f"Scene '{scene.id}' still has steps to play.")
            remaining = self.timer_remaining(now)
            if remaining and not scene.timed.allow_early:
                raise InvalidTransitionError(
                    f"Scene '{scene.id}' cannot finish for another {remaining:.0f}s."
                )
            pending = self._pending()
            option = self._first_available(scene, pending.tags)
            if option is None:
                return self._gap(scene, None, pending)
            return self._resolve_option(scene, option, pending)

    def _step_action(self, scene: Scene, action_id: str) -> ActionResult:
        step = self.current_step
        action = step.action(action_id) if step is not None else None
        if step is None or action is None:
            raise InvalidTransitionError(
                f"Action '{action_id}' is not available in scene '{scene.id}'."
            )
        outcome = step.outcomes[action.id]
        pending = self._pending()
        pending.tags.apply(outcome.tags_added)
        self._adjust_hp(pending, outcome.hp_delta)

        self._commit(pending)
        self.action_ids.add(action.id)
        self.unlocked_options.update(outcome.unlock_option_ids)
        self.step_index += 1
        self._emit(
            "step_resolved",
            scene_id=scene.id,
            step_id=step.id,
            action_id=action.id,
            narration=outcome.narration,
        )
        return ActionResult(
            previous_scene_id=scene.id,
            scene_id=scene.id,
            action_id=action.id,
            narration=(outcome.narration,) if outcome.narration else (),
        )

    def _combat_round(self, scene: Scene, action_id: str) -> ActionResult:
        if self.encounter is None or self.encounter.is_over:
            raise InvalidTransitionError(f"No combat is running in scene '{scene.id}'.")
        action = self.graph.combat.action(action_id)
        if action is None:
            raise InvalidTransitionError(f"Unknown combat action '{action_id}'.")

        pending = self._pending()
        encounter = pending.encounter
        entry = encounter.act(action.effect)
        pending.party_hp = encounter.party_hp
        if not encounter.is_over:
            self._commit(pending)
            self._emit("combat_round", scene_id=scene.id, action_id=action.id, log=entry)
            return ActionResult(
                previous_scene_id=scene.id,
                scene_id=scene.id,
                action_id=action.id,
                narration=(entry.summary,),
                round_log=entry,
            )

        outcome = encounter.outcome
        tag = self.on_combat_outcome(outcome, pending.tags)
        option_id = scene.combat.outcome_options.get(outcome.value) if scene.combat else None
        option = scene.option(option_id) if option_id else None
        if option is None or not self.is_option_available(option, pending.tags):
            option = self._first_available(scene, pending.tags)
        logger.info("Combat in %s ended in %s; injected tag %s", scene.id, outcome.value, tag)

        if option is None:
            result = self._gap(scene, None, pending, round_log=entry)
        else:
            result = self._resolve_option(scene, option, pending, round_log=entry)
        return ActionResult(
            previous_scene_id=result.previous_scene_id,
            scene_id=result.scene_id,
            option_id=result.option_id,
            action_id=action.id,
            resolution=result.resolution,
            narration=(entry.summary,) + result.narration,
            round_log=entry,
            combat_outcome=outcome,
        )

    def on_combat_outcome(self, outcome: CombatOutcome, tags: TagStore) -> str:
        """Inject the `<prefix>:<outcome>` tag that routes read after a fight ends."""
        tag = f"{self.settings.outcome_tag_prefix}:{outcome.value}"
        if self.settings.outcome_tag_scope == "global":
            tags.add_global(tag)
        else:
            tags.add_scene(tag)
        return tag

    def _resolve_option(
        self,
        scene: Scene,
        option: Option,
        pending: _Pending,
        *,
        round_log: Optional[RoundLog] = None,
    ) -> ActionResult:
        working = _Pending(pending.tags.copy(), pending.party_hp, pending.encounter)
        working.tags.apply(option.tags_added)
        self._adjust_hp(working, option.outcome.hp_delta)
        resolution = resolve(
            option.routes,
            working.tags.global_tags,
            working.tags.scene_tags,
            frozenset(self.action_ids),
        )
        if isinstance(resolution, Stay) and resolution.authoring_gap:
            # Under the "stay" policy a finished fight still keeps its outcome.
            return self._gap(scene, option, pending, round_log=round_log)

        self._commit(working)
        self.taken_options.append(option.id)
        narration = (option.outcome.text,) if option.outcome.text else ()
        self._emit_combat_outcome(scene, round_log)
        self._emit("option_chosen", scene_id=scene.id, option_id=option.id, resolution=resolution)

        if isinstance(resolution, GoTo):
            self.record_transition(scene.id, resolution.scene_id, option.text)
            logger.debug(
                "Option %s in %s routed to %s via route %s",
                option.id,
                scene.id,
                resolution.scene_id,
                resolution.route_index,
            )
            self._enter(resolution.scene_id)
        return ActionResult(
            previous_scene_id=scene.id,
            scene_id=self.scene_id or scene.id,
            option_id=option.id,
            resolution=resolution,
            narration=narration,
        )

    def _gap(
        self,
        scene: Scene,
        option: Optional[Option],
        pending: _Pending,
        *,
        round_log: Optional[RoundLog] = None,
    ) -> ActionResult:
        option_id = option.id if option else None
        logger.warning(
            "Authoring gap in scene %s: option %s matched no route", scene.id, option_id
        )
        if self.settings.gap_policy == "raise":
            raise AuthoringGapError(scene.id, option_id or "")
        if round_log is not None:
            self._commit(pending)
            self._emit_combat_outcome(scene, round_log)
        self._emit("authoring_gap", scene_id=scene.id, option_id=option_id)
        return ActionResult(
            previous_scene_id=scene.id,
            scene_id=scene.id,
            option_id=option_id,
            resolution=Stay(),
        )

    def _emit_combat_outcome(self, scene: Scene, round_log: Optional[RoundLog]) -> None:
        if round_log is None or self.encounter is None:
            return
        self._emit("combat_round", scene_id=scene.id, log=round_log)
        self._emit(
            "combat_outcome",
            scene_id=scene.id,
            outcome=self.encounter.outcome,
            snapshot=self.encounter.snapshot(),
        )
