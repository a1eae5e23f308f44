"""Round-by-round combat encounter state machine."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Deque, Dict, Optional, Tuple

from .errors import InvalidTransitionError
from .story import CombatEffect, EnemyConfig

logger = logging.getLogger(__name__)

MIN_LOG_SIZE = 4


class CombatOutcome(str, Enum):
    VICTORY = "victory"
    DEFEAT = "defeat"
    ESCAPE = "escape"


@dataclass(frozen=True)
class RoundLog:
    round: int
    enemy_damage: int
    party_damage: int
    block: int
    enemy_attack: int
    escaped: bool
    summary: str


@dataclass(frozen=True)
class CombatSnapshot:
    enemy_name: str
    party_hp: int
    party_hp_max: int
    enemy_hp: int
    enemy_hp_max: int
    round: int
    outcome: Optional[CombatOutcome]
    allow_run: bool
    log: Tuple[RoundLog, ...]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value if self.outcome else None
        return data


def clamp(value: int, lo: int, hi: int) -> int:
    return lo if value < lo else hi if value > hi else value


def summarize_round(round_no: int, dealt: int, taken: int, block: int, enemy_attack: int) -> str:
    return f"Round {round_no}: party dealt {dealt}, took {taken} (blocked {block}, enemy {enemy_attack})."


def summarize_escape(round_no: int) -> str:
    return f"Round {round_no}: the party calls for retreat and withdraws."


class CombatEncounter:
    """Tracks HP, rounds and the terminal outcome of one encounter.

    The outcome is absorbing: once set, every further action is rejected and
    the state stays untouched.
    """

    def __init__(
        self,
        enemy_name: str,
        enemy_hp: int,
        enemy_attack: int,
        party_hp: int,
        party_hp_max: Optional[int] = None,
        *,
        allow_run: bool = True,
        log_size: int = MIN_LOG_SIZE,
    ) -> None:
        self.enemy_name = enemy_name
        self.enemy_hp_max = max(1, int(enemy_hp))
        self.enemy_hp = self.enemy_hp_max
        self.enemy_attack = max(0, int(enemy_attack))
        self.party_hp_max = max(1, int(party_hp_max if party_hp_max is not None else party_hp))
        self.party_hp = clamp(int(party_hp), 0, self.party_hp_max)
        self.allow_run = allow_run
        self.round = 1
        self.outcome: Optional[CombatOutcome] = None
        self._log: Deque[RoundLog] = deque(maxlen=max(MIN_LOG_SIZE, int(log_size)))

    @classmethod
    def from_config(
        cls, config: EnemyConfig, party_hp: int, party_hp_max: int, *, log_size: int = MIN_LOG_SIZE
    ) -> "CombatEncounter":
        return cls(
            config.enemy_name,
            config.enemy_hp,
            config.enemy_attack,
            party_hp,
            party_hp_max,
            allow_run=config.allow_run,
            log_size=log_size,
        )

    @property
    def is_over(self) -> bool:
        return self.outcome is not None

    @property
    def log(self) -> Tuple[RoundLog, ...]:
        return tuple(self._log)

    def act(self, effect: CombatEffect) -> RoundLog:
        if self.outcome is not None:
            raise InvalidTransitionError(
                f"Combat against {self.enemy_name} already ended in {self.outcome.value}."
            )
        if effect.run:
            if not self.allow_run:
                raise InvalidTransitionError(f"Running from {self.enemy_name} is not allowed.")
            return self._escape()

        enemy_attack = max(0, self.enemy_attack + effect.enemy_attack_delta)
        dealt = max(0, effect.damage)
        block = max(0, effect.block)
        taken = max(0, enemy_attack - block)

        self.enemy_hp = clamp(self.enemy_hp - dealt, 0, self.enemy_hp_max)
        self.party_hp = clamp(self.party_hp - taken, 0, self.party_hp_max)
        entry = RoundLog(
            round=self.round,
            enemy_damage=dealt,
            party_damage=taken,
            block=block,
            enemy_attack=enemy_attack,
            escaped=False,
            summary=summarize_round(self.round, dealt, taken, block, enemy_attack),
        )
        self._log.append(entry)
        self.round += 1

        # A party knocked out in the same exchange never sees a victory.
        if self.party_hp <= 0:
            self.outcome = CombatOutcome.DEFEAT
        elif self.enemy_hp <= 0:
            self.outcome = CombatOutcome.VICTORY
        logger.debug(
            "Combat round %s vs %s: enemy %s/%s, party %s/%s, outcome=%s",
            entry.round,
            self.enemy_name,
            self.enemy_hp,
            self.enemy_hp_max,
            self.party_hp,
            self.party_hp_max,
            self.outcome.value if self.outcome else None,
        )
        return entry

    def _escape(self) -> RoundLog:
        entry = RoundLog(
            round=self.round,
            enemy_damage=0,
            party_damage=0,
            block=0,
            enemy_attack=self.enemy_attack,
            escaped=True,
            summary=summarize_escape(self.round),
        )
        self._log.append(entry)
        self.round += 1
        self.outcome = CombatOutcome.ESCAPE
        logger.debug("Party escaped from %s in round %s", self.enemy_name, entry.round)
        return entry

    def snapshot(self) -> CombatSnapshot:
        return CombatSnapshot(
            enemy_name=self.enemy_name,
            party_hp=self.party_hp,
            party_hp_max=self.party_hp_max,
            enemy_hp=self.enemy_hp,
            enemy_hp_max=self.enemy_hp_max,
            round=self.round,
            outcome=self.outcome,
            allow_run=self.allow_run,
            log=self.log,
        )
