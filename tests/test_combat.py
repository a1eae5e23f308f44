import pytest

from taleroute.combat import CombatEncounter, CombatOutcome
from taleroute.errors import InvalidTransitionError
from taleroute.story import CombatEffect, EnemyConfig


def test_lethal_blow_ends_in_victory() -> None:
    encounter = CombatEncounter("Goblin", enemy_hp=5, enemy_attack=3, party_hp=10)
    entry = encounter.act(CombatEffect(damage=6))
    assert encounter.enemy_hp == 0
    assert encounter.party_hp == 7
    assert encounter.outcome is CombatOutcome.VICTORY
    assert encounter.round == 2
    assert entry.round == 1
    assert entry.summary == "Round 1: party dealt 6, took 3 (blocked 0, enemy 3)."


def test_round_increments_once_per_action() -> None:
    encounter = CombatEncounter("Wolf", enemy_hp=50, enemy_attack=1, party_hp=30)
    for expected_round in range(1, 5):
        assert encounter.round == expected_round
        encounter.act(CombatEffect(damage=1))
    assert encounter.round == 5
    assert encounter.outcome is None


def test_simultaneous_knockout_is_defeat() -> None:
    encounter = CombatEncounter("Ogre", enemy_hp=4, enemy_attack=10, party_hp=10)
    encounter.act(CombatEffect(damage=4))
    assert encounter.enemy_hp == 0
    assert encounter.party_hp == 0
    assert encounter.outcome is CombatOutcome.DEFEAT


def test_outcome_is_absorbing() -> None:
    encounter = CombatEncounter("Rat", enemy_hp=1, enemy_attack=0, party_hp=10)
    encounter.act(CombatEffect(damage=3))
    before = encounter.snapshot()
    with pytest.raises(InvalidTransitionError):
        encounter.act(CombatEffect(damage=3))
    with pytest.raises(InvalidTransitionError):
        encounter.act(CombatEffect(run=True))
    assert encounter.snapshot() == before


def test_block_and_attack_delta() -> None:
    encounter = CombatEncounter("Bandit", enemy_hp=20, enemy_attack=4, party_hp=20)
    entry = encounter.act(CombatEffect(damage=2, block=6))
    assert entry.party_damage == 0
    entry = encounter.act(CombatEffect(damage=9, enemy_attack_delta=3))
    assert entry.enemy_attack == 7
    assert encounter.party_hp == 13
    entry = encounter.act(CombatEffect(enemy_attack_delta=-10))
    assert entry.enemy_attack == 0


def test_escape_skips_the_enemy_turn() -> None:
    encounter = CombatEncounter("Bandit", enemy_hp=20, enemy_attack=4, party_hp=20)
    entry = encounter.act(CombatEffect(run=True))
    assert entry.escaped
    assert encounter.party_hp == 20
    assert encounter.outcome is CombatOutcome.ESCAPE
    assert encounter.round == 2


def test_escape_rejected_when_running_is_not_allowed() -> None:
    config = EnemyConfig(enemy_name="Warden", enemy_hp=10, enemy_attack=2, allow_run=False)
    encounter = CombatEncounter.from_config(config, party_hp=10, party_hp_max=10)
    with pytest.raises(InvalidTransitionError):
        encounter.act(CombatEffect(run=True))
    assert encounter.round == 1
    assert encounter.outcome is None
    assert encounter.log == ()


def test_log_keeps_only_recent_rounds() -> None:
    encounter = CombatEncounter("Golem", enemy_hp=100, enemy_attack=0, party_hp=10, log_size=4)
    for _ in range(6):
        encounter.act(CombatEffect(damage=1))
    assert [entry.round for entry in encounter.log] == [3, 4, 5, 6]


def test_hp_is_clamped_to_bounds() -> None:
    encounter = CombatEncounter("Imp", enemy_hp=5, enemy_attack=0, party_hp=50, party_hp_max=20)
    assert encounter.party_hp == 20
    encounter.act(CombatEffect(damage=-5))
    assert encounter.enemy_hp == 5


def test_snapshot_to_dict_uses_plain_values() -> None:
    encounter = CombatEncounter("Goblin", enemy_hp=5, enemy_attack=3, party_hp=10)
    encounter.act(CombatEffect(damage=6))
    data = encounter.snapshot().to_dict()
    assert data["outcome"] == "victory"
    assert data["round"] == 2
    assert data["log"][0]["enemy_damage"] == 6
