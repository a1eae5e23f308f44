import json
from pathlib import Path

from taleroute.settings import Settings, load_settings, save_settings


def test_invalid_values_fall_back_to_defaults() -> None:
    settings = Settings.from_dict(
        {
            "gap_policy": "teleport",
            "outcome_tag_scope": "party",
            "outcome_tag_prefix": "  ",
            "combat_log_size": "lots",
            "debug": "yes",
        }
    )
    assert settings.gap_policy == "stay"
    assert settings.outcome_tag_scope == "scene"
    assert settings.outcome_tag_prefix == "combat"
    assert settings.combat_log_size == 4
    assert settings.debug is True


def test_combat_log_size_is_clamped() -> None:
    assert Settings(combat_log_size=1).clamp().combat_log_size == 4
    assert Settings(combat_log_size=500).clamp().combat_log_size == 50
    assert Settings(combat_log_size=12).clamp().combat_log_size == 12


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    saved = save_settings(Settings(gap_policy="RAISE", outcome_tag_scope="global"), path)
    assert saved.gap_policy == "raise"
    assert json.loads(path.read_text())["outcome_tag_scope"] == "global"
    assert load_settings(path) == saved
    assert list(path.parent.glob("*.tmp")) == []


def test_missing_or_corrupt_file_uses_defaults(tmp_path: Path) -> None:
    assert load_settings(tmp_path / "absent.json") == Settings()
    corrupt = tmp_path / "settings.json"
    corrupt.write_text("{not json")
    assert load_settings(corrupt) == Settings()
