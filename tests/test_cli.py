import json
from pathlib import Path

import pytest

from taleroute import cli
from taleroute.settings import load_settings

STORY_PATH = Path(__file__).resolve().parents[1] / "story" / "story.json"


def test_save_settings_flag_persists_overrides(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    settings_path = tmp_path / "settings.json"
    monkeypatch.setattr("builtins.input", lambda prompt="": "q")
    code = cli.main(
        [str(STORY_PATH), "--settings", str(settings_path), "--gap-policy", "raise", "--save-settings"]
    )
    assert code == 0
    assert "Bye." in capsys.readouterr().out
    assert json.loads(settings_path.read_text())["gap_policy"] == "raise"
    assert load_settings(settings_path).gap_policy == "raise"


def test_settings_are_left_alone_without_the_flag(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    settings_path = tmp_path / "settings.json"
    monkeypatch.setattr("builtins.input", lambda prompt="": "q")
    assert cli.main([str(STORY_PATH), "--settings", str(settings_path), "--gap-policy", "raise"]) == 0
    assert not settings_path.exists()


def test_missing_story_exits_with_error(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    assert cli.main([str(tmp_path / "absent.json")]) == 1
    assert "Story file not found" in capsys.readouterr().err
