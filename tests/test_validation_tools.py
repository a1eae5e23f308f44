import json
import subprocess
import sys
from pathlib import Path

import pytest

from taleroute.errors import MalformedGraphError
from taleroute.loader import load_story, parse_story
from taleroute.schema import validate_story
from taleroute.story_schema import normalize_scenes
from tools import list_unreachable
from tools.softlock import analyze_softlocks


REPO_ROOT = Path(__file__).resolve().parents[1]


def write_story(tmp_path: Path, story: dict) -> Path:
    path = tmp_path / "story.json"
    path.write_text(json.dumps(story))
    return path


def minimal_story(**overrides) -> dict:
    story = {
        "startSceneId": "start",
        "scenes": [
            {"id": "start", "text": "Begin.", "options": [{"id": "go", "text": "Go", "next": [{"to": "end"}]}]},
            {"id": "end", "text": "Fin.", "isEnding": True},
        ],
    }
    story.update(overrides)
    return story


@pytest.mark.parametrize(
    ("story", "match"),
    [
        ({"startSceneId": "start"}, "scenes"),
        ({"startSceneId": "start", "scenes": "nope"}, "scenes"),
        ({"startSceneId": "start", "scenes": [{"title": "No id"}]}, "missing a valid 'id'"),
        (minimal_story(startSceneId="elsewhere"), "unknown scene 'elsewhere'"),
    ],
)
def test_load_story_rejects_invalid_shapes(tmp_path: Path, story: dict, match: str) -> None:
    path = write_story(tmp_path, story)
    with pytest.raises(ValueError, match=match):
        load_story(path)


def test_load_story_reports_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "story.json"
    path.write_text("{")
    with pytest.raises(MalformedGraphError) as excinfo:
        load_story(path)
    assert excinfo.value.source == str(path)


def test_normalize_scenes_rejects_duplicate_list_ids() -> None:
    _, errors = normalize_scenes(
        [
            {"id": "dup", "title": "First"},
            {"id": "dup", "title": "Second"},
        ]
    )
    assert any("duplicate scene IDs found: dup" in error for error in errors)


def test_scenes_may_be_keyed_by_id() -> None:
    story = minimal_story(
        scenes={
            "start": {"options": [{"id": "go", "text": "Go", "next": [{"to": "end"}]}]},
            "end": {"isEnding": True},
        }
    )
    graph = parse_story(story)
    assert set(graph.scenes) == {"start", "end"}
    assert graph.scene("start").options[0].routes[0].to == "end"


def test_errors_carry_paths() -> None:
    story = minimal_story()
    story["scenes"][0]["options"][0]["next"].insert(0, {"ifGlobal": {"most": ["x"]}, "to": "nowhere"})
    errors = validate_story(story)
    assert any(error.startswith('scenes.start.options[0].next[0].to:') for error in errors)
    assert any("unsupported condition clause 'most'" in error for error in errors)


def test_graph_invariants_are_checked_eagerly() -> None:
    story = minimal_story()
    start, end = story["scenes"]
    start["options"].append({"id": "go", "text": "Again", "next": [{"to": "end"}]})
    start["steps"] = [
        {
            "id": "s1",
            "actions": [{"id": "a", "text": "A"}],
            "outcomes": {"a": {"unlockOptionIds": ["ghost"]}},
        }
    ]
    start["options"][0]["next"].insert(0, {"ifActions": {"all": ["b"]}, "to": "end"})
    end["options"] = [{"id": "back", "text": "Back", "next": [{"to": "start"}]}]
    with pytest.raises(MalformedGraphError) as excinfo:
        parse_story(story)
    message = str(excinfo.value)
    assert "duplicate option id 'go'" in message
    assert "unlocks unknown option 'ghost'" in message
    assert "references unknown action 'b'" in message
    assert "ending scenes cannot offer options" in message


def test_combat_scenes_need_payload_and_rules() -> None:
    story = minimal_story()
    story["scenes"][0]["mode"] = "combat"
    story["scenes"][0]["combat"] = {"enemyName": "Rat", "enemyHp": 0, "enemyAttack": 1, "outcomeOptions": {"victory": "missing"}}
    errors = validate_story(story)
    assert any("top-level 'combat' block" in error for error in errors)
    assert any("'enemyHp' must be a positive number" in error for error in errors)
    assert any("references unknown option 'missing'" in error for error in errors)


def test_timed_scene_requires_a_known_kind() -> None:
    story = minimal_story()
    story["scenes"][0]["timed"] = {"kind": "nap", "durationSeconds": 10}
    errors = validate_story(story)
    assert any("'kind' must be one of rest, travel, wait" in error for error in errors)


def test_validate_tool_flags_unknown_targets(tmp_path: Path) -> None:
    story = minimal_story()
    story["scenes"][0]["options"][0]["next"] = [{"to": "missing"}]
    path = write_story(tmp_path, story)
    result = subprocess.run(
        [sys.executable, str(REPO_ROOT / "tools" / "validate.py"), str(path)],
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 1
    assert "targets unknown scene 'missing'" in result.stdout


def test_validate_tool_passes_sample_story() -> None:
    result = subprocess.run(
        [sys.executable, str(REPO_ROOT / "tools" / "validate.py")],
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 0, result.stdout
    assert "Validation passed" in result.stdout


def test_softlock_reports_shadowed_and_gated_routes() -> None:
    story = minimal_story()
    story["scenes"][0]["options"][0]["next"] = [
        {"to": "end"},
        {"ifGlobal": {"all": ["key"]}, "to": "vault"},
    ]
    story["scenes"][0]["options"].append(
        {"id": "lock", "text": "Pick", "next": [{"ifGlobal": {"all": ["key"]}, "to": "vault"}]}
    )
    story["scenes"].append({"id": "vault", "text": "Gold.", "isEnding": True})
    warnings = analyze_softlocks(story)
    assert any(w.startswith("scenes.start.options[0].next[1]: route can never match") for w in warnings)
    assert any(w.startswith("scenes.start.options[1].next: every route is gated") for w in warnings)
    assert "scenes.vault: reachable only through gated routes or options." in warnings


def test_list_unreachable_follows_every_route() -> None:
    story = minimal_story()
    story["scenes"][0]["options"][0]["next"].insert(0, {"ifGlobal": {"all": ["key"]}, "to": "vault"})
    story["scenes"].append({"id": "vault", "text": "Gold.", "isEnding": True})
    story["scenes"].append({"id": "attic", "text": "Dust.", "isEnding": True})
    graph = list_unreachable.build_graph(story)
    assert graph["start"] == ["vault", "end"]
    assert list_unreachable.traverse_from("start", graph) == {"start", "vault", "end"}
