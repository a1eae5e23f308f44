import random
from pathlib import Path

import pytest

from taleroute.loader import load_story
from taleroute.session import StorySession
from taleroute.settings import Settings

STORY_PATH = Path(__file__).resolve().parents[1] / "story" / "story.json"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def simulate_random_playthrough(session: StorySession, clock: FakeClock, *, seed: int, max_steps: int = 200) -> str:
    rng = random.Random(seed)
    steps = 0
    session.start()
    while steps < max_steps:
        steps += 1
        if session.ended:
            return session.scene_id

        actions = session.available_actions()
        if actions:
            session.act(rng.choice(actions).id)
            continue

        if session.scene.mode == "timed":
            clock.now += session.timer_remaining()
            result = session.finish_timed_scene()
            assert not result.authoring_gap, f"Timed scene '{result.scene_id}' has no route."
            continue

        visible = session.offered_options()
        assert visible, f"No available options in scene '{session.scene_id}'."
        result = session.choose(rng.choice(visible).id)
        assert not result.authoring_gap, f"Option '{result.option_id}' has no route."

    raise AssertionError(f"Playthrough exceeded {max_steps} steps without reaching an ending.")


@pytest.mark.parametrize("seed", range(12))
def test_random_playthrough_reaches_ending(seed: int) -> None:
    graph = load_story(STORY_PATH)
    clock = FakeClock()
    session = StorySession(graph, Settings(), clock=clock)

    ending = simulate_random_playthrough(session, clock, seed=seed)
    assert graph.scene(ending).is_ending
    assert session.history
    assert session.history[-1]["to"] == ending
