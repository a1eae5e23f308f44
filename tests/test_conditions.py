import pytest

from taleroute.conditions import describe, describe_guard, evaluate, matches
from taleroute.story import Route, TagCondition


@pytest.mark.parametrize(
    ("global_tags", "scene_tags"),
    [
        (set(), set()),
        ({"sword"}, set()),
        ({"sword", "shield"}, {"door_open"}),
    ],
)
def test_condition_free_guard_always_passes(global_tags: set, scene_tags: set) -> None:
    assert evaluate(Route(to="x"), global_tags, scene_tags)
    assert evaluate(None, global_tags, scene_tags)
    assert matches(TagCondition(), global_tags)


@pytest.mark.parametrize(
    ("condition", "tags", "expected"),
    [
        (TagCondition(all=("a", "b")), {"a", "b", "c"}, True),
        (TagCondition(all=("a", "b")), {"a"}, False),
        (TagCondition(all=()), set(), True),
        (TagCondition(any=("a", "b")), {"b"}, True),
        (TagCondition(any=("a", "b")), {"c"}, False),
        (TagCondition(any=()), {"a"}, False),
        (TagCondition(none=("a",)), {"b"}, True),
        (TagCondition(none=("a",)), {"a"}, False),
        (TagCondition(none=()), {"a"}, True),
        (TagCondition(all=("a",), any=("b", "c"), none=("d",)), {"a", "c"}, True),
        (TagCondition(all=("a",), any=("b", "c"), none=("d",)), {"a", "c", "d"}, False),
    ],
)
def test_matches_clauses(condition: TagCondition, tags: set, expected: bool) -> None:
    assert matches(condition, tags) is expected


def test_each_guard_reads_its_own_pool() -> None:
    guard = Route(
        to="x",
        if_global=TagCondition(all=("sword",)),
        if_scene=TagCondition(none=("alarm",)),
        if_actions=TagCondition(any=("search",)),
    )
    assert evaluate(guard, {"sword"}, set(), {"search"})
    assert not evaluate(guard, set(), {"sword"}, {"search"})
    assert not evaluate(guard, {"sword"}, {"alarm"}, {"search"})
    assert not evaluate(guard, {"sword"}, set(), set())


def test_bare_condition_is_not_a_guard() -> None:
    condition = TagCondition(all=("sword",))
    assert matches(condition, set()) is False
    assert matches(condition, {"sword"}) is True
    with pytest.raises(AttributeError):
        evaluate(condition, set(), set())


def test_describe_labels() -> None:
    assert describe(None) == "None"
    assert describe(TagCondition(all=("a", "b"), none=("c",))) == "all a/b, none c"
    guard = Route(to="x", if_global=TagCondition(any=("key",)))
    assert describe_guard(guard) == "Global: any key"
    assert describe_guard(None) == "None"
