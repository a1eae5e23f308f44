from taleroute.routing import GoTo, Stay, find_shadowed_routes, resolve, resolve_scene_id
from taleroute.story import Route, TagCondition


def gated(tag: str, to):
    return Route(to=to, if_global=TagCondition(all=(tag,)))


def test_first_matching_route_wins() -> None:
    routes = [gated("missing", "A"), gated("present", "B"), Route(to="C")]
    assert resolve(routes, {"present"}, set()) == GoTo("B", 1)
    assert resolve_scene_id(routes, {"present"}, set()) == "B"


def test_author_order_matters() -> None:
    routes = [Route(to="C"), gated("present", "B")]
    assert resolve_scene_id(routes, {"present"}, set()) == "C"
    assert find_shadowed_routes(routes) == [1]


def test_unconditional_fallback_is_last_resort() -> None:
    routes = [gated("sword", "armory_win"), Route(to="armory_lose")]
    assert resolve_scene_id(routes, set(), set()) == "armory_lose"
    assert resolve_scene_id(routes, {"sword"}, set()) == "armory_win"
    assert find_shadowed_routes(routes) == []


def test_no_match_is_an_authoring_gap() -> None:
    resolution = resolve([gated("sword", "armory_win")], set(), set())
    assert resolution == Stay()
    assert resolution.authoring_gap
    assert resolve_scene_id([gated("sword", "armory_win")], set(), set()) is None


def test_matched_null_route_stays_without_gap() -> None:
    resolution = resolve([gated("sword", None), Route(to="elsewhere")], {"sword"}, set())
    assert resolution == Stay(0)
    assert not resolution.authoring_gap


def test_action_ids_feed_the_actions_clause() -> None:
    routes = [Route(to="camp", if_actions=TagCondition(all=("ask",))), Route(to="warehouse")]
    assert resolve_scene_id(routes, set(), set(), {"ask"}) == "camp"
    assert resolve_scene_id(routes, set(), set()) == "warehouse"


def test_empty_route_list_is_a_gap() -> None:
    assert resolve([], {"a"}, {"b"}).authoring_gap
