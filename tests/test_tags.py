from taleroute.story import TagSet
from taleroute.tags import TagStore


def test_adds_are_idempotent() -> None:
    store = TagStore()
    assert store.add_global("sword")
    assert not store.add_global("sword")
    assert store.add_scene("door_open")
    assert not store.add_scene("door_open")
    assert store.global_tags == frozenset({"sword"})
    assert store.scene_tags == frozenset({"door_open"})


def test_pools_are_independent() -> None:
    store = TagStore()
    store.add_global("sword")
    assert store.has_global("sword")
    assert not store.has_scene("sword")


def test_reset_scene_keeps_global_tags() -> None:
    store = TagStore(["sword"], ["door_open"])
    store.reset_scene()
    assert store.scene_tags == frozenset()
    assert store.has_global("sword")


def test_copy_and_apply_do_not_leak() -> None:
    store = TagStore(["sword"])
    working = store.copy()
    working.apply(TagSet(global_tags=("map",), scene_tags=("lit",)))
    assert working.global_tags == frozenset({"sword", "map"})
    assert working.scene_tags == frozenset({"lit"})
    assert store.global_tags == frozenset({"sword"})
    assert store.scene_tags == frozenset()
