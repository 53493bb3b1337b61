import pytest
from datetime import datetime

from alarmtree.folder import AlarmGroup, split_path
from alarmtree.item import Alarm

NOW = datetime(2025, 1, 1, 12, 0)


def names(root: AlarmGroup) -> list[str]:
    return [info.item.name for info in root.walk()]


def assert_lookups_consistent(folder: AlarmGroup):
    offset = 0
    for child, start in zip(folder.children, folder.lookup):
        assert start == offset
        offset += child.size()
        if isinstance(child, AlarmGroup):
            assert_lookups_consistent(child)
    assert len(folder.lookup) == len(folder.children)
    assert folder.size() == offset + 1
    assert folder.children == sorted(folder.children)


# ─── paths ─────────────────────────────────────────────────────


@pytest.mark.unit
@pytest.mark.parametrize(
    "path, expected",
    [
        ("root/", ["root"]),
        ("root/inner/", ["root", "inner"]),
        ("root/inner/a3", ["root", "inner", "a3"]),
        ("root//inner/", None),
        ("", None),
        (None, None),
    ],
)
def test_split_path(path, expected):
    assert split_path(path) == expected


@pytest.mark.unit
def test_to_path_list_is_preorder(deep_root):
    assert deep_root.to_path_list() == [
        "root/",
        "root/home/",
        "root/home/kitchen/",
        "root/home/kitchen/pantry/",
        "root/work/",
    ]


@pytest.mark.unit
def test_resolve_path(deep_root):
    chain = deep_root.resolve_path("root/home/kitchen/")
    assert [f.name for f in chain] == ["root", "home", "kitchen"]
    assert deep_root.resolve_path("root/nowhere/") is None
    assert deep_root.resolve_path("other/") is None
    # alarms are not folders
    assert deep_root.resolve_path("root/wake/") is None


# ─── the flattened order ───────────────────────────────────────


@pytest.mark.unit
def test_scenario_flattens_folders_first(scenario_root):
    assert names(scenario_root) == ["inner", "a3", "a1", "a2", "a4"]
    assert scenario_root.size() == 6
    assert scenario_root.visible_size() == 6
    assert scenario_root.lookup == [0, 2, 3, 4]


@pytest.mark.unit
def test_add_item_at_path_returns_absolute_index(alarm_factory):
    root = AlarmGroup("root")
    assert root.add_item_at_path(alarm_factory("a1"), "root/") == 0
    assert root.add_item_at_path(alarm_factory("a2"), "root/") == 1
    assert root.add_item_at_path(AlarmGroup("inner"), "root/") == 0
    assert root.add_item_at_path(alarm_factory("a3"), "root/inner/") == 1
    assert root.add_item_at_path(alarm_factory("a4"), "root/") == 4
    assert root.add_item_at_path(alarm_factory("lost"), "root/missing/") is None


@pytest.mark.unit
def test_scenario_item_info(scenario_root):
    inner = scenario_root.get_item_info(0)
    assert inner.item.name == "inner"
    assert inner.path == "root/"
    assert inner.depth == 0
    assert inner.parent is scenario_root
    assert inner.abs_parent_index == -1

    a3 = scenario_root.get_item_info(1)
    assert a3.item.name == "a3"
    assert a3.path == "root/inner/"
    assert a3.depth == 1
    assert a3.parent is inner.item
    assert a3.rel_index == 0
    assert a3.abs_parent_index == 0

    a4 = scenario_root.get_item_info(4)
    assert a4.item.name == "a4"
    assert a4.rel_index == 3


@pytest.mark.unit
@pytest.mark.parametrize("index", [-1, 5, 100])
def test_out_of_range_lookups(scenario_root, index):
    assert scenario_root.get_item_info(index) is None
    assert scenario_root.get_item_abs(index) is None
    assert scenario_root.delete_item_abs(index) is None
    assert scenario_root.size() == 6


@pytest.mark.unit
def test_deep_item_info(deep_root):
    assert names(deep_root) == [
        "home",
        "kitchen",
        "pantry",
        "oven",
        "kettle",
        "lights",
        "work",
        "standup",
        "wake",
    ]
    oven = deep_root.get_item_info(3)
    assert oven.item.name == "oven"
    assert oven.path == "root/home/kitchen/pantry/"
    assert oven.depth == 3
    assert oven.abs_parent_index == 2


@pytest.mark.unit
def test_walk_matches_absolute_lookup(deep_root):
    for info in deep_root.walk():
        assert deep_root.get_item_info(info.abs_index) == info


@pytest.mark.unit
def test_absolute_index_of_path_round_trips(deep_root):
    for info in deep_root.walk():
        full_path = info.path + info.item.name
        assert deep_root.absolute_index_of_path(full_path) == info.abs_index
    assert deep_root.absolute_index_of_path("root/home/") == 0
    assert deep_root.absolute_index_of_path("root/nothing") is None
    assert deep_root.absolute_index_of_path("root") is None


@pytest.mark.unit
def test_absolute_index_of_item(deep_root):
    kettle = deep_root.get_item_abs(4)
    assert deep_root.absolute_index("root/home/kitchen/", kettle) == 4
    assert deep_root.absolute_index("root/home/", kettle) is None


@pytest.mark.unit
def test_find_outer_index():
    lookup = [0, 2, 3, 4]
    assert AlarmGroup.find_outer_index(lookup, 0, 5) == 0
    assert AlarmGroup.find_outer_index(lookup, 1, 5) == 0
    assert AlarmGroup.find_outer_index(lookup, 2, 5) == 1
    assert AlarmGroup.find_outer_index(lookup, 4, 5) == 3
    assert AlarmGroup.find_outer_index(lookup, 5, 5) == -1
    assert AlarmGroup.find_outer_index(lookup, -1, 5) == -1
    assert AlarmGroup.find_outer_index([], 0, 0) == -1


# ─── mutations ─────────────────────────────────────────────────


@pytest.mark.unit
def test_lookups_stay_consistent_through_mutations(deep_root, alarm_factory):
    assert_lookups_consistent(deep_root)
    deep_root.add_item_at_path(alarm_factory("toast"), "root/home/kitchen/pantry/")
    assert_lookups_consistent(deep_root)
    deep_root.delete_item_abs(6)
    assert_lookups_consistent(deep_root)
    deep_root.move_item_abs(0, "root/")
    assert_lookups_consistent(deep_root)


@pytest.mark.unit
def test_delete_folder_removes_subtree(deep_root):
    removed = deep_root.delete_item_abs(1)
    assert removed.name == "kitchen"
    assert deep_root.size() == 10 - 4
    assert names(deep_root) == ["home", "lights", "work", "standup", "wake"]
    assert deep_root.get_item_abs(1).name == "lights"


@pytest.mark.unit
def test_set_item_abs_resorts(scenario_root, alarm_factory):
    old = scenario_root.set_item_abs(2, alarm_factory("zz"))
    assert old.name == "a1"
    assert names(scenario_root) == ["inner", "a3", "a2", "a4", "zz"]
    assert scenario_root.set_item_abs(9, alarm_factory("none")) is None


@pytest.mark.unit
def test_move_item_to_another_folder(deep_root):
    new_index = deep_root.move_item_abs(4, "root/")
    assert new_index == 7
    assert deep_root.get_item_abs(7).name == "kettle"
    assert deep_root.get_item_info(7).path == "root/"


@pytest.mark.unit
def test_move_with_replacement(deep_root, alarm_factory):
    new_index = deep_root.move_item_abs(8, "root/work/", alarm_factory("nap"))
    assert new_index == 7
    assert names(deep_root)[6:] == ["work", "nap", "standup"]


@pytest.mark.unit
def test_folder_cannot_move_into_itself(deep_root):
    assert deep_root.move_item_abs(0, "root/home/") is None
    assert deep_root.move_item_abs(0, "root/home/kitchen/") is None
    assert deep_root.move_item_abs(0, "root/nowhere/") is None
    assert deep_root.size() == 10


@pytest.mark.unit
def test_find_child_prefers_folders(alarm_factory):
    root = AlarmGroup("root")
    root.add_item_at_path(alarm_factory("twin"), "root/")
    root.add_item_at_path(AlarmGroup("twin"), "root/")
    assert isinstance(root.children[root.find_child("twin")], AlarmGroup)
    assert root.find_child("missing") == -1


@pytest.mark.unit
def test_get_item_info_by_id(deep_root):
    standup = deep_root.get_item_abs(7)
    info = deep_root.get_item_info_by_id(standup.id)
    assert info.abs_index == 7
    assert info.path == "root/work/"
    assert deep_root.get_item_info_by_id(-5) is None


@pytest.mark.unit
def test_walk_active_only_skips_inactive_subtrees(deep_root):
    deep_root.get_item_abs(0).turn_off()
    visible = [info.abs_index for info in deep_root.walk(active_only=True)]
    # home/ and everything in it are gone, standup is off
    assert visible == [6, 8]


# ─── next trigger ──────────────────────────────────────────────


@pytest.mark.unit
def test_find_next_trigger(deep_root):
    trigger = deep_root.find_next_trigger(NOW)
    assert trigger.alarm.name == "oven"
    assert trigger.abs_index == 3
    assert trigger.path == "root/home/kitchen/pantry/"
    # overdue alarms were brought up to date on the way
    kettle = deep_root.get_item_abs(4)
    assert kettle.ring_time == datetime(2025, 1, 3, 6, 45)


@pytest.mark.unit
def test_inactive_folder_silences_its_alarms(deep_root):
    deep_root.get_item_abs(0).turn_off()
    trigger = deep_root.find_next_trigger(NOW)
    assert trigger.alarm.name == "wake"
    assert trigger.abs_index == 8
    assert trigger.path == "root/"


@pytest.mark.unit
def test_inactive_alarm_is_never_the_next_trigger(alarm_factory):
    root = AlarmGroup("root")
    root.add_item_at_path(
        alarm_factory("off", ring_time=datetime(2025, 1, 1, 12, 30), active=False),
        "root/",
    )
    root.add_item_at_path(
        alarm_factory("on", ring_time=datetime(2025, 1, 1, 18, 0)), "root/"
    )
    assert root.find_next_trigger(NOW).alarm.name == "on"


@pytest.mark.unit
def test_next_trigger_index_follows_resorting(alarm_factory):
    # same name, so ring time decides the order and moves with the update
    root = AlarmGroup("root")
    root.add_item_at_path(
        alarm_factory("same", ring_time=datetime(2024, 12, 31, 9, 0)), "root/"
    )
    root.add_item_at_path(
        alarm_factory("same", ring_time=datetime(2025, 1, 1, 20, 0)), "root/"
    )
    trigger = root.find_next_trigger(NOW)
    # the overdue 09:00 alarm moved to tomorrow and now sorts second
    assert trigger.alarm.ring_time == datetime(2025, 1, 1, 20, 0)
    assert trigger.abs_index == 0
    assert root.get_item_abs(trigger.abs_index) is trigger.alarm
    assert_lookups_consistent(root)


@pytest.mark.unit
def test_no_next_trigger(alarm_factory):
    root = AlarmGroup("root")
    assert root.find_next_trigger(NOW) is None
    root.add_item_at_path(alarm_factory("wake"), "root/")
    root.turn_off()
    assert root.find_next_trigger(NOW) is None


@pytest.mark.unit
def test_find_next_trigger_uses_the_clock(deep_root, frozen_time):
    assert deep_root.find_next_trigger().alarm.name == "oven"


@pytest.mark.unit
def test_group_equality_and_iteration(scenario_root):
    twin = scenario_root.copy()
    assert twin == scenario_root
    assert [c.name for c in scenario_root] == ["inner", "a1", "a2", "a4"]
    assert len(scenario_root) == 4
    assert not (AlarmGroup("x") == Alarm("x"))
