"""
Shared pytest fixtures for alarmtree tests.

This module provides common fixtures used across all test files, including:
- Time freezing utilities
- An isolated ALARMTREE_HOME so logs and config land in tmp_path
- Alarm and tree factories
"""

import pytest
from datetime import datetime
from freezegun import freeze_time

from alarmtree.alarm_env import AlarmEnvironment
from alarmtree.folder import AlarmGroup
from alarmtree.item import Alarm
from alarmtree.recurrence import RepeatType


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Every test gets its own ALARMTREE_HOME; log_msg writes below it."""
    home = tmp_path / "alarmtree_home"
    monkeypatch.setenv("ALARMTREE_HOME", str(home))
    return home


@pytest.fixture
def frozen_time():
    """
    Provides a freezegun context that freezes time to a default datetime.

    Time is automatically frozen to 2025-01-01 12:00:00 (a Wednesday) for the
    duration of the test. You can move time forward using the methods on the
    frozen context.

    Usage:
        def test_something(frozen_time):
            now = datetime.now()  # Returns 2025-01-01 12:00:00
            frozen_time.tick(delta=timedelta(hours=2))
            now = datetime.now()  # Returns 2025-01-01 14:00:00
    """
    with freeze_time("2025-01-01 12:00:00") as frozen:
        yield frozen


@pytest.fixture
def freeze_at():
    """
    Returns a function that freezes time to a specific datetime.

    Usage:
        def test_something(freeze_at):
            with freeze_at("2025-01-15 10:00:00"):
                now = datetime.now()
    """
    return freeze_time


@pytest.fixture
def mock_now(frozen_time):
    """The frozen 'now' as a datetime, for tests that pass it explicitly."""
    return datetime(2025, 1, 1, 12, 0, 0)


@pytest.fixture
def test_env(isolated_home):
    """
    Provides an AlarmEnvironment rooted in the isolated home.
    """
    env = AlarmEnvironment()
    env.ensure(init_config=True)
    env.load_config()
    return env


@pytest.fixture
def alarm_factory():
    """
    Provides a factory for alarms with readable defaults.

    Usage:
        def test_something(alarm_factory):
            alarm = alarm_factory("wake", ring_time=datetime(2025, 1, 2, 7, 30))
    """

    def _create(name: str = "alarm", **fields) -> Alarm:
        fields.setdefault("ring_time", datetime(2025, 1, 2, 7, 30))
        return Alarm(name, **fields)

    return _create


@pytest.fixture
def scenario_root(alarm_factory):
    """
    root{a1, a2, inner{a3}, a4}. Folders sort first, so the flattened order
    is inner, a3, a1, a2, a4.
    """
    root = AlarmGroup("root")
    for name in ("a1", "a2"):
        root.add_item_at_path(alarm_factory(name), "root/")
    root.add_item_at_path(AlarmGroup("inner"), "root/")
    root.add_item_at_path(alarm_factory("a3"), "root/inner/")
    root.add_item_at_path(alarm_factory("a4"), "root/")
    return root


@pytest.fixture
def deep_root(alarm_factory):
    """
    Three levels of folders with alarms of several repeat types:

    root/
      home/
        kitchen/
          pantry/  oven(offset)
          kettle(weekly)
        lights(yearly)
      work/   standup(weekly, off)
      wake(once)
    """
    root = AlarmGroup("root")
    root.add_item_at_path(AlarmGroup("home"), "root/")
    root.add_item_at_path(AlarmGroup("work"), "root/")
    root.add_item_at_path(AlarmGroup("kitchen"), "root/home/")
    root.add_item_at_path(AlarmGroup("pantry"), "root/home/kitchen/")
    root.add_item_at_path(
        alarm_factory(
            "oven",
            repeat_type=RepeatType.OFFSET,
            offset_days=0,
            offset_hours=1,
            offset_mins=15,
            offset_from_now=False,
            ring_time=datetime(2025, 1, 1, 13, 0),
        ),
        "root/home/kitchen/pantry/",
    )
    root.add_item_at_path(
        alarm_factory(
            "kettle",
            repeat_type=RepeatType.DAY_WEEKLY,
            repeat_days=[False, True, False, True, False, True, False],
            ring_time=datetime(2025, 1, 1, 6, 45),
        ),
        "root/home/kitchen/",
    )
    root.add_item_at_path(
        alarm_factory(
            "lights",
            repeat_type=RepeatType.DATE_YEARLY,
            ring_time=datetime(2025, 12, 24, 17, 0),
        ),
        "root/home/",
    )
    root.add_item_at_path(
        alarm_factory(
            "standup",
            repeat_type=RepeatType.DAY_WEEKLY,
            repeat_days=[False, True, True, True, True, True, False],
            ring_time=datetime(2025, 1, 2, 9, 0),
            active=False,
        ),
        "root/work/",
    )
    root.add_item_at_path(
        alarm_factory("wake", ring_time=datetime(2025, 1, 2, 7, 0)), "root/"
    )
    return root
