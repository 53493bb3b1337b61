"""
Alarms and the item base class shared with folders.

An item is always valid while it is alive: constructors raise
ValidationError for bad input, while the ``set_*`` methods report a
SetResult and leave the item unchanged on error. Setters that touch
recurrence fields or activation recompute the ring time.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import total_ordering
from typing import Optional, TYPE_CHECKING

from alarmtree import recurrence
from alarmtree.errors import ValidationError
from alarmtree.recurrence import RepeatType
from alarmtree.shared import to_millis

if TYPE_CHECKING:
    from alarmtree.folder import AlarmGroup

FORBIDDEN_NAME_CHARS = ("\t", "/", "\n", "\r")
ID_MODULUS = 2**31 - 1
DEFAULT_NAME = "default name"
DEFAULT_RINGTONE = "default"

_id_lock = threading.Lock()
_last_id = -1


class SetResult(Enum):
    OK = "ok"
    EMPTY_OR_NULL = "empty or null"
    INVALID_CHARACTER = "invalid character"
    OUT_OF_RANGE = "out of range"

    def __bool__(self) -> bool:
        return self is SetResult.OK


def check_name(name: Optional[str]) -> SetResult:
    if not name:
        return SetResult.EMPTY_OR_NULL
    if any(c in name for c in FORBIDDEN_NAME_CHARS):
        return SetResult.INVALID_CHARACTER
    return SetResult.OK


def new_id() -> int:
    """
    Creation-time derived id: epoch milliseconds folded into 31 bits, bumped
    so that ids handed out by this process never repeat or decrease.
    """
    global _last_id
    with _id_lock:
        candidate = int(time.time() * 1000) % ID_MODULUS
        if candidate <= _last_id:
            candidate = (_last_id + 1) % ID_MODULUS
        _last_id = candidate
        return candidate


def _in_range(value, low: int, high: Optional[int] = None) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value >= low and (high is None or value <= high)


@total_ordering
class Item:
    """Common state of alarms and folders: id, name and the active flag."""

    is_alarm = False

    def __init__(self, name: str, id: Optional[int] = None, active: bool = True):
        result = check_name(name)
        if result is not SetResult.OK:
            raise ValidationError(f"invalid name {name!r}: {result.value}")
        self.id = new_id() if id is None else id
        self.name = name
        self.active = active

    def set_name(self, name: Optional[str]) -> SetResult:
        result = check_name(name)
        if result is SetResult.OK:
            self.name = name
        return result

    def set_active(self, active: bool):
        self.active = active

    def turn_on(self):
        self.set_active(True)

    def turn_off(self):
        self.set_active(False)

    def toggle_active(self):
        self.set_active(not self.active)

    def size(self) -> int:
        return 1

    def visible_size(self) -> int:
        return self.size()

    def sort_key(self) -> tuple:
        raise NotImplementedError

    def copy(self):
        raise NotImplementedError

    def __lt__(self, other):
        if not isinstance(other, Item):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    __hash__ = None


class Alarm(Item):
    is_alarm = True

    def __init__(
        self,
        name: str = DEFAULT_NAME,
        id: Optional[int] = None,
        ring_time: Optional[datetime] = None,
        repeat_type: RepeatType = RepeatType.ONCE_ABS,
        repeat_days: Optional[list[bool]] = None,
        repeat_months: Optional[list[bool]] = None,
        repeat_week: int = 0,
        offset_days: int = 1,
        offset_hours: int = 0,
        offset_mins: int = 0,
        offset_from_now: bool = True,
        active: bool = True,
        volume: int = 60,
        vibrate: bool = True,
        ringtone: Optional[str] = DEFAULT_RINGTONE,
    ):
        super().__init__(name, id, active)
        if ring_time is None:
            ring_time = datetime.now().replace(second=0, microsecond=0)
        self.ring_time = ring_time

        try:
            self.repeat_type = RepeatType(repeat_type)
        except ValueError as e:
            raise ValidationError(f"unknown repeat type {repeat_type!r}") from e
        self.repeat_days = [True] * 7 if repeat_days is None else list(repeat_days)
        self.repeat_months = (
            [True] * 12 if repeat_months is None else list(repeat_months)
        )
        if len(self.repeat_days) != 7 or len(self.repeat_months) != 12:
            raise ValidationError("repeat_days needs 7 flags and repeat_months 12")

        checks = (
            ("repeat_week", repeat_week, 0, recurrence.LAST_WEEK),
            ("offset_days", offset_days, 0, None),
            ("offset_hours", offset_hours, 0, 23),
            ("offset_mins", offset_mins, 0, 59),
            ("volume", volume, 0, 100),
        )
        for field, value, low, high in checks:
            if not _in_range(value, low, high):
                raise ValidationError(f"{field} out of range: {value!r}")
        self.repeat_week = repeat_week
        self.offset_days = offset_days
        self.offset_hours = offset_hours
        self.offset_mins = offset_mins
        self.offset_from_now = offset_from_now

        self.volume = volume
        self.vibrate = vibrate
        self.ringtone = ringtone

        self.snoozed = False
        self.num_snoozes = 0

    def __repr__(self) -> str:
        return (
            f"Alarm(id={self.id}, name={self.name!r}, "
            f"type={self.repeat_type.name}, ring_time={self.ring_time:%Y-%m-%d %H:%M}, "
            f"active={self.active}, snoozes={self.num_snoozes})"
        )

    # ─── recurrence ────────────────────────────────────────────

    def update_ring_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        return recurrence.update_ring_time(self, now)

    def next_ring_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        return recurrence.next_ring_time(self, now)

    @property
    def unsnoozed_ring_time(self) -> datetime:
        return recurrence.unsnoozed_ring_time(self)

    def snooze(self):
        recurrence.snooze(self)

    def unsnooze(self):
        recurrence.unsnooze(self)

    def dismiss(self, now: Optional[datetime] = None):
        recurrence.dismiss(self, now)

    def is_one_shot(self) -> bool:
        return self.repeat_type in recurrence.ONE_SHOT_TYPES

    # ─── setters ───────────────────────────────────────────────

    def set_active(self, active: bool):
        active = bool(active)
        if not active:
            self.unsnooze()
        self.active = active
        if active:
            self.update_ring_time()

    def set_ring_time(self, ring_time: datetime) -> SetResult:
        if not isinstance(ring_time, datetime):
            return SetResult.EMPTY_OR_NULL
        self.ring_time = ring_time.replace(second=0, microsecond=0)
        self.update_ring_time()
        return SetResult.OK

    def set_repeat_type(self, repeat_type) -> SetResult:
        try:
            self.repeat_type = RepeatType(repeat_type)
        except ValueError:
            return SetResult.OUT_OF_RANGE
        self.update_ring_time()
        return SetResult.OK

    def set_repeat_days(self, days) -> SetResult:
        if days is None:
            return SetResult.EMPTY_OR_NULL
        if len(days) != 7:
            return SetResult.OUT_OF_RANGE
        self.repeat_days = [bool(d) for d in days]
        self.update_ring_time()
        return SetResult.OK

    def set_repeat_months(self, months) -> SetResult:
        if months is None:
            return SetResult.EMPTY_OR_NULL
        if len(months) != 12:
            return SetResult.OUT_OF_RANGE
        self.repeat_months = [bool(m) for m in months]
        self.update_ring_time()
        return SetResult.OK

    def _set_bounded(self, attr: str, value, low: int, high: Optional[int]) -> SetResult:
        if not _in_range(value, low, high):
            return SetResult.OUT_OF_RANGE
        setattr(self, attr, value)
        self.update_ring_time()
        return SetResult.OK

    def set_repeat_week(self, week: int) -> SetResult:
        return self._set_bounded("repeat_week", week, 0, recurrence.LAST_WEEK)

    def set_offset_days(self, days: int) -> SetResult:
        return self._set_bounded("offset_days", days, 0, None)

    def set_offset_hours(self, hours: int) -> SetResult:
        return self._set_bounded("offset_hours", hours, 0, 23)

    def set_offset_mins(self, mins: int) -> SetResult:
        return self._set_bounded("offset_mins", mins, 0, 59)

    def set_offset_from_now(self, from_now: bool):
        self.offset_from_now = bool(from_now)

    def set_volume(self, volume: int) -> SetResult:
        if not _in_range(volume, 0, 100):
            return SetResult.OUT_OF_RANGE
        self.volume = volume
        return SetResult.OK

    def set_vibrate(self, vibrate: bool):
        self.vibrate = bool(vibrate)

    def set_ringtone(self, ringtone: Optional[str]) -> SetResult:
        # "/" is fine in a ringtone reference
        if ringtone is not None and any(c in ringtone for c in "\t\n\r"):
            return SetResult.INVALID_CHARACTER
        self.ringtone = ringtone or None
        return SetResult.OK

    # ─── ordering, equality, copying ───────────────────────────

    def type_fields(self) -> tuple:
        """The fields this alarm's repeat type sorts on, in sort order."""
        ring = self.unsnoozed_ring_time
        enabled_days = sum(self.repeat_days)
        enabled_months = sum(self.repeat_months)
        days_pattern = tuple(not d for d in self.repeat_days)
        months_pattern = tuple(not m for m in self.repeat_months)

        rt = self.repeat_type
        if rt == RepeatType.DAY_WEEKLY:
            return (-enabled_days, days_pattern, ring.hour, ring.minute)
        if rt == RepeatType.DATE_MONTHLY:
            return (-enabled_months, months_pattern, ring.day, ring.hour, ring.minute)
        if rt == RepeatType.DAY_MONTHLY:
            return (
                -enabled_months,
                months_pattern,
                self.repeat_week,
                recurrence.day_index(ring),
                ring.hour,
                ring.minute,
            )
        if rt == RepeatType.DATE_YEARLY:
            return (ring.month, ring.day, ring.hour, ring.minute)
        if rt in recurrence.OFFSET_TYPES:
            return (
                self.offset_days,
                self.offset_hours,
                self.offset_mins,
                not self.offset_from_now,
            )
        return ()

    def sort_key(self) -> tuple:
        return (
            1,
            self.name,
            int(self.repeat_type),
            self.type_fields(),
            to_millis(self.unsnoozed_ring_time),
            self.id,
        )

    def _eq_fields(self) -> tuple:
        rt = self.repeat_type
        used: tuple = ()
        if rt == RepeatType.DAY_WEEKLY:
            used = (tuple(self.repeat_days),)
        elif rt == RepeatType.DATE_MONTHLY:
            used = (tuple(self.repeat_months),)
        elif rt == RepeatType.DAY_MONTHLY:
            used = (self.repeat_week, tuple(self.repeat_months))
        elif rt in recurrence.OFFSET_TYPES:
            used = (
                self.offset_days,
                self.offset_hours,
                self.offset_mins,
                self.offset_from_now,
            )
        return (
            self.id,
            self.name,
            self.active,
            int(rt),
            used,
            to_millis(self.ring_time),
            self.ringtone,
            self.snoozed,
            self.num_snoozes,
            self.volume,
            self.vibrate,
        )

    def __eq__(self, other):
        if not isinstance(other, Alarm):
            return NotImplemented
        return self._eq_fields() == other._eq_fields()

    def copy(self) -> "Alarm":
        """A deep copy keeping the same id."""
        twin = Alarm(
            name=self.name,
            id=self.id,
            ring_time=self.ring_time,
            repeat_type=self.repeat_type,
            repeat_days=self.repeat_days,
            repeat_months=self.repeat_months,
            repeat_week=self.repeat_week,
            offset_days=self.offset_days,
            offset_hours=self.offset_hours,
            offset_mins=self.offset_mins,
            offset_from_now=self.offset_from_now,
            active=self.active,
            volume=self.volume,
            vibrate=self.vibrate,
            ringtone=self.ringtone,
        )
        twin.snoozed = self.snoozed
        twin.num_snoozes = self.num_snoozes
        return twin


@dataclass
class ItemInfo:
    """Where an item sits in the tree, as found by an absolute index lookup."""

    item: Item
    parent: "AlarmGroup"
    path: str
    rel_index: int
    depth: int
    abs_index: int
    # -1 when the parent is the root
    abs_parent_index: int


@dataclass
class NextTrigger:
    alarm: Alarm
    abs_index: int
    path: str
