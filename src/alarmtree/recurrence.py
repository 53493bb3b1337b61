"""
Next-trigger computation for alarms.

Every function here works on an object with the attributes of
``alarmtree.item.Alarm``: ``ring_time``, ``repeat_type``, ``repeat_days``,
``repeat_months``, ``repeat_week``, ``offset_days``, ``offset_hours``,
``offset_mins``, ``offset_from_now``, ``active``, ``snoozed`` and
``num_snoozes``.

The calendar types are expressed as dateutil rrules anchored at the start of
the evaluation day. rrule never yields a date that does not exist, so a
monthly alarm on the 31st simply has no occurrence in April.
"""

from datetime import datetime, timedelta
from enum import IntEnum

from dateutil.relativedelta import relativedelta
from dateutil.rrule import (
    FR,
    MO,
    MONTHLY,
    SA,
    SU,
    TH,
    TU,
    WE,
    WEEKLY,
    YEARLY,
    rrule,
)


class RepeatType(IntEnum):
    # values are the on-disk type ids and the sort order of alarm types
    ONCE_ABS = 0
    ONCE_REL = 1
    DAY_WEEKLY = 2
    DATE_MONTHLY = 3
    DAY_MONTHLY = 4
    DATE_YEARLY = 5
    OFFSET = 6


ONE_SHOT_TYPES = frozenset({RepeatType.ONCE_ABS, RepeatType.ONCE_REL})
OFFSET_TYPES = frozenset({RepeatType.ONCE_REL, RepeatType.OFFSET})

SNOOZE_MINUTES = 5

# repeat_week value meaning "the last such weekday of the month"
LAST_WEEK = 4

# indexed like Alarm.repeat_days: 0 = Sunday
RRULE_DAYS = (SU, MO, TU, WE, TH, FR, SA)

# far enough ahead for Feb 29 and for any single enabled month
SEARCH_YEARS = 9


def day_index(dt: datetime) -> int:
    """Sunday-first day index of dt (Sunday = 0 ... Saturday = 6)."""
    return (dt.weekday() + 1) % 7


def offset_delta(alarm) -> timedelta:
    return timedelta(
        days=alarm.offset_days, hours=alarm.offset_hours, minutes=alarm.offset_mins
    )


def _calendar_rule(alarm, anchor: datetime) -> rrule | None:
    """The rrule for a calendar repeat type, or None when nothing is enabled."""
    ring = alarm.ring_time
    common = dict(
        dtstart=anchor,
        until=anchor + relativedelta(years=SEARCH_YEARS),
        byhour=ring.hour,
        byminute=ring.minute,
        bysecond=0,
    )
    # an empty by-list means "unconstrained" to rrule, so check first
    months = [i + 1 for i, on in enumerate(alarm.repeat_months) if on]

    repeat_type = alarm.repeat_type
    if repeat_type == RepeatType.DAY_WEEKLY:
        days = [RRULE_DAYS[i] for i, on in enumerate(alarm.repeat_days) if on]
        if not days:
            return None
        return rrule(WEEKLY, byweekday=days, **common)
    if repeat_type == RepeatType.DATE_MONTHLY:
        if not months:
            return None
        return rrule(MONTHLY, bymonth=months, bymonthday=ring.day, **common)
    if repeat_type == RepeatType.DAY_MONTHLY:
        if not months:
            return None
        nth = -1 if alarm.repeat_week == LAST_WEEK else alarm.repeat_week + 1
        weekday = RRULE_DAYS[day_index(ring)](nth)
        return rrule(MONTHLY, bymonth=months, byweekday=weekday, **common)
    if repeat_type == RepeatType.DATE_YEARLY:
        return rrule(YEARLY, bymonth=ring.month, bymonthday=ring.day, **common)
    return None


def next_ring_time(alarm, now: datetime | None = None) -> datetime | None:
    """
    Return the instant ``alarm`` would be moved to by ``update_ring_time``
    without changing it. Activation and snooze state are ignored here.

    ``None`` means there is no next trigger: no enabled day or month, a date
    that occurs in none of the enabled months, or an OFFSET alarm whose offset
    is zero.
    """
    if now is None:
        now = datetime.now()
    ring = alarm.ring_time

    repeat_type = alarm.repeat_type
    if repeat_type == RepeatType.ONCE_ABS:
        if ring > now:
            return ring
        candidate = now.replace(
            hour=ring.hour, minute=ring.minute, second=0, microsecond=0
        )
        if candidate < now:
            candidate += timedelta(days=1)
        return candidate
    if repeat_type == RepeatType.ONCE_REL:
        if ring > now:
            return ring
        return now.replace(microsecond=0) + offset_delta(alarm)
    if repeat_type == RepeatType.OFFSET:
        step = offset_delta(alarm)
        if ring >= now:
            return ring
        if step <= timedelta(0):
            return None
        # ceiling division, kept in exact timedelta arithmetic
        steps = -((ring - now) // step)
        return ring + steps * step

    anchor = now.replace(hour=0, minute=0, second=0, microsecond=0)
    rule = _calendar_rule(alarm, anchor)
    if rule is None:
        return None
    return rule.after(now, inc=True)


def update_ring_time(alarm, now: datetime | None = None) -> datetime | None:
    """
    Move ``alarm.ring_time`` to its next trigger at or after ``now`` and
    return it.

    Inactive alarms are left alone and give ``None``. Snoozed alarms are left
    alone and give their snoozed ring time; unsnooze first to recompute.
    When there is no next trigger ``ring_time`` is unchanged and ``None`` is
    returned.
    """
    if not alarm.active:
        return None
    if alarm.snoozed:
        return alarm.ring_time
    if now is None:
        now = datetime.now()

    result = next_ring_time(alarm, now)
    if result is None:
        return None
    if alarm.repeat_type == RepeatType.ONCE_REL and alarm.ring_time <= now:
        # once triggered the offset is measured from now
        alarm.offset_from_now = True
    alarm.ring_time = result
    return result


def unsnoozed_ring_time(alarm) -> datetime:
    return alarm.ring_time - timedelta(minutes=SNOOZE_MINUTES * alarm.num_snoozes)


def snooze(alarm):
    alarm.snoozed = True
    alarm.num_snoozes += 1
    alarm.ring_time += timedelta(minutes=SNOOZE_MINUTES)


def unsnooze(alarm):
    """Undo every snooze at once. Does nothing when the alarm is not snoozed."""
    alarm.ring_time = unsnoozed_ring_time(alarm)
    alarm.snoozed = False
    alarm.num_snoozes = 0


def dismiss(alarm, now: datetime | None = None):
    unsnooze(alarm)
    if alarm.repeat_type in ONE_SHOT_TYPES:
        alarm.active = False
    else:
        update_ring_time(alarm, now)
