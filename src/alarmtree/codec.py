"""
Text formats for items and for the store file.

Edit strings are single-line, tab separated:

    alarm:  id  name  active  repeat  ring-millis  ringtone  snoozed  snoozes  volume  vibrate
    folder: id  name  active

``repeat`` is space separated: the repeat type id followed by the fields
that type uses. Store strings prefix an edit string with ``a`` or ``f`` and
a tab; a folder's store string is followed by its children's store strings
with one more leading tab on every line. The store file holds the root's
children's store strings, one after another.

Decoding is all-or-nothing: a malformed child fails its whole folder.
Failures are logged and reported as None.
"""

import re
from typing import Optional

from alarmtree.errors import FormatError, ValidationError
from alarmtree.folder import AlarmGroup
from alarmtree.item import Alarm, Item
from alarmtree.recurrence import RepeatType
from alarmtree.shared import from_millis, log_msg, to_millis

FIELD_SEP = "\t"
REPEAT_SEP = " "
ALARM_PREFIX = "a"
FOLDER_PREFIX = "f"
NULL = "null"

ALARM_FIELDS = 10
LEGACY_ALARM_FIELDS = 9  # no vibrate field
FOLDER_FIELDS = 3
LEGACY_FOLDER_FIELDS = 4  # trailing "open" flag, ignored

# number of values after the type id in a repeat descriptor
REPEAT_FIELD_COUNTS = {
    RepeatType.ONCE_ABS: 0,
    RepeatType.ONCE_REL: 4,
    RepeatType.DAY_WEEKLY: 7,
    RepeatType.DATE_MONTHLY: 12,
    RepeatType.DAY_MONTHLY: 13,
    RepeatType.DATE_YEARLY: 0,
    RepeatType.OFFSET: 4,
}


def fmt_bool(value: bool) -> str:
    return "true" if value else "false"


def parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise FormatError(f"not a boolean: {text!r}")


INT_PATTERN = re.compile(r"-?[0-9]+")


def parse_int(text: str, what: str) -> int:
    # int() would also take "+5", " 5", "1_000" and non-ASCII digits
    if not INT_PATTERN.fullmatch(text):
        raise FormatError(f"{what} is not an integer: {text!r}")
    return int(text)


# ─── encoding ──────────────────────────────────────────────────


def repeat_descriptor(alarm: Alarm) -> str:
    rt = alarm.repeat_type
    fields = [str(int(rt))]
    if rt in (RepeatType.ONCE_REL, RepeatType.OFFSET):
        fields += [
            str(alarm.offset_days),
            str(alarm.offset_hours),
            str(alarm.offset_mins),
            fmt_bool(alarm.offset_from_now),
        ]
    elif rt == RepeatType.DAY_WEEKLY:
        fields += [fmt_bool(d) for d in alarm.repeat_days]
    elif rt == RepeatType.DATE_MONTHLY:
        fields += [fmt_bool(m) for m in alarm.repeat_months]
    elif rt == RepeatType.DAY_MONTHLY:
        fields.append(str(alarm.repeat_week))
        fields += [fmt_bool(m) for m in alarm.repeat_months]
    return REPEAT_SEP.join(fields)


def to_edit_string(item: Item) -> str:
    if isinstance(item, Alarm):
        fields = [
            str(item.id),
            item.name,
            fmt_bool(item.active),
            repeat_descriptor(item),
            str(to_millis(item.ring_time)),
            NULL if item.ringtone is None else item.ringtone,
            fmt_bool(item.snoozed),
            str(item.num_snoozes),
            str(item.volume),
            fmt_bool(item.vibrate),
        ]
    else:
        fields = [str(item.id), item.name, fmt_bool(item.active)]
    return FIELD_SEP.join(fields)


def to_store_string(item: Item) -> str:
    if isinstance(item, AlarmGroup):
        lines = [f"{FOLDER_PREFIX}{FIELD_SEP}{to_edit_string(item)}"]
        for child in item.children:
            lines.extend(
                f"{FIELD_SEP}{line}" for line in to_store_string(child).split("\n")
            )
        return "\n".join(lines)
    return f"{ALARM_PREFIX}{FIELD_SEP}{to_edit_string(item)}"


def tree_to_store_text(root: AlarmGroup) -> str:
    """The store file contents for ``root``: its children, no trailing newline."""
    return "\n".join(to_store_string(child) for child in root.children)


# ─── decoding (raises FormatError) ─────────────────────────────


def _apply_repeat(alarm: Alarm, descriptor: str):
    parts = descriptor.split(REPEAT_SEP)
    try:
        rt = RepeatType(parse_int(parts[0], "repeat type"))
    except ValueError as e:
        raise FormatError(f"unknown repeat type in {descriptor!r}") from e
    values = parts[1:]
    if len(values) != REPEAT_FIELD_COUNTS[rt]:
        raise FormatError(
            f"repeat type {rt.name} needs {REPEAT_FIELD_COUNTS[rt]} fields: {descriptor!r}"
        )
    alarm.repeat_type = rt

    if rt in (RepeatType.ONCE_REL, RepeatType.OFFSET):
        days = parse_int(values[0], "offset days")
        hours = parse_int(values[1], "offset hours")
        mins = parse_int(values[2], "offset minutes")
        if days < 0 or not 0 <= hours <= 23 or not 0 <= mins <= 59:
            raise FormatError(f"offset out of range: {descriptor!r}")
        alarm.offset_days, alarm.offset_hours, alarm.offset_mins = days, hours, mins
        alarm.offset_from_now = parse_bool(values[3])
    elif rt == RepeatType.DAY_WEEKLY:
        alarm.repeat_days = [parse_bool(v) for v in values]
    elif rt == RepeatType.DATE_MONTHLY:
        alarm.repeat_months = [parse_bool(v) for v in values]
    elif rt == RepeatType.DAY_MONTHLY:
        week = parse_int(values[0], "repeat week")
        if not 0 <= week <= 4:
            raise FormatError(f"repeat week out of range: {week}")
        alarm.repeat_week = week
        alarm.repeat_months = [parse_bool(v) for v in values[1:]]


def _alarm_from_edit(src: str) -> Alarm:
    fields = src.split(FIELD_SEP)
    if len(fields) not in (ALARM_FIELDS, LEGACY_ALARM_FIELDS):
        raise FormatError(f"alarm edit string has {len(fields)} fields")
    try:
        alarm = Alarm(fields[1], id=parse_int(fields[0], "id"))
    except ValidationError as e:
        raise FormatError(str(e)) from e

    alarm.active = parse_bool(fields[2])
    _apply_repeat(alarm, fields[3])
    alarm.ring_time = from_millis(parse_int(fields[4], "ring time"))
    alarm.ringtone = None if fields[5] == NULL else fields[5]

    snoozed = parse_bool(fields[6])
    num_snoozes = parse_int(fields[7], "snooze count")
    if num_snoozes < 0 or snoozed != (num_snoozes > 0):
        raise FormatError(f"inconsistent snooze state: {fields[6]} {fields[7]}")
    alarm.snoozed, alarm.num_snoozes = snoozed, num_snoozes

    volume = parse_int(fields[8], "volume")
    if not 0 <= volume <= 100:
        raise FormatError(f"volume out of range: {volume}")
    alarm.volume = volume
    alarm.vibrate = parse_bool(fields[9]) if len(fields) == ALARM_FIELDS else True
    return alarm


def _group_from_edit(src: str) -> AlarmGroup:
    fields = src.split(FIELD_SEP)
    if len(fields) not in (FOLDER_FIELDS, LEGACY_FOLDER_FIELDS):
        raise FormatError(f"folder edit string has {len(fields)} fields")
    try:
        group = AlarmGroup(fields[1], id=parse_int(fields[0], "id"))
    except ValidationError as e:
        raise FormatError(str(e)) from e
    group.active = parse_bool(fields[2])
    if len(fields) == LEGACY_FOLDER_FIELDS:
        parse_bool(fields[3])
    return group


def _strip_prefix(line: str, prefix: str) -> str:
    head = f"{prefix}{FIELD_SEP}"
    if not line.startswith(head):
        raise FormatError(f"expected a line starting with {prefix!r}: {line[:20]!r}")
    return line[len(head) :]


def _split_blocks(lines: list[str]) -> list[list[str]]:
    """Group lines into items: a head line plus the tab-indented lines below it."""
    blocks: list[list[str]] = []
    for line in lines:
        if line.startswith(FIELD_SEP):
            if not blocks or not blocks[-1][0].startswith(FOLDER_PREFIX):
                raise FormatError("indented line outside of a folder")
            blocks[-1].append(line)
        elif line.startswith((ALARM_PREFIX, FOLDER_PREFIX)):
            blocks.append([line])
        else:
            raise FormatError(f"unknown item prefix: {line[:20]!r}")
    return blocks


def _item_from_lines(lines: list[str]) -> Item:
    head = lines[0]
    if head.startswith(ALARM_PREFIX):
        if len(lines) > 1:
            raise FormatError("an alarm cannot have indented lines below it")
        return _alarm_from_edit(_strip_prefix(head, ALARM_PREFIX))

    group = _group_from_edit(_strip_prefix(head, FOLDER_PREFIX))
    body = []
    for line in lines[1:]:
        if not line.startswith(FIELD_SEP):
            raise FormatError("folder children are not indented")
        body.append(line[1:])
    group.set_items([_item_from_lines(block) for block in _split_blocks(body)])
    return group


# ─── public decoders (return None on failure) ──────────────────


def item_from_edit_string(src: Optional[str], is_alarm: bool) -> Optional[Item]:
    if not src:
        log_msg("edit string is empty")
        return None
    try:
        return _alarm_from_edit(src) if is_alarm else _group_from_edit(src)
    except FormatError as e:
        log_msg(f"bad edit string {src!r}: {e}")
        return None


def item_from_store_string(src: Optional[str]) -> Optional[Item]:
    if not src:
        log_msg("store string is empty")
        return None
    try:
        return _item_from_lines(src.split("\n"))
    except FormatError as e:
        log_msg(f"bad store string: {e}")
        return None


def tree_from_store_text(text: Optional[str], root_name: str = "root") -> Optional[AlarmGroup]:
    """
    Rebuild a root folder called ``root_name`` from store file contents.
    A top-level item that fails to decode is logged and skipped; text whose
    lines cannot be split into items at all gives None. Blank lines are
    ignored.
    """
    try:
        root = AlarmGroup(root_name)
    except ValidationError as e:
        log_msg(f"bad root name {root_name!r}: {e}")
        return None
    if not text:
        return root

    lines = [line.rstrip("\r") for line in text.split("\n")]
    lines = [line for line in lines if line.strip()]
    try:
        blocks = _split_blocks(lines)
    except FormatError as e:
        log_msg(f"unreadable store text: {e}")
        return None

    children = []
    for block in blocks:
        try:
            children.append(_item_from_lines(block))
        except FormatError as e:
            log_msg(f"skipping item {block[0][:40]!r}: {e}")
    root.set_items(children)
    return root
