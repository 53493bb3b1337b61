from datetime import datetime
from typing import Optional

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from alarmtree.alarm_env import AlarmEnvironment
from alarmtree.codec import to_edit_string
from alarmtree.errors import NotFoundError, ValidationError
from alarmtree.folder import PATH_SEP, AlarmGroup
from alarmtree.item import Alarm, Item, ItemInfo, SetResult
from alarmtree.model import AlarmStore, Scheduler
from alarmtree.recurrence import (
    SNOOZE_MINUTES,
    RepeatType,
    day_index,
)
from alarmtree.shared import (
    DAY_NAMES,
    MONTH_NAMES,
    REPEATING,
    SNOOZED,
    format_time,
    log_msg,
    truncate_string,
)

WEEK_NAMES = ("first", "second", "third", "fourth", "last")

ACTIVE_COLOR = "lightskyblue"
INACTIVE_COLOR = "grey50"
FOLDER_COLOR = "goldenrod"
SNOOZE_COLOR = "darkorange"
NAME_WIDTH = 32


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def join_words(words: list[str]) -> str:
    if len(words) <= 1:
        return "".join(words)
    return f"{', '.join(words[:-1])} and {words[-1]}"


def weekly_string(days: list[bool]) -> str:
    if not any(days):
        return "Never"
    if all(days):
        return "Every day"
    weekend = (days[0], days[6])
    weekdays = days[1:6]
    if all(weekdays) and not any(weekend):
        return "Weekdays"
    if all(weekend) and not any(weekdays):
        return "Weekends"
    return "Every " + ", ".join(DAY_NAMES[i][:3] for i, on in enumerate(days) if on)


def months_string(months: list[bool]) -> str:
    """Either the enabled months or 'every month except ...', whichever is shorter."""
    if all(months):
        return "every month"
    if not any(months):
        return "no months"
    # index 0 is January, an odd month
    if months == [i % 2 == 1 for i in range(12)]:
        return "even months"
    if months == [i % 2 == 0 for i in range(12)]:
        return "odd months"
    enabled = join_words([MONTH_NAMES[i][:3] for i, on in enumerate(months) if on])
    excluded = join_words([MONTH_NAMES[i][:3] for i, on in enumerate(months) if not on])
    if len(enabled) <= len(excluded):
        return enabled
    return f"every month except {excluded}"


def offset_string(days: int, hours: int, mins: int) -> str:
    parts = []
    for value, unit in ((days, "day"), (hours, "hour"), (mins, "minute")):
        if value:
            parts.append(f"{value} {unit}{'s' if value != 1 else ''}")
    return join_words(parts) if parts else "0 minutes"


def repeat_string(alarm: Alarm) -> str:
    """A one or two line description of when ``alarm`` rings."""
    lines = []
    if alarm.snoozed:
        lines.append(f"Snoozed for {alarm.num_snoozes * SNOOZE_MINUTES} minutes")

    ring = alarm.unsnoozed_ring_time
    rt = alarm.repeat_type
    if rt in (RepeatType.ONCE_ABS, RepeatType.ONCE_REL):
        lines.append(f"Once on {ring:%Y-%m-%d}")
    elif rt == RepeatType.DAY_WEEKLY:
        lines.append(weekly_string(alarm.repeat_days))
    elif rt == RepeatType.DATE_MONTHLY:
        lines.append(f"On the {ordinal(ring.day)} of {months_string(alarm.repeat_months)}")
    elif rt == RepeatType.DAY_MONTHLY:
        lines.append(
            f"On the {WEEK_NAMES[alarm.repeat_week]} {DAY_NAMES[day_index(ring)]} "
            f"of {months_string(alarm.repeat_months)}"
        )
    elif rt == RepeatType.DATE_YEARLY:
        lines.append(f"Every year on {MONTH_NAMES[ring.month - 1]} {ring.day}")
    elif rt == RepeatType.OFFSET:
        every = offset_string(alarm.offset_days, alarm.offset_hours, alarm.offset_mins)
        lines.append(f"Every {every} from {ring:%Y-%m-%d}")
    return "\n".join(lines)


def next_ring_string(alarm: Alarm, ampm: bool = False) -> str:
    return format_time(alarm.ring_time, ampm)


class Controller:
    def __init__(
        self,
        env: AlarmEnvironment,
        store: Optional[AlarmStore] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.env = env
        self.store = store or AlarmStore.from_environment(env, scheduler=scheduler)
        self.AMPM = env.config.ui.ampm
        self.datetimefmt = "%Y-%m-%d %H:%M"

    def close(self):
        self.store.close()

    # ─── factories ─────────────────────────────────────────────

    def new_alarm(self, name: str, **fields) -> Alarm:
        """An alarm carrying the configured defaults; ``fields`` override them."""
        defaults = self.env.config.defaults
        values = dict(
            volume=defaults.volume,
            vibrate=defaults.vibrate,
            ringtone=defaults.ringtone,
            offset_days=defaults.offset_days,
            offset_hours=defaults.offset_hours,
            offset_mins=defaults.offset_mins,
        )
        values.update(fields)
        alarm = Alarm(name, **values)
        alarm.update_ring_time()
        return alarm

    def new_folder(self, name: str) -> AlarmGroup:
        return AlarmGroup(name)

    # ─── strict lookups ────────────────────────────────────────

    def require_info(self, abs_index: int) -> ItemInfo:
        info = self.store.get_item_info_at_absolute_index(abs_index)
        if info is None:
            raise NotFoundError(f"no item at index {abs_index}")
        return info

    def require_alarm(self, abs_index: int) -> Alarm:
        item = self.require_info(abs_index).item
        if not isinstance(item, Alarm):
            raise NotFoundError(f"item {abs_index} is a folder, not an alarm")
        return item

    def require_folder_path(self, path: str) -> str:
        if not path.endswith(PATH_SEP):
            path = f"{path}{PATH_SEP}"
        if path not in self.store.to_path_list():
            raise NotFoundError(f"no folder at {path!r}")
        return path

    # ─── actions ───────────────────────────────────────────────

    def add(self, item: Item, path: Optional[str] = None) -> int:
        path = self.require_folder_path(path or self.store.root_path)
        index = self.store.add_item(item, path)
        if index is None:
            raise NotFoundError(f"no folder at {path!r}")
        log_msg(f"added {item.name!r} at {index}")
        return index

    def delete(self, abs_index: int) -> Item:
        removed = self.store.delete_item(abs_index)
        if removed is None:
            raise NotFoundError(f"no item at index {abs_index}")
        return removed

    def toggle(self, abs_index: int) -> Item:
        item = self.store.toggle_active(abs_index)
        if item is None:
            raise NotFoundError(f"no item at index {abs_index}")
        return item

    def snooze(self, abs_index: int) -> Alarm:
        self.require_alarm(abs_index)
        return self.store.snooze(abs_index)

    def unsnooze(self, abs_index: int) -> Alarm:
        self.require_alarm(abs_index)
        return self.store.unsnooze(abs_index)

    def dismiss(self, abs_index: int) -> Alarm:
        self.require_alarm(abs_index)
        return self.store.dismiss(abs_index)

    def move(self, abs_index: int, path: str) -> int:
        self.require_info(abs_index)
        path = self.require_folder_path(path)
        index = self.store.move_item(abs_index, path)
        if index is None:
            raise NotFoundError(f"cannot move item {abs_index} into {path!r}")
        return index

    def rename(self, abs_index: int, name: str) -> SetResult:
        self.require_info(abs_index)
        result = self.store.rename(abs_index, name)
        if result is not SetResult.OK:
            raise ValidationError(f"cannot rename to {name!r}: {result.value}")
        return result

    def edit_string(self, abs_index: int) -> str:
        return to_edit_string(self.require_info(abs_index).item)

    # ─── display ───────────────────────────────────────────────

    def fmt_user(self, dt: datetime) -> str:
        if self.AMPM:
            return f"{dt:%Y-%m-%d} {format_time(dt, True)}"
        return dt.strftime(self.datetimefmt)

    def repeat_string(self, item: Item) -> str:
        return repeat_string(item) if isinstance(item, Alarm) else ""

    def next_ring_string(self, item: Item) -> str:
        return next_ring_string(item, self.AMPM) if isinstance(item, Alarm) else ""

    def next_trigger_string(self, now: Optional[datetime] = None) -> str:
        trigger = self.store.find_next_trigger(now)
        if trigger is None:
            return "No alarms are scheduled."
        alarm = trigger.alarm
        return (
            f"{alarm.name} ({trigger.path}, index {trigger.abs_index}) "
            f"rings {self.fmt_user(alarm.ring_time)}"
        )

    def _name_text(self, item: Item, hidden: bool) -> Text:
        if isinstance(item, AlarmGroup):
            text = Text(
                f"{truncate_string(item.name, NAME_WIDTH)}{PATH_SEP}", style=FOLDER_COLOR
            )
        else:
            text = Text(truncate_string(item.name, NAME_WIDTH), style=ACTIVE_COLOR)
            if isinstance(item, Alarm) and item.snoozed:
                text.append(f" {SNOOZED}", style=SNOOZE_COLOR)
            elif isinstance(item, Alarm) and not item.is_one_shot():
                text.append(f" {REPEATING}")
        if hidden or not item.active:
            text.stylize(INACTIVE_COLOR)
        return text

    def list_table(self) -> Table:
        """Every item by absolute index, indented by depth."""
        table = Table(title=f"Alarms in {self.store.root_path}")
        table.add_column("#", justify="right")
        table.add_column("Name")
        table.add_column("On", justify="center")
        table.add_column("Repeat")
        table.add_column("Next", justify="right")

        silenced = set()
        for info in self.store.items():
            hidden = info.abs_parent_index in silenced
            if hidden or not info.item.active:
                silenced.add(info.abs_index)
            name = Text("  " * info.depth)
            name.append_text(self._name_text(info.item, hidden))
            table.add_row(
                str(info.abs_index),
                name,
                "✓" if info.item.active else "",
                self.repeat_string(info.item),
                self.next_ring_string(info.item),
            )
        return table

    def tree_view(self) -> Tree:
        tree = Tree(Text(self.store.root_path, style=FOLDER_COLOR))
        nodes = {-1: tree}
        for info in self.store.items():
            label = Text(f"{info.abs_index} ")
            label.append_text(self._name_text(info.item, False))
            when = self.next_ring_string(info.item)
            if when:
                label.append(f"  {when}")
            nodes[info.abs_index] = nodes[info.abs_parent_index].add(label)
        return tree
