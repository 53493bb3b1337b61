import sys
import os
import click
from rich import print

from datetime import datetime, timedelta
from typing import Optional

from alarmtree import __version__
from alarmtree.alarm_env import AlarmEnvironment
from alarmtree.controller import Controller, repeat_string
from alarmtree.errors import AlarmTreeError
from alarmtree.folder import AlarmGroup
from alarmtree.recurrence import LAST_WEEK, OFFSET_TYPES, RepeatType
from alarmtree.shared import DAY_NAMES, MONTH_NAMES, offset_str_to_parts, parse_datetime

REPEAT_CHOICES = {
    "once": RepeatType.ONCE_ABS,
    "once-rel": RepeatType.ONCE_REL,
    "weekly": RepeatType.DAY_WEEKLY,
    "monthly-date": RepeatType.DATE_MONTHLY,
    "monthly-day": RepeatType.DAY_MONTHLY,
    "yearly": RepeatType.DATE_YEARLY,
    "offset": RepeatType.OFFSET,
}

DAY_GROUPS = {
    "all": [True] * 7,
    "weekdays": [False, True, True, True, True, True, False],
    "weekends": [True, False, False, False, False, False, True],
}


class _DateTimeParam(click.ParamType):
    name = "datetime"

    def convert(self, value, param, ctx):
        if value is None or isinstance(value, datetime):
            return value
        s = str(value).strip().lower()
        if s == "now":
            return datetime.now().replace(second=0, microsecond=0)
        try:
            return parse_datetime(s)
        except (ValueError, OverflowError):
            self.fail(f"cannot parse {value!r} as a date/time", param, ctx)


class _NamesParam(click.ParamType):
    """Comma separated names matched on their first three letters."""

    def __init__(self, names: tuple[str, ...], groups: Optional[dict] = None):
        self.names = [n[:3].lower() for n in names]
        self.groups = groups or {}
        self.name = "names"

    def convert(self, value, param, ctx):
        if isinstance(value, list):
            return value
        s = str(value).strip().lower()
        if s in self.groups:
            return list(self.groups[s])
        flags = [False] * len(self.names)
        for part in s.split(","):
            key = part.strip()[:3]
            if key not in self.names:
                self.fail(f"unknown name {part.strip()!r}", param, ctx)
            flags[self.names.index(key)] = True
        return flags


class _WeekParam(click.ParamType):
    name = "week"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        s = str(value).strip().lower()
        if s == "last":
            return LAST_WEEK
        if s in ("1", "2", "3", "4"):
            return int(s) - 1
        self.fail("expected 1, 2, 3, 4 or 'last'", param, ctx)


_DATETIME = _DateTimeParam()
_DAYS = _NamesParam(DAY_NAMES, DAY_GROUPS)
_MONTHS = _NamesParam(MONTH_NAMES, {"all": [True] * 12})
_WEEK = _WeekParam()


def _fail(msg: str):
    print(f"[bold red]✘ {msg}[/bold red]")
    sys.exit(1)


def _controller(ctx) -> Controller:
    if "CONTROLLER" not in ctx.obj:
        controller = Controller(ctx.obj["ENV"])
        ctx.obj["CONTROLLER"] = controller
        ctx.call_on_close(controller.close)
    return ctx.obj["CONTROLLER"]


@click.group()
@click.version_option(
    __version__, prog_name="alarmtree", message="%(prog)s version %(version)s"
)
@click.option(
    "--home",
    help="Override the alarmtree home directory (equivalent to setting $ALARMTREE_HOME).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, home, verbose):
    """alarmtree – nested folders of alarms from the command line."""
    if home:
        os.environ["ALARMTREE_HOME"] = (
            home  # Must be set before AlarmEnvironment is instantiated
        )

    env = AlarmEnvironment()
    env.ensure(init_config=True)
    config = env.load_config()

    ctx.ensure_object(dict)
    ctx.obj["ENV"] = env
    ctx.obj["STORE"] = env.store_path
    ctx.obj["CONFIG"] = config
    ctx.obj["VERBOSE"] = verbose


@cli.command("list")
@click.pass_context
def list_items(ctx):
    """List every alarm and folder with its index."""
    controller = _controller(ctx)
    if ctx.obj["VERBOSE"]:
        print(f"[blue]Store:[/blue] {ctx.obj['STORE']}")
    print(controller.list_table())


@cli.command()
@click.pass_context
def tree(ctx):
    """Show the folders and alarms as a tree."""
    print(_controller(ctx).tree_view())


@cli.command()
@click.pass_context
def paths(ctx):
    """List the path of every folder."""
    for path in _controller(ctx).store.to_path_list():
        print(path)


@cli.command("next")
@click.pass_context
def next_alarm(ctx):
    """Show the alarm that rings next."""
    print(_controller(ctx).next_trigger_string())


@cli.command("add-alarm")
@click.argument("name")
@click.option("--at", "at", type=_DATETIME, help="Date and time, e.g. '2025-01-08 07:30'.")
@click.option(
    "--repeat",
    "-r",
    type=click.Choice(list(REPEAT_CHOICES)),
    default="once",
    show_default=True,
)
@click.option("--days", type=_DAYS, help="Weekly: e.g. 'mon,wed', 'weekdays'.")
@click.option("--months", type=_MONTHS, help="Monthly: e.g. 'jan,jul' or 'all'.")
@click.option("--week", type=_WEEK, help="Monthly by weekday: 1-4 or 'last'.")
@click.option("--offset", help="Offset such as '1d2h30m'.")
@click.option("--folder", "-f", help="Folder path, e.g. 'root/work/'.")
@click.option("--volume", type=click.IntRange(0, 100))
@click.option("--vibrate/--no-vibrate", default=None)
@click.option("--off", is_flag=True, help="Add the alarm switched off.")
@click.pass_context
def add_alarm(ctx, name, at, repeat, days, months, week, offset, folder, volume, vibrate, off):
    """Add an alarm called NAME."""
    controller = _controller(ctx)
    repeat_type = REPEAT_CHOICES[repeat]
    fields = {"repeat_type": repeat_type}

    if offset:
        ok, parts = offset_str_to_parts(offset)
        if not ok:
            _fail(parts)
        fields["offset_days"], fields["offset_hours"], fields["offset_mins"] = parts
    if days is not None:
        fields["repeat_days"] = days
    if months is not None:
        fields["repeat_months"] = months
    if week is not None:
        fields["repeat_week"] = week
    if volume is not None:
        fields["volume"] = volume
    if vibrate is not None:
        fields["vibrate"] = vibrate

    now = datetime.now().replace(second=0, microsecond=0)
    if repeat_type in OFFSET_TYPES:
        defaults = ctx.obj["CONFIG"].defaults
        delta = timedelta(
            days=fields.get("offset_days", defaults.offset_days),
            hours=fields.get("offset_hours", defaults.offset_hours),
            minutes=fields.get("offset_mins", defaults.offset_mins),
        )
        if delta <= timedelta(0):
            _fail("The offset must be at least one minute.")
        if at is None:
            at = now + delta
        elif repeat_type == RepeatType.ONCE_REL:
            # rings the offset after the given time
            fields["offset_from_now"] = False
            at = at + delta
    elif at is None:
        at = now
    fields["ring_time"] = at

    try:
        alarm = controller.new_alarm(name, **fields)
        if off:
            alarm.turn_off()
        index = controller.add(alarm, folder)
    except AlarmTreeError as e:
        _fail(str(e))

    print(f"[green]✔ Added[/green] {name} at index {index}: {repeat_string(alarm)}")


@cli.command("add-folder")
@click.argument("name")
@click.option("--folder", "-f", help="Parent folder path, e.g. 'root/work/'.")
@click.pass_context
def add_folder(ctx, name, folder):
    """Add a folder called NAME."""
    controller = _controller(ctx)
    try:
        index = controller.add(AlarmGroup(name), folder)
    except AlarmTreeError as e:
        _fail(str(e))
    print(f"[green]✔ Added folder[/green] {name} at index {index}")


@cli.command()
@click.argument("index", type=int)
@click.pass_context
def delete(ctx, index):
    """Delete the item at INDEX (a folder goes with everything in it)."""
    try:
        removed = _controller(ctx).delete(index)
    except AlarmTreeError as e:
        _fail(str(e))
    print(f"[green]✔ Deleted[/green] {removed.name}")


@cli.command()
@click.argument("index", type=int)
@click.pass_context
def toggle(ctx, index):
    """Switch the item at INDEX on or off."""
    try:
        item = _controller(ctx).toggle(index)
    except AlarmTreeError as e:
        _fail(str(e))
    state = "on" if item.active else "off"
    print(f"[green]✔[/green] {item.name} is {state}")


@cli.command()
@click.argument("index", type=int)
@click.pass_context
def snooze(ctx, index):
    """Snooze the alarm at INDEX."""
    controller = _controller(ctx)
    try:
        alarm = controller.snooze(index)
    except AlarmTreeError as e:
        _fail(str(e))
    print(f"[green]✔[/green] {alarm.name} rings {controller.fmt_user(alarm.ring_time)}")


@cli.command()
@click.argument("index", type=int)
@click.pass_context
def unsnooze(ctx, index):
    """Undo every snooze of the alarm at INDEX."""
    controller = _controller(ctx)
    try:
        alarm = controller.unsnooze(index)
    except AlarmTreeError as e:
        _fail(str(e))
    print(f"[green]✔[/green] {alarm.name} rings {controller.fmt_user(alarm.ring_time)}")


@cli.command()
@click.argument("index", type=int)
@click.pass_context
def dismiss(ctx, index):
    """Dismiss the alarm at INDEX: one-shot alarms switch off, others move on."""
    controller = _controller(ctx)
    try:
        alarm = controller.dismiss(index)
    except AlarmTreeError as e:
        _fail(str(e))
    if alarm.active:
        print(f"[green]✔[/green] {alarm.name} next rings {controller.fmt_user(alarm.ring_time)}")
    else:
        print(f"[green]✔[/green] {alarm.name} is off")


@cli.command()
@click.argument("index", type=int)
@click.argument("path")
@click.pass_context
def move(ctx, index, path):
    """Move the item at INDEX into the folder PATH."""
    try:
        new_index = _controller(ctx).move(index, path)
    except AlarmTreeError as e:
        _fail(str(e))
    print(f"[green]✔ Moved[/green] to index {new_index}")


@cli.command()
@click.argument("index", type=int)
@click.argument("name")
@click.pass_context
def rename(ctx, index, name):
    """Rename the item at INDEX."""
    try:
        _controller(ctx).rename(index, name)
    except AlarmTreeError as e:
        _fail(str(e))
    print(f"[green]✔ Renamed[/green] to {name}")


@cli.command()
@click.argument("index", type=int)
@click.pass_context
def show(ctx, index):
    """Print the edit string of the item at INDEX."""
    try:
        text = _controller(ctx).edit_string(index)
    except AlarmTreeError as e:
        _fail(str(e))
    # edit strings hold tabs, keep rich from styling them
    click.echo(text)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
