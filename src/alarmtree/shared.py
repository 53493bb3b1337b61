import inspect
import textwrap
import shutil
import re
import os
from datetime import datetime
from pathlib import Path
from dateutil.parser import parse as dateutil_parse
from dateutil.parser import parserinfo

from alarmtree.alarm_env import AlarmEnvironment

ELLIPSIS_CHAR = "…"

REPEATING = "↻"  # Flag for recurring alarms
SNOOZED = "z"  # Flag for snoozed alarms

# Sunday first, matching Alarm.repeat_days
DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def to_millis(dt: datetime) -> int:
    """Local naive datetime → epoch milliseconds."""
    return int(round(dt.timestamp() * 1000))


def from_millis(ms: int) -> datetime:
    """
    Epoch milliseconds → local naive datetime, keeping the millisecond part.
    ``replace`` keeps the ``fold`` set by ``fromtimestamp`` for the repeated
    hour at the end of daylight saving time.
    """
    secs, rem = divmod(int(ms), 1000)
    return datetime.fromtimestamp(secs).replace(microsecond=rem * 1000)


def parse_datetime(s: str, yearfirst: bool = True, dayfirst: bool = False) -> datetime:
    """
    Parse free-form date/datetime text into a naive datetime with seconds
    cleared. A bare date is taken at midnight. Raises ValueError when the text
    cannot be parsed.
    """
    pi = parserinfo(dayfirst=dayfirst, yearfirst=yearfirst)
    dt = dateutil_parse(s, parserinfo=pi)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt.replace(second=0, microsecond=0)


def offset_str_to_parts(offset_str: str) -> tuple[bool, tuple[int, int, int] | str]:
    """
    Converts an offset string composed of integers followed by 'w', 'd', 'h'
    or 'm' (e.g. '1d2h30m') into (days, hours, minutes).
    Hours and minutes carry over into days and hours.
    Returns (True, parts) on success and (False, message) otherwise.
    """
    multipliers = {
        "w": 7 * 24 * 60,
        "d": 24 * 60,
        "h": 60,
        "m": 1,
    }
    cleaned = offset_str.strip().lower()
    matches = re.findall(r"(\d+)([wdhm])", cleaned)
    if not matches or "".join(f"{v}{u}" for v, u in matches) != cleaned:
        return (
            False,
            "Invalid offset format. Expected integers followed by 'w', 'd', 'h', or 'm'.",
        )
    total_minutes = sum(int(value) * multipliers[unit] for value, unit in matches)
    days, rem = divmod(total_minutes, 24 * 60)
    hours, mins = divmod(rem, 60)
    return True, (days, hours, mins)


def format_time(dt: datetime, ampm: bool = False) -> str:
    if ampm:
        suffix = "am" if dt.hour < 12 else "pm"
        hour = dt.hour % 12 or 12
        return f"{hour}:{dt.minute:02d}{suffix}"
    return dt.strftime("%H:%M")


def truncate_string(s: str, max_length: int) -> str:
    if len(s) > max_length:
        return f"{s[: max_length - 1]}{ELLIPSIS_CHAR}"
    return s


def _get_runtime_home() -> Path:
    override = os.environ.get("ALARMTREE_HOME")
    if override:
        return Path(override).expanduser()
    return AlarmEnvironment().home


def _resolve_log_file_path(file_path: str | Path) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return _get_runtime_home() / path


def _default_log_relative_path(kind: str) -> Path:
    """Return logs/log_<YYMMDD>.md style paths under the runtime home."""
    suffix = datetime.now().strftime("%y%m%d")
    return Path("logs") / f"{kind}_{suffix}.md"


def _caller_name(frame) -> str:
    func_name = frame.f_code.co_name
    if "self" in frame.f_locals:  # instance method
        return f"{frame.f_locals['self'].__class__.__name__}.{func_name}"
    if "cls" in frame.f_locals:  # classmethod
        return f"{frame.f_locals['cls'].__name__}.{func_name}"
    return func_name


def _write_msg(
    kind: str,
    caller_name: str,
    msg: str,
    file_path: str | Path | None,
    print_output: bool,
):
    lines = [
        f"- {datetime.now().strftime('%H:%M:%S')} {kind}_msg ({caller_name}):  ",
    ]
    lines.extend(
        [
            f"\n{x}"
            for x in textwrap.wrap(
                msg.strip(),
                width=max(shutil.get_terminal_size()[0] - 6, 20),
                initial_indent="   ",
                subsequent_indent="   ",
            )
        ]
    )
    lines.append("\n\n")

    # Best-effort file logging; fall back to console when the file is unwritable.
    if file_path is None:
        file_path = _default_log_relative_path(kind)
    log_path = _resolve_log_file_path(file_path)

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        print_output = True

    if print_output:
        print("".join(lines))


def log_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Log a message and save it directly to a file.

    Args:
        msg (str): The message to log.
        file_path (str | Path | None, optional): Overrides the default path when
            provided. Defaults to ``None`` which writes to ``logs/log_<YYMMDD>.md``.
        print_output (bool, optional): If True, also print to console.
    """
    caller_name = _caller_name(inspect.stack()[1].frame)
    _write_msg("log", caller_name, msg, file_path, print_output)


def bug_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Companion to log_msg for temporary debugging; writes to
    ``logs/bug_<YYMMDD>.md`` unless ``file_path`` is given.
    """
    caller_name = _caller_name(inspect.stack()[1].frame)
    _write_msg("bug", caller_name, msg, file_path, print_output)
