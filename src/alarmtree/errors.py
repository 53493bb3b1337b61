"""
Exceptions used by alarmtree.

The core itself rarely lets these escape: setters report a SetResult,
decoders return None and index lookups return None. They are raised by
constructors, internally by the codec, and by the controller's strict helpers.
"""


class AlarmTreeError(Exception):
    """Base class for every alarmtree error."""


class ValidationError(AlarmTreeError, ValueError):
    """A name or numeric field is not acceptable."""


class NotFoundError(AlarmTreeError, LookupError):
    """An absolute index, id or path did not resolve to an item."""


class FormatError(AlarmTreeError, ValueError):
    """An edit string, store string or store file is malformed."""
