"""Helper functions used when rendering mail templates."""

from __future__ import annotations

import mimetypes
import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
_POUND_ESCAPES = str.maketrans({"%": "%25", "#": "%23", " ": "%20", "?": "%3F"})

TimeZone = Union[str, tzinfo, None]


class SafeHTML(str):
    """A string that templates insert without escaping."""

    def __html__(self) -> str:
        return str(self)


def safe(raw: str) -> SafeHTML:
    """Mark ``raw`` as HTML that needs no escaping."""
    return SafeHTML(raw)


def new_line_to_br(raw: str) -> str:
    """Replace every newline with ``<br>``."""
    return raw.replace("\n", "<br>")


def escape_pound(text: str) -> str:
    """Escape ``%``, ``#``, spaces and ``?`` for use in a URL path."""
    return text.translate(_POUND_ESCAPES)


def sub_str(text: str, start: int, length: int) -> str:
    """Return ``length`` characters from ``start``; ``-1`` means to the end.

    The whole string is returned when it is shorter than the requested end.
    """
    if not text:
        return ""
    end = len(text) if length == -1 else start + length
    if len(text) < end:
        return text
    if start < 0 or start > end:
        raise IndexError(f"slice bounds out of range [{start}:{end}]")
    return text[start:end]


def add(a: int, b: int) -> int:
    """Return the sum of two numbers."""
    return a + b


def build_commit(commit: str) -> str:
    """Return the build commit, or the current Unix time when it is unknown."""
    if commit:
        return commit
    return str(int(time.time()))


def load_times(start: datetime) -> str:
    """Return the milliseconds elapsed since ``start``, e.g. ``"12ms"``."""
    now = datetime.now(start.tzinfo) if start.tzinfo else datetime.now()
    elapsed = now - start
    return f"{elapsed // timedelta(milliseconds=1)}ms"


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _location(tz: TimeZone) -> Optional[tzinfo]:
    """Resolve a zone name or tzinfo; None stands for the local zone."""
    if isinstance(tz, tzinfo):
        return tz
    if tz is None or tz == "" or tz == "UTC":
        return timezone.utc
    if tz == "Local":
        return None
    return ZoneInfo(tz)


def _in_zone(moment: datetime, tz: TimeZone) -> datetime:
    loc = _location(tz)
    moment = _aware(moment)
    return moment.astimezone() if loc is None else moment.astimezone(loc)


def date_fmt_long(moment: datetime) -> str:
    """Format as RFC 1123 with a numeric zone, e.g. ``Sat, 18 Jun 2016 12:00:00 +0900``."""
    moment = _aware(moment)
    return (
        f"{_WEEKDAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment:%H:%M:%S} {moment:%z}"
    )


def date_fmt_short(moment: datetime) -> str:
    """Format as ``Jun 18, 2016``."""
    return f"{_MONTHS[moment.month - 1]} {moment.day:02d}, {moment.year:04d}"


def _mail_day(local: datetime, today: datetime, yesterday: str) -> Optional[str]:
    if local.date() + timedelta(days=1) == today.date():
        return yesterday
    return None


def date_fmt_mail(
    moment: datetime,
    now: Optional[datetime] = None,
    tz: TimeZone = None,
    yesterday: str = "yesterday",
) -> str:
    """Show the time for today's mail, ``yesterday`` for yesterday's, else the date."""
    local = _in_zone(moment, tz)
    today = _in_zone(now or datetime.now(timezone.utc), tz)
    if local.date() == today.date():
        return local.strftime("%H:%M")
    return _mail_day(local, today, yesterday) or local.strftime("%Y-%m-%d")


def date_fmt_mail_short(moment: datetime, tz: TimeZone = None) -> str:
    """Format as ``2006-01-02 15:04:05`` in the given zone."""
    return _in_zone(moment, tz).strftime("%Y-%m-%d %H:%M:%S")


def date_int64_fmt_mail(
    timestamp: int,
    now: Optional[datetime] = None,
    tz: TimeZone = None,
    yesterday: str = "yesterday",
) -> str:
    """Like :func:`date_fmt_mail` for a Unix timestamp.

    The time shown for today's mail is in the machine's local zone.
    """
    moment = datetime.fromtimestamp(timestamp, timezone.utc)
    local = _in_zone(moment, tz)
    today = _in_zone(now or datetime.now(timezone.utc), tz)
    if local.date() == today.date():
        return datetime.fromtimestamp(timestamp).strftime("%H:%M")
    return _mail_day(local, today, yesterday) or local.strftime("%Y-%m-%d")


def _extension(filename: str) -> str:
    for i in range(len(filename) - 1, -1, -1):
        ch = filename[i]
        if ch in "/\\":
            return ""
        if ch == ".":
            return filename[i:]
    return ""


def filename_is_image(filename: str) -> bool:
    """Return True when the file's extension maps to an ``image/`` type."""
    ext = _extension(filename)
    if not ext:
        return False
    mime_type, _ = mimetypes.guess_type("file" + ext, strict=False)
    return bool(mime_type) and mime_type.startswith("image/")