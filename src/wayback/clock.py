"""Expiration arithmetic and the injectable notion of "now".

:func:`next_expire` turns a friendly keyword (``hourly``, ``nightly``,
...) into the next absolute expiration timestamp.  Boundaries are
calendar boundaries in the clock's time zone: ``hourly`` expires at the
top of the next hour, ``nightly`` at the next midnight, ``weekly`` at the
start of next Monday, and so on.

:func:`next_cleanup` gives the next midnight, used to run the
directory-listing cleanup pass roughly once a day.

Both functions are pure given ``now`` and ``tz``; :class:`Clock` is the
only place that reads the system time, and tests replace it.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timedelta, tzinfo
from email.utils import parsedate_to_datetime
from typing import Any, Optional

_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

_HOUR_OFFSETS = {"hourly": 1, "workday": 8, "halfday": 12}

# Numeric reset values below this are not plausible timestamps.
_ONE_YEAR = 365 * 24 * 60 * 60


class Clock:
    """Source of the current time and of the zone calendar boundaries use.

    Args:
        tz: Time zone for day/hour boundaries.  ``None`` means the local
            zone of the host.
    """

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self.tz = tz

    def now(self) -> int:
        """Return the current time as an integer Unix timestamp."""
        return int(time.time())


def _is_number(value: str) -> bool:
    return _NUMBER.match(value) is not None


def _local(now: Optional[int], tz: Optional[tzinfo]) -> datetime:
    if now is None:
        now = int(time.time())
    return datetime.fromtimestamp(now, tz)


def _timestamp(moment: datetime) -> int:
    return int(moment.timestamp())


def next_expire(
    expire: str | int,
    offset: int = 0,
    now: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> int:
    """Return the timestamp at which content cached at *now* expires.

    Args:
        expire: One of ``second``, ``minute``, ``hourly``, ``workday``,
            ``halfday``, ``nightly``, ``weekly``, ``monthly``, or a number
            of seconds.  Unknown keywords behave like ``nightly``.
        offset: Seconds added to the computed time.
        now: Reference time; defaults to the system clock.
        tz: Zone for calendar boundaries; ``None`` is local time.

    Returns:
        An integer Unix timestamp.
    """
    if now is None:
        now = int(time.time())
    offset = int(offset or 0)
    spec = str(expire).strip().lower()

    if _is_number(spec):
        return now + int(float(spec)) + offset

    current = _local(now, tz)

    if spec == "second":
        moment = current.replace(microsecond=0) + timedelta(seconds=1)
    elif spec == "minute":
        moment = current.replace(second=0, microsecond=0) + timedelta(minutes=1)
    elif spec in _HOUR_OFFSETS:
        hour = current.replace(minute=0, second=0, microsecond=0)
        moment = hour + timedelta(hours=_HOUR_OFFSETS[spec])
    elif spec == "weekly":
        day = current.replace(hour=0, minute=0, second=0, microsecond=0)
        moment = day + timedelta(days=7 - day.weekday())
    elif spec == "monthly":
        first = current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if first.month == 12:
            moment = first.replace(year=first.year + 1, month=1)
        else:
            moment = first.replace(month=first.month + 1)
    else:
        day = current.replace(hour=0, minute=0, second=0, microsecond=0)
        moment = day + timedelta(days=1)

    return _timestamp(moment) + offset


def next_cleanup(
    hours_past_midnight: int = 0,
    now: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> int:
    """Return the timestamp of the next midnight, plus *hours_past_midnight* hours."""
    day = _local(now, tz).replace(hour=0, minute=0, second=0, microsecond=0)
    return _timestamp(day + timedelta(days=1)) + hours_past_midnight * 60 * 60


def parse_timestamp(value: Any) -> Optional[int]:
    """Interpret a rate-limit reset header value as a Unix timestamp.

    Numeric values are taken as timestamps when they lie more than a year
    after the epoch; anything else is parsed as an HTTP date
    (``Wed, 21 Oct 2015 07:28:00 GMT``).

    Returns:
        The timestamp, or ``None`` when the value cannot be understood.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if _is_number(text):
        number = int(float(text))
        return number if number > _ONE_YEAR else None
    try:
        return _timestamp(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        return None
