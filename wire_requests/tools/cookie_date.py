"""
RFC 6265 §5.1.1 cookie-date parsing.

Browsers accept far more than RFC 1123 in ``Expires``; the algorithm splits
the value on delimiters and greedily assigns the first token that looks like
a time, a day of month, a month name and a year.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

_DELIMITERS = re.compile(r"[\x09\x20-\x2f\x3b-\x40\x5b-\x60\x7b-\x7e]+")
_TIME = re.compile(r"^(\d{1,2}):(\d{1,2}):(\d{1,2})$")
_DAY = re.compile(r"^\d{1,2}$")
_YEAR = re.compile(r"^\d{2,4}$")

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def parse_cookie_date(value: str) -> Optional[datetime]:
    """Parse an ``Expires`` value into an aware UTC datetime.

    Returns ``None`` when the value does not describe a valid date; callers
    treat that as "no Expires attribute".
    """
    time: tuple[int, int, int] | None = None
    day: int | None = None
    month: int | None = None
    year: int | None = None

    for token in _DELIMITERS.split(value):
        if not token:
            continue
        if time is None:
            match = _TIME.match(token)
            if match:
                time = (int(match[1]), int(match[2]), int(match[3]))
                continue
        if day is None and _DAY.match(token):
            day = int(token)
            continue
        if month is None and token[:3].lower() in MONTHS and token.isalpha():
            month = MONTHS[token[:3].lower()]
            continue
        if year is None and _YEAR.match(token):
            year = int(token)
            continue

    if time is None or day is None or month is None or year is None:
        return None

    if 0 <= year <= 69:
        year += 2000
    elif 70 <= year <= 99:
        year += 1900

    hours, minutes, seconds = time
    if not 1 <= day <= 31 or year < 1601 or hours > 23 or minutes > 59 or seconds > 59:
        return None

    try:
        return datetime(year, month, day, hours, minutes, seconds, tzinfo=timezone.utc)
    except ValueError:  # e.g. 31 Feb
        return None


def format_cookie_date(moment: datetime) -> str:
    """RFC 1123 rendering used for ``Expires``: ``Wed, 21 Oct 2015 07:28:00 GMT``."""
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)
