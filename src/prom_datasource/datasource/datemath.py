"""Relative date expressions such as ``now-6h`` or ``now/d``."""

from __future__ import annotations

import calendar
import re
from datetime import UTC, datetime, timedelta

UNITS = ("y", "M", "w", "d", "h", "m", "s")

_FIXED_UNITS = {
    "w": timedelta(weeks=1),
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
}
_MATH_TOKEN = re.compile(r"([+-])(\d*)([yMwdhms])|/([yMwdhms])")


def parse(text: str | datetime, round_up: bool = False, now: datetime | None = None) -> datetime | None:
    """Resolve a date-math expression into an aware datetime.

    Returns ``None`` when the expression cannot be parsed.
    """

    if isinstance(text, datetime):
        return text if text.tzinfo else text.replace(tzinfo=UTC)

    text = text.strip()
    if not text:
        return None

    if text.startswith("now"):
        anchor = now or datetime.now(tz=UTC)
        math = text[len("now") :]
    else:
        anchor_text, _, math = text.partition("||")
        try:
            anchor = datetime.fromisoformat(anchor_text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if anchor.tzinfo is None:
            anchor = anchor.replace(tzinfo=UTC)

    if not math:
        return anchor
    return parse_date_math(math, anchor, round_up)


def parse_date_math(math: str, time: datetime, round_up: bool = False) -> datetime | None:
    position = 0
    while position < len(math):
        match = _MATH_TOKEN.match(math, position)
        if match is None:
            return None
        sign, amount, unit, round_unit = match.groups()
        if round_unit:
            time = _round_to_unit(time, round_unit, round_up)
        else:
            count = int(amount) if amount else 1
            time = _shift(time, -count if sign == "-" else count, unit)
        position = match.end()
    return time


def _shift(time: datetime, count: int, unit: str) -> datetime:
    if unit == "y":
        return _add_months(time, 12 * count)
    if unit == "M":
        return _add_months(time, count)
    return time + _FIXED_UNITS[unit] * count


def _add_months(time: datetime, months: int) -> datetime:
    index = time.month - 1 + months
    year, month = time.year + index // 12, index % 12 + 1
    day = min(time.day, calendar.monthrange(year, month)[1])
    return time.replace(year=year, month=month, day=day)


def _round_to_unit(time: datetime, unit: str, round_up: bool) -> datetime:
    if unit == "y":
        start = time.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    elif unit == "M":
        start = time.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    elif unit == "w":
        start = time.replace(hour=0, minute=0, second=0, microsecond=0)
        start -= timedelta(days=start.weekday())
    elif unit == "d":
        start = time.replace(hour=0, minute=0, second=0, microsecond=0)
    elif unit == "h":
        start = time.replace(minute=0, second=0, microsecond=0)
    elif unit == "m":
        start = time.replace(second=0, microsecond=0)
    else:
        start = time.replace(microsecond=0)

    if not round_up:
        return start
    # last millisecond of the unit
    return _shift(start, 1, unit) - timedelta(milliseconds=1)


__all__ = ["UNITS", "parse", "parse_date_math"]
