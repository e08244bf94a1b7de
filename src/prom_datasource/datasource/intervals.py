"""Query window alignment and step calibration."""

from __future__ import annotations

import math
import re
from datetime import datetime

from . import datemath
from .types import ScopedVars, TimeRange

# Prometheus refuses range queries that could return more points than this.
MAX_DATA_POINTS = 11000

INTERVAL_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|[Mwdhmsy])")
INTERVALS_IN_SECONDS = {
    "y": 31536000,
    "M": 2592000,
    "w": 604800,
    "d": 86400,
    "h": 3600,
    "m": 60,
    "s": 1,
    "ms": 0.001,
}


def align_range(start: float, end: float, step: float) -> tuple[float, float]:
    """Round start and end down to the closest multiple of step."""

    aligned_start = math.floor(start / step) * step
    aligned_end = math.floor(end / step) * step
    return aligned_start, aligned_end


def adjust_interval(
    interval: float, min_interval: float, range_seconds: float, interval_factor: int
) -> float:
    """Calibrate a step so the query stays below ``MAX_DATA_POINTS``.

    The result honours the interval factor and never drops below the
    minimum interval or one second.
    """

    if interval != 0 and range_seconds / interval_factor / interval > MAX_DATA_POINTS:
        interval = math.ceil(range_seconds / interval_factor / MAX_DATA_POINTS)
    return max(interval * interval_factor, min_interval, 1)


def describe_interval(value: str) -> tuple[float, int]:
    match = INTERVAL_PATTERN.search(value)
    if match is None or match.group(2) not in INTERVALS_IN_SECONDS:
        raise ValueError(
            f"Invalid interval string {value!r}, expecting a number followed by one of 'Mwdhmsy'"
        )
    return INTERVALS_IN_SECONDS[match.group(2)], int(float(match.group(1)))


def interval_to_seconds(value: str) -> float:
    unit_seconds, count = describe_interval(value)
    return unit_seconds * count


def interval_to_ms(value: str) -> float:
    unit_seconds, count = describe_interval(value)
    return unit_seconds * 1000 * count


def seconds_to_hms(seconds: float) -> str:
    """Render a duration using its largest whole unit, e.g. ``6h``."""

    years = math.floor(seconds / 31536000)
    if years:
        return f"{years}y"
    days = math.floor((seconds % 31536000) / 86400)
    if days:
        return f"{days}d"
    hours = math.floor((seconds % 31536000 % 86400) / 3600)
    if hours:
        return f"{hours}h"
    minutes = math.floor((seconds % 31536000 % 86400 % 3600) / 60)
    if minutes:
        return f"{minutes}m"
    whole_seconds = math.floor(seconds % 31536000 % 86400 % 3600 % 60)
    if whole_seconds:
        return f"{whole_seconds}s"
    milliseconds = math.floor(seconds * 1000.0)
    if milliseconds:
        return f"{milliseconds}ms"
    return "less than a millisecond"


def resolve_bound(value: datetime | str, round_up: bool, now: datetime | None = None) -> datetime:
    resolved = datemath.parse(value, round_up=round_up, now=now)
    if resolved is None:
        raise ValueError(f"Unable to parse time range bound: {value!r}")
    return resolved


def get_prometheus_time(value: datetime | str, round_up: bool, now: datetime | None = None) -> int:
    """Unix seconds for a range bound, rounded up to the next second."""

    resolved = resolve_bound(value, round_up, now)
    epoch_ms = round(resolved.timestamp() * 1000)
    return math.ceil(epoch_ms / 1000)


def range_scoped_vars(time_range: TimeRange, now: datetime | None = None) -> ScopedVars:
    start = resolve_bound(time_range.from_, False, now)
    end = resolve_bound(time_range.to, True, now)
    ms_range = round((end - start).total_seconds() * 1000)
    s_range = round(ms_range / 1000)
    regular_range = seconds_to_hms(ms_range / 1000)
    return {
        "__range_ms": {"text": ms_range, "value": ms_range},
        "__range_s": {"text": s_range, "value": s_range},
        "__range": {"text": regular_range, "value": regular_range},
    }


__all__ = [
    "MAX_DATA_POINTS",
    "adjust_interval",
    "align_range",
    "get_prometheus_time",
    "interval_to_ms",
    "interval_to_seconds",
    "range_scoped_vars",
    "resolve_bound",
    "seconds_to_hms",
]
