"""Tests for query window alignment and step calibration."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from prom_datasource.datasource.intervals import (
    MAX_DATA_POINTS,
    adjust_interval,
    align_range,
    get_prometheus_time,
    interval_to_ms,
    interval_to_seconds,
    range_scoped_vars,
    seconds_to_hms,
)
from prom_datasource.datasource.types import TimeRange


def test_align_range_rounds_down_to_step() -> None:
    assert align_range(1, 4, 3) == (0, 3)
    assert align_range(1, 6, 3) == (0, 6)
    assert align_range(1541100000, 1541103600, 60) == (1541100000, 1541103600)


@pytest.mark.parametrize(
    ("start", "end", "step"),
    [(0, 0, 1), (17, 123, 5), (1541100017, 1541103641, 60), (99, 100, 1000)],
)
def test_align_range_never_exceeds_originals(start: int, end: int, step: int) -> None:
    aligned_start, aligned_end = align_range(start, end, step)
    assert aligned_start <= start < aligned_start + step
    assert aligned_end <= end < aligned_end + step
    assert aligned_start % step == 0
    assert aligned_end % step == 0


def test_adjust_interval_keeps_interval_within_limits() -> None:
    assert adjust_interval(15, 15, 3600, 1) == 15
    assert adjust_interval(15, 60, 3600, 1) == 60
    assert adjust_interval(15, 15, 3600, 2) == 30
    assert adjust_interval(0, 0, 3600, 1) == 1


def test_adjust_interval_caps_data_points() -> None:
    range_seconds = 90 * 24 * 3600
    step = adjust_interval(1, 1, range_seconds, 1)
    assert step == 707
    assert range_seconds / step <= MAX_DATA_POINTS


@pytest.mark.parametrize("factor", [1, 2, 5])
def test_adjusted_interval_never_exceeds_point_ceiling(factor: int) -> None:
    range_seconds = 365 * 24 * 3600
    step = adjust_interval(15, 15, range_seconds, factor)
    assert range_seconds / step <= MAX_DATA_POINTS


def test_interval_parsing() -> None:
    assert interval_to_seconds("15s") == 15
    assert interval_to_seconds("5m") == 300
    assert interval_to_seconds("1d") == 86400
    assert interval_to_ms("2m") == 120000
    assert interval_to_seconds("100ms") == pytest.approx(0.1)


def test_interval_parsing_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        interval_to_seconds("soon")


def test_seconds_to_hms() -> None:
    assert seconds_to_hms(6 * 3600) == "6h"
    assert seconds_to_hms(90) == "1m"
    assert seconds_to_hms(2 * 86400 + 5) == "2d"
    assert seconds_to_hms(0.25) == "250ms"
    assert seconds_to_hms(0) == "less than a millisecond"


def test_get_prometheus_time_rounds_up_to_second() -> None:
    moment = datetime(2024, 1, 1, 0, 0, 0, 500000, tzinfo=UTC)
    assert get_prometheus_time(moment, False) == int(datetime(2024, 1, 1, tzinfo=UTC).timestamp()) + 1


def test_get_prometheus_time_parses_relative_ranges() -> None:
    now = datetime(2024, 1, 1, 12, tzinfo=UTC)
    assert get_prometheus_time("now-1h", False, now=now) == int(now.timestamp()) - 3600


def test_range_scoped_vars() -> None:
    time_range = TimeRange(
        from_=datetime(2024, 1, 1, tzinfo=UTC),
        to=datetime(2024, 1, 1, 6, tzinfo=UTC),
    )
    scoped = range_scoped_vars(time_range)
    assert scoped["__range_ms"]["value"] == 6 * 3600 * 1000
    assert scoped["__range_s"]["value"] == 6 * 3600
    assert scoped["__range"]["value"] == "6h"
