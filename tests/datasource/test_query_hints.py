"""Tests for query improvement hints."""

from prom_datasource.datasource.query_hints import get_query_hints
from prom_datasource.datasource.types import TableModel, TimeSeries


def _series(*values: float | None) -> TimeSeries:
    return TimeSeries(target="s", datapoints=[[value, index] for index, value in enumerate(values)])


def test_no_hints_for_plain_query() -> None:
    assert get_query_hints("metric", []) is None
    assert get_query_hints("metric", [_series(1, 1)]) is None


def test_histogram_hint_for_bucket_metrics() -> None:
    hints = get_query_hints("metric_bucket", [])
    assert hints is not None
    assert hints[0].type == "HISTOGRAM_QUANTILE"
    assert hints[0].fix.action == {"type": "ADD_HISTOGRAM_QUANTILE", "query": "metric_bucket"}


def test_rate_hint_for_monotonic_series() -> None:
    hints = get_query_hints("metric", [_series(23, None, 24)])
    assert hints is not None
    assert hints[0].type == "APPLY_RATE"
    assert hints[0].fix.action == {"type": "ADD_RATE", "query": "metric"}


def test_rate_hint_without_fix_for_complex_queries() -> None:
    hints = get_query_hints("metric + foo", [_series(23, 24)])
    assert hints is not None
    assert hints[0].fix is None
    assert hints[0].label.endswith("Try applying a rate() function.")


def test_no_rate_hint_when_rate_is_used_or_not_monotonic() -> None:
    assert get_query_hints("rate(metric[5m])", [_series(23, 24)]) is None
    assert get_query_hints("metric", [_series(23, 22, 24)]) is None


def test_tables_are_ignored() -> None:
    assert get_query_hints("metric", [TableModel()]) is None


def test_sum_hint_for_many_series() -> None:
    hints = get_query_hints("metric", [_series(1) for _ in range(20)])
    assert hints is not None
    assert hints[0].type == "ADD_SUM"
    assert hints[0].fix.action["preventSubmit"] is True


def test_expand_rules_hint() -> None:
    hints = get_query_hints("metric:rule", [], {"metric:rule": "rate(metric[5m])", "other": "x"})
    assert hints is not None
    assert hints[0].fix.action["mapping"] == {"metric:rule": "rate(metric[5m])"}
