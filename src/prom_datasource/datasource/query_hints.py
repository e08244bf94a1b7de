"""Suggestions for improving a query based on its results."""

from __future__ import annotations

import re
from typing import Sequence

from .types import QueryFix, QueryHint, SeriesResult, TimeSeries

# Number of series at which aggregating with sum() is suggested.
SUM_HINT_THRESHOLD_COUNT = 20

_SIMPLE_METRIC = re.compile(r"^\w+$")
_HISTOGRAM_METRIC = re.compile(r"^\w+_bucket$")


def get_query_hints(
    query: str,
    series: Sequence[SeriesResult] | None = None,
    rule_mappings: dict[str, str] | None = None,
) -> list[QueryHint] | None:
    hints: list[QueryHint] = []
    stripped = query.strip()

    if _HISTOGRAM_METRIC.match(stripped):
        hints.append(
            QueryHint(
                type="HISTOGRAM_QUANTILE",
                label="Time series has buckets, you probably wanted a histogram.",
                fix=QueryFix(
                    label="Fix by adding histogram_quantile().",
                    action={"type": "ADD_HISTOGRAM_QUANTILE", "query": query},
                ),
            )
        )

    # table results carry no datapoints and are ignored
    for item in series or []:
        if not isinstance(item, TimeSeries):
            continue
        if "rate(" in query or len(item.datapoints) <= 1:
            continue
        if _is_increasing_monotonic([point[0] for point in item.datapoints if point[0] is not None]):
            label = "Time series is monotonously increasing."
            fix = None
            if _SIMPLE_METRIC.match(stripped):
                fix = QueryFix(
                    label="Fix by adding rate().",
                    action={"type": "ADD_RATE", "query": query},
                )
            else:
                label = f"{label} Try applying a rate() function."
            hints.append(QueryHint(type="APPLY_RATE", label=label, fix=fix))

    if rule_mappings:
        mapping_for_query = {
            name: expression for name, expression in rule_mappings.items() if name in query
        }
        if mapping_for_query:
            hints.append(
                QueryHint(
                    type="EXPAND_RULES",
                    label="Query contains recording rules.",
                    fix=QueryFix(
                        label="Expand rules",
                        action={
                            "type": "EXPAND_RULES",
                            "query": query,
                            "mapping": mapping_for_query,
                        },
                    ),
                )
            )

    if series and len(series) >= SUM_HINT_THRESHOLD_COUNT and _SIMPLE_METRIC.match(stripped):
        hints.append(
            QueryHint(
                type="ADD_SUM",
                label="Many time series results returned.",
                fix=QueryFix(
                    label="Consider aggregating with sum().",
                    action={"type": "ADD_SUM", "query": query, "preventSubmit": True},
                ),
            )
        )

    return hints or None


def _is_increasing_monotonic(values: list[float]) -> bool:
    increasing = False
    for previous, current in zip(values, values[1:]):
        if current < previous:
            return False
        increasing = increasing or current > previous
    return increasing


__all__ = ["SUM_HINT_THRESHOLD_COUNT", "get_query_hints"]
