"""Template variable queries such as ``label_values(job)``."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .client import SERIES_ENDPOINT, label_values_endpoint
from .intervals import get_prometheus_time
from .types import MetricFindValue, PromQueryRequest, TimeRange

if TYPE_CHECKING:
    from .datasource import PrometheusDatasource

LABEL_VALUES_PATTERN = re.compile(r"^label_values\((?:(.+),\s*)?([a-zA-Z_][a-zA-Z0-9_]*)\)\s*$")
METRIC_NAMES_PATTERN = re.compile(r"^metrics\((.+)\)\s*$")
QUERY_RESULT_PATTERN = re.compile(r"^query_result\((.+)\)\s*$")


class PrometheusMetricFindQuery:
    def __init__(self, datasource: "PrometheusDatasource", query: str, time_range: TimeRange) -> None:
        self.datasource = datasource
        self.query = query
        self.range = time_range

    def process(self) -> list[MetricFindValue]:
        label_values = LABEL_VALUES_PATTERN.match(self.query)
        if label_values:
            return self.label_values_query(label_values.group(2), label_values.group(1))

        metric_names = METRIC_NAMES_PATTERN.match(self.query)
        if metric_names:
            return self.metric_name_query(metric_names.group(1))

        query_result = QUERY_RESULT_PATTERN.match(self.query)
        if query_result:
            return self.query_result_query(query_result.group(1))

        # a bare series selector lists matching series with their labels
        return self.metric_name_and_labels_query(self.query)

    def label_values_query(self, label: str, metric: str | None = None) -> list[MetricFindValue]:
        if not metric:
            response = self.datasource.metadata_request(label_values_endpoint(label))
            return [MetricFindValue(text=value) for value in response.data.get("data", [])]

        response = self.datasource.metadata_request(SERIES_ENDPOINT, self._series_params(metric))
        values: list[str] = []
        for series in response.data.get("data", []):
            value = series.get(label, "")
            if value and value not in values:
                values.append(value)
        return [MetricFindValue(text=value, expandable=True) for value in values]

    def metric_name_query(self, metric_filter_pattern: str) -> list[MetricFindValue]:
        pattern = re.compile(metric_filter_pattern)
        response = self.datasource.metadata_request(label_values_endpoint("__name__"))
        return [
            MetricFindValue(text=name, expandable=True)
            for name in response.data.get("data", [])
            if pattern.search(name)
        ]

    def query_result_query(self, query: str) -> list[MetricFindValue]:
        end = get_prometheus_time(self.range.to, True)
        response = self.datasource.perform_instant_query(PromQueryRequest(expr=query), end)
        values: list[MetricFindValue] = []
        for metric_data in response.result:
            labels = dict(metric_data.get("metric") or {})
            text = labels.pop("__name__", "")
            text += "{" + ",".join(f'{key}="{value}"' for key, value in labels.items()) + "}"
            timestamp, value = metric_data["value"]
            text += f" {value} {_format_ms(timestamp)}"
            values.append(MetricFindValue(text=text, expandable=True))
        return values

    def metric_name_and_labels_query(self, query: str) -> list[MetricFindValue]:
        response = self.datasource.metadata_request(SERIES_ENDPOINT, self._series_params(query))
        return [
            MetricFindValue(text=self.datasource.get_original_metric_name(metric), expandable=True)
            for metric in response.data.get("data", [])
        ]

    def _series_params(self, match: str) -> dict[str, str | int]:
        return {
            "match[]": match,
            "start": get_prometheus_time(self.range.from_, False),
            "end": get_prometheus_time(self.range.to, True),
        }


def _format_ms(timestamp: float | str) -> str:
    ms = float(timestamp) * 1000
    return str(int(ms)) if ms.is_integer() else str(ms)


__all__ = ["PrometheusMetricFindQuery"]
