"""Turns Prometheus API payloads into time series and tables."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable

from ..logging import get_logger
from .templating import TemplateService
from .types import PromResponse, SeriesResult, TableColumn, TableModel, TimeSeries

LOGGER = get_logger(__name__)

ALIAS_PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}")


@dataclass(slots=True)
class TransformOptions:
    format: str = "time_series"
    step: float = 0
    legend_format: str | None = None
    start: float = 0
    end: float = 0
    query: str = ""
    response_list_length: int = 1
    ref_id: str = "A"
    value_with_ref_id: bool = False


class ResultTransformer:
    """Shapes matrix and vector results for the panel renderer."""

    def __init__(self, template_service: TemplateService) -> None:
        self.template_service = template_service

    def transform(self, response: PromResponse, options: TransformOptions) -> list[SeriesResult]:
        result = response.result
        if options.format == "table":
            return [
                self.transform_metric_data_to_table(
                    result,
                    options.response_list_length,
                    options.ref_id,
                    options.value_with_ref_id,
                )
            ]

        if result and options.format == "heatmap":
            series_list = [
                self.transform_metric_data(metric_data, options, options.start, options.end)
                for metric_data in result
            ]
            series_list = sort_series_by_label(series_list)
            return transform_to_histogram_over_time(series_list)

        series: list[SeriesResult] = []
        for metric_data in result:
            if response.result_type == "matrix":
                series.append(
                    self.transform_metric_data(metric_data, options, options.start, options.end)
                )
            elif response.result_type == "vector":
                series.append(self.transform_instant_metric_data(metric_data, options))
        return series

    def transform_metric_data(
        self,
        metric_data: dict[str, Any],
        options: TransformOptions,
        start: float,
        end: float,
    ) -> TimeSeries:
        """Build one series, padding missing steps with null points.

        Gaps before the first sample, between samples and after the last
        sample up to ``end`` are filled at ``step`` spacing.
        """

        if metric_data.get("values") is None:
            raise ValueError("Prometheus heatmap error: data should be a time series")

        labels = dict(metric_data.get("metric") or {})
        step_ms = int(options.step) * 1000
        base_timestamp = start * 1000
        datapoints: list[list[Any]] = []

        for timestamp_raw, value_raw in metric_data["values"]:
            value = _parse_value(value_raw)
            timestamp = float(timestamp_raw) * 1000
            if step_ms > 0:
                t = base_timestamp
                while t < timestamp:
                    datapoints.append([None, t])
                    t += step_ms
            base_timestamp = timestamp + step_ms
            datapoints.append([value, timestamp])

        end_timestamp = end * 1000
        if step_ms > 0:
            t = base_timestamp
            while t <= end_timestamp:
                datapoints.append([None, t])
                t += step_ms

        return TimeSeries(
            target=self.create_metric_label(labels, options),
            datapoints=datapoints,
            tags=labels,
            query=options.query,
            ref_id=options.ref_id,
        )

    def transform_metric_data_to_table(
        self,
        result: list[dict[str, Any]],
        result_count: int,
        ref_id: str,
        value_with_ref_id: bool = False,
    ) -> TableModel:
        table = TableModel(ref_id=ref_id)
        if not result:
            return table

        sorted_labels = sorted({label for series in result for label in series.get("metric") or {}})
        table.columns.append(TableColumn(text="Time", type="time"))
        table.columns.extend(TableColumn(text=label, filterable=True) for label in sorted_labels)
        value_text = f"Value #{ref_id}" if result_count > 1 or value_with_ref_id else "Value"
        table.columns.append(TableColumn(text=value_text))

        for series in result:
            values = [series["value"]] if series.get("value") else series.get("values") or []
            labels = series.get("metric") or {}
            for timestamp, value in values:
                row: list[Any] = [float(timestamp) * 1000]
                row.extend(labels.get(label, "") for label in sorted_labels)
                row.append(float(value))
                table.rows.append(row)
        return table

    def transform_instant_metric_data(
        self, metric_data: dict[str, Any], options: TransformOptions
    ) -> TimeSeries:
        labels = dict(metric_data.get("metric") or {})
        timestamp, value = metric_data["value"]
        return TimeSeries(
            target=self.create_metric_label(labels, options),
            datapoints=[[_parse_value(value), float(timestamp) * 1000]],
            tags=labels,
            query=options.query,
            ref_id=options.ref_id,
        )

    def create_metric_label(self, labels: dict[str, str], options: TransformOptions | None) -> str:
        if options is None or not options.legend_format:
            label = self.get_original_metric_name(labels)
        else:
            legend = self.template_service.replace(options.legend_format)
            label = self.render_template(legend, labels)

        if not label or label == "{}":
            label = options.query if options else ""
        return label

    @staticmethod
    def render_template(alias_pattern: str, alias_data: dict[str, str]) -> str:
        """Fill ``{{label}}`` placeholders; unknown labels render their name."""

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            return alias_data.get(name) or name

        return ALIAS_PATTERN.sub(substitute, alias_pattern)

    @staticmethod
    def get_original_metric_name(labels: dict[str, str]) -> str:
        metric_name = labels.get("__name__", "")
        label_part = ",".join(
            f'{key}="{value}"' for key, value in labels.items() if key != "__name__"
        )
        return f"{metric_name}{{{label_part}}}"


def _parse_value(raw: Any) -> float | None:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def parse_histogram_label(le: str) -> float:
    if le == "+Inf":
        return math.inf
    return float(le)


def sort_series_by_label(series_list: Iterable[TimeSeries]) -> list[TimeSeries]:
    """Order heatmap buckets by their ``le`` bound.

    Series without a numeric ``le`` label keep their relative order.
    """

    series_list = list(series_list)
    try:
        bounds = [parse_histogram_label(series.tags.get("le")) for series in series_list]
    except (TypeError, ValueError) as error:
        LOGGER.warning("Cannot sort heatmap buckets: %s", error)
        return series_list
    order = sorted(range(len(series_list)), key=bounds.__getitem__)
    return [series_list[index] for index in order]


def transform_to_histogram_over_time(series_list: list[TimeSeries]) -> list[TimeSeries]:
    """Convert cumulative bucket counts into per-bucket counts.

    ::

                t1  t2  t3          t1  t2  t3
        le10    10  10  0     =>    10  10  0
        le20    20  10  30    =>    10  0   30
        le30    30  10  35    =>    10  0   5
    """

    for index in range(len(series_list) - 1, 0, -1):
        top = series_list[index].datapoints
        bottom = series_list[index - 1].datapoints
        for position, point in enumerate(top):
            bottom_value = bottom[position][0] if position < len(bottom) else 0
            if point[0] is not None and bottom_value is not None:
                point[0] -= bottom_value
    return series_list


__all__ = [
    "ResultTransformer",
    "TransformOptions",
    "parse_histogram_label",
    "sort_series_by_label",
    "transform_to_histogram_over_time",
]
