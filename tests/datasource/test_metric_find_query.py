"""Tests for template variable queries."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from prom_datasource.datasource.config import DatasourceSettings
from prom_datasource.datasource.datasource import PrometheusDatasource
from prom_datasource.datasource.metric_find_query import PrometheusMetricFindQuery
from prom_datasource.datasource.templating import (
    StaticTemplateService,
    StaticTimeService,
    TemplateVariable,
)
from prom_datasource.datasource.types import PromResponse, TimeRange

RANGE = TimeRange(
    from_=datetime(2024, 1, 1, tzinfo=UTC),
    to=datetime(2024, 1, 1, 1, tzinfo=UTC),
)


class StubClient:
    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def request(self, path: str, params: dict[str, Any] | None = None, **_: Any) -> PromResponse:
        self.calls.append((path, dict(params or {})))
        return PromResponse(data=self.responses[path])


def build_datasource(client: StubClient, variables: list[TemplateVariable] | None = None) -> PrometheusDatasource:
    return PrometheusDatasource(
        DatasourceSettings(),
        client,  # type: ignore[arg-type]
        StaticTemplateService(variables=variables),
        StaticTimeService(RANGE),
    )


def _find(client: StubClient, query: str) -> list[tuple[str, bool | None]]:
    result = PrometheusMetricFindQuery(build_datasource(client), query, RANGE).process()
    return [(item.text, item.expandable) for item in result]


def test_label_values_without_metric() -> None:
    client = StubClient({"/api/v1/label/job/values": {"status": "success", "data": ["node", "api"]}})
    assert _find(client, "label_values(job)") == [("node", None), ("api", None)]


def test_label_values_for_metric_uses_series_endpoint() -> None:
    client = StubClient(
        {
            "/api/v1/series": {
                "status": "success",
                "data": [
                    {"__name__": "up", "job": "node", "instance": "a"},
                    {"__name__": "up", "job": "node", "instance": "b"},
                    {"__name__": "up", "instance": "c"},
                    {"__name__": "up", "job": "api", "instance": "d"},
                ],
            }
        }
    )

    assert _find(client, 'label_values(up{env="prod"}, job)') == [("node", True), ("api", True)]
    path, params = client.calls[0]
    assert path == "/api/v1/series"
    assert params == {"match[]": 'up{env="prod"}', "start": 1704067200, "end": 1704070800}


def test_metric_names_filtered_by_regex() -> None:
    client = StubClient(
        {"/api/v1/label/__name__/values": {"status": "success", "data": ["up", "node_cpu", "node_load1"]}}
    )
    assert _find(client, "metrics(node_.*)") == [("node_cpu", True), ("node_load1", True)]


def test_query_result_renders_instant_samples() -> None:
    client = StubClient(
        {
            "/api/v1/query": {
                "status": "success",
                "data": {
                    "resultType": "vector",
                    "result": [{"metric": {"__name__": "up", "job": "node"}, "value": [1704070800, "1"]}],
                },
            }
        }
    )
    assert _find(client, "query_result(up)") == [('up{job="node"} 1 1704070800000', True)]
    path, params = client.calls[0]
    assert path == "/api/v1/query"
    assert params == {"query": "up", "time": 1704070800}


def test_series_selector_lists_matching_series() -> None:
    client = StubClient(
        {
            "/api/v1/series": {
                "status": "success",
                "data": [{"__name__": "up", "job": "node"}, {"__name__": "up", "job": "api"}],
            }
        }
    )
    assert _find(client, "up") == [('up{job="node"}', True), ('up{job="api"}', True)]


def test_metric_find_query_interpolates_variables() -> None:
    client = StubClient({"/api/v1/label/job/values": {"status": "success", "data": ["node"]}})
    datasource = build_datasource(client, variables=[TemplateVariable(name="label", current="job")])

    assert datasource.metric_find_query("") == []
    result = datasource.metric_find_query("label_values($label)")

    assert [item.text for item in result] == ["node"]
    assert client.calls[0][0] == "/api/v1/label/job/values"
