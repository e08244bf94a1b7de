"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from prom_datasource import cli
from prom_datasource.datasource.client import PrometheusClient


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
        datasource:
          name: Prometheus
          url: http://prometheus:9090
        variables:
          - name: job
            current: node
        """,
        encoding="utf-8",
    )
    return path


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/v1/rules":
        return httpx.Response(200, json={"status": "success", "data": {"groups": []}})
    if request.url.path == "/api/v1/query_range":
        payload: dict[str, Any] = {
            "status": "success",
            "data": {
                "resultType": "matrix",
                "result": [{"metric": {"job": request.url.params["query"]}, "values": []}],
            },
        }
        return httpx.Response(200, json=payload)
    if request.url.path == "/api/v1/label/job/values":
        return httpx.Response(503, text="overloaded")
    if request.url.path == "/api/v1/query":
        if request.url.params["query"] == "bad(":
            return httpx.Response(400, json={"status": "error", "error": "parse error"})
        return httpx.Response(200, json={"status": "success", "data": {"resultType": "scalar", "result": [0, "2"]}})
    return httpx.Response(404, text="not found")


@pytest.fixture
def mock_prometheus(monkeypatch: pytest.MonkeyPatch) -> None:
    def factory(base_url: str, **kwargs: Any) -> PrometheusClient:
        client = httpx.Client(transport=httpx.MockTransport(_handler), base_url=base_url)
        return PrometheusClient(base_url, client=client, basic_auth=kwargs.get("basic_auth"))

    monkeypatch.setattr(cli, "PrometheusClient", factory)


def test_parser_requires_command() -> None:
    parser = cli.build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_query_command_prints_series(
    tmp_path: Path, mock_prometheus: None, capsys: pytest.CaptureFixture[str]
) -> None:
    config = _write_config(tmp_path)

    exit_code = cli.main(
        [
            "--config",
            str(config),
            "--from",
            "2024-01-01T00:00:00Z",
            "--to",
            "2024-01-01T00:01:00Z",
            "query",
            'up{job="$job"}',
            "--interval",
            "30s",
        ]
    )

    assert exit_code == 0
    output = json.loads(capsys.readouterr().out)
    assert output[0]["tags"] == {"job": 'up{job="node"}'}
    assert output[0]["datapoints"] == [[None, 1704067200000], [None, 1704067230000], [None, 1704067260000]]


def test_test_command_reports_success(
    tmp_path: Path, mock_prometheus: None, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["--config", str(_write_config(tmp_path)), "test"])
    assert exit_code == 0
    assert json.loads(capsys.readouterr().out)["status"] == "success"


def test_query_errors_exit_non_zero(
    tmp_path: Path, mock_prometheus: None, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["--config", str(_write_config(tmp_path)), "query", "bad(", "--instant"])
    assert exit_code == 1
    assert json.loads(capsys.readouterr().out)["message"] == "parse error"


def test_find_command_reports_request_errors(
    tmp_path: Path, mock_prometheus: None, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["--config", str(_write_config(tmp_path)), "find", "label_values(job)"])

    assert exit_code == 1
    output = json.loads(capsys.readouterr().out)
    assert output["status"] == 503
    assert output["data"] == "overloaded"


def test_base_url_override_strips_trailing_slash(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    base_urls: list[str] = []

    def factory(base_url: str, **kwargs: Any) -> PrometheusClient:
        base_urls.append(base_url)
        client = httpx.Client(transport=httpx.MockTransport(_handler), base_url=base_url)
        return PrometheusClient(base_url, client=client)

    monkeypatch.setattr(cli, "PrometheusClient", factory)
    config = _write_config(tmp_path)

    exit_code = cli.main(["--config", str(config), "--base-url", "http://other:9090/", "test"])

    assert exit_code == 0
    assert base_urls == ["http://other:9090"]
