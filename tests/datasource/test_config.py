"""Tests for data source config parsing."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from prom_datasource.datasource.config import (
    DEFAULT_CONFIG_PATH,
    AdapterConfig,
    DatasourceSettings,
    load_config,
)


def test_instance_settings_accept_host_payload() -> None:
    settings = DatasourceSettings.model_validate(
        {
            "name": "prom",
            "url": "http://localhost:9090/",
            "basicAuth": "Basic abc",
            "jsonData": {"timeInterval": "30s", "queryTimeout": "60s", "httpMethod": "post"},
        }
    )
    assert settings.url == "http://localhost:9090"
    assert settings.basic_auth == "Basic abc"
    assert settings.json_data.time_interval == "30s"
    assert settings.json_data.http_method == "POST"
    assert not settings.proxy_mode


def test_defaults_match_prometheus_conventions() -> None:
    settings = DatasourceSettings()
    assert settings.json_data.time_interval == "15s"
    assert settings.json_data.http_method == "GET"
    assert DatasourceSettings(url="/api/datasources/proxy/3").proxy_mode


def test_invalid_time_interval_rejected() -> None:
    with pytest.raises(ValidationError):
        DatasourceSettings.model_validate({"jsonData": {"timeInterval": "often"}})


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    config_yaml = tmp_path / "config.yaml"
    config_yaml.write_text(
        """
        datasource:
          name: prod
          url: http://prometheus:9090
          jsonData:
            timeInterval: 1m
        variables:
          - name: job
            current: node
          - name: instance
            current: [a, b]
            multi: true
        adhoc_filters:
          - key: env
            value: prod
        """,
        encoding="utf-8",
    )

    config = load_config(config_yaml)
    assert isinstance(config, AdapterConfig)
    assert config.datasource.name == "prod"
    assert config.datasource.json_data.time_interval == "1m"
    assert config.variables[1].to_variable().multi
    assert config.adhoc_filters[0].to_filter().operator == "="


def test_load_config_rejects_duplicate_variables(tmp_path: Path) -> None:
    config_yaml = tmp_path / "config.yaml"
    config_yaml.write_text("variables:\n  - name: job\n  - name: job\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(config_yaml)


def test_load_config_rejects_empty_file(tmp_path: Path) -> None:
    config_yaml = tmp_path / "config.yaml"
    config_yaml.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(config_yaml)


def test_packaged_default_config_loads() -> None:
    config = load_config(DEFAULT_CONFIG_PATH)
    assert config.datasource.url == "http://localhost:9090"
