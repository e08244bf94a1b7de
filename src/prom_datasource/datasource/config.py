"""Configuration helpers for Prometheus data source instances."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .intervals import interval_to_seconds
from .templating import AdhocFilter, TemplateVariable

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


class PromOptions(BaseModel):
    """Per-instance options stored by the host as ``jsonData``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time_interval: str = Field(default="15s", description="Scrape interval, used as default step.")
    query_timeout: str | None = Field(default=None, description="Prometheus evaluation timeout.")
    http_method: Literal["GET", "POST"] = Field(default="GET")
    direct_url: str | None = None

    @field_validator("time_interval")
    @classmethod
    def _validate_interval(cls, value: str) -> str:
        interval_to_seconds(value)
        return value

    @field_validator("http_method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class DatasourceSettings(BaseModel):
    """Instance settings handed to the data source by the host."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(default="Prometheus")
    url: str = Field(default="http://localhost:9090")
    basic_auth: str | None = Field(default=None, description="Authorization header value.")
    with_credentials: bool = Field(default=False)
    json_data: PromOptions = Field(default_factory=PromOptions)

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def proxy_mode(self) -> bool:
        """Requests go through the host proxy when the URL is not absolute."""

        return not self.url.startswith("http")


class VariableConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    current: str | list[str] = ""
    multi: bool = False
    include_all: bool = False
    all_value: str | None = None
    options: list[str] = Field(default_factory=list)

    def to_variable(self) -> TemplateVariable:
        return TemplateVariable(
            name=self.name,
            current=self.current,
            multi=self.multi,
            include_all=self.include_all,
            all_value=self.all_value,
            options=list(self.options),
        )


class AdhocFilterConfig(BaseModel):
    key: str
    operator: str = "="
    value: str

    def to_filter(self) -> AdhocFilter:
        return AdhocFilter(key=self.key, operator=self.operator, value=self.value)


class AdapterConfig(BaseModel):
    datasource: DatasourceSettings = Field(default_factory=DatasourceSettings)
    variables: list[VariableConfig] = Field(default_factory=list)
    adhoc_filters: list[AdhocFilterConfig] = Field(default_factory=list)

    @field_validator("variables")
    @classmethod
    def _unique_variables(cls, value: list[VariableConfig]) -> list[VariableConfig]:
        names = [variable.name for variable in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            msg = f"Template variables declared more than once: {', '.join(duplicates)}"
            raise ValueError(msg)
        return value


def load_config(path: Path | None = None) -> AdapterConfig:
    """Load YAML config into an AdapterConfig instance."""

    config_path = path or DEFAULT_CONFIG_PATH
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        raise ValueError(f"Adapter config is empty: {config_path}")
    return AdapterConfig.model_validate(data)


__all__ = [
    "AdapterConfig",
    "AdhocFilterConfig",
    "DEFAULT_CONFIG_PATH",
    "DatasourceSettings",
    "PromOptions",
    "VariableConfig",
    "load_config",
]
