"""Prometheus data source adapter: query shaping and result transformation."""

from .client import PrometheusClient, PrometheusRequestError, QueryCancelledError
from .config import (
    DEFAULT_CONFIG_PATH,
    AdapterConfig,
    DatasourceSettings,
    PromOptions,
    load_config,
)
from .datasource import PrometheusDatasource
from .intervals import adjust_interval, align_range
from .result_transformer import ResultTransformer
from .templating import StaticTemplateService, StaticTimeService
from .types import DataQueryError, DataQueryRequest, PromQuery, TimeRange

__all__ = [
    "AdapterConfig",
    "DEFAULT_CONFIG_PATH",
    "DataQueryError",
    "DataQueryRequest",
    "DatasourceSettings",
    "PromOptions",
    "PromQuery",
    "PrometheusClient",
    "PrometheusDatasource",
    "PrometheusRequestError",
    "QueryCancelledError",
    "ResultTransformer",
    "StaticTemplateService",
    "StaticTimeService",
    "TimeRange",
    "adjust_interval",
    "align_range",
    "load_config",
]
