"""Data transfer objects exchanged with the dashboarding host."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ScopedVars = dict[str, dict[str, Any]]


class HostModel(BaseModel):
    """Accepts the host's camelCase payloads as well as snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PromContext(str, Enum):
    PANEL = "panel"
    EXPLORE = "explore"


class LoadingState(str, Enum):
    NOT_STARTED = "NotStarted"
    LOADING = "Loading"
    DONE = "Done"
    ERROR = "Error"


class PromQuery(HostModel):
    """A single panel target as configured in the query editor."""

    expr: str = ""
    ref_id: str = "A"
    format: Literal["time_series", "table", "heatmap"] = "time_series"
    instant: bool = False
    hide: bool = False
    interval: str | None = Field(default=None, description="Min step, may use variables.")
    interval_factor: int = Field(default=1, ge=1)
    legend_format: str | None = None
    hinting: bool = False
    context: PromContext = PromContext.PANEL
    value_with_ref_id: bool = False
    request_id: str | None = None
    max_data_points: int | None = None

    @field_validator("interval_factor", mode="before")
    @classmethod
    def _default_interval_factor(cls, value: Any) -> Any:
        # hosts send 0 or null for an unset factor
        return value or 1


class TimeRange(BaseModel):
    """Dashboard time range; bounds are datetimes or date-math strings."""

    model_config = ConfigDict(populate_by_name=True)

    from_: datetime | str = Field(alias="from")
    to: datetime | str
    raw: dict[str, str] | None = None


class DataQueryRequest(HostModel):
    targets: list[PromQuery]
    range: TimeRange
    interval: str = "15s"
    scoped_vars: ScopedVars = Field(default_factory=dict)
    panel_id: int | str | None = None
    dashboard_id: int | str | None = None
    request_id: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)


class PromAnnotation(HostModel):
    name: str = ""
    expr: str = ""
    step: str | None = None
    tag_keys: str = ""
    title_format: str = ""
    text_format: str = ""
    use_value_for_time: bool = False


class AnnotationQueryRequest(HostModel):
    annotation: PromAnnotation
    range: TimeRange
    scoped_vars: ScopedVars = Field(default_factory=dict)
    panel_id: int | str | None = None
    dashboard_id: int | str | None = None


@dataclass(slots=True)
class PromQueryRequest:
    """One outbound Prometheus query derived from a target."""

    expr: str = ""
    step: float = 0
    start: float = 0
    end: float = 0
    instant: bool = False
    hinting: bool = False
    request_id: str = ""
    ref_id: str = ""
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class PromResponse:
    """Normalized HTTP response from the Prometheus API."""

    status: int = 200
    data: Any = None
    cancelled: bool = False

    @property
    def result(self) -> list[dict[str, Any]]:
        if not isinstance(self.data, dict):
            return []
        return self.data.get("data", {}).get("result", [])

    @property
    def result_type(self) -> str | None:
        if not isinstance(self.data, dict):
            return None
        return self.data.get("data", {}).get("resultType")


@dataclass(slots=True)
class TimeSeries:
    target: str
    datapoints: list[list[Any]]
    tags: dict[str, str] = field(default_factory=dict)
    query: str | None = None
    ref_id: str | None = None

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.datapoints, columns=["value", "time"])
        frame["time"] = pd.to_datetime(frame["time"], unit="ms", utc=True)
        return frame.set_index("time")


@dataclass(slots=True)
class TableColumn:
    text: str
    type: str | None = None
    filterable: bool = False


@dataclass(slots=True)
class TableModel:
    columns: list[TableColumn] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    type: str = "table"
    ref_id: str | None = None

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=[column.text for column in self.columns])


@dataclass(slots=True)
class AnnotationEvent:
    annotation: PromAnnotation
    time: int | None = None
    title: str = ""
    text: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MetricFindValue:
    text: str
    expandable: bool | None = None


@dataclass(slots=True)
class QueryFix:
    label: str
    action: dict[str, Any]


@dataclass(slots=True)
class QueryHint:
    type: str
    label: str
    fix: QueryFix | None = None


@dataclass(slots=True)
class DataStreamState:
    key: str
    state: LoadingState
    request: DataQueryRequest
    delta: list[TimeSeries | TableModel]
    series: list[TimeSeries | TableModel] | None = None


class DataQueryError(Exception):
    """Uniform error surfaced to the host for failed queries."""

    def __init__(
        self,
        message: str,
        *,
        ref_id: str | None = None,
        request_id: str | None = None,
        status: int | None = None,
        status_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.ref_id = ref_id
        self.request_id = request_id
        self.status = status
        self.status_text = status_text

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "refId": self.ref_id,
            "requestId": self.request_id,
            "status": self.status,
            "statusText": self.status_text,
        }


SeriesResult = TimeSeries | TableModel


@dataclass(slots=True)
class DataQueryResponse:
    data: list[SeriesResult] = field(default_factory=list)


__all__ = [
    "AnnotationEvent",
    "AnnotationQueryRequest",
    "DataQueryError",
    "DataQueryRequest",
    "DataQueryResponse",
    "DataStreamState",
    "LoadingState",
    "MetricFindValue",
    "PromAnnotation",
    "PromContext",
    "PromQuery",
    "PromQueryRequest",
    "PromResponse",
    "QueryFix",
    "QueryHint",
    "ScopedVars",
    "SeriesResult",
    "TableColumn",
    "TableModel",
    "TimeRange",
    "TimeSeries",
]
