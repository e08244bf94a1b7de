"""Prometheus data source: turns panel targets into Prometheus API calls."""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal, Protocol

from ..logging import get_logger, log_structured
from ..metrics import QUERY_ERRORS
from ..settings import Settings, get_settings
from .client import (
    LABELS_ENDPOINT,
    QUERY_ENDPOINT,
    QUERY_RANGE_ENDPOINT,
    RULES_ENDPOINT,
    PrometheusRequestError,
    QueryCancelledError,
    label_values_endpoint,
)
from .config import DatasourceSettings
from .intervals import (
    adjust_interval,
    align_range,
    get_prometheus_time,
    interval_to_ms,
    interval_to_seconds,
    range_scoped_vars,
)
from .labels import add_label_to_query
from .metric_find_query import PrometheusMetricFindQuery
from .query_hints import get_query_hints
from .result_transformer import ResultTransformer, TransformOptions
from .rules import expand_recording_rules, extract_rule_mapping_from_groups
from .templating import (
    TemplateService,
    TemplateVariable,
    TimeService,
    interpolate_query_expr,
    prometheus_regular_escape,
)
from .types import (
    AnnotationEvent,
    AnnotationQueryRequest,
    DataQueryError,
    DataQueryRequest,
    DataQueryResponse,
    DataStreamState,
    LoadingState,
    MetricFindValue,
    PromContext,
    PromQuery,
    PromQueryRequest,
    PromResponse,
    QueryHint,
    ScopedVars,
    SeriesResult,
    TimeRange,
)

LOGGER = get_logger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown error during query transaction. Please check logs."
DEFAULT_ANNOTATION_STEP = "60s"
# Annotations keep full resolution; no minimum step from the datasource applies.
ANNOTATION_MIN_STEP = "1s"

Observer = Callable[[DataStreamState], None]


class RequestCapability(Protocol):
    """Subset of PrometheusClient used by the data source."""

    def request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        method: Literal["GET", "POST"] = "GET",
        headers: dict[str, str] | None = None,
    ) -> PromResponse:
        """Send one request to the Prometheus HTTP API."""


@dataclass(slots=True)
class MetricNameCache:
    data: list[str]
    expire: float


class PrometheusDatasource:
    """Query adapter between a dashboarding host and a Prometheus backend."""

    type = "prometheus"

    def __init__(
        self,
        instance_settings: DatasourceSettings,
        client: RequestCapability,
        template_service: TemplateService,
        time_service: TimeService,
        settings: Settings | None = None,
    ) -> None:
        self.instance_settings = instance_settings
        self.client = client
        self.template_service = template_service
        self.time_service = time_service
        self.settings = settings or get_settings()

        self.name = instance_settings.name
        self.url = instance_settings.url
        self.interval = instance_settings.json_data.time_interval
        self.query_timeout = instance_settings.json_data.query_timeout
        self.http_method = instance_settings.json_data.http_method
        self.result_transformer = ResultTransformer(template_service)
        self.rule_mappings: dict[str, str] = {}
        self.metrics_name_cache: MetricNameCache | None = None

    def init(self) -> None:
        self.load_rules()

    def get_query_display_text(self, query: PromQuery) -> str:
        return query.expr

    def _request(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        *,
        method: Literal["GET", "POST"] | None = None,
        headers: dict[str, str] | None = None,
    ) -> PromResponse:
        return self.client.request(url, data, method=method or self.http_method, headers=headers)

    def metadata_request(self, url: str, params: dict[str, Any] | None = None) -> PromResponse:
        """Lookup requests for suggestions and variables, always sent as GET."""

        return self._request(url, params, method="GET")

    def interpolate_query_expr(
        self,
        value: Any,
        variable: TemplateVariable | None = None,
        default_format: Callable[..., Any] | None = None,
    ) -> Any:
        return interpolate_query_expr(value, variable, default_format)

    def target_contains_template(self, target: PromQuery) -> bool:
        return self.template_service.variable_exists(target.expr)

    def process_result(
        self,
        response: PromResponse,
        query: PromQueryRequest,
        target: PromQuery,
        response_list_length: int,
    ) -> list[SeriesResult]:
        # transformers receive the aligned window of the outbound query
        options = TransformOptions(
            format=target.format,
            step=query.step,
            legend_format=target.legend_format,
            start=query.start,
            end=query.end,
            query=query.expr,
            response_list_length=response_list_length,
            ref_id=target.ref_id,
            value_with_ref_id=target.value_with_ref_id,
        )
        return self.result_transformer.transform(response, options)

    def run_observer_queries(
        self,
        request: DataQueryRequest,
        observer: Observer,
        queries: list[PromQueryRequest],
        active_targets: list[PromQuery],
        end: float,
    ) -> None:
        for query, target in zip(queries, active_targets):
            response = self._perform(query, end)
            if response.cancelled:
                continue
            series = self.process_result(response, query, target, len(queries))
            observer(
                DataStreamState(
                    key=f"prometheus-{target.ref_id}",
                    state=LoadingState.LOADING if query.instant else LoadingState.DONE,
                    request=request,
                    delta=series,
                )
            )

    def prepare_targets(
        self, request: DataQueryRequest, start: float, end: float
    ) -> tuple[list[PromQueryRequest], list[PromQuery]]:
        queries: list[PromQueryRequest] = []
        active_targets: list[PromQuery] = []

        for target in request.targets:
            if not target.expr or target.hide:
                continue

            if target.context == PromContext.EXPLORE:
                target = target.model_copy(update={"format": "time_series", "instant": False})
                instant_target = target.model_copy(
                    update={
                        "format": "table",
                        "instant": True,
                        "value_with_ref_id": True,
                        "max_data_points": None,
                        "request_id": f"{target.request_id or ''}_instant",
                        "ref_id": f"{target.ref_id}_instant",
                    }
                )
                active_targets.append(instant_target)
                queries.append(self.create_query(instant_target, request, start, end))

            active_targets.append(target)
            queries.append(self.create_query(target, request, start, end))

        return queries, active_targets

    def query(self, request: DataQueryRequest, observer: Observer | None = None) -> DataQueryResponse:
        start = self.get_prometheus_time(request.range.from_, False)
        end = self.get_prometheus_time(request.range.to, True)
        queries, active_targets = self.prepare_targets(request, start, end)

        # nothing to ask for
        if not queries:
            return DataQueryResponse(data=[])

        if observer is not None and all(
            target.context == PromContext.EXPLORE for target in request.targets
        ):
            self.run_observer_queries(request, observer, queries, active_targets, end)
            return DataQueryResponse(data=[])

        responses = [self._perform(query, end) for query in queries]
        result: list[SeriesResult] = []
        for response, query, target in zip(responses, queries, active_targets):
            if response.cancelled:
                continue
            result.extend(self.process_result(response, query, target, len(queries)))

        log_structured(LOGGER, "query complete", queries=len(queries), series=len(result))
        return DataQueryResponse(data=result)

    def _perform(self, query: PromQueryRequest, end: float) -> PromResponse:
        if query.instant:
            return self.perform_instant_query(query, end)
        return self.perform_time_series_query(query, query.start, query.end)

    def create_query(
        self, target: PromQuery, request: DataQueryRequest, start: float, end: float
    ) -> PromQueryRequest:
        query = PromQueryRequest(hinting=target.hinting, instant=target.instant)
        range_seconds = math.ceil(end - start)

        # request.interval is the interval the host derived from panel width
        interval = interval_to_seconds(request.interval)
        # "Min step" of the target, falling back to the host interval
        min_interval = interval_to_seconds(
            self.template_service.replace(target.interval, request.scoped_vars) or request.interval
        )
        adjusted_interval = adjust_interval(
            interval, min_interval, range_seconds, target.interval_factor
        )

        range_vars = self.get_range_scoped_vars(request.range)
        scoped_vars: ScopedVars = {**request.scoped_vars, **range_vars}
        if interval != adjusted_interval:
            interval = adjusted_interval
            scoped_vars = {
                **request.scoped_vars,
                "__interval": {"text": f"{interval}s", "value": f"{interval}s"},
                "__interval_ms": {"text": interval * 1000, "value": interval * 1000},
                **range_vars,
            }
        query.step = interval

        expr = target.expr
        for adhoc_filter in self.template_service.get_adhoc_filters(self.name):
            value = adhoc_filter.value
            if adhoc_filter.operator in ("=~", "!~"):
                value = prometheus_regular_escape(value)
            expr = add_label_to_query(expr, adhoc_filter.key, value, adhoc_filter.operator)

        # interval variables must be final before the expression is interpolated
        query.expr = self.template_service.replace(expr, scoped_vars, self.interpolate_query_expr)
        query.request_id = f"{request.panel_id if request.panel_id is not None else ''}{target.ref_id}"
        query.ref_id = target.ref_id

        query.start, query.end = align_range(start, end, query.step)
        self._add_tracing_headers(query, request)
        return query

    def _add_tracing_headers(self, query: PromQueryRequest, request: DataQueryRequest) -> None:
        query.headers = dict(request.headers)
        if not self.instance_settings.proxy_mode:
            return
        if request.dashboard_id is not None:
            query.headers["X-Dashboard-Id"] = str(request.dashboard_id)
        if request.panel_id is not None:
            query.headers["X-Panel-Id"] = str(request.panel_id)

    def adjust_interval(
        self, interval: float, min_interval: float, range_seconds: float, interval_factor: int
    ) -> float:
        return adjust_interval(interval, min_interval, range_seconds, interval_factor)

    def perform_time_series_query(
        self, query: PromQueryRequest, start: float, end: float
    ) -> PromResponse:
        if start > end:
            raise DataQueryError("Invalid time range", ref_id=query.ref_id, request_id=query.request_id)

        data: dict[str, Any] = {
            "query": query.expr,
            "start": start,
            "end": end,
            "step": query.step,
        }
        if self.query_timeout:
            data["timeout"] = self.query_timeout
        try:
            return self._request(QUERY_RANGE_ENDPOINT, data, headers=query.headers)
        except (PrometheusRequestError, QueryCancelledError) as err:
            return self.handle_errors(err, query)

    def perform_instant_query(self, query: PromQueryRequest, timestamp: float) -> PromResponse:
        data: dict[str, Any] = {"query": query.expr, "time": timestamp}
        if self.query_timeout:
            data["timeout"] = self.query_timeout
        try:
            return self._request(QUERY_ENDPOINT, data, headers=query.headers)
        except (PrometheusRequestError, QueryCancelledError) as err:
            return self.handle_errors(err, query)

    def handle_errors(self, err: Exception, query: PromQueryRequest) -> PromResponse:
        """Normalize a failed request into a ``DataQueryError``.

        Cancelled requests are not failures and yield a cancelled response.
        """

        if isinstance(err, QueryCancelledError):
            LOGGER.debug("Query %s cancelled", query.request_id)
            return PromResponse(cancelled=True)

        message = UNKNOWN_ERROR_MESSAGE
        data = getattr(err, "data", None)
        if data:
            if isinstance(data, str):
                message = data
            elif isinstance(data, dict) and data.get("error"):
                error = data["error"]
                message = error if isinstance(error, str) else json.dumps(error)
        elif str(err):
            message = str(err)

        status = getattr(err, "status", None)
        QUERY_ERRORS.labels(status=str(status)).inc()
        LOGGER.warning("Query %s failed: %s", query.ref_id, message)
        raise DataQueryError(
            message,
            ref_id=query.ref_id,
            request_id=query.request_id,
            status=status,
            status_text=getattr(err, "status_text", None),
        ) from err

    def perform_suggest_query(self, query: str, cache: bool = False) -> list[str]:
        """Metric names containing ``query``, optionally served from cache."""

        cached = self.metrics_name_cache
        if cache and cached is not None and cached.expire > time.time():
            names = cached.data
        else:
            response = self.metadata_request(label_values_endpoint("__name__"))
            names = list(response.data.get("data", []))
            self.metrics_name_cache = MetricNameCache(
                data=names,
                expire=time.time() + self.settings.metric_name_cache_ttl_seconds,
            )
        return [name for name in names if query in name]

    def metric_find_query(self, query: str) -> list[MetricFindValue]:
        if not query:
            return []

        time_range = self.time_service.time_range()
        scoped_vars: ScopedVars = {
            "__interval": {"text": self.interval, "value": self.interval},
            "__interval_ms": {
                "text": interval_to_ms(self.interval),
                "value": interval_to_ms(self.interval),
            },
            **self.get_range_scoped_vars(time_range),
        }
        interpolated = self.template_service.replace(query, scoped_vars, self.interpolate_query_expr)
        log_structured(LOGGER, "variable query", query=interpolated)
        return PrometheusMetricFindQuery(self, interpolated, time_range).process()

    def get_range_scoped_vars(self, time_range: TimeRange | None = None) -> ScopedVars:
        return range_scoped_vars(time_range or self.time_service.time_range())

    def annotation_query(self, options: AnnotationQueryRequest) -> list[AnnotationEvent]:
        annotation = options.annotation
        if not annotation.expr:
            return []

        step = annotation.step or DEFAULT_ANNOTATION_STEP
        start = self.get_prometheus_time(options.range.from_, False)
        end = self.get_prometheus_time(options.range.to, True)
        query_request = DataQueryRequest(
            targets=[],
            range=options.range,
            interval=step,
            scoped_vars=options.scoped_vars,
            panel_id=options.panel_id,
            dashboard_id=options.dashboard_id,
        )
        target = PromQuery(expr=annotation.expr, interval=ANNOTATION_MIN_STEP, ref_id="X")
        query = self.create_query(target, query_request, start, end)

        response = self.perform_time_series_query(query, query.start, query.end)
        if response.cancelled:
            return []

        tag_keys = [key.strip() for key in annotation.tag_keys.split(",")]
        events: list[AnnotationEvent] = []
        for series in response.result:
            labels = series.get("metric") or {}
            tags = [value for key, value in labels.items() if key in tag_keys]
            seen_timestamps: set[int] = set()

            for timestamp, value in series.get("values", []):
                # e.g. ALERTS{} series are 1 while firing
                if value != "1" and not annotation.use_value_for_time:
                    continue

                event = AnnotationEvent(
                    annotation=annotation,
                    title=self.result_transformer.render_template(annotation.title_format, labels),
                    text=self.result_transformer.render_template(annotation.text_format, labels),
                    tags=tags,
                )
                if annotation.use_value_for_time:
                    value_time = float(value)
                    # NaN and Inf samples carry no usable time
                    if not math.isfinite(value_time):
                        continue
                    event_time = math.floor(value_time)
                    if event_time in seen_timestamps:
                        continue
                    seen_timestamps.add(event_time)
                    event.time = event_time
                else:
                    event.time = math.floor(float(timestamp)) * 1000
                events.append(event)

        log_structured(LOGGER, "annotation query complete", expr=query.expr, events=len(events))
        return events

    def get_tag_keys(self) -> list[MetricFindValue]:
        response = self.metadata_request(LABELS_ENDPOINT)
        return [MetricFindValue(text=value) for value in response.data.get("data", [])]

    def get_tag_values(self, key: str) -> list[MetricFindValue]:
        response = self.metadata_request(label_values_endpoint(key))
        return [MetricFindValue(text=value) for value in response.data.get("data", [])]

    def test_datasource(self) -> dict[str, str]:
        try:
            response = self.perform_instant_query(PromQueryRequest(expr="1+1"), time.time())
        except DataQueryError as error:
            return {"status": "error", "message": error.message}
        if isinstance(response.data, dict) and response.data.get("status") == "success":
            return {"status": "success", "message": "Data source is working"}
        error_message = response.data.get("error") if isinstance(response.data, dict) else None
        return {"status": "error", "message": str(error_message or UNKNOWN_ERROR_MESSAGE)}

    def get_explore_state(self, queries: list[PromQuery]) -> dict[str, Any]:
        state: dict[str, Any] = {"datasource": self.name}
        if queries:
            expanded = []
            for query in queries:
                payload = query.model_dump(by_alias=True, mode="json")
                payload.update(
                    {
                        "expr": self.template_service.replace(
                            query.expr, {}, self.interpolate_query_expr
                        ),
                        "context": PromContext.EXPLORE.value,
                        # not supported in Explore
                        "legendFormat": None,
                        "step": None,
                    }
                )
                expanded.append(payload)
            state["queries"] = expanded
        return state

    def get_query_hints(
        self, query: PromQuery, result: list[SeriesResult] | None
    ) -> list[QueryHint] | None:
        return get_query_hints(query.expr or "", result, self.rule_mappings)

    def load_rules(self) -> None:
        try:
            response = self.metadata_request(RULES_ENDPOINT)
        except (PrometheusRequestError, QueryCancelledError) as error:
            LOGGER.warning("Rules API is experimental, ignoring failure: %s", error)
            return

        body = response.data if isinstance(response.data, dict) else {}
        groups = (body.get("data") or {}).get("groups")
        if groups:
            self.rule_mappings = extract_rule_mapping_from_groups(groups)
            log_structured(LOGGER, "recording rules loaded", rules=len(self.rule_mappings))

    def modify_query(self, query: PromQuery, action: dict[str, Any]) -> PromQuery:
        expression = query.expr or ""
        action_type = action.get("type")
        if action_type == "ADD_FILTER":
            expression = add_label_to_query(expression, action["key"], action["value"])
        elif action_type == "ADD_HISTOGRAM_QUANTILE":
            expression = f"histogram_quantile(0.95, sum(rate({expression}[5m])) by (le))"
        elif action_type == "ADD_RATE":
            expression = f"rate({expression}[5m])"
        elif action_type == "ADD_SUM":
            expression = f"sum({expression.strip()}) by ($1)"
        elif action_type == "EXPAND_RULES" and action.get("mapping"):
            expression = expand_recording_rules(expression, action["mapping"])
        return query.model_copy(update={"expr": expression})

    def get_prometheus_time(self, date: datetime | str, round_up: bool) -> int:
        return get_prometheus_time(date, round_up)

    def get_time_range(self) -> dict[str, int]:
        time_range = self.time_service.time_range()
        return {
            "start": self.get_prometheus_time(time_range.from_, False),
            "end": self.get_prometheus_time(time_range.to, True),
        }

    def get_original_metric_name(self, labels: dict[str, str]) -> str:
        return self.result_transformer.get_original_metric_name(labels)


__all__ = ["PrometheusDatasource", "RequestCapability"]
