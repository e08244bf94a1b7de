"""HTTP client for the Prometheus query API."""

from __future__ import annotations

import logging
import time
from typing import Any, Literal

import httpx

from ..logging import get_logger, log_structured
from ..metrics import REQUEST_COUNTER, REQUEST_LATENCY
from .types import PromResponse

LOGGER = get_logger(__name__)

QUERY_ENDPOINT = "/api/v1/query"
QUERY_RANGE_ENDPOINT = "/api/v1/query_range"
LABELS_ENDPOINT = "/api/v1/labels"
SERIES_ENDPOINT = "/api/v1/series"
RULES_ENDPOINT = "/api/v1/rules"


def label_values_endpoint(label: str) -> str:
    return f"/api/v1/label/{label}/values"


class PrometheusRequestError(RuntimeError):
    """Raised when Prometheus answers with an HTTP error status."""

    def __init__(self, status: int, status_text: str, data: Any = None) -> None:
        super().__init__(f"{status} {status_text}")
        self.status = status
        self.status_text = status_text
        self.data = data


class QueryCancelledError(RuntimeError):
    """Raised by a transport when an in-flight request was cancelled.

    Hosts that supersede requests (for example a panel refreshing before the
    previous answer arrived) raise it from their transport; it passes through
    httpx untouched.
    """


class PrometheusClient:
    """Thin wrapper around the Prometheus HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        verify_ssl: bool = True,
        basic_auth: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            verify=verify_ssl,
        )
        self._owns_client = client is None
        self._basic_auth = basic_auth

    def request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        method: Literal["GET", "POST"] = "GET",
        headers: dict[str, str] | None = None,
    ) -> PromResponse:
        """Send one request; GET params go in the URL, POST params in a form body."""

        request_headers = dict(headers or {})
        if self._basic_auth:
            request_headers["Authorization"] = self._basic_auth

        params = {key: value for key, value in (params or {}).items() if value is not None}
        log_structured(LOGGER, "Prometheus request", level=logging.DEBUG, path=path, method=method)

        started = time.perf_counter()
        try:
            if method == "GET":
                response = self._client.get(path, params=params, headers=request_headers)
            else:
                response = self._client.post(path, data=params, headers=request_headers)
        except httpx.TimeoutException as exc:
            REQUEST_COUNTER.labels(endpoint=path, method=method, status="timeout").inc()
            raise PrometheusRequestError(504, "Gateway Timeout", str(exc)) from exc
        except httpx.TransportError as exc:
            REQUEST_COUNTER.labels(endpoint=path, method=method, status="error").inc()
            raise PrometheusRequestError(502, "Bad Gateway", str(exc)) from exc
        finally:
            REQUEST_LATENCY.labels(endpoint=path).observe(time.perf_counter() - started)

        REQUEST_COUNTER.labels(endpoint=path, method=method, status=str(response.status_code)).inc()
        data = _decode(response)
        if response.is_error:
            raise PrometheusRequestError(response.status_code, response.reason_phrase, data)
        return PromResponse(status=response.status_code, data=data)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PrometheusClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


__all__ = [
    "LABELS_ENDPOINT",
    "PrometheusClient",
    "PrometheusRequestError",
    "QUERY_ENDPOINT",
    "QUERY_RANGE_ENDPOINT",
    "QueryCancelledError",
    "RULES_ENDPOINT",
    "SERIES_ENDPOINT",
    "label_values_endpoint",
]
