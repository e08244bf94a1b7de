"""CLI to run data source queries against a Prometheus server."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from .datasource.client import PrometheusClient, PrometheusRequestError
from .datasource.config import AdapterConfig, DatasourceSettings, load_config
from .datasource.datasource import PrometheusDatasource, RequestCapability
from .datasource.templating import StaticTemplateService, StaticTimeService
from .datasource.types import (
    AnnotationEvent,
    AnnotationQueryRequest,
    DataQueryError,
    DataQueryRequest,
    PromAnnotation,
    PromQuery,
    TimeRange,
)
from .logging import get_logger
from .settings import get_settings

LOGGER = get_logger(__name__)


def build_datasource(
    config: AdapterConfig, client: RequestCapability, time_range: TimeRange
) -> PrometheusDatasource:
    adhoc_filters = [item.to_filter() for item in config.adhoc_filters]
    template_service = StaticTemplateService(
        variables=[variable.to_variable() for variable in config.variables],
        adhoc_filters={config.datasource.name: adhoc_filters},
    )
    return PrometheusDatasource(
        config.datasource,
        client,
        template_service,
        StaticTimeService(time_range),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prom-datasource", description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to adapter YAML config (defaults to package config).",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Override Prometheus base URL from config.",
    )
    parser.add_argument("--from", dest="range_from", default="now-1h", help="Range start.")
    parser.add_argument("--to", dest="range_to", default="now", help="Range end.")

    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="Run a panel query.")
    query.add_argument("expr", help="PromQL expression, may reference template variables.")
    query.add_argument("--interval", default=None, help="Host interval, e.g. 30s.")
    query.add_argument("--min-step", default=None, help="Minimum step of the target.")
    query.add_argument("--interval-factor", type=int, default=1)
    query.add_argument("--format", choices=["time_series", "table", "heatmap"], default="time_series")
    query.add_argument("--instant", action="store_true")
    query.add_argument("--legend-format", default=None)

    annotations = commands.add_parser("annotations", help="Run an annotation query.")
    annotations.add_argument("expr")
    annotations.add_argument("--step", default=None)
    annotations.add_argument("--title-format", default="")
    annotations.add_argument("--text-format", default="")
    annotations.add_argument("--tag-keys", default="")
    annotations.add_argument("--use-value-for-time", action="store_true")

    find = commands.add_parser("find", help="Resolve a template variable query.")
    find.add_argument("query", help="e.g. label_values(up, job)")

    commands.add_parser("test", help="Check that the data source responds.")
    return parser


def run_command(args: argparse.Namespace, datasource: PrometheusDatasource) -> Any:
    time_range = TimeRange(from_=args.range_from, to=args.range_to)

    if args.command == "query":
        target = PromQuery(
            expr=args.expr,
            format=args.format,
            instant=args.instant,
            interval=args.min_step,
            interval_factor=args.interval_factor,
            legend_format=args.legend_format,
        )
        request = DataQueryRequest(
            targets=[target],
            range=time_range,
            interval=args.interval or datasource.interval,
        )
        return [asdict(series) for series in datasource.query(request).data]

    if args.command == "annotations":
        annotation = PromAnnotation(
            expr=args.expr,
            step=args.step,
            title_format=args.title_format,
            text_format=args.text_format,
            tag_keys=args.tag_keys,
            use_value_for_time=args.use_value_for_time,
        )
        events = datasource.annotation_query(
            AnnotationQueryRequest(annotation=annotation, range=time_range)
        )
        return [_serialize_event(event) for event in events]

    if args.command == "find":
        return [asdict(value) for value in datasource.metric_find_query(args.query)]

    return datasource.test_datasource()


def _serialize_event(event: AnnotationEvent) -> dict[str, Any]:
    return {
        "annotation": event.annotation.model_dump(by_alias=True),
        "time": event.time,
        "title": event.title,
        "text": event.text,
        "tags": event.tags,
    }


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)
    if args.base_url:
        config.datasource = DatasourceSettings.model_validate(
            {**config.datasource.model_dump(), "url": args.base_url}
        )

    settings = get_settings()
    client = PrometheusClient(
        config.datasource.url,
        timeout_seconds=settings.request_timeout_seconds,
        basic_auth=config.datasource.basic_auth,
    )
    try:
        time_range = TimeRange(from_=args.range_from, to=args.range_to)
        datasource = build_datasource(config, client, time_range)
        datasource.init()
        output = run_command(args, datasource)
    except DataQueryError as error:
        LOGGER.error("Query failed: %s", error.message)
        _print_json(error.to_dict())
        return 1
    except PrometheusRequestError as error:
        # metadata lookups surface raw client errors
        LOGGER.error("Request failed: %s", error)
        _print_json(
            {
                "message": str(error),
                "status": error.status,
                "statusText": error.status_text,
                "data": error.data,
            }
        )
        return 1
    finally:
        client.close()

    _print_json(output)
    return 0


def _print_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


if __name__ == "__main__":
    raise SystemExit(main())
