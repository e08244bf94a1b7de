"""Template variable interpolation for PromQL expressions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .types import ScopedVars, TimeRange

ALL_VALUE = "$__all"
VARIABLE_PATTERN = re.compile(
    r"\$(\w+)|\[\[([\s\S]+?)(?::(\w+))?\]\]|\$\{(\w+)(?::(\w+))?\}"
)
_REGEX_SPECIALS = re.compile(r"[$^*{}\[\]+?.()|]")

FormatFn = Callable[[Any, "TemplateVariable | None", Callable[..., Any]], Any]


@dataclass(slots=True)
class TemplateVariable:
    name: str
    current: str | list[str] = ""
    multi: bool = False
    include_all: bool = False
    all_value: str | None = None
    options: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AdhocFilter:
    key: str
    operator: str
    value: str


class TemplateService(Protocol):
    def replace(
        self,
        target: str | None,
        scoped_vars: ScopedVars | None = None,
        format: str | FormatFn | None = None,
    ) -> str:
        """Substitute template variables in ``target``."""

    def variable_exists(self, expression: str | None) -> bool:
        """Whether ``expression`` references a known variable."""

    def get_adhoc_filters(self, datasource_name: str) -> list[AdhocFilter]:
        """Ad-hoc filters currently applied to the data source."""


class TimeService(Protocol):
    def time_range(self) -> TimeRange:
        """Current dashboard time range."""


def prometheus_regular_escape(value: Any) -> Any:
    if isinstance(value, str):
        return value.replace("'", "\\\\'")
    return value


def prometheus_special_regex_escape(value: Any) -> Any:
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\\\\\")
        escaped = _REGEX_SPECIALS.sub(lambda match: "\\\\" + match.group(0), escaped)
        return prometheus_regular_escape(escaped)
    return value


def interpolate_query_expr(
    value: Any,
    variable: TemplateVariable | None = None,
    default_format: Callable[..., Any] | None = None,
) -> Any:
    """Escape a variable value before it is spliced into PromQL.

    Single-value variables are only quote-escaped. Multi-value and
    include-all variables end up inside regex matchers, so their values are
    regex-escaped and alternatives joined with ``|``.
    """

    if variable is None or (not variable.multi and not variable.include_all):
        return prometheus_regular_escape(value)

    if isinstance(value, str):
        return prometheus_special_regex_escape(value)

    return "|".join(prometheus_special_regex_escape(item) for item in value)


class StaticTemplateService:
    """Template service backed by a fixed set of variables.

    Supports ``$var``, ``${var}``, ``${var:format}``, ``[[var]]`` and
    ``[[var:format]]`` references; scoped variables take precedence over
    declared ones.
    """

    def __init__(
        self,
        variables: list[TemplateVariable] | None = None,
        adhoc_filters: dict[str, list[AdhocFilter]] | None = None,
    ) -> None:
        self._variables = {variable.name: variable for variable in variables or []}
        self._adhoc_filters = adhoc_filters or {}

    def replace(
        self,
        target: str | None,
        scoped_vars: ScopedVars | None = None,
        format: str | FormatFn | None = None,
    ) -> str:
        if not target:
            return target or ""

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1) or match.group(2) or match.group(4)
            fmt = match.group(3) or match.group(5) or format
            variable = self._variables.get(name)

            if scoped_vars and name in scoped_vars:
                value = scoped_vars[name].get("value")
                if value is not None:
                    return str(self.format_value(value, fmt, variable))

            if variable is None:
                return match.group(0)

            value = variable.current
            if value == ALL_VALUE or value == [ALL_VALUE]:
                if variable.all_value:
                    return variable.all_value
                value = list(variable.options)
            return str(self.format_value(value, fmt, variable))

        return VARIABLE_PATTERN.sub(substitute, target)

    def format_value(
        self,
        value: Any,
        format: str | FormatFn | None,
        variable: TemplateVariable | None = None,
    ) -> Any:
        if callable(format):
            return format(value, variable, self.format_value)

        values = value if isinstance(value, list) else [value]
        if format == "regex":
            escaped = [re.escape(str(item)) for item in values]
            return escaped[0] if len(escaped) == 1 else f"({'|'.join(escaped)})"
        if format == "pipe":
            return "|".join(str(item) for item in values)
        if format == "glob":
            return values[0] if len(values) == 1 else "{" + ",".join(map(str, values)) + "}"
        if isinstance(value, list):
            return ",".join(str(item) for item in value)
        return value

    def variable_exists(self, expression: str | None) -> bool:
        if not expression:
            return False
        match = VARIABLE_PATTERN.search(expression)
        if match is None:
            return False
        name = match.group(1) or match.group(2) or match.group(4)
        return name in self._variables

    def get_adhoc_filters(self, datasource_name: str) -> list[AdhocFilter]:
        return list(self._adhoc_filters.get(datasource_name, []))


@dataclass(slots=True)
class StaticTimeService:
    range: TimeRange

    def time_range(self) -> TimeRange:
        return self.range


__all__ = [
    "ALL_VALUE",
    "AdhocFilter",
    "StaticTemplateService",
    "StaticTimeService",
    "TemplateService",
    "TemplateVariable",
    "TimeService",
    "interpolate_query_expr",
    "prometheus_regular_escape",
    "prometheus_special_regex_escape",
]
