"""Injecting label matchers into PromQL selectors."""

from __future__ import annotations

import re

KEYWORDS = "by|without|on|ignoring|group_left|group_right"

# Words that must never be mistaken for a bare metric name.
BUILTIN_WORDS = frozenset(
    "|".join(
        [
            KEYWORDS,
            "count|count_values|min|max|avg|sum|stddev|stdvar|bottomk|topk|quantile",
            "true|false|null|__name__|job",
            "abs|absent|ceil|changes|clamp_max|clamp_min|count_scalar|day_of_month|day_of_week",
            "days_in_month|delta|deriv|drop_common_labels|exp|floor|histogram_quantile|holt_winters",
            "hour|idelta|increase|irate|label_replace|ln|log2|log10|minute|month|predict_linear",
            "rate|resets|round|scalar|sort|sort_desc|sqrt|time|vector|year",
            "avg_over_time|min_over_time|max_over_time|sum_over_time|count_over_time",
            "quantile_over_time|stddev_over_time|stdvar_over_time|label_join|timestamp",
            "and|or|unless|offset|bool",
        ]
    ).split("|")
)

METRIC_NAME_PATTERN = re.compile(r"([A-Za-z:][\w:]*)\b(?![(\]{=!\",])")
SELECTOR_PATTERN = re.compile(r"{([^{]*)}")
LABEL_PATTERN = re.compile(r"(\w+)\s*(=|!=|=~|!~)\s*(\"[^\"]*\")")


def add_label_to_query(query: str, key: str, value: str, operator: str | None = None) -> str:
    """Add ``key<operator>"value"`` to every selector in ``query``.

    Bare metric names are given an empty selector first so they pick up the
    label as well.
    """

    if not key or not value:
        raise ValueError("Need label to add to query.")

    previous_word: str | None = None

    def add_empty_selector(match: re.Match[str]) -> str:
        nonlocal previous_word
        word = match.group(1)
        inside_selector = _is_position_inside_chars(query, match.start(), "{", "}")
        # sum by (key) (metric)
        previous_is_keyword = previous_word is not None and previous_word in KEYWORDS.split("|")
        colon_bounded = word.endswith(":")
        previous_word = word
        if (
            not inside_selector
            and not colon_bounded
            and not previous_is_keyword
            and word not in BUILTIN_WORDS
        ):
            return f"{word}{{}}"
        return word

    query = METRIC_NAME_PATTERN.sub(add_empty_selector, query)

    parts: list[str] = []
    last_index = 0
    for match in SELECTOR_PATTERN.finditer(query):
        parts.append(query[last_index : match.start()])
        parts.append(add_label_to_selector(match.group(1), key, value, operator))
        last_index = match.end()
    parts.append(query[last_index:])
    return "".join(parts)


def add_label_to_selector(
    selector: str, label_key: str, label_value: str, label_operator: str | None = None
) -> str:
    parsed: list[tuple[str, str, str]] = []
    if selector:
        parsed.extend(match.groups() for match in LABEL_PATTERN.finditer(selector))

    parsed.append((label_key, label_operator or "=", f'"{label_value}"'))

    unique: list[tuple[str, str, str]] = []
    for label in parsed:
        if label not in unique:
            unique.append(label)
    unique.sort(key=lambda label: label[0])
    formatted = ",".join(f"{key}{operator}{value}" for key, operator, value in unique)
    return f"{{{formatted}}}"


def _is_position_inside_chars(text: str, position: int, open_char: str, close_char: str) -> bool:
    next_open = text.find(open_char, position)
    next_close = text.find(close_char, position)
    if next_open != -1:
        next_open -= position
    if next_close != -1:
        next_close -= position
    return next_close > -1 and (next_open == -1 or next_open > next_close)


__all__ = ["add_label_to_query", "add_label_to_selector"]
