"""Recording rule mappings taken from the rules API."""

from __future__ import annotations

import re
from typing import Any, Iterable


def extract_rule_mapping_from_groups(groups: Iterable[dict[str, Any]]) -> dict[str, str]:
    """Map recording rule names to the expressions they record."""

    mapping: dict[str, str] = {}
    for group in groups:
        for rule in group.get("rules", []):
            if rule.get("type") == "recording":
                mapping[rule["name"]] = rule["query"]
    return mapping


def expand_recording_rules(query: str, mapping: dict[str, str]) -> str:
    """Replace recording rule names in ``query`` with their expressions."""

    if not mapping:
        return query
    names = "|".join(re.escape(name) for name in mapping)
    pattern = re.compile(rf"(\s|^)({names})(\s|$|\(|\[|\{{)", re.IGNORECASE)
    lookup = {name.lower(): expression for name, expression in mapping.items()}

    def expand(match: re.Match[str]) -> str:
        pre, name, post = match.groups()
        return f"{pre}{lookup[name.lower()]}{post}"

    return pattern.sub(expand, query)


__all__ = ["expand_recording_rules", "extract_rule_mapping_from_groups"]
