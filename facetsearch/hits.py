"""Helpers for reading values and highlights from raw hits."""

import copy
import re
from typing import Any

from .results import RawHit


def get_value(source: dict[str, Any], path: str) -> Any:
    """Read a possibly nested value using a dotted path."""
    value: Any = source
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def set_value(source: dict[str, Any], path: str, value: Any) -> None:
    """Set a possibly nested value using a dotted path."""
    parts = path.split(".")
    target = source
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def highlighted_source(hit: RawHit) -> dict[str, Any]:
    """Copy of the hit's source with textual values replaced by highlights.

    Only string values are replaced. Fields without a snippet keep their
    plain value.
    """
    source = copy.deepcopy(hit.source)
    for field, snippets in hit.highlight.items():
        if snippets and isinstance(get_value(source, field), str):
            set_value(source, field, snippets[0])
    return source


def strip_highlight_marks(
    text: str, pre_tag: str = '<em class="gbifHl">', post_tag: str = "</em>"
) -> str:
    """Remove highlight tags from a snippet."""
    return re.sub(f"{re.escape(pre_tag)}|{re.escape(post_tag)}", "", text)
