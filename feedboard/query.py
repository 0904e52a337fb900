"""Tag and free-text filtering over aggregated items."""

from __future__ import annotations

from typing import Iterable, List

from .models import Item

ALL_TAGS = "all"


def filter_items(items: Iterable[Item], tag: str = ALL_TAGS, query: str = "") -> List[Item]:
    """Return items matching ``tag`` whose text contains ``query`` (case-insensitive)."""
    needle = (query or "").strip().lower()
    matched: List[Item] = []
    for item in items:
        if tag and tag != ALL_TAGS and item.tag != tag:
            continue
        if needle:
            haystack = f"{item.title} {item.description} {item.source_title}".lower()
            if needle not in haystack:
                continue
        matched.append(item)
    return matched
