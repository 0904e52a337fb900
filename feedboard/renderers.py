"""Rendering helpers for command-line output."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List

from bs4 import BeautifulSoup

from .models import FailureEntry, Item


def strip_html(raw_value: str) -> str:
    """Plain text of an HTML fragment with whitespace runs collapsed."""
    if not raw_value:
        return ""
    return " ".join(BeautifulSoup(raw_value, "html.parser").get_text().split())


def _shorten(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3].rstrip() + "..."


def item_to_dict(item: Item) -> Dict[str, Any]:
    return {
        "title": item.title,
        "link": item.link,
        "description": item.description,
        "published": item.published.isoformat() if item.published else None,
        "source": item.source_title,
        "tag": item.tag,
        "image": item.image_url,
        "feed_id": item.feed_id,
    }


def failure_to_dict(failure: FailureEntry) -> Dict[str, Any]:
    return {
        "feed_id": failure.feed_id,
        "title": failure.title,
        "url": failure.url,
        "message": failure.message,
    }


def render_json(items: Iterable[Item], failures: Iterable[FailureEntry]) -> str:
    payload = {
        "items": [item_to_dict(item) for item in items],
        "failures": [failure_to_dict(failure) for failure in failures],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_text(
    items: Iterable[Item],
    failures: Iterable[FailureEntry],
    summary_length: int = 160,
) -> str:
    lines: List[str] = []
    for item in items:
        when = item.published.strftime("%Y-%m-%d %H:%M") if item.published else "undated"
        lines.append(f"[{item.tag}] {when} {item.source_title}: {item.title}")
        summary = _shorten(strip_html(item.description), summary_length)
        if summary:
            lines.append(f"    {summary}")
        if item.link:
            lines.append(f"    {item.link}")

    failures = list(failures)
    if failures:
        if lines:
            lines.append("")
        lines.append(f"Failed feeds ({len(failures)}):")
        for failure in failures:
            lines.append(f"  - {failure.title} ({failure.url}): {failure.message}")

    return "\n".join(lines)
