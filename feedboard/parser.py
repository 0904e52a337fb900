"""Feed payload parsing into raw item records."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Union

import feedparser

from .errors import ParseError
from .models import ParsedFeed, RawItem
from .transport import RawPayload

logger = logging.getLogger(__name__)

MAX_ITEMS_PER_FEED = 20


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


class FeedAdapter:
    """Maps one payload shape onto ``ParsedFeed``."""

    def parse(self, payload: RawPayload) -> ParsedFeed:
        raise NotImplementedError


class JsonFeedAdapter(FeedAdapter):
    """Handles JSON wrappers such as rss2json or JSON Feed documents."""

    def parse(self, payload: RawPayload) -> ParsedFeed:
        try:
            data = json.loads(payload.body)
        except ValueError as exc:
            raise ParseError(f"invalid JSON payload: {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise ParseError("JSON payload does not contain an items list")

        feed_meta = data.get("feed")
        if isinstance(feed_meta, dict):
            feed_title = _text(feed_meta.get("title"))
        else:
            feed_title = _text(data.get("title"))

        items = [
            self._to_raw_item(entry)
            for entry in data["items"]
            if isinstance(entry, dict)
        ]
        return ParsedFeed(feed_title=feed_title, items=items)

    @staticmethod
    def _to_raw_item(entry: dict) -> RawItem:
        enclosure = entry.get("enclosure")
        enclosure_url = ""
        if isinstance(enclosure, dict):
            enclosure_url = _text(enclosure.get("link") or enclosure.get("url"))

        return RawItem(
            title=_text(entry.get("title")),
            link=_text(entry.get("link") or entry.get("url") or entry.get("guid")),
            description=_text(
                entry.get("description") or entry.get("summary") or entry.get("content_html")
            ),
            content=_text(entry.get("content") or entry.get("content_html")),
            pub_date=_text(entry.get("pubDate") or entry.get("date_published")),
            media_url=_text(entry.get("thumbnail") or entry.get("image")),
            enclosure_url=enclosure_url,
        )


class XmlFeedAdapter(FeedAdapter):
    """Handles RSS and Atom documents through feedparser."""

    def parse(self, payload: RawPayload) -> ParsedFeed:
        document = payload.content or payload.body.encode("utf-8")
        parsed = feedparser.parse(document)
        entries = parsed.entries or []

        if not entries:
            if getattr(parsed, "bozo", 0):
                raise ParseError(
                    f"invalid feed document: {getattr(parsed, 'bozo_exception', 'unknown error')}"
                )
            raise ParseError("no items found in feed")

        if getattr(parsed, "bozo", 0):
            logger.debug(
                "Feed parsed with recoverable issues: %s",
                getattr(parsed, "bozo_exception", None),
            )

        feed_title = _text(parsed.feed.get("title"))
        return ParsedFeed(
            feed_title=feed_title,
            items=[self._to_raw_item(entry) for entry in entries],
        )

    @staticmethod
    def _to_raw_item(entry) -> RawItem:
        content = ""
        content_list = entry.get("content")
        if content_list:
            try:
                content = _text(content_list[0].get("value"))
            except (TypeError, KeyError, IndexError, AttributeError):
                content = ""

        media_url = ""
        for key in ("media_thumbnail", "media_content"):
            for media in entry.get(key) or []:
                if isinstance(media, dict) and media.get("url"):
                    media_url = _text(media["url"])
                    break
            if media_url:
                break

        enclosure_url = ""
        for enclosure in entry.get("enclosures") or []:
            if isinstance(enclosure, dict) and enclosure.get("href"):
                enclosure_url = _text(enclosure["href"])
                break

        pub_date, pub_date_parsed = "", None
        for attr in ("published", "updated"):
            if entry.get(attr):
                pub_date = _text(entry.get(attr))
                pub_date_parsed = entry.get(f"{attr}_parsed")
                break

        return RawItem(
            title=_text(entry.get("title")),
            link=_text(entry.get("link") or entry.get("id")),
            description=_text(entry.get("summary") or entry.get("description")),
            content=content,
            pub_date=pub_date,
            pub_date_parsed=pub_date_parsed,
            media_url=media_url,
            enclosure_url=enclosure_url,
        )


def select_adapter(body: str) -> FeedAdapter:
    """Pick the adapter for a payload by sniffing its first character."""
    if body.lstrip().startswith("{"):
        return JsonFeedAdapter()
    return XmlFeedAdapter()


def parse_payload(
    payload: Union[RawPayload, str], max_items: int = MAX_ITEMS_PER_FEED
) -> ParsedFeed:
    """Parse a fetched payload, keeping at most ``max_items`` entries."""
    if isinstance(payload, str):
        payload = RawPayload(body=payload)

    if not payload.body.strip() and not payload.content.strip():
        raise ParseError("empty payload")

    if not payload.body:
        payload = replace(payload, body=payload.content.decode("utf-8", errors="replace"))

    adapter = select_adapter(payload.body)
    feed = adapter.parse(payload)

    if max_items and len(feed.items) > max_items:
        logger.debug(
            "Capping feed '%s' from %d to %d items",
            feed.feed_title,
            len(feed.items),
            max_items,
        )
        feed.items = feed.items[:max_items]

    return feed
