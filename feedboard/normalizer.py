"""Mapping raw feed entries to canonical items."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from feedparser.datetimes import _parse_date

from .models import FeedConfig, Item, RawItem

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"


def parse_pub_date(
    value: str, parsed: Optional[time.struct_time] = None
) -> Optional[datetime]:
    """Convert a feed date to an aware UTC datetime.

    ``parsed`` is the UTC struct_time feedparser already produced for the
    entry; raw strings (JSON wrappers) go through feedparser's date handlers.
    Returns None when the value is missing, unparsable or out of range.
    """
    if parsed is None:
        value = (value or "").strip()
        if not value:
            return None

    try:
        if parsed is None:
            parsed = _parse_date(value)
        if not parsed:
            logger.debug("Unparsable publication date: %r", value)
            return None
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        logger.debug("Publication date out of range: %r", value)
        return None


def _titles_overlap(left: str, right: str) -> bool:
    left, right = left.lower(), right.lower()
    return bool(left and right) and (left in right or right in left)


def reconcile_source_title(
    declared_title: str, feed: FeedConfig, feeds: Iterable[FeedConfig] = ()
) -> str:
    """Choose the source label for items of ``feed``.

    The configured title wins when it overlaps the feed's declared title.
    Otherwise, if the declared title overlaps any other configured feed's
    title, the declared title is used. Overlapping titles can therefore
    attribute items to the wrong source.
    """
    declared_title = (declared_title or "").strip()
    if not declared_title or _titles_overlap(declared_title, feed.title):
        return feed.title

    for other in feeds:
        if other.id == feed.id:
            continue
        if _titles_overlap(declared_title, other.title):
            logger.debug(
                "Feed %s declares title %r matching configured feed %s",
                feed.id,
                declared_title,
                other.id,
            )
            return declared_title
    return feed.title


def normalize_item(
    raw: RawItem,
    feed: FeedConfig,
    image_url: str,
    feed_title: str = "",
    feeds: Iterable[FeedConfig] = (),
) -> Item:
    return Item(
        title=raw.title or DEFAULT_TITLE,
        link=raw.link or "",
        description=raw.description or "",
        published=parse_pub_date(raw.pub_date, raw.pub_date_parsed),
        source_title=reconcile_source_title(feed_title, feed, feeds),
        tag=feed.tag,
        image_url=image_url,
        feed_id=feed.id,
    )
