"""Shared data models for feedboard."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

FEED_TAGS = ("news", "on-chain", "research", "custom")


@dataclass(frozen=True)
class FeedConfig:
    """Configuration for a single RSS feed."""

    id: str
    title: str
    url: str
    tag: str = "custom"
    fallback_image: Optional[str] = None


@dataclass
class RawItem:
    """Feed-format independent entry before normalization."""

    title: str = ""
    link: str = ""
    description: str = ""
    content: str = ""
    pub_date: str = ""
    pub_date_parsed: Optional[time.struct_time] = None
    media_url: str = ""
    enclosure_url: str = ""


@dataclass
class ParsedFeed:
    feed_title: str
    items: List[RawItem] = field(default_factory=list)


@dataclass(frozen=True)
class Item:
    """Canonical news item ready for display."""

    title: str
    link: str
    description: str
    published: Optional[datetime]
    source_title: str
    tag: str
    image_url: str
    feed_id: str = ""


@dataclass(frozen=True)
class FeedSuccess:
    feed_id: str
    items: List[Item]


@dataclass(frozen=True)
class FeedFailure:
    feed_id: str
    message: str


FeedOutcome = Union[FeedSuccess, FeedFailure]


@dataclass(frozen=True)
class FailureEntry:
    """A feed that failed or yielded nothing during a refresh cycle."""

    feed_id: str
    title: str
    url: str
    message: str


@dataclass(frozen=True)
class RefreshResult:
    items: List[Item]
    failures: List[FailureEntry]
