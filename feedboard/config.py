"""Configuration loading for feeds and application settings."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import urlparse
from xml.etree import ElementTree as ET

from .models import FEED_TAGS, FeedConfig
from .parser import MAX_ITEMS_PER_FEED
from .transport import DEFAULT_PUBLIC_RELAY_URL, DEFAULT_TIMEOUT_MS, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_TAG = "custom"
ITEMS_PER_FEED_RANGE = (15, 25)


@dataclass
class TransportConfig:
    direct: bool = True
    relay_url: Optional[str] = None
    public_relay_url: Optional[str] = DEFAULT_PUBLIC_RELAY_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    feeds_file: str
    refresh_interval_ms: int = 300_000
    max_items_per_feed: int = MAX_ITEMS_PER_FEED
    concurrency: int = 10
    transport: TransportConfig = field(default_factory=TransportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def slugify(value: str) -> str:
    """Lowercase ASCII slug made of letters, digits and single dashes."""
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "feed"


def _unique_id(base: str, existing_ids: Iterable[str]) -> str:
    taken = set(existing_ids)
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def _check_tag(tag: str) -> str:
    if tag not in FEED_TAGS:
        raise ValueError(f"Unknown feed tag '{tag}'; expected one of {', '.join(FEED_TAGS)}")
    return tag


def make_feed_config(
    url: str,
    title: Optional[str] = None,
    tag: Optional[str] = None,
    existing_ids: Iterable[str] = (),
    feed_id: Optional[str] = None,
    fallback_image: Optional[str] = None,
) -> FeedConfig:
    """Build a feed definition, generating a unique id from its title."""
    url = (url or "").strip()
    if not url:
        raise ValueError("Feed URL must not be empty.")

    title = (title or "").strip() or urlparse(url).netloc or url
    tag = _check_tag((tag or "").strip() or DEFAULT_TAG)
    base_id = slugify(feed_id or title)
    return FeedConfig(
        id=_unique_id(base_id, existing_ids),
        title=title,
        url=url,
        tag=tag,
        fallback_image=fallback_image or None,
    )


def parse_feeds_config(path: str) -> List[FeedConfig]:
    """Parse the OPML feed list and return feed definitions."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    feeds: List[FeedConfig] = []

    def walk(outline: ET.Element, current_tag: Optional[str]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        outline_type = outline.attrib.get("type")

        if outline_type == "rss" and feed_url:
            feeds.append(
                make_feed_config(
                    feed_url,
                    title=title,
                    tag=outline.attrib.get("tag") or current_tag,
                    existing_ids=[feed.id for feed in feeds],
                    feed_id=outline.attrib.get("id"),
                    fallback_image=outline.attrib.get("fallbackImage"),
                )
            )
            logger.debug("Registered feed '%s' (tag='%s')", feed_url, feeds[-1].tag)
            return

        next_tag = current_tag
        category = (outline.attrib.get("tag") or title or "").strip().lower()
        if category in FEED_TAGS:
            next_tag = category
        for child in outline.findall("outline"):
            walk(child, next_tag)

    if body is None:
        raise ValueError("feeds.xml is missing the <body> section.")

    for outline in body.findall("outline"):
        walk(outline, None)

    logger.info("Loaded %d feed endpoints from configuration", len(feeds))
    return feeds


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _positive_int(root: ET.Element, tag: str, default: int) -> int:
    value = int(root.findtext(tag, str(default)))
    if value <= 0:
        raise ValueError(f"<{tag}> must be positive.")
    return value


def _items_per_feed(root: ET.Element) -> int:
    value = int(root.findtext("max-items-per-feed", str(MAX_ITEMS_PER_FEED)))
    low, high = ITEMS_PER_FEED_RANGE
    if not low <= value <= high:
        raise ValueError(f"<max-items-per-feed> must be between {low} and {high}.")
    return value


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    feeds_node = root.find("feeds")
    if feeds_node is None or not feeds_node.text:
        raise ValueError("Config missing <feeds> path")
    feeds_file = _resolve_path(config_path, feeds_node.text.strip())

    transport_node = root.find("transport")
    transport = TransportConfig(
        timeout_ms=_positive_int(root, "timeout-ms", DEFAULT_TIMEOUT_MS)
    )
    if transport_node is not None:
        transport.direct = transport_node.findtext("direct", "true").lower() == "true"
        transport.relay_url = transport_node.findtext("relay-url") or None
        if transport_node.find("public-relay-url") is not None:
            transport.public_relay_url = transport_node.findtext("public-relay-url") or None
        transport.user_agent = transport_node.findtext("user-agent", DEFAULT_USER_AGENT)

    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    return AppConfig(
        feeds_file=feeds_file,
        refresh_interval_ms=_positive_int(root, "refresh-interval-ms", 300_000),
        max_items_per_feed=_items_per_feed(root),
        concurrency=_positive_int(root, "concurrency", 10),
        transport=transport,
        logging=logging_config,
    )
