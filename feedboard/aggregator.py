"""Fan-out/fan-in refresh of all configured feeds."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ParseError
from .images import resolve_image
from .models import (
    FailureEntry,
    FeedConfig,
    FeedFailure,
    FeedOutcome,
    FeedSuccess,
    Item,
    RefreshResult,
)
from .normalizer import normalize_item
from .parser import MAX_ITEMS_PER_FEED, parse_payload
from .transport import TransportResolver

logger = logging.getLogger(__name__)

EMPTY_FEED_MESSAGE = "feed returned no items"
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class AggregatorState:
    """Snapshot of the displayed items and failures; replaced, never mutated.

    ``contributions`` keeps each successful feed's own items so a retry can
    swap one feed out without losing items another feed shares a link with.
    """

    items: Tuple[Item, ...] = ()
    failures: Tuple[FailureEntry, ...] = ()
    last_refreshed: Optional[datetime] = None
    contributions: Mapping[str, Tuple[Item, ...]] = field(default_factory=dict)


def run_feed_pipeline(
    feed: FeedConfig,
    resolver: TransportResolver,
    feeds: Sequence[FeedConfig] = (),
    max_items: int = MAX_ITEMS_PER_FEED,
) -> FeedOutcome:
    """Fetch, parse and normalize one feed. Never raises."""
    try:
        fetched = resolver.resolve(feed.url)
        if not fetched.ok:
            logger.warning(
                "Feed '%s' could not be fetched: %s", feed.title, fetched.error.message
            )
            return FeedFailure(feed_id=feed.id, message=fetched.error.message)

        parsed = parse_payload(fetched.payload, max_items=max_items)
        items = [
            normalize_item(
                raw,
                feed,
                resolve_image(raw, feed.url, feed.tag, feed.fallback_image),
                feed_title=parsed.feed_title,
                feeds=feeds,
            )
            for raw in parsed.items
        ]
    except ParseError as exc:
        logger.warning("Feed '%s' could not be parsed: %s", feed.title, exc)
        return FeedFailure(feed_id=feed.id, message=f"parse error: {exc}")
    except Exception as exc:  # noqa: BLE001 - one feed must not break the cycle
        logger.exception("Unexpected error while processing feed '%s'", feed.title)
        return FeedFailure(feed_id=feed.id, message=f"unexpected error: {exc}")

    logger.info("Collected %d items from feed '%s'", len(items), feed.title)
    return FeedSuccess(feed_id=feed.id, items=items)


def sort_items(items: Iterable[Item]) -> List[Item]:
    """Newest first; undated items go last in their original order."""
    return sorted(
        items,
        key=lambda item: (item.published is not None, item.published or _OLDEST),
        reverse=True,
    )


def display_items(contributions: Mapping[str, Iterable[Item]]) -> List[Item]:
    """Flatten per-feed items, sort them and drop repeated links."""
    combined: List[Item] = []
    for items in contributions.values():
        combined.extend(items)

    seen_links = set()
    unique: List[Item] = []
    for item in sort_items(combined):
        if item.link:
            if item.link in seen_links:
                continue
            seen_links.add(item.link)
        unique.append(item)
    return unique


def _failure_entry(feed: FeedConfig, outcome: FeedOutcome) -> Optional[FailureEntry]:
    if isinstance(outcome, FeedFailure):
        message = outcome.message
    elif not outcome.items:
        message = EMPTY_FEED_MESSAGE
    else:
        return None
    return FailureEntry(feed_id=feed.id, title=feed.title, url=feed.url, message=message)


class Aggregator:
    """Runs refresh cycles and owns the displayed state."""

    def __init__(
        self,
        resolver: TransportResolver,
        max_items: int = MAX_ITEMS_PER_FEED,
        concurrency: int = 10,
    ) -> None:
        self.resolver = resolver
        self.max_items = max_items
        self.concurrency = concurrency
        self._lock = threading.Lock()
        self._state = AggregatorState()

    @property
    def state(self) -> AggregatorState:
        return self._state

    def refresh(self, feeds: Iterable[FeedConfig]) -> RefreshResult:
        """Run every feed pipeline and replace the displayed state wholesale."""
        feeds = list(feeds)
        logger.info("Refreshing %d feeds", len(feeds))

        outcomes: Dict[str, FeedOutcome] = {}
        if feeds:
            workers = max(1, min(self.concurrency, len(feeds)))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                future_to_feed = {
                    executor.submit(
                        run_feed_pipeline, feed, self.resolver, feeds, self.max_items
                    ): feed
                    for feed in feeds
                }
                for future in concurrent.futures.as_completed(future_to_feed):
                    feed = future_to_feed[future]
                    outcomes[feed.id] = future.result()

        contributions: Dict[str, Tuple[Item, ...]] = {}
        failures: List[FailureEntry] = []
        for feed in feeds:
            outcome = outcomes[feed.id]
            entry = _failure_entry(feed, outcome)
            if entry is not None:
                failures.append(entry)
            else:
                contributions[feed.id] = tuple(outcome.items)

        items = display_items(contributions)
        with self._lock:
            self._state = AggregatorState(
                items=tuple(items),
                failures=tuple(failures),
                last_refreshed=datetime.now(timezone.utc),
                contributions=contributions,
            )

        logger.info(
            "Refresh complete: %d items, %d failed feeds", len(items), len(failures)
        )
        return RefreshResult(items=items, failures=failures)

    def retry_single(
        self, feed: FeedConfig, feeds: Sequence[FeedConfig] = ()
    ) -> FeedOutcome:
        """Re-run one feed and merge its result into the current state."""
        outcome = run_feed_pipeline(feed, self.resolver, feeds or (feed,), self.max_items)
        entry = _failure_entry(feed, outcome)

        with self._lock:
            current = self._state
            failures = list(current.failures)
            index = next(
                (i for i, failure in enumerate(failures) if failure.feed_id == feed.id),
                None,
            )

            contributions = dict(current.contributions)
            if entry is None:
                contributions[feed.id] = tuple(outcome.items)
                items = display_items(contributions)
                if index is not None:
                    del failures[index]
            else:
                items = list(current.items)
                if index is not None:
                    failures[index] = entry
                else:
                    failures.append(entry)

            self._state = AggregatorState(
                items=tuple(items),
                failures=tuple(failures),
                last_refreshed=current.last_refreshed,
                contributions=contributions,
            )

        if entry is None:
            logger.info("Retry of feed '%s' succeeded", feed.title)
        else:
            logger.warning("Retry of feed '%s' failed: %s", feed.title, entry.message)
        return outcome
