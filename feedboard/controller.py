"""Periodic refresh scheduling around an :class:`Aggregator`."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional

from .aggregator import Aggregator, AggregatorState
from .config import make_feed_config
from .models import FeedConfig, FeedOutcome, RefreshResult

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_MS = 300_000


class RefreshController:
    """Owns the feed list and drives refresh cycles on a fixed timer.

    Only one cycle runs at a time. A refresh requested while another is in
    flight is dropped and ``request_refresh`` returns ``None``.
    """

    def __init__(
        self,
        feeds: Iterable[FeedConfig],
        aggregator: Aggregator,
        refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS,
        on_refresh: Optional[Callable[[AggregatorState], None]] = None,
    ) -> None:
        self.aggregator = aggregator
        self.refresh_interval_ms = refresh_interval_ms
        self.on_refresh = on_refresh
        self._feeds: List[FeedConfig] = list(feeds)
        self._feeds_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def feeds(self) -> List[FeedConfig]:
        with self._feeds_lock:
            return list(self._feeds)

    @property
    def state(self) -> AggregatorState:
        return self.aggregator.state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def refreshing(self) -> bool:
        return self._cycle_lock.locked()

    def get_feed(self, feed_id: str) -> FeedConfig:
        for feed in self.feeds:
            if feed.id == feed_id:
                return feed
        raise KeyError(f"Unknown feed id: {feed_id}")

    def add_feed(
        self,
        url: str,
        title: Optional[str] = None,
        tag: Optional[str] = None,
        fetch: bool = True,
    ) -> FeedConfig:
        """Register a feed at runtime, optionally fetching it straight away."""
        with self._feeds_lock:
            feed = make_feed_config(
                url, title=title, tag=tag, existing_ids=[f.id for f in self._feeds]
            )
            self._feeds.append(feed)
        logger.info("Added feed '%s' (%s) as %s", feed.title, feed.url, feed.id)

        if fetch:
            self.aggregator.retry_single(feed, self.feeds)
            self._notify()
        return feed

    def request_refresh(self) -> Optional[RefreshResult]:
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Refresh already in progress; dropping request")
            return None
        try:
            result = self.aggregator.refresh(self.feeds)
        finally:
            self._cycle_lock.release()
        self._notify()
        return result

    def retry_feed(self, feed_id: str) -> FeedOutcome:
        outcome = self.aggregator.retry_single(self.get_feed(feed_id), self.feeds)
        self._notify()
        return outcome

    def start(self) -> None:
        """Run one refresh now and then one per interval until stopped."""
        if self.running:
            raise RuntimeError("Refresh controller already started")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="feedboard-refresh", daemon=True
        )
        self._thread.start()
        logger.info(
            "Refresh timer armed with %d ms interval", self.refresh_interval_ms
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Refresh timer still finishing a refresh after stop")
            return
        self._thread = None
        logger.info("Refresh timer stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until ``stop`` is called or ``timeout`` elapses."""
        return self._stop_event.wait(timeout)

    def _run(self) -> None:
        interval = self.refresh_interval_ms / 1000.0
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.request_refresh()
            except Exception:  # noqa: BLE001
                logger.exception("Refresh cycle failed")
            remaining = max(0.0, interval - (time.monotonic() - started))
            if self._stop_event.wait(remaining):
                break

    def _notify(self) -> None:
        if self.on_refresh is None:
            return
        try:
            self.on_refresh(self.aggregator.state)
        except Exception:  # noqa: BLE001
            logger.exception("Refresh callback failed")
