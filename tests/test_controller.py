import threading
import time

import pytest

from conftest import StubResolver, rss_document
from feedboard.aggregator import Aggregator, AggregatorState
from feedboard.controller import RefreshController
from feedboard.models import RefreshResult


class CountingAggregator:
    def __init__(self):
        self.calls = 0
        self.state = AggregatorState()

    def refresh(self, feeds):
        self.calls += 1
        return RefreshResult(items=[], failures=[])

    def retry_single(self, feed, feeds=()):
        self.calls += 1


class BlockingResolver(StubResolver):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def resolve(self, url, timeout_ms=None):
        self.entered.set()
        self.release.wait(5)
        return super().resolve(url, timeout_ms)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_overlapping_refresh_is_dropped(feed_a):
    resolver = BlockingResolver({feed_a.url: rss_document("Alpha", [("A", "https://a/1", "", "")])})
    controller = RefreshController([feed_a], Aggregator(resolver))

    results = []
    worker = threading.Thread(target=lambda: results.append(controller.request_refresh()))
    worker.start()
    assert resolver.entered.wait(2)

    assert controller.refreshing
    assert controller.request_refresh() is None

    resolver.release.set()
    worker.join(5)
    assert isinstance(results[0], RefreshResult)
    assert not controller.refreshing
    assert resolver.calls == [feed_a.url]


def test_start_refreshes_immediately_and_periodically(feed_a):
    aggregator = CountingAggregator()
    states = []
    controller = RefreshController(
        [feed_a], aggregator, refresh_interval_ms=20, on_refresh=states.append
    )

    controller.start()
    try:
        assert controller.running
        assert _wait_for(lambda: aggregator.calls >= 3)
    finally:
        controller.stop(timeout=2)

    assert not controller.running
    calls_after_stop = aggregator.calls
    time.sleep(0.1)
    assert aggregator.calls == calls_after_stop
    assert states


def test_start_twice_raises(feed_a):
    controller = RefreshController([feed_a], CountingAggregator(), refresh_interval_ms=60_000)
    controller.start()
    try:
        with pytest.raises(RuntimeError):
            controller.start()
    finally:
        controller.stop(timeout=2)


class BlockingAggregator(CountingAggregator):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def refresh(self, feeds):
        self.entered.set()
        self.release.wait(5)
        return super().refresh(feeds)


def test_stop_timeout_keeps_thread_until_refresh_finishes(feed_a):
    aggregator = BlockingAggregator()
    controller = RefreshController([feed_a], aggregator, refresh_interval_ms=60_000)
    controller.start()
    assert aggregator.entered.wait(2)

    controller.stop(timeout=0.01)
    assert controller.running
    with pytest.raises(RuntimeError):
        controller.start()

    aggregator.release.set()
    controller.stop(timeout=2)
    assert not controller.running
    assert aggregator.calls == 1


def test_add_feed_generates_unique_ids_and_fetches(feed_a):
    aggregator = CountingAggregator()
    controller = RefreshController([feed_a], aggregator)

    first = controller.add_feed("https://x.example.com/rss", title="Alpha News")
    second = controller.add_feed("https://y.example.com/rss", title="Alpha News", fetch=False)

    assert first.id == "alpha-news"
    assert second.id == "alpha-news-2"
    assert first.tag == "custom"
    assert aggregator.calls == 1
    assert [feed.id for feed in controller.feeds] == ["feed-a", "alpha-news", "alpha-news-2"]


def test_retry_feed_unknown_id_raises(feed_a):
    controller = RefreshController([feed_a], CountingAggregator())

    with pytest.raises(KeyError):
        controller.retry_feed("missing")


def test_retry_feed_merges_into_state(feed_a, feed_b):
    resolver = StubResolver(
        {feed_a.url: rss_document("Alpha", [("A", "https://a/1", "", "")])},
        errors={feed_b.url: "down"},
    )
    controller = RefreshController([feed_a, feed_b], Aggregator(resolver))
    controller.request_refresh()
    assert [f.feed_id for f in controller.state.failures] == ["feed-b"]

    del resolver.errors[feed_b.url]
    resolver.bodies[feed_b.url] = rss_document("Beta", [("B", "https://b/1", "", "")])
    controller.retry_feed("feed-b")

    assert controller.state.failures == ()
    assert {item.title for item in controller.state.items} == {"A", "B"}
