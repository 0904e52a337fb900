import json
import logging

import requests

from conftest import FakeResponse, FakeSession
from feedboard.transport import (
    DirectStrategy,
    PublicRelayStrategy,
    RelayStrategy,
    TransportResolver,
    build_default_strategies,
)

FEED_URL = "https://feeds.example.com/rss?lang=en"
RELAY = "https://relay.example.com/rss-proxy"
PUBLIC = "https://public.example.com/api.json"
RELAY_URL = RELAY + "?url=https%3A%2F%2Ffeeds.example.com%2Frss%3Flang%3Den"
PUBLIC_URL = PUBLIC + "?rss_url=https%3A%2F%2Ffeeds.example.com%2Frss%3Flang%3Den"


def _resolver(session, **kwargs):
    strategies = build_default_strategies(relay_url=RELAY, public_relay_url=PUBLIC)
    return TransportResolver(strategies, session=session, **kwargs)


def test_direct_fetch_wins_when_available():
    session = FakeSession({FEED_URL: FakeResponse("<rss/>")})

    result = _resolver(session).resolve(FEED_URL)

    assert result.ok
    assert result.payload.body == "<rss/>"
    assert result.payload.strategy == "direct"
    assert [url for url, _ in session.calls] == [FEED_URL]


def test_relay_urls_percent_encode_feed_url():
    assert RelayStrategy(RELAY).build_url(FEED_URL) == RELAY_URL
    assert PublicRelayStrategy(PUBLIC).build_url(FEED_URL) == PUBLIC_URL
    assert DirectStrategy().build_url(FEED_URL) == FEED_URL


def test_falls_back_to_relay_after_timeout_and_bad_status():
    session = FakeSession(
        {
            FEED_URL: requests.Timeout("slow"),
            RELAY_URL: FakeResponse("<rss>relayed</rss>"),
        }
    )

    result = _resolver(session).resolve(FEED_URL)

    assert result.payload.strategy == "relay"
    assert result.attempts[0].error.startswith("request timed out")


def test_non_2xx_is_a_failed_attempt():
    session = FakeSession(
        {
            FEED_URL: FakeResponse("forbidden", status_code=403),
            RELAY_URL: FakeResponse('{"error": "Failed to fetch feed"}', status_code=500),
            PUBLIC_URL: FakeResponse(json.dumps({"status": "ok", "items": []})),
        }
    )

    result = _resolver(session).resolve(FEED_URL)

    assert result.payload.strategy == "public-relay"
    assert [attempt.error for attempt in result.attempts[:2]] == ["HTTP 403", "HTTP 500"]


def test_public_relay_error_status_counts_as_failure():
    strategy = PublicRelayStrategy(PUBLIC)

    assert strategy.validate(json.dumps({"status": "error", "message": "bad feed"})) == "relay error: bad feed"
    assert strategy.validate("<html>") == "relay returned invalid JSON"
    assert strategy.validate(json.dumps({"status": "ok", "items": []})) is None


def test_exhaustion_returns_typed_error_and_logs(caplog):
    session = FakeSession({FEED_URL: requests.Timeout("slow")})

    with caplog.at_level(logging.DEBUG, logger="feedboard.transport"):
        result = _resolver(session).resolve(FEED_URL)

    assert not result.ok
    assert result.error.url == FEED_URL
    assert "timed out" in result.error.message
    assert len(result.attempts) == 3
    levels = [record.levelno for record in caplog.records]
    assert levels.count(logging.DEBUG) == 3
    assert levels[-1] == logging.ERROR


def test_timeout_is_passed_in_seconds():
    session = FakeSession({FEED_URL: FakeResponse("<rss/>")})

    _resolver(session, timeout_ms=7000).resolve(FEED_URL)
    _resolver(session).resolve(FEED_URL, timeout_ms=2500)

    assert [timeout for _, timeout in session.calls] == [7.0, 2.5]


def test_unconfigured_strategies_are_skipped():
    names = [s.name for s in build_default_strategies(direct=False, public_relay_url=None)]
    assert names == []

    result = TransportResolver([], session=FakeSession()).resolve(FEED_URL)
    assert "no fetch strategies" in result.error.message
