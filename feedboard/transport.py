"""Fetch strategies and the fallback chain used to retrieve feed payloads."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from urllib.parse import quote

import requests

from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 7000
DEFAULT_PUBLIC_RELAY_URL = "https://api.rss2json.com/v1/api.json"
DEFAULT_USER_AGENT = "feedboard/0.1 (+https://github.com/feedboard/feedboard)"


@dataclass
class RawPayload:
    """Feed body as returned by one of the strategies."""

    body: str
    content: bytes = b""
    content_type: str = ""
    strategy: str = ""


@dataclass
class AttemptOutcome:
    strategy: str
    payload: Optional[RawPayload] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.payload is not None


@dataclass
class FetchResult:
    """Outcome of running the whole strategy chain for one URL."""

    url: str
    payload: Optional[RawPayload] = None
    error: Optional[TransportError] = None
    attempts: List[AttemptOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.payload is not None


class FetchStrategy:
    """A single way of retrieving a feed URL."""

    name = "strategy"

    def build_url(self, url: str) -> str:
        raise NotImplementedError

    def validate(self, body: str) -> Optional[str]:
        """Return an error message if the body is unusable, else None."""
        return None

    def attempt(self, session, url: str, timeout: float) -> AttemptOutcome:
        target = self.build_url(url)
        try:
            response = session.get(target, timeout=timeout)
        except requests.Timeout:
            return AttemptOutcome(self.name, error=f"request timed out after {timeout:g}s")
        except requests.RequestException as exc:
            return AttemptOutcome(self.name, error=f"request failed: {exc}")

        status = response.status_code
        if not 200 <= status < 300:
            return AttemptOutcome(self.name, error=f"HTTP {status}")

        body = response.text or ""
        problem = self.validate(body)
        if problem:
            return AttemptOutcome(self.name, error=problem)

        content_type = response.headers.get("Content-Type", "")
        return AttemptOutcome(
            self.name,
            payload=RawPayload(
                body=body,
                content=response.content or b"",
                content_type=content_type,
                strategy=self.name,
            ),
        )


class DirectStrategy(FetchStrategy):
    name = "direct"

    def build_url(self, url: str) -> str:
        return url


class RelayStrategy(FetchStrategy):
    """Relay endpoint that echoes the upstream feed body verbatim."""

    name = "relay"

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint

    def build_url(self, url: str) -> str:
        return f"{self.endpoint}?url={quote(url, safe='')}"


class PublicRelayStrategy(FetchStrategy):
    """Public JSON-wrapping relay returning ``{"items": [...]}``."""

    name = "public-relay"

    def __init__(self, endpoint: str = DEFAULT_PUBLIC_RELAY_URL) -> None:
        self.endpoint = endpoint

    def build_url(self, url: str) -> str:
        return f"{self.endpoint}?rss_url={quote(url, safe='')}"

    def validate(self, body: str) -> Optional[str]:
        try:
            data = json.loads(body)
        except ValueError:
            return "relay returned invalid JSON"
        if isinstance(data, dict) and data.get("status") == "error":
            return f"relay error: {data.get('message') or 'unknown'}"
        return None


def build_default_strategies(
    direct: bool = True,
    relay_url: Optional[str] = None,
    public_relay_url: Optional[str] = DEFAULT_PUBLIC_RELAY_URL,
) -> List[FetchStrategy]:
    """Return the strategy chain in its fixed order, skipping unconfigured ones."""
    strategies: List[FetchStrategy] = []
    if direct:
        strategies.append(DirectStrategy())
    if relay_url:
        strategies.append(RelayStrategy(relay_url))
    if public_relay_url:
        strategies.append(PublicRelayStrategy(public_relay_url))
    return strategies


class TransportResolver:
    """Try each strategy in order until one returns a usable payload."""

    def __init__(
        self,
        strategies: Sequence[FetchStrategy],
        session=None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.strategies = list(strategies)
        self.timeout_ms = timeout_ms
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = user_agent
        self.session = session

    def resolve(self, url: str, timeout_ms: Optional[int] = None) -> FetchResult:
        timeout = (timeout_ms or self.timeout_ms) / 1000.0
        result = FetchResult(url=url)

        if not self.strategies:
            result.error = TransportError(url, "no fetch strategies configured")
            logger.error("Cannot fetch %s: %s", url, result.error.message)
            return result

        for strategy in self.strategies:
            outcome = strategy.attempt(self.session, url, timeout)
            result.attempts.append(outcome)
            if outcome.ok:
                logger.debug("Fetched %s via %s", url, strategy.name)
                result.payload = outcome.payload
                return result
            logger.debug("Strategy %s failed for %s: %s", strategy.name, url, outcome.error)

        details = "; ".join(f"{a.strategy}: {a.error}" for a in result.attempts)
        result.error = TransportError(url, f"all fetch strategies failed ({details})")
        logger.error("Giving up on %s: %s", url, result.error.message)
        return result
