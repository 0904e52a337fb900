import textwrap
from datetime import datetime, timezone

import pytest
import requests

from feedboard.errors import TransportError
from feedboard.models import FeedConfig, Item
from feedboard.transport import FetchResult, RawPayload


class FakeResponse:
    def __init__(self, text="", status_code=200, content_type="application/xml"):
        self.text = text
        self.content = text.encode("utf-8")
        self.status_code = status_code
        self.headers = {"Content-Type": content_type}


class FakeSession:
    """Stand-in for requests.Session keyed by exact URL."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        result = self.routes.get(url)
        if result is None:
            raise requests.ConnectionError(f"no route for {url}")
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result()
        return result


class StubResolver:
    """Returns canned payloads or errors per feed URL."""

    def __init__(self, bodies=None, errors=None):
        self.bodies = dict(bodies or {})
        self.errors = dict(errors or {})
        self.calls = []

    def resolve(self, url, timeout_ms=None):
        self.calls.append(url)
        if url in self.errors:
            return FetchResult(url=url, error=TransportError(url, self.errors[url]))
        return FetchResult(url=url, payload=RawPayload(body=self.bodies[url], strategy="stub"))


def rss_document(title, items):
    """Build an RSS 2.0 document from (title, link, pub_date, description) tuples."""
    entries = "".join(
        textwrap.dedent(
            f"""\
            <item>
              <title>{item_title}</title>
              <link>{link}</link>
              <pubDate>{pub_date}</pubDate>
              <description><![CDATA[{description}]]></description>
            </item>
            """
        )
        for item_title, link, pub_date, description in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com/</link>"
        f"{entries}</channel></rss>"
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def make_item():
    def _make(title="Title", link="", published=None, tag="news", source="Source", feed_id="feed", description=""):
        return Item(
            title=title,
            link=link,
            description=description,
            published=published,
            source_title=source,
            tag=tag,
            image_url="https://img.example.com/x.png",
            feed_id=feed_id,
        )

    return _make


@pytest.fixture
def feed_a():
    return FeedConfig(id="feed-a", title="Alpha News", url="https://a.example.com/rss", tag="news")


@pytest.fixture
def feed_b():
    return FeedConfig(id="feed-b", title="Beta Chain", url="https://b.example.com/rss", tag="on-chain")


@pytest.fixture
def feed_c():
    return FeedConfig(id="feed-c", title="Gamma Research", url="https://c.example.com/feed.json", tag="research")


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)
