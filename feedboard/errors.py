"""Error types raised inside the feed pipeline."""

from __future__ import annotations


class FeedboardError(Exception):
    """Base class for feedboard errors."""


class TransportError(FeedboardError):
    """Raised when every fetch strategy for a feed failed."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url
        self.message = message


class ParseError(FeedboardError):
    """Raised when a payload cannot be interpreted as a feed."""
