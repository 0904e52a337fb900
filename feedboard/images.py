"""Representative image selection for feed items."""

from __future__ import annotations

import html
import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from .models import RawItem

logger = logging.getLogger(__name__)

# First <img src="..."> only; malformed markup simply yields no match.
_IMG_SRC_RE = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)

PLACEHOLDER_IMAGES = {
    "news": "https://placehold.co/600x400/1e293b/ffffff?text=News",
    "on-chain": "https://placehold.co/600x400/0f766e/ffffff?text=On-chain",
    "research": "https://placehold.co/600x400/6d28d9/ffffff?text=Research",
    "custom": "https://placehold.co/600x400/475569/ffffff?text=Custom",
}
DEFAULT_PLACEHOLDER = "https://placehold.co/600x400/334155/ffffff?text=Crypto+News"


def _origin(base_url: str) -> Optional[str]:
    parsed = urlparse(base_url or "")
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}"
    return None


def normalize_image_url(url: str, base_url: str = "") -> Optional[str]:
    """Return an absolute image URL, or None when it cannot be resolved."""
    candidate = html.unescape((url or "").strip())
    if not candidate:
        return None

    lowered = candidate.lower()
    if lowered.startswith(("data:", "javascript:")):
        return None
    if candidate.startswith("//"):
        return "https:" + candidate
    if lowered.startswith(("http://", "https://")):
        return candidate

    origin = _origin(base_url)
    if origin is None:
        return None
    if candidate.startswith("/"):
        return origin + candidate
    return urljoin(base_url, candidate)


def first_img_src(fragment: str) -> Optional[str]:
    """Return the src of the first <img> tag in an HTML fragment."""
    if not fragment:
        return None
    match = _IMG_SRC_RE.search(fragment)
    if match is None:
        return None
    return match.group(1)


def placeholder_for(tag: str) -> str:
    return PLACEHOLDER_IMAGES.get(tag, DEFAULT_PLACEHOLDER)


def resolve_image(
    raw: RawItem,
    feed_base_url: str,
    tag: str,
    fallback_image: Optional[str] = None,
) -> str:
    """Pick the best image for an item; always returns a usable URL.

    Order: media attachment, enclosure, first <img> in content, first <img>
    in description, the feed's static fallback, then the tag placeholder.
    """
    candidates = (
        ("media", raw.media_url),
        ("enclosure", raw.enclosure_url),
        ("content", first_img_src(raw.content)),
        ("description", first_img_src(raw.description)),
    )
    for origin, candidate in candidates:
        if not candidate:
            continue
        resolved = normalize_image_url(candidate, feed_base_url)
        if resolved:
            return resolved
        logger.debug("Unresolvable %s image %r for feed %s", origin, candidate, feed_base_url)

    if fallback_image:
        return fallback_image
    return placeholder_for(tag)
