"""Feed URL parsing.

A feed URL looks like ``[http[s]://]host[:port]/{upack|nuget}/<feed>[/]``.
Parsing is pure and total: anything else yields None.
"""
from __future__ import annotations

import re
import urllib.parse
from typing import NamedTuple, Optional

_FEED_URL_RE = re.compile(
    r"^(?P<root>(?:https?://)?[^/]+)/(?P<kind>upack|nuget)/(?P<feed>[^/]+)/?",
    re.IGNORECASE,
)


class FeedLocation(NamedTuple):
    """Components of a feed URL."""
    service_root: str
    feed_kind: str
    feed_name: str


def parse_feed_url(url: Optional[str]) -> Optional[FeedLocation]:
    """Split a feed URL into service root, feed kind and decoded feed name.

    Matching is anchored at the start only, so trailing path segments after
    the feed name (``.../upack/Feed/download/...``) are ignored.
    """
    if not isinstance(url, str):
        return None
    m = _FEED_URL_RE.match(url)
    if not m:
        return None
    return FeedLocation(
        service_root=m.group("root"),
        feed_kind=m.group("kind"),
        feed_name=urllib.parse.unquote(m.group("feed")),
    )


def format_feed_url(service_root: str, feed_kind: str, feed_name: str) -> str:
    """Inverse of parse_feed_url: build ``root/kind/escaped-feed``."""
    return f"{service_root.rstrip('/')}/{feed_kind.lower()}/{urllib.parse.quote(feed_name, safe='')}"
