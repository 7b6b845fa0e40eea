"""
tagcache - Content Invalidation Rules

Maps content-domain events (an article published or saved) to the path tags
that must be invalidated. Page entries are tagged with the URL path they were
rendered for ("/news/some-article", "/category/news"), so invalidating a piece
of content means invalidating its permalink and the listing pages of its terms.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import urlsplit

# Content types whose pages are cached
CACHED_CONTENT_TYPES = frozenset({"post", "attachment", "topic", "reply"})

# Statuses for which the content is not publicly visible
UNPUBLISHED_STATUSES = frozenset({"future", "draft", "pending", "private", "trash", "auto-draft"})

# The front page is only invalidated explicitly
ROOT_TAG = "/"

# Saves this soon after publication are covered by the publish event
MIN_EDIT_AGE_SECONDS = 60

# Past this age only the content's own page is invalidated
MAX_TERM_REFRESH_AGE_SECONDS = 24 * 3600


def path_tag(url: str, site_url: str = "") -> str:
    """Normalize a URL (absolute or site-relative) into a '/path' tag."""
    if site_url and url.startswith(site_url):
        path = url[len(site_url) :]
    else:
        path = urlsplit(url).path if "://" in url else url
    path = path.split("?", 1)[0]
    return "/" + path.strip("/")


@dataclass(frozen=True)
class ContentEvent:
    """A change to a piece of published content."""

    content_id: int | str
    content_type: str = "post"
    status: str = "publish"
    permalink: str | None = None
    term_links: tuple[str, ...] = field(default_factory=tuple)
    published_at: datetime | None = None
    site_url: str = ""

    def permalink_tag(self) -> str | None:
        if not self.permalink:
            return None
        return path_tag(self.permalink, self.site_url)

    def term_tags(self) -> list[str]:
        return [path_tag(link, self.site_url) for link in self.term_links]


def _unique(tags: list[str]) -> list[str]:
    return [tag for tag in dict.fromkeys(tags) if tag != ROOT_TAG]


def published_tags(event: ContentEvent) -> list[str]:
    """Tags to invalidate when a post is published: its term listing pages."""
    if event.content_type != "post":
        return []
    return _unique(event.term_tags())


def saved_tags(event: ContentEvent, now: float | None = None) -> list[str]:
    """
    Tags to invalidate when content is saved.

    - Content types that are not cached invalidate nothing.
    - Without a permalink there is nothing to invalidate.
    - Unpublished content invalidates its permalink right away.
    - Edits within a minute of publication are left to the publish event.
    - Content older than a day invalidates its permalink only.
    - Otherwise the permalink and the term listing pages are invalidated.
    """
    if event.content_type not in CACHED_CONTENT_TYPES:
        return []

    own = _unique([tag for tag in [event.permalink_tag()] if tag])
    if not own:
        return []

    if event.status in UNPUBLISHED_STATUSES:
        return own

    if event.published_at is not None:
        age = (now if now is not None else time.time()) - event.published_at.timestamp()
        if abs(age) < MIN_EDIT_AGE_SECONDS:
            return []
        if abs(age) > MAX_TERM_REFRESH_AGE_SECONDS:
            return own

    return _unique(own + event.term_tags())
