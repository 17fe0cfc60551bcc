"""External inactive-villages feed client."""

from __future__ import annotations

import asyncio
import urllib.error
import urllib.parse
import urllib.request

from dorfbot.core.exceptions import FeedError
from dorfbot.core.extractors import parse_inactive_feed_coords
from dorfbot.core.logging import get_logger

log = get_logger("feed")

USER_AGENT = "dorfbot/0.1 (+farm-list builder)"
TIMEOUT = 25


def page_url(base_url: str, page: int) -> str:
    """Feed URL for a page; page 1 is the unmodified base URL."""
    if page <= 1:
        return base_url
    parts = urllib.parse.urlsplit(base_url)
    query = [(k, v) for k, v in urllib.parse.parse_qsl(parts.query, keep_blank_values=True) if k != "page"]
    query.append(("page", str(page)))
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))


class InactiveFeed:
    def __init__(self, base_url: str, max_pages: int = 30, timeout: float = TIMEOUT) -> None:
        self.base_url = base_url
        self.max_pages = max_pages
        self.timeout = timeout

    async def fetch_text(self, url: str) -> str:
        def _blocking_get() -> str:
            req = urllib.request.Request(
                url,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Encoding": "identity",
                },
            )
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                charset = resp.headers.get_content_charset() or "utf-8"
                return resp.read().decode(charset, errors="replace")

        try:
            return await asyncio.to_thread(_blocking_get)
        except (urllib.error.URLError, OSError) as e:
            raise FeedError(f"Feed request failed for {url}: {e}") from e

    async def coords(self, limit: int = 200) -> list[tuple[int, int]]:
        """Unique coordinates across pages.

        Stops at an empty page, a page with nothing new, max_pages or the limit.
        """
        if not self.base_url:
            raise FeedError("Inactive feed URL is not configured")
        seen: set[tuple[int, int]] = set()
        found: list[tuple[int, int]] = []
        for page in range(1, self.max_pages + 1):
            log.info("feed_page_fetching", page=page)
            pairs = parse_inactive_feed_coords(await self.fetch_text(page_url(self.base_url, page)))
            if not pairs:
                break
            new_on_page = 0
            for pair in pairs:
                if pair in seen:
                    continue
                seen.add(pair)
                found.append(pair)
                new_on_page += 1
                if len(found) >= limit:
                    return found
            if new_on_page == 0:
                break
        log.info("feed_coords_collected", count=len(found))
        return found
