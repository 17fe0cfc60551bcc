"""Tests for the inactive villages feed client."""

from __future__ import annotations

import asyncio

import pytest

from dorfbot.core.exceptions import FeedError
from dorfbot.game.inactive_feed import InactiveFeed, page_url


def _page(*pairs):
    return "".join(f'<td><small class="text-muted">({x}|{y})</small></td>' for x, y in pairs)


class StaticFeed(InactiveFeed):
    def __init__(self, pages, **kwargs):
        super().__init__("https://feed.test/inactive?server=s1", **kwargs)
        self.pages = pages
        self.fetched: list[str] = []

    async def fetch_text(self, url):
        self.fetched.append(url)
        return self.pages.get(url, "")


class TestPageUrl:
    def test_first_page_is_base(self):
        assert page_url("https://feed.test/inactive?server=s1", 1) == "https://feed.test/inactive?server=s1"

    def test_page_parameter_replaced(self):
        url = page_url("https://feed.test/inactive?server=s1&page=9", 3)
        assert url == "https://feed.test/inactive?server=s1&page=3"


class TestCoords:
    def test_collects_until_empty_page(self):
        base = "https://feed.test/inactive?server=s1"
        feed = StaticFeed({
            base: _page((1, 2), (3, 4)),
            page_url(base, 2): _page((3, 4), (5, 6)),
        })
        assert asyncio.run(feed.coords()) == [(1, 2), (3, 4), (5, 6)]
        assert len(feed.fetched) == 3

    def test_stops_on_repeated_page(self):
        base = "https://feed.test/inactive?server=s1"
        feed = StaticFeed({base: _page((1, 2)), page_url(base, 2): _page((1, 2)), page_url(base, 3): _page((9, 9))})
        assert asyncio.run(feed.coords()) == [(1, 2)]

    def test_limit(self):
        base = "https://feed.test/inactive?server=s1"
        feed = StaticFeed({base: _page((1, 2), (3, 4), (5, 6))})
        assert asyncio.run(feed.coords(limit=2)) == [(1, 2), (3, 4)]

    def test_max_pages(self):
        base = "https://feed.test/inactive?server=s1"
        pages = {page_url(base, n): _page((n, n)) for n in range(1, 6)}
        feed = StaticFeed(pages, max_pages=2)
        assert asyncio.run(feed.coords()) == [(1, 1), (2, 2)]

    def test_missing_url(self):
        with pytest.raises(FeedError):
            asyncio.run(InactiveFeed("").coords())
