"""Tests for index parsing, pagination, and the HTTP client."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import httpx
import pytest

from blocket_notifier.crawler.client import BlocketClient, FetchError
from blocket_notifier.crawler.index_crawler import IndexCrawler, parse_index_page


def _row(slug: str, rent: str = "7 000 kr/mån", when: str = "2024-03-01T10:00:00Z") -> str:
    return f"""
    <article class="item_row">
      <a class="item_link" href="/annons/{slug}">Lägenhet {slug}</a>
      <span class="monthly_rent">{rent}</span>
      <span class="size">2 rum, 45 m²</span>
      <span class="address">Stockholm</span>
      <time datetime="{when}">1 mars</time>
    </article>
    """


def _page(*slugs: str) -> str:
    return "<html><body>" + "".join(_row(s) for s in slugs) + "</body></html>"


EMPTY_PAGE = "<html><body><p>Inga annonser</p></body></html>"


# ═══════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════


def test_parse_index_page_builds_absolute_stubs():
    stubs = parse_index_page(_page("a", "b"), "https://www.blocket.se")

    assert [s.url for s in stubs] == [
        "https://www.blocket.se/annons/a",
        "https://www.blocket.se/annons/b",
    ]
    first = stubs[0]
    assert first.title == "Lägenhet a"
    assert first.rent == "7 000 kr/mån"
    assert first.size == "2 rum, 45 m²"
    assert first.location == "Stockholm"
    assert first.listed_date == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_rows_without_link_are_skipped():
    html = (
        "<html><body>"
        '<article class="item_row"><span class="monthly_rent">5 000 kr</span></article>'
        + _row("c")
        + "</body></html>"
    )

    stubs = parse_index_page(html)

    assert [s.url for s in stubs] == ["https://www.blocket.se/annons/c"]


def test_empty_page_yields_no_stubs():
    assert parse_index_page(EMPTY_PAGE) == []


# ═══════════════════════════════════════════════════════════
# Pagination
# ═══════════════════════════════════════════════════════════


class FakeIndexClient:
    def __init__(self, pages: dict[int, str], failing: set[int] = frozenset()) -> None:
        self.pages = pages
        self.failing = failing
        self.requested: list[int] = []

    async def get_index_page(self, page: int = 1) -> str:
        self.requested.append(page)
        if page in self.failing:
            raise FetchError(f"index?o={page}", "HTTP 503", status_code=503)
        return self.pages.get(page, EMPTY_PAGE)


async def test_unbounded_crawl_stops_at_first_empty_page(crawler_config):
    client = FakeIndexClient({1: _page("a", "b"), 2: _page("c"), 4: _page("d")})
    crawler = IndexCrawler(crawler_config, client)

    stubs = await crawler.fetch_all_index_pages()

    assert [s.url.rsplit("/", 1)[1] for s in stubs] == ["a", "b", "c"]
    assert max(client.requested) == 4  # one wave of two past the data, then stop


async def test_unbounded_crawl_skips_failed_page(crawler_config):
    client = FakeIndexClient(
        {1: _page("a"), 2: _page("b"), 3: _page("c"), 4: _page("d")}, failing={2},
    )
    crawler = IndexCrawler(crawler_config, client)

    stubs = await crawler.fetch_all_index_pages()

    assert [s.url.rsplit("/", 1)[1] for s in stubs] == ["a", "c", "d"]
    assert 5 in client.requested


async def test_unbounded_crawl_stops_when_whole_wave_fails(crawler_config):
    client = FakeIndexClient({1: _page("a"), 2: _page("b"), 5: _page("e")}, failing={3, 4})
    crawler = IndexCrawler(crawler_config, client)

    stubs = await crawler.fetch_all_index_pages()

    assert [s.url.rsplit("/", 1)[1] for s in stubs] == ["a", "b"]
    assert sorted(client.requested) == [1, 2, 3, 4]


async def test_bounded_crawl_skips_failed_pages_and_dedupes(crawler_config):
    config = replace(crawler_config, max_pages=3)
    client = FakeIndexClient(
        {1: _page("a", "b"), 2: _page("x"), 3: _page("b", "c")}, failing={2},
    )
    crawler = IndexCrawler(config, client)

    stubs = await crawler.fetch_all_index_pages()

    assert [s.url.rsplit("/", 1)[1] for s in stubs] == ["a", "b", "c"]
    assert sorted(client.requested) == [1, 2, 3]


# ═══════════════════════════════════════════════════════════
# HTTP client
# ═══════════════════════════════════════════════════════════


async def test_client_sends_site_filter_and_page(crawler_config):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=_page("a"))

    async with BlocketClient(crawler_config, transport=httpx.MockTransport(handler)) as client:
        html = await client.get_index_page(3)

    assert "annons/a" in html
    params = seen[0].url.params
    assert params["o"] == "3"
    assert params["mre"] == "8000"
    assert seen[0].headers["User-Agent"] == "pytest-agent/1.0"
    assert client.total_requests == 1


async def test_client_raises_fetch_error_on_http_error(crawler_config):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))

    async with BlocketClient(crawler_config, transport=transport) as client:
        with pytest.raises(FetchError) as exc_info:
            await client.get_detail_page("https://www.blocket.se/annons/a")

    assert exc_info.value.status_code == 500


async def test_client_raises_fetch_error_on_transport_error(crawler_config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with BlocketClient(crawler_config, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(FetchError) as exc_info:
            await client.get_detail_page("https://www.blocket.se/annons/a")

    assert exc_info.value.status_code is None
