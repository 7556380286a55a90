"""Blocket Notifier — Index Page Crawler.

Walks the paginated search index and turns each listing row into a
ListingStub. The site-side filter (price ceiling, category, region)
comes from the crawler config and is sent as query parameters; rows are
not re-filtered here.

Selectors use selectolax (HTMLParser), grouped below so markup changes
touch one place.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from blocket_notifier.config import CrawlerConfig
from blocket_notifier.crawler.client import BlocketClient
from blocket_notifier.database.models import ListingStub
from blocket_notifier.utils.executor import run_in_waves
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

# ── Index markup selectors ───────────────────────────────
ROW_SELECTOR = "article.item_row"
LINK_SELECTORS = ("a.item_link", "h1 a", "a[href]")
RENT_SELECTORS = (".monthly_rent", ".list_price")
SIZE_SELECTORS = (".size", ".rooms")
LOCATION_SELECTORS = (".address", ".location")
TIME_SELECTOR = "time[datetime]"


def _text(node: Optional[Node]) -> str:
    """Safely extract stripped text from a selectolax node."""
    if node is None:
        return ""
    return node.text(strip=True)


def _attr(node: Optional[Node], name: str) -> str:
    """Safely extract an attribute from a selectolax node."""
    if node is None:
        return ""
    val = node.attributes.get(name)
    return val if val else ""


def _first(row: Node, selectors: tuple[str, ...]) -> Optional[Node]:
    """Return the first node matched by any selector, in selector order."""
    for selector in selectors:
        node = row.css_first(selector)
        if node is not None:
            return node
    return None


def _parse_datetime(raw: str) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable listing timestamp: %r", raw)
        return None


def parse_index_page(html: str, base_url: str = "https://www.blocket.se") -> list[ListingStub]:
    """Parse one index page into stubs, in page order.

    Args:
        html: Raw index page HTML.
        base_url: Origin used to absolutize relative links.

    Returns:
        One ListingStub per listing row; an empty list marks the end of
        the index.
    """
    tree = HTMLParser(html)
    stubs: list[ListingStub] = []

    for idx, row in enumerate(tree.css(ROW_SELECTOR)):
        link = _first(row, LINK_SELECTORS)
        href = _attr(link, "href")
        if not href:
            logger.warning("Index row %d has no listing link, skipped", idx)
            continue

        stubs.append(ListingStub(
            url=urljoin(base_url + "/", href),
            title=_text(link) or None,
            rent=_text(_first(row, RENT_SELECTORS)) or None,
            size=_text(_first(row, SIZE_SELECTORS)) or None,
            location=_text(_first(row, LOCATION_SELECTORS)) or None,
            listed_date=_parse_datetime(_attr(row.css_first(TIME_SELECTOR), "datetime")),
        ))

    return stubs


class IndexCrawler:
    """Fetches index pages and collects listing stubs.

    Attributes:
        config: Crawler configuration (filter params, paging, wave size).
        client: HTTP client used for page requests.
    """

    def __init__(self, config: CrawlerConfig, client: BlocketClient) -> None:
        self.config = config
        self.client = client

    async def fetch_index_page(self, page: int) -> list[ListingStub]:
        """Fetch and parse a single index page.

        Raises:
            FetchError: If the page cannot be retrieved.
        """
        html = await self.client.get_index_page(page)
        stubs = parse_index_page(html, self.config.base_url)
        logger.debug("Index page %d: %d listing(s)", page, len(stubs))
        return stubs

    async def fetch_all_index_pages(self) -> list[ListingStub]:
        """Collect stubs from every index page.

        With ``max_pages`` set, pages 1..max_pages are fetched through
        the executor and failed pages are skipped. Without it the crawl
        goes wave by wave, skipping failed pages, and ends at the first
        empty page or the first page that only repeats listings already
        seen. A wave in which every page fails also ends the crawl.

        Returns:
            Stubs deduplicated by url, in page order.
        """
        seen: set[str] = set()
        stubs: list[ListingStub] = []

        def _collect(page_stubs: list[ListingStub]) -> int:
            added = 0
            for stub in page_stubs:
                if stub.url not in seen:
                    seen.add(stub.url)
                    stubs.append(stub)
                    added += 1
            return added

        if self.config.max_pages:
            pages = range(1, self.config.max_pages + 1)
            outcomes = await run_in_waves(
                [self._page_task(p) for p in pages],
                self.config.index_wave_size,
                label="index pages",
            )
            for page, outcome in zip(pages, outcomes):
                if not outcome.ok:
                    logger.warning("Index page %d failed: %s", page, outcome.error)
                    continue
                _collect(outcome.value)
        else:
            wave_size = max(1, self.config.index_wave_size)
            next_page = 1
            done = False
            while not done:
                pages = range(next_page, next_page + wave_size)
                outcomes = await run_in_waves(
                    [self._page_task(p) for p in pages],
                    wave_size,
                    label="index pages",
                )
                if not any(o.ok for o in outcomes):
                    logger.warning(
                        "Every index page %d-%d failed, ending crawl",
                        pages[0], pages[-1],
                    )
                    break
                for page, outcome in zip(pages, outcomes):
                    if not outcome.ok:
                        logger.warning("Index page %d failed: %s", page, outcome.error)
                        continue
                    if not outcome.value:
                        logger.debug("Index page %d is empty, end of index", page)
                        done = True
                        break
                    if _collect(outcome.value) == 0:
                        logger.debug("Index page %d repeats seen listings, end of index", page)
                        done = True
                        break
                next_page += wave_size

        logger.info("Index crawl: %d unique listing(s)", len(stubs))
        return stubs

    def _page_task(self, page: int):
        return lambda: self.fetch_index_page(page)
