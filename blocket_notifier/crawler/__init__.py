"""Blocket Notifier — Crawler Package.

Fetches and parses listings from blocket.se. Components:
  - BlocketClient: Async HTTP client raising FetchError on failures
  - IndexCrawler: Paginated index crawl producing ListingStubs
  - DetailScraper: Detail page fetch, parse and stub merge
"""

from blocket_notifier.crawler.client import BlocketClient, FetchError
from blocket_notifier.crawler.index_crawler import IndexCrawler
from blocket_notifier.crawler.detail_scraper import DetailScraper, PhoneRevealer

__all__ = [
    "BlocketClient",
    "FetchError",
    "IndexCrawler",
    "DetailScraper",
    "PhoneRevealer",
]
