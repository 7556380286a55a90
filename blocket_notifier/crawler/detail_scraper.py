"""Blocket Notifier — Detail Page Scraper.

Fetches listing detail pages and extracts owner, body text, images,
address and home type, then merges the result onto the index stub.

Phone numbers are hidden behind a script-driven button on the site, so
they are delegated to a pluggable PhoneRevealer. When no revealer is
configured, or it fails, the phone simply stays unset.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from selectolax.parser import HTMLParser, Node

from blocket_notifier.crawler.client import BlocketClient
from blocket_notifier.database.models import Listing, ListingStub
from blocket_notifier.utils.executor import Outcome, run_in_waves
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_WAVE_SIZE = 50

# ── Detail markup selectors ──────────────────────────────
OWNER_SELECTOR = "h2.h4"
BODY_SELECTOR = ".object-text"
IMAGE_META_SELECTOR = 'meta[property="og:image"]'
ADDRESS_SELECTORS = (".address-block", "#address")
HOME_TYPE_LABEL = "bostadstyp"

# ── Page markers ─────────────────────────────────────────
OWNER_PREFIX_RE = re.compile(r"uthyres av:\s*", re.IGNORECASE)
NOT_FOUND_MARKER = "Hittade inte annonsen"
PHONE_BUTTON_RE = re.compile(r"phonenumber-btn|show-phonenumber", re.IGNORECASE)
MAP_DISCLAIMER_RE = re.compile(r"kartan visar|ungefärlig|exakt adress", re.IGNORECASE)


class PhoneRevealer(Protocol):
    """Looks up the phone number a detail page hides behind its button.

    Receives the mobile-site url of the listing (see mobile_url).
    """

    async def get_phone_number(self, detail_url: str) -> Optional[str]:
        ...


def mobile_url(url: str) -> str:
    """Rewrite a desktop listing URL to the mobile site.

    The mobile page exposes the phone number with a single click, so
    this is the url DetailScraper hands to its PhoneRevealer.
    """
    return re.sub(r"www(?=\.blocket\.se)", "m", url)


@dataclass
class ListingDetail:
    """Fields parsed from one detail page."""

    owner: Optional[str] = None
    body: Optional[str] = None
    images: list[str] = field(default_factory=list)
    address: Optional[str] = None
    home_type: Optional[str] = None
    disabled: bool = False
    has_phone: bool = False


# ═══════════════════════════════════════════════════════════
# Helper Functions
# ═══════════════════════════════════════════════════════════


def _text(node: Optional[Node]) -> str:
    """Safely extract stripped text from a selectolax node."""
    if node is None:
        return ""
    return node.text(strip=True)


def _normalize_body(node: Node) -> str:
    """Flatten the ad text while keeping paragraph breaks.

    Source line breaks and tabs become spaces, ``<br>`` tags become
    paragraph breaks, space runs collapse and blank-line runs collapse
    to a single blank line.
    """
    markup = re.sub(r"\r?\n|\r|\t", " ", node.html or "")
    markup = re.sub(r"<br\s*/?>", "\n\n", markup, flags=re.IGNORECASE)
    fragment = HTMLParser(markup)
    root = fragment.body or fragment.root
    text = root.text(strip=False) if root is not None else ""
    text = re.sub(r"[ \xa0]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n+", "\n\n", text)
    return text.strip()


def _parse_address(tree: HTMLParser) -> Optional[str]:
    for selector in ADDRESS_SELECTORS:
        container = tree.css_first(selector)
        if container is None:
            continue
        for line in container.text(separator="\n").splitlines():
            line = line.strip()
            if line and not MAP_DISCLAIMER_RE.search(line):
                return line
    return None


def _parse_home_type(tree: HTMLParser) -> Optional[str]:
    """Find the value paired with the home-type label in the facts list."""
    for label in tree.css("dt"):
        if HOME_TYPE_LABEL not in _text(label).lower():
            continue
        value = label.next
        while value is not None and value.tag != "dd":
            value = value.next
        raw = re.sub(r"\s+", "", _text(value))
        if raw:
            return raw[0].upper() + raw[1:]
    return None


def parse_detail_page(html: str) -> ListingDetail:
    """Parse a detail page.

    Missing elements leave their field unset; this never raises on
    unexpected markup.

    Args:
        html: Raw detail page HTML.

    Returns:
        A ListingDetail with whatever the page carried.
    """
    if NOT_FOUND_MARKER in html:
        return ListingDetail(disabled=True)

    tree = HTMLParser(html)

    owner = OWNER_PREFIX_RE.sub("", _text(tree.css_first(OWNER_SELECTOR))).strip()

    body_node = tree.css_first(BODY_SELECTOR)
    body = _normalize_body(body_node) if body_node is not None else ""

    images = [
        node.attributes.get("content")
        for node in tree.css(IMAGE_META_SELECTOR)
        if node.attributes.get("content")
    ]

    return ListingDetail(
        owner=owner or None,
        body=body or None,
        images=images,
        address=_parse_address(tree),
        home_type=_parse_home_type(tree),
        has_phone=bool(PHONE_BUTTON_RE.search(html)),
    )


def merge_stub(stub: ListingStub, detail: ListingDetail, phone: Optional[str] = None) -> Listing:
    """Combine index fields and detail fields into one Listing."""
    return Listing(
        url=stub.url,
        title=stub.title,
        rent=stub.rent,
        size=stub.size,
        location=stub.location,
        listed_date=stub.listed_date,
        owner=detail.owner,
        body=detail.body,
        images=list(detail.images),
        address=detail.address,
        home_type=detail.home_type,
        phone=phone,
        disabled=detail.disabled,
    )


# ═══════════════════════════════════════════════════════════
# Detail Scraper
# ═══════════════════════════════════════════════════════════


class DetailScraper:
    """Fetches and parses listing detail pages.

    Attributes:
        client: HTTP client used for page requests.
        phone_revealer: Optional collaborator that renders the phone number.
        wave_size: Concurrent detail fetches per wave.
    """

    def __init__(
        self,
        client: BlocketClient,
        phone_revealer: Optional[PhoneRevealer] = None,
        wave_size: int = DEFAULT_WAVE_SIZE,
    ) -> None:
        self.client = client
        self.phone_revealer = phone_revealer
        self.wave_size = wave_size

    async def fetch_detail(self, stub: ListingStub) -> Listing:
        """Fetch one detail page and merge it onto its stub.

        Args:
            stub: The index stub to enrich.

        Returns:
            The merged Listing.

        Raises:
            FetchError: If the detail page cannot be retrieved.
        """
        html = await self.client.get_detail_page(stub.url)
        detail = parse_detail_page(html)

        if detail.disabled:
            logger.info("Listing no longer available: %s", stub.url)

        phone = None
        if detail.has_phone and not detail.disabled:
            phone = await self._reveal_phone(stub.url)

        return merge_stub(stub, detail, phone)

    async def _reveal_phone(self, url: str) -> Optional[str]:
        if self.phone_revealer is None:
            return None
        try:
            return await self.phone_revealer.get_phone_number(mobile_url(url))
        except Exception as e:
            logger.warning("Phone lookup failed for %s: %s", url, e)
            return None

    async def fetch_many_details(self, stubs: Sequence[ListingStub]) -> list[Outcome[Listing]]:
        """Fetch every stub's detail page through the wave executor.

        Returns:
            One Outcome per stub, in input order.
        """
        outcomes = await run_in_waves(
            [self._detail_task(stub) for stub in stubs],
            self.wave_size,
            label="detail pages",
        )
        for stub, outcome in zip(stubs, outcomes):
            if not outcome.ok:
                logger.warning("Detail fetch failed for %s: %s", stub.url, outcome.error)
        return outcomes

    def _detail_task(self, stub: ListingStub):
        return lambda: self.fetch_detail(stub)
