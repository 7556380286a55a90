"""Blocket Notifier — Lead Forwarding.

Forwards newly found private-landlord listings to a partner lead API.
A listing qualifies when it is not a vacation home, is not posted by a
known rental agency, and carries a Swedish mobile number.

The integration has two switches:
  - No access token: the forwarder is a no-op and hands its input back
  - notify flag not set: dry-run, logging what would have been sent
"""

from __future__ import annotations

import re
from typing import Any, Optional, Sequence

import httpx

from blocket_notifier.config import LeadsConfig
from blocket_notifier.database.models import Listing
from blocket_notifier.utils.executor import Outcome, run_in_waves
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)


def should_forward(listing: Listing, config: LeadsConfig) -> bool:
    """Decide whether a listing is a lead worth sending.

    Args:
        listing: A stored listing.
        config: Lead filters (home type exclusion, owner denylist,
            mobile number pattern).
    """
    if listing.home_type and re.search(
        config.excluded_home_type_pattern, listing.home_type, re.IGNORECASE,
    ):
        return False

    if listing.owner and config.owner_denylist:
        denied = "|".join(re.escape(name) for name in config.owner_denylist)
        if re.search(denied, listing.owner, re.IGNORECASE):
            return False

    return bool(listing.phone and re.search(config.mobile_pattern, listing.phone))


def build_lead_payload(listing: Listing) -> dict[str, Any]:
    """JSON body for the lead API."""
    description = (listing.body or "").replace("\n\n", "\n")
    return {
        "phoneNumber": listing.phone,
        "rent": listing.rent_amount,
        "roomCount": listing.room_count,
        "squareMeters": listing.square_meters,
        "address": listing.address,
        "description": description,
        "shared": bool(listing.classification and listing.classification.shared),
        "homeType": listing.home_type,
        "imageUrls": list(listing.images),
    }


class LeadForwarder:
    """Posts qualifying listings to the lead API.

    Attributes:
        config: Leads configuration.
    """

    def __init__(
        self,
        config: LeadsConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(15.0))
        return self._client

    async def _post_lead(self, listing: Listing) -> Any:
        resp = await self._get_client().post(
            self.config.api_url,
            json=build_lead_payload(listing),
            headers={"Access-Token": self.config.access_token},
        )
        resp.raise_for_status()
        logger.debug("Lead forwarded: %s", listing.url)
        try:
            return resp.json()
        except ValueError:
            return resp.text

    async def forward(self, listings: Sequence[Listing]) -> list[Outcome[Any]]:
        """Post every qualifying listing to the lead API.

        Args:
            listings: Candidate listings, typically the ones created
                this run.

        Returns:
            One Outcome per posted lead; empty when forwarding is
            disabled, in dry-run mode, or nothing qualifies.
        """
        if not self.config.enabled:
            logger.info("Lead forwarding disabled (no access token)")
            return []

        leads = [l for l in listings if should_forward(l, self.config)]
        if not leads:
            logger.debug("No listings qualify as leads")
            return []

        if self.config.notify is not True:
            logger.info("Would have forwarded %d lead(s) (dry run)", len(leads))
            return []

        outcomes = await run_in_waves(
            [self._lead_task(l) for l in leads], self.config.wave_size, label="leads",
        )
        for lead, outcome in zip(leads, outcomes):
            if not outcome.ok:
                logger.warning("Lead forward failed for %s: %s", lead.url, outcome.error)

        logger.info(
            "Forwarded %d/%d lead(s)", sum(1 for o in outcomes if o.ok), len(leads),
        )
        return outcomes

    async def notify(
        self,
        listings: Sequence[Listing],
        resolve_results: bool = False,
    ) -> Sequence[Listing] | list[Outcome[Any]]:
        """Forward leads, handing back the input unless asked for results.

        Returns:
            ``forward``'s outcomes when ``resolve_results`` is set,
            otherwise the input listings unchanged.
        """
        outcomes = await self.forward(listings)
        return outcomes if resolve_results else listings

    def _lead_task(self, listing: Listing):
        return lambda: self._post_lead(listing)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
