"""Blocket Notifier — Notification Dispatcher.

Turns matched NotifyTargets into delivery tasks and fans them out
through the wave executor:
  - SMS: one message per (recipient, listing) for SMS opt-ins with a phone
  - E-mail: one digest per recipient for e-mail opt-ins with an address

A failed delivery is reported in its Delivery and never stops the
others. Successful deliveries go into the notification log so the same
listing is not sent to the same recipient again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

from blocket_notifier.config import NotifyConfig
from blocket_notifier.database import queries
from blocket_notifier.database.db import Database
from blocket_notifier.database.models import Listing, NotifyTarget, Recipient
from blocket_notifier.notifier.formatters import (
    format_email_html,
    format_email_subject,
    format_sms,
)
from blocket_notifier.notifier.transports import EmailTransport, SmsTransport, UrlShortener
from blocket_notifier.utils.executor import Outcome, run_in_waves
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

SMS = "sms"
EMAIL = "email"


@dataclass
class Delivery:
    """The result of one delivery task.

    Attributes:
        recipient: Who the message was for.
        channel: "sms" or "email".
        listings: Listings covered by the message.
        outcome: Provider response on success, the error on failure.
    """

    recipient: Recipient
    channel: str
    listings: list[Listing] = field(default_factory=list)
    outcome: Outcome[Any] = field(default_factory=Outcome)

    @property
    def ok(self) -> bool:
        return self.outcome.ok


@dataclass
class _Job:
    recipient: Recipient
    channel: str
    listings: list[Listing]
    send: Callable[[], Awaitable[Any]]


class NotificationDispatcher:
    """Delivers matched listings over SMS and e-mail.

    Attributes:
        config: Notify configuration (wave size).
        sms: SMS transport, or None when the channel is disabled.
        email: E-mail transport, or None when the channel is disabled.
        db: Database for the notification log; None skips logging.
        shortener: Optional link shortener for SMS texts.
    """

    def __init__(
        self,
        config: NotifyConfig,
        sms: Optional[SmsTransport] = None,
        email: Optional[EmailTransport] = None,
        db: Optional[Database] = None,
        shortener: Optional[UrlShortener] = None,
    ) -> None:
        self.config = config
        self.sms = sms
        self.email = email
        self.db = db
        self.shortener = shortener

        if sms is None:
            logger.info("SMS channel disabled (no gateway configured)")
        if email is None:
            logger.info("E-mail channel disabled (no gateway configured)")

    def build_jobs(self, targets: Sequence[NotifyTarget]) -> list[_Job]:
        """Expand targets into SMS jobs followed by e-mail jobs."""
        jobs: list[_Job] = []

        if self.sms is not None:
            for target in targets:
                recipient = target.recipient
                if not recipient.sms_eligible:
                    continue
                for listing in target.listings:
                    jobs.append(_Job(
                        recipient, SMS, [listing],
                        self._sms_sender(recipient.phone, listing),
                    ))

        if self.email is not None:
            for target in targets:
                recipient = target.recipient
                if not recipient.email_eligible or not target.listings:
                    continue
                jobs.append(_Job(
                    recipient, EMAIL, list(target.listings),
                    self._email_sender(
                        recipient.email,
                        format_email_subject(target.listings),
                        format_email_html(recipient, target.listings),
                    ),
                ))

        return jobs

    def _sms_sender(self, to: str, listing: Listing) -> Callable[[], Awaitable[Any]]:
        async def _send() -> Any:
            text = format_sms(listing, await self._short_link(listing.url))
            return await self.sms.send_sms(to, text)
        return _send

    async def _short_link(self, url: str) -> str:
        """Shortened url, or the url itself when shortening is off or fails."""
        if self.shortener is None:
            return url
        try:
            return await self.shortener.shorten(url)
        except Exception as e:
            logger.warning("Link shortening failed for %s: %s", url, e)
            return url

    def _email_sender(self, to: str, subject: str, html: str) -> Callable[[], Awaitable[Any]]:
        return lambda: self.email.send_email(to, subject, html)

    async def dispatch(self, targets: Sequence[NotifyTarget]) -> list[Delivery]:
        """Send every notification for the given targets.

        Args:
            targets: Recipients paired with their matched listings.

        Returns:
            One Delivery per task, SMS first, in target order.
        """
        jobs = self.build_jobs(targets)
        if not jobs:
            logger.debug("Nothing to dispatch")
            return []

        outcomes = await run_in_waves(
            [job.send for job in jobs], self.config.wave_size, label="notifications",
        )

        deliveries: list[Delivery] = []
        for job, outcome in zip(jobs, outcomes):
            delivery = Delivery(job.recipient, job.channel, job.listings, outcome)
            deliveries.append(delivery)
            if not outcome.ok:
                logger.warning(
                    "%s to %s failed: %s",
                    job.channel.upper(), job.recipient.name, outcome.error,
                )
                continue
            await self._log_delivery(delivery)

        sent = sum(1 for d in deliveries if d.ok)
        logger.info(
            "Dispatched %d notification(s): %d sent, %d failed",
            len(deliveries), sent, len(deliveries) - sent,
        )
        return deliveries

    async def _log_delivery(self, delivery: Delivery) -> None:
        if self.db is None or delivery.recipient.id is None:
            return
        try:
            await queries.record_notification(
                self.db,
                delivery.recipient.id,
                [l.url for l in delivery.listings],
                delivery.channel,
                _delivery_ref(delivery.outcome.value),
            )
        except Exception as e:
            logger.error("Failed to record %s delivery: %s", delivery.channel, e)


def _delivery_ref(response: Any) -> Optional[str]:
    """Provider message id, when the response carries one."""
    if isinstance(response, dict):
        for key in ("id", "message_id", "messageId"):
            if response.get(key) is not None:
                return str(response[key])
    return None
