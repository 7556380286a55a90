"""Tests for SMS/e-mail fan-out and the delivery log."""

from __future__ import annotations

import json

import httpx

from blocket_notifier.config import NotifyConfig
from blocket_notifier.database import queries
from blocket_notifier.database.models import NotifyTarget, Recipient
from blocket_notifier.notifier.dispatcher import NotificationDispatcher
from blocket_notifier.notifier.formatters import format_email_html, format_sms
from blocket_notifier.notifier.transports import BitlyShortener


class FakeSms:
    def __init__(self, fail_on: str | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_on = fail_on

    async def send_sms(self, to: str, text: str):
        if self.fail_on and self.fail_on in text:
            raise ConnectionError("gateway down")
        self.sent.append((to, text))
        return {"id": f"sms-{len(self.sent)}"}


class FakeEmail:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send_email(self, to: str, subject: str, html: str):
        self.sent.append((to, subject, html))
        return {"message_id": "mail-1"}


def _both_channels(recipient_id=None) -> Recipient:
    return Recipient(
        id=recipient_id,
        name="Anna",
        phone="0701234567",
        email="anna@example.se",
        notify_sms=True,
        notify_email=True,
    )


async def test_sms_per_listing_and_one_email_per_recipient(make_listing):
    listings = [make_listing(f"https://www.blocket.se/annons/{i}") for i in range(2)]
    no_phone = Recipient(name="Bo", notify_sms=True)
    sms, email = FakeSms(), FakeEmail()
    dispatcher = NotificationDispatcher(NotifyConfig(), sms=sms, email=email)

    deliveries = await dispatcher.dispatch([
        NotifyTarget(_both_channels(), listings),
        NotifyTarget(no_phone, listings),
    ])

    assert [d.channel for d in deliveries] == ["sms", "sms", "email"]
    assert all(d.ok for d in deliveries)
    assert len(sms.sent) == 2
    assert [to for to, _ in sms.sent] == ["0701234567", "0701234567"]
    assert len(email.sent) == 1
    assert email.sent[0][0] == "anna@example.se"
    assert listings[0].url in email.sent[0][2] and listings[1].url in email.sent[0][2]


async def test_opted_out_channels_are_skipped(make_listing):
    recipient = Recipient(name="Cia", phone="0709999999", email="cia@example.se")
    sms, email = FakeSms(), FakeEmail()
    dispatcher = NotificationDispatcher(NotifyConfig(), sms=sms, email=email)

    assert await dispatcher.dispatch([NotifyTarget(recipient, [make_listing()])]) == []
    assert sms.sent == [] and email.sent == []


async def test_disabled_channel_sends_nothing(make_listing):
    email = FakeEmail()
    dispatcher = NotificationDispatcher(NotifyConfig(), sms=None, email=email)

    deliveries = await dispatcher.dispatch([NotifyTarget(_both_channels(), [make_listing()])])

    assert [d.channel for d in deliveries] == ["email"]


async def test_failed_delivery_is_reported_and_others_still_sent(make_listing):
    good = make_listing("https://www.blocket.se/annons/good")
    bad = make_listing("https://www.blocket.se/annons/bad")
    sms = FakeSms(fail_on="/bad")
    dispatcher = NotificationDispatcher(NotifyConfig(wave_size=1), sms=sms)

    deliveries = await dispatcher.dispatch([NotifyTarget(_both_channels(), [bad, good])])

    assert [d.ok for d in deliveries] == [False, True]
    assert isinstance(deliveries[0].outcome.error, ConnectionError)
    assert len(sms.sent) == 1


async def test_successful_deliveries_are_logged(db, make_listing):
    good = make_listing("https://www.blocket.se/annons/good")
    bad = make_listing("https://www.blocket.se/annons/bad")
    recipient = await queries.insert_recipient(db, _both_channels())
    dispatcher = NotificationDispatcher(NotifyConfig(), sms=FakeSms(fail_on="/bad"), db=db)

    await dispatcher.dispatch([NotifyTarget(recipient, [good, bad])])

    assert await queries.get_notified_urls(db, recipient.id) == {good.url}


def test_sms_text_fits_one_segment_and_keeps_url(make_listing):
    listing = make_listing(title="X" * 300)

    text = format_sms(listing)

    assert len(text) <= 160
    assert text.endswith(listing.url)


def test_email_html_escapes_listing_text(make_listing):
    listing = make_listing(title="<script>alert(1)</script>", body="A & B")

    html = format_email_html(Recipient(name="Eva"), [listing])

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "A &amp; B" in html


def test_email_html_escapes_quotes_in_attributes(make_listing):
    listing = make_listing(
        'https://www.blocket.se/annons/1?q="x"',
        images=['https://img.example/a.jpg" onerror="alert(1)'],
    )

    html = format_email_html(Recipient(name="Eva"), [listing])

    assert 'href="https://www.blocket.se/annons/1?q=&quot;x&quot;"' in html
    assert 'src="https://img.example/a.jpg&quot; onerror=&quot;alert(1)"' in html


class FakeShortener:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    async def shorten(self, url: str) -> str:
        if self.fail:
            raise httpx.ConnectError("bitly down")
        return "https://bit.ly/" + url.rsplit("/", 1)[1]


async def test_sms_uses_shortened_link(make_listing):
    listing = make_listing("https://www.blocket.se/annons/123")
    sms = FakeSms()
    dispatcher = NotificationDispatcher(NotifyConfig(), sms=sms, shortener=FakeShortener())

    await dispatcher.dispatch([NotifyTarget(_both_channels(), [listing])])

    [(_, text)] = sms.sent
    assert text.endswith("\nhttps://bit.ly/123")
    assert listing.url not in text


async def test_failed_shortening_falls_back_to_full_url(make_listing):
    listing = make_listing("https://www.blocket.se/annons/123")
    sms = FakeSms()
    dispatcher = NotificationDispatcher(
        NotifyConfig(), sms=sms, shortener=FakeShortener(fail=True),
    )

    [delivery] = await dispatcher.dispatch([NotifyTarget(_both_channels(), [listing])])

    assert delivery.ok
    assert sms.sent[0][1].endswith(listing.url)


async def test_bitly_shortener_posts_long_url():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"link": "https://bit.ly/abc"})

    shortener = BitlyShortener(
        "bitly-token", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    short = await shortener.shorten("https://www.blocket.se/annons/123")

    assert short == "https://bit.ly/abc"
    assert seen[0].headers["Authorization"] == "Bearer bitly-token"
    assert json.loads(seen[0].content) == {"long_url": "https://www.blocket.se/annons/123"}
