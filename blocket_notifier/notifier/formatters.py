"""Blocket Notifier — Message Formatters.

Builds the text of every outbound message: short SMS alerts, the HTML
e-mail digest a recipient gets per run, and the Telegram run summaries
for the operator.

HTML output escapes &, < and > in all listing-supplied text; attribute
values also escape double quotes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from blocket_notifier.database.models import Listing, Recipient

if TYPE_CHECKING:
    from blocket_notifier.pipeline.runner import RunReport

# ── Separator line for between sections ──────────────────
_SEP = "━━━━━━━━━━━━━━━━━━"

_SMS_MAX_LEN = 160

_TAG_LABELS = {
    "shared": "Delat boende",
    "girls": "Endast tjejer",
    "commuters": "För pendlare",
    "swap": "Byte",
    "no_kitchen": "Inget kök",
}


def _e(text: object) -> str:
    """Escape HTML special characters."""
    if not text:
        return ""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _attr(value: object) -> str:
    """Escape a value for a double-quoted HTML attribute."""
    return _e(value).replace('"', "&quot;")


def _link(text: str, url: str) -> str:
    """Build an HTML link with escaped text and url."""
    return f'<a href="{_attr(url)}">{_e(text)}</a>'


def _bold(text: str) -> str:
    return f"<b>{_e(text)}</b>"


def _headline(listing: Listing) -> str:
    return listing.title or listing.address or listing.url


def _facts(listing: Listing) -> list[str]:
    """Rent, size and location, whichever the listing has."""
    return [part for part in (listing.rent, listing.size, listing.location) if part]


def _tags(listing: Listing) -> list[str]:
    if listing.classification is None:
        return []
    return [_TAG_LABELS.get(t, t) for t in listing.classification.active_tags()]


# ═══════════════════════════════════════════════════════════
# Recipient Messages
# ═══════════════════════════════════════════════════════════


def format_sms(listing: Listing, link: Optional[str] = None) -> str:
    """One-listing SMS text, truncated to a single SMS segment.

    ``link`` replaces the listing url, typically with a shortened one.
    The link always survives truncation.
    """
    url = link or listing.url
    summary = ", ".join([_headline(listing), *_facts(listing)])
    room = _SMS_MAX_LEN - len(url) - 1
    if room <= 0:
        return url
    if len(summary) > room:
        summary = summary[: max(room - 1, 0)].rstrip() + "…"
    return f"{summary}\n{url}"


def format_email_subject(listings: Sequence[Listing]) -> str:
    count = len(listings)
    if count == 1:
        return f"Ny bostad: {_headline(listings[0])}"
    return f"{count} nya bostäder som matchar din bevakning"


def format_email_html(recipient: Recipient, listings: Sequence[Listing]) -> str:
    """HTML digest of every listing matched for one recipient.

    Args:
        recipient: Addressee, used in the greeting.
        listings: Matched listings, in match order.

    Returns:
        An HTML document body.
    """
    parts = [f"<p>Hej {_e(recipient.name)}!</p>"]
    parts.append(
        f"<p>{len(listings)} ny(a) annons(er) matchar din bevakning:</p>"
    )
    for listing in listings:
        parts.append("<hr>")
        parts.append(f"<h3>{_link(_headline(listing), listing.url)}</h3>")
        facts = _facts(listing)
        if facts:
            parts.append(f"<p>{' · '.join(_e(f) for f in facts)}</p>")
        tags = _tags(listing)
        if tags:
            parts.append(f"<p><i>{_e(', '.join(tags))}</i></p>")
        if listing.images:
            parts.append(
                f'<p><img src="{_attr(listing.images[0])}" '
                f'alt="" width="320"></p>'
            )
        if listing.body:
            excerpt = listing.body if len(listing.body) <= 400 else listing.body[:400].rstrip() + "…"
            parts.append(f"<p>{_e(excerpt).replace(chr(10), '<br>')}</p>")
    return "\n".join(parts)


# ═══════════════════════════════════════════════════════════
# Operator Messages (Telegram)
# ═══════════════════════════════════════════════════════════


def format_run_summary(report: "RunReport") -> str:
    """Telegram HTML summary of one pipeline run."""
    lines = [
        _bold("🏠 Blocket Notifier: körning klar"),
        _SEP,
        f"📄 Annonser i index: {report.stubs_found}",
        f"🆕 Nya: {report.created}",
        f"✏️ Uppdaterade: {report.updated}",
        f"🗑 Borttagna: {report.removed}",
        f"⚠️ Fel: {report.failed}",
        _SEP,
        f"📨 Notiser skickade: {report.notifications_sent}",
        f"❌ Notiser misslyckade: {report.notifications_failed}",
        f"🤝 Leads: {report.leads_forwarded}",
        f"⏱ {report.duration_seconds:.1f}s",
    ]
    failures = [item for item in report.items if item.error is not None]
    if failures:
        lines.append(_SEP)
        for item in failures[:10]:
            lines.append(f"• {_e(item.url)}: {_e(type(item.error).__name__)}")
        if len(failures) > 10:
            lines.append(f"… och {len(failures) - 10} till")
    return "\n".join(lines)


def format_fatal_error(error: BaseException) -> str:
    return "\n".join([
        _bold("🚨 Blocket Notifier: körningen avbröts"),
        _SEP,
        f"<code>{_e(type(error).__name__)}: {_e(str(error)[:500])}</code>",
    ])
