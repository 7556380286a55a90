"""Blocket Notifier — Data Models.

Dataclasses for every entity the pipeline touches: index stubs,
durable listings with their derived classification, recipients with
their interest profiles, and the ephemeral notify pairings.

Persisted entities provide:
  - to_db_dict(): converts to a dict suitable for SQLite parameters
  - from_db_row(row): classmethod to reconstruct from a DB row dict
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Optional


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _first_int(pattern: str, text: Optional[str]) -> Optional[int]:
    """Pull the first integer captured by *pattern*, ignoring digit grouping."""
    if not text:
        return None
    match = re.search(pattern, text.replace("\xa0", " "), re.IGNORECASE)
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group(1))
    return int(digits) if digits else None


# ═══════════════════════════════════════════════════════════
# Listing Models
# ═══════════════════════════════════════════════════════════


@dataclass
class ListingStub:
    """A listing as seen on an index page, before detail enrichment.

    Attributes:
        url: Absolute URL of the detail page; the listing's identity.
        title: Headline shown in the index row.
        rent: Raw price text (e.g. "8 500 kr/mån").
        size: Raw size text (e.g. "2 rum, 45 m²").
        location: Area or municipality shown in the row.
        listed_date: When the ad was posted, if the row carried a timestamp.
    """

    url: str
    title: Optional[str] = None
    rent: Optional[str] = None
    size: Optional[str] = None
    location: Optional[str] = None
    listed_date: Optional[datetime] = None


@dataclass
class Classification:
    """Derived boolean tags computed from a listing's free text."""

    girls: bool = False
    commuters: bool = False
    shared: bool = False
    swap: bool = False
    no_kitchen: bool = False

    @classmethod
    def tag_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def active_tags(self) -> list[str]:
        return [name for name, value in self.to_dict().items() if value]

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Classification":
        data = data or {}
        return cls(**{name: bool(data.get(name, False)) for name in cls.tag_names()})


@dataclass
class Listing:
    """The durable rental listing.

    ``url`` identifies the record for its whole lifetime; re-crawls of
    the same url update this record rather than creating another.

    Attributes:
        url: Natural key.
        owner: Display name of the landlord.
        body: Whitespace-normalized ad text.
        images: Image URLs in page order.
        title: Ad headline.
        size: Raw size text.
        rent: Raw rent text.
        location: Area text from the index row.
        listed_date: When the ad was posted.
        address: Street address line, when the ad shows one.
        phone: Revealed phone number, when one could be fetched.
        home_type: Category label such as "Lägenhet".
        classification: Derived tags, None until classified.
        created_at: First time this url was stored.
        modified_at: Last write to the stored record.
        removed_at: When the source stopped showing the ad.
        active: False once the ad has been removed; never flips back.
        disabled: Set when the detail page reports the ad as gone.
        id: SQLite row id, None for records not yet stored.
    """

    url: str
    owner: Optional[str] = None
    body: Optional[str] = None
    images: list[str] = field(default_factory=list)
    title: Optional[str] = None
    size: Optional[str] = None
    rent: Optional[str] = None
    location: Optional[str] = None
    listed_date: Optional[datetime] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    home_type: Optional[str] = None
    classification: Optional[Classification] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    removed_at: Optional[datetime] = None
    active: bool = True
    disabled: bool = False
    id: Optional[int] = None

    # ── Derived numeric views ────────────────────────────

    @property
    def rent_amount(self) -> Optional[int]:
        """Monthly rent in SEK parsed from the raw text."""
        return _first_int(r"(\d[\d ]*)", self.rent)

    @property
    def room_count(self) -> Optional[int]:
        return _first_int(r"(\d+)\s*rum", self.size)

    @property
    def square_meters(self) -> Optional[int]:
        return _first_int(r"(\d+)\s*m(?:²|2|\b)", self.size)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for SQLite parameters.

        Returns:
            Column name → value, with images JSON-encoded, datetimes as
            ISO strings and classification flattened into cls_* columns.
        """
        classification = self.classification or Classification()
        row = {
            "url": self.url,
            "owner": self.owner,
            "body": self.body,
            "images": json.dumps(self.images, ensure_ascii=False),
            "title": self.title,
            "size": self.size,
            "rent": self.rent,
            "location": self.location,
            "listed_date": _to_iso(self.listed_date),
            "address": self.address,
            "phone": self.phone,
            "home_type": self.home_type,
            "classified": int(self.classification is not None),
            "created_at": _to_iso(self.created_at),
            "modified_at": _to_iso(self.modified_at),
            "removed_at": _to_iso(self.removed_at),
            "active": int(self.active),
            "disabled": int(self.disabled),
        }
        for tag, value in classification.to_dict().items():
            row[f"cls_{tag}"] = int(value)
        return row

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Listing":
        """Construct a Listing from a database row dictionary."""
        classification = None
        if row.get("classified"):
            classification = Classification.from_dict({
                tag: row.get(f"cls_{tag}", 0) for tag in Classification.tag_names()
            })
        return cls(
            id=row.get("id"),
            url=row["url"],
            owner=row.get("owner"),
            body=row.get("body"),
            images=json.loads(row["images"]) if row.get("images") else [],
            title=row.get("title"),
            size=row.get("size"),
            rent=row.get("rent"),
            location=row.get("location"),
            listed_date=_from_iso(row.get("listed_date")),
            address=row.get("address"),
            phone=row.get("phone"),
            home_type=row.get("home_type"),
            classification=classification,
            created_at=_from_iso(row.get("created_at")),
            modified_at=_from_iso(row.get("modified_at")),
            removed_at=_from_iso(row.get("removed_at")),
            active=bool(row.get("active", 1)),
            disabled=bool(row.get("disabled", 0)),
        )


# ═══════════════════════════════════════════════════════════
# Recipient Models
# ═══════════════════════════════════════════════════════════


@dataclass
class InterestProfile:
    """A recipient's matching criteria.

    Attributes:
        max_rent: Rent ceiling in SEK; None means any rent.
        location_pattern: Case-insensitive regex searched in the location.
        listed_after: Only listings posted at or after this instant.
        listed_before: Only listings posted at or before this instant.
        classification: Tag name → True (required), False (excluded).
            Tags left out are "don't care".
    """

    max_rent: Optional[int] = None
    location_pattern: Optional[str] = None
    listed_after: Optional[datetime] = None
    listed_before: Optional[datetime] = None
    classification: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_rent": self.max_rent,
            "location_pattern": self.location_pattern,
            "listed_after": _to_iso(self.listed_after),
            "listed_before": _to_iso(self.listed_before),
            "classification": dict(self.classification),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "InterestProfile":
        data = data or {}
        known = set(Classification.tag_names())
        prefs = {
            tag: bool(value)
            for tag, value in (data.get("classification") or {}).items()
            if tag in known and value is not None
        }
        return cls(
            max_rent=data.get("max_rent"),
            location_pattern=data.get("location_pattern"),
            listed_after=_from_iso(data.get("listed_after")),
            listed_before=_from_iso(data.get("listed_before")),
            classification=prefs,
        )


@dataclass
class Recipient:
    """Someone who wants to hear about matching listings.

    Attributes:
        name: Display name used in message greetings.
        email: E-mail address, if any.
        phone: Mobile number for SMS, if any.
        notify_sms: SMS opt-in.
        notify_email: E-mail opt-in.
        profile: Matching criteria.
        id: SQLite row id.
    """

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notify_sms: bool = False
    notify_email: bool = False
    profile: InterestProfile = field(default_factory=InterestProfile)
    id: Optional[int] = None

    @property
    def sms_eligible(self) -> bool:
        return self.notify_sms and bool(self.phone)

    @property
    def email_eligible(self) -> bool:
        return self.notify_email and bool(self.email)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "notify_sms": int(self.notify_sms),
            "notify_email": int(self.notify_email),
            "profile": json.dumps(self.profile.to_dict(), ensure_ascii=False),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Recipient":
        return cls(
            id=row.get("id"),
            name=row.get("name", ""),
            email=row.get("email"),
            phone=row.get("phone"),
            notify_sms=bool(row.get("notify_sms", 0)),
            notify_email=bool(row.get("notify_email", 0)),
            profile=InterestProfile.from_dict(
                json.loads(row["profile"]) if row.get("profile") else None
            ),
        )


@dataclass
class NotifyTarget:
    """One recipient paired with the listings that matched them.

    Exists only for the duration of one dispatch cycle.
    """

    recipient: Recipient
    listings: list[Listing] = field(default_factory=list)
