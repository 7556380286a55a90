"""Tests for interest matching and the notification-log filter."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from blocket_notifier.database import queries
from blocket_notifier.database.models import Classification, InterestProfile, Recipient
from blocket_notifier.notifier.matcher import (
    list_recipients_interested_in,
    listing_matches,
    match_targets,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_empty_profile_matches_any_active_listing(make_listing):
    assert listing_matches(InterestProfile(), make_listing())


def test_inactive_or_disabled_listings_never_match(make_listing):
    profile = InterestProfile()

    assert not listing_matches(profile, make_listing(active=False))
    assert not listing_matches(profile, make_listing(disabled=True))


def test_rent_ceiling(make_listing):
    listing = make_listing(rent="7 500 kr/mån")

    assert listing_matches(InterestProfile(max_rent=7500), listing)
    assert not listing_matches(InterestProfile(max_rent=7000), listing)
    assert not listing_matches(InterestProfile(max_rent=7000), make_listing(rent="Enligt överenskommelse"))


def test_location_pattern_is_case_insensitive(make_listing):
    listing = make_listing(location="Stockholm, Södermalm")

    assert listing_matches(InterestProfile(location_pattern="södermalm"), listing)
    assert not listing_matches(InterestProfile(location_pattern="göteborg"), listing)
    assert not listing_matches(InterestProfile(location_pattern="stockholm"), make_listing(location=None))


def test_listed_date_window(make_listing):
    listing = make_listing(listed_date=T0)

    assert listing_matches(InterestProfile(listed_after=T0 - timedelta(days=1)), listing)
    assert not listing_matches(InterestProfile(listed_after=T0 + timedelta(hours=1)), listing)
    assert not listing_matches(InterestProfile(listed_before=T0 - timedelta(hours=1)), listing)
    assert not listing_matches(InterestProfile(listed_after=T0), make_listing(listed_date=None))


def test_classification_preferences(make_listing):
    shared = make_listing(classification=Classification(shared=True))
    private = make_listing(classification=Classification(shared=False))

    only_shared = InterestProfile(classification={"shared": True})
    never_shared = InterestProfile(classification={"shared": False})

    assert listing_matches(only_shared, shared)
    assert not listing_matches(only_shared, private)
    assert listing_matches(never_shared, private)
    assert not listing_matches(never_shared, shared)
    # Tags left out of the profile are ignored
    assert listing_matches(InterestProfile(classification={"girls": False}), shared)


def test_match_targets_drops_recipients_without_matches(make_listing):
    cheap = make_listing("https://www.blocket.se/annons/cheap", rent="5 000 kr/mån")
    pricey = make_listing("https://www.blocket.se/annons/pricey", rent="12 000 kr/mån")
    frugal = Recipient(name="Frugal", profile=InterestProfile(max_rent=6000))
    picky = Recipient(name="Picky", profile=InterestProfile(location_pattern="kiruna"))

    targets = match_targets([frugal, picky], [cheap, pricey])

    assert len(targets) == 1
    assert targets[0].recipient is frugal
    assert [l.url for l in targets[0].listings] == [cheap.url]


async def test_already_notified_listings_are_filtered(db, make_listing):
    first = make_listing("https://www.blocket.se/annons/1")
    second = make_listing("https://www.blocket.se/annons/2")
    recipient = await queries.insert_recipient(db, Recipient(name="Eva", phone="0701111111", notify_sms=True))
    await queries.record_notification(db, recipient.id, [first.url], "sms")

    targets = await list_recipients_interested_in(db, [first, second])

    assert len(targets) == 1
    assert [l.url for l in targets[0].listings] == [second.url]


async def test_fully_notified_recipient_is_dropped(db, make_listing):
    listing = make_listing()
    recipient = await queries.insert_recipient(db, Recipient(name="Eva"))
    await queries.record_notification(db, recipient.id, [listing.url], "email")

    assert await list_recipients_interested_in(db, [listing]) == []


async def test_recipient_profile_roundtrips_through_store(db):
    profile = InterestProfile(
        max_rent=9000,
        location_pattern="solna",
        listed_after=T0,
        classification={"shared": False, "girls": True},
    )
    await queries.insert_recipient(db, Recipient(name="Ola", email="ola@example.se", notify_email=True, profile=profile))

    [stored] = await queries.list_recipients(db)

    assert stored.profile == profile
    assert stored.email_eligible and not stored.sms_eligible
