"""Blocket Notifier — Listing Classifier.

Derives boolean tags from a listing's free text using a declarative
table of case-insensitive patterns. Ads are mostly Swedish with the
occasional English one, so rules carry both.

Classification is total and idempotent: missing text yields all-false
tags, and classifying an already classified listing gives the same
result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Sequence, overload

from blocket_notifier.database.models import Classification, Listing
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClassificationRule:
    """One tag and the patterns that set it.

    Attributes:
        tag: Classification field the rule sets.
        patterns: Compiled patterns; any match sets the tag.
        fields: Listing attributes searched, in order.
    """

    tag: str
    patterns: tuple[re.Pattern[str], ...]
    fields: tuple[str, ...] = ("body", "title")

    def matches(self, listing: Listing) -> bool:
        for name in self.fields:
            text = getattr(listing, name, None)
            if not text:
                continue
            if any(p.search(text) for p in self.patterns):
                return True
        return False


def _rx(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# ═══════════════════════════════════════════════════════════
# Rule Table
# ═══════════════════════════════════════════════════════════

RULES: tuple[ClassificationRule, ...] = (
    # Home swap offers: "byte", "bytes krav", "byteskrav"
    ClassificationRule("swap", _rx(
        r"byte|bytes ?krav",
    )),
    ClassificationRule("shared", _rx(
        # Explicit sharing: "dela", "del i", "delas med", "uthyrningsdel"
        r"dela|del (i|med)|delas med|dela en|uthyrningsdel",
        # Lodger arrangements
        r"inneboende",
        # "rum i/till ..." and "rum ... hyr" phrasings
        r"rum.{1,15}(i|till)",
        r"rum.{1,20}(?=hyr)",
        # "hyr ... möblerat rum", "hyr ut ett rum"
        r"hyr.{1,15}(?=möblerat.{1,10}(?=rum))",
        r"hyr.{1,20}(?=rum)",
        # English ads
        r"room|mate|share (an|a)|a room|room.{1,40}for rent|rent.{1,15}room| room is|furnished room",
    )),
    # Women-only tenancy
    ClassificationRule("girls", _rx(
        r"tjej|kvinn|flick",
        r"girl|wom(a|e)n",
    )),
    # Weekly commuters
    ClassificationRule("commuters", _rx(
        r"pendlare|veckopendlare",
    )),
    ClassificationRule("no_kitchen", _rx(
        r"kök saknas|inget kök|ej kök",
        # "ingen tillgång till kök", "ej tillgång till kök"
        r" (ej|ingen).{1,15}tillgång.{1,15}kök",
        r"no( | access.{1,5})kitchen",
    )),
)


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def compute_classification(listing: Listing) -> Classification:
    """Evaluate every rule against a listing's text."""
    return Classification(**{rule.tag: rule.matches(listing) for rule in RULES})


def classify_listing(listing: Listing) -> Listing:
    """Return a copy of the listing with its classification filled in."""
    classification = compute_classification(listing)
    logger.debug(
        "Classified %s: %s", listing.url,
        ", ".join(classification.active_tags()) or "no tags",
    )
    return replace(listing, classification=classification)


@overload
def classify(listings: Listing) -> Listing: ...
@overload
def classify(listings: Sequence[Listing]) -> list[Listing]: ...


def classify(listings):
    """Classify one listing or a sequence, mirroring the input's shape.

    Args:
        listings: A single Listing or a sequence of them.

    Returns:
        A classified Listing for single input, a list for sequence input.
    """
    if isinstance(listings, Listing):
        return classify_listing(listings)
    return [classify_listing(listing) for listing in listings]
