# app/core/vendor_resolver.py

"""
Vendor identity matching.

Tier 1: alias rules (system, user-defined or learned) that map raw
statement text to a canonical vendor name.
Tier 2: token overlap between the invoice vendor / line description and
the transaction description, with alias canonical names folded into the
transaction's tokens first.

A vendor mismatch never costs points; it only misses the bonus.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from app.config import get_settings
from app.core.normalizers import parse_merchant_name
from app.models import (
    VendorAlias,
    VendorAliasCreate,
    VendorDisplayInfo,
    VendorMatch,
)
from app.repository import Repository

settings = get_settings()
logger = logging.getLogger(__name__)

VENDOR_WEIGHT = 25

# Corporate suffixes and document noise, English and Hebrew
EXCLUDED_VENDOR_WORDS = frozenset({
    'inc', 'ltd', 'llc', 'corp', 'corporation', 'company', 'co',
    'gmbh', 'ag', 'sa', 'pty', 'usa', 'us', 'inc.', 'ltd.',
    'limited', 'plc', 'lp', 'llp',
    'בעמ', 'בע"מ',
    'מעמ', 'עוסק', 'מורשה', 'חשבונית', 'קבלה', 'תשלום',
    'payment', 'invoice', 'receipt', 'transaction', 'purchase',
    'service', 'services', 'product', 'products', 'order',
    'the', 'and', 'for', 'from',
})

LEARNED_ALIAS_PRIORITY = 50


class VendorAliasLimitError(Exception):
    """The owner already has the maximum number of aliases."""


# ============================================
# System defaults
# ============================================

def _system(pattern: str, canonical: str, match_type: str = "contains") -> VendorAlias:
    return VendorAlias(
        alias_pattern=pattern,
        canonical_name=canonical,
        match_type=match_type,
        source="system",
        priority=100,
    )


DEFAULT_VENDOR_ALIASES: list[VendorAlias] = [
    _system("FACEBK", "Meta (Facebook)"),
    _system("FB*", "Meta (Facebook)", "starts_with"),
    _system("META PLATFORMS", "Meta (Facebook)"),
    _system("GOOG", "Google"),
    _system("GOOGLE*", "Google", "starts_with"),
    _system("GCP", "Google Cloud Platform", "exact"),
    _system("AMZN", "Amazon"),
    _system("AMAZON", "Amazon"),
    _system("AWS", "Amazon Web Services"),
    _system("PRIME VIDEO", "Amazon Prime Video"),
    _system("MSFT", "Microsoft"),
    _system("MICROSOFT*", "Microsoft", "starts_with"),
    _system("AZURE", "Microsoft Azure"),
    _system("APPLE.COM", "Apple"),
    _system("APPLE STORE", "Apple"),
    _system("ITUNES", "Apple"),
    _system("UBER* TRIP", "Uber", "starts_with"),
    _system("UBER* EATS", "Uber Eats", "starts_with"),
    _system("UBEREATS", "Uber Eats"),
    _system("NETFLIX.COM", "Netflix"),
    _system("NETFLIX", "Netflix", "exact"),
    _system("SPOTIFY", "Spotify"),
    _system("PAYPAL", "PayPal"),
    _system("PP*", "PayPal", "starts_with"),
    _system("STRIPE", "Stripe"),
    _system("SHOPIFY", "Shopify"),
    _system("DROPBOX", "Dropbox"),
    _system("SLACK", "Slack"),
    _system("ZOOM.US", "Zoom"),
    _system("ZOOM VIDEO", "Zoom"),
    _system("ADOBE", "Adobe"),
    _system("LINKEDIN", "LinkedIn"),
    _system("TWITTER", "X (Twitter)"),
    _system("X.COM", "X (Twitter)"),
]


# ============================================
# Alias resolution
# ============================================

def matches_alias_pattern(description: Optional[str], alias: VendorAlias) -> bool:
    """Case-insensitive pattern test according to the alias match type."""
    if not description or not alias.alias_pattern:
        return False

    text = description.upper().strip()
    pattern = alias.alias_pattern.upper().strip()
    if not pattern:
        return False

    if alias.match_type == "exact":
        return text == pattern
    if alias.match_type == "starts_with":
        return text.startswith(pattern)
    if alias.match_type == "ends_with":
        return text.endswith(pattern)
    return pattern in text


def sort_aliases_by_priority(aliases: list[VendorAlias]) -> list[VendorAlias]:
    return sorted(aliases, key=lambda a: a.priority or 0, reverse=True)


def find_matching_aliases(description: Optional[str], aliases: list[VendorAlias]) -> list[VendorAlias]:
    """Every alias whose pattern matches, highest priority first."""
    if not description:
        return []
    return [a for a in sort_aliases_by_priority(aliases) if matches_alias_pattern(description, a)]


def resolve_vendor_name(description: Optional[str], aliases: list[VendorAlias]) -> Optional[str]:
    """Canonical name of the highest-priority matching alias."""
    matches = find_matching_aliases(description, aliases)
    return matches[0].canonical_name if matches else None


def resolve_vendor_name_with_fallback(
    description: Optional[str],
    aliases: list[VendorAlias],
    fallback_parser: Optional[Callable[[str], str]] = None,
) -> str:
    """Like resolve_vendor_name, but falls back to parsing the raw text."""
    if not description:
        return ""
    resolved = resolve_vendor_name(description, aliases)
    if resolved:
        return resolved
    return (fallback_parser or parse_merchant_name)(description)


def get_vendor_display_info(description: Optional[str], aliases: list[VendorAlias]) -> VendorDisplayInfo:
    matches = find_matching_aliases(description, aliases)
    if matches:
        return VendorDisplayInfo(
            display_name=matches[0].canonical_name,
            is_resolved=True,
            matched_alias=matches[0],
        )
    return VendorDisplayInfo(
        display_name=parse_merchant_name(description) if description else "",
        is_resolved=False,
    )


# ============================================
# Vendor scoring
# ============================================

def tokenize(text: Optional[str]) -> set[str]:
    """Lowercase words longer than 2 chars, Hebrew kept, noise words dropped."""
    if not text:
        return set()
    cleaned = re.sub(r'[^\w\s\u0590-\u05FF]', ' ', text.lower())
    return {t for t in cleaned.split() if len(t) > 2 and t not in EXCLUDED_VENDOR_WORDS}


def find_alias_match(
    vendor_name: str,
    transaction_description: str,
    aliases: list[VendorAlias],
) -> Optional[VendorAlias]:
    """First alias (by priority) matching the transaction whose canonical name overlaps the vendor."""
    vendor = vendor_name.lower().strip()
    if not vendor:
        return None

    for alias in find_matching_aliases(transaction_description, aliases):
        canonical = alias.canonical_name.lower()
        if canonical in vendor or vendor in canonical:
            return alias
    return None


def count_word_matches(
    vendor_name: str,
    line_description: str,
    transaction_description: str,
    aliases: list[VendorAlias],
) -> tuple[int, int]:
    """(exact, fuzzy) token matches between vendor-side and expanded transaction tokens."""
    vendor_tokens = tokenize(vendor_name) | tokenize(line_description)

    tx_tokens = tokenize(transaction_description)
    for alias in aliases:
        if matches_alias_pattern(transaction_description, alias):
            tx_tokens |= tokenize(alias.canonical_name)

    exact = 0
    fuzzy = 0
    for v in vendor_tokens:
        if v in tx_tokens:
            exact += 1
            continue
        if any(len(v) >= 3 and len(t) >= 3 and (v in t or t in v) for t in tx_tokens):
            fuzzy += 1

    return exact, fuzzy


@dataclass(frozen=True)
class WordRule:
    """One row of the tier-2 table. Rules are tried top to bottom."""

    applies: Callable[[int, int], bool]
    points: int
    confidence: int
    suggest_alias: bool


WORD_RULES: tuple[WordRule, ...] = (
    WordRule(lambda exact, fuzzy: exact >= 2, VENDOR_WEIGHT, 90, False),
    WordRule(lambda exact, fuzzy: exact == 1, 20, 80, True),
    WordRule(lambda exact, fuzzy: fuzzy >= 1, 18, 70, True),
)


def match_vendor(
    vendor_name: Optional[str],
    line_description: Optional[str],
    transaction_description: Optional[str],
    aliases: list[VendorAlias],
) -> VendorMatch:
    """Score vendor identity (0-25)."""
    vendor_name = vendor_name or ""
    line_description = line_description or ""
    transaction_description = transaction_description or ""

    if (not vendor_name and not line_description) or not transaction_description:
        return VendorMatch()

    alias = find_alias_match(vendor_name or line_description, transaction_description, aliases)
    if alias:
        return VendorMatch(
            points=VENDOR_WEIGHT,
            method="user_alias",
            confidence=95,
            matched_alias=alias,
        )

    exact, fuzzy = count_word_matches(vendor_name, line_description, transaction_description, aliases)
    for rule in WORD_RULES:
        if rule.applies(exact, fuzzy):
            return VendorMatch(
                points=rule.points,
                method="fuzzy",
                confidence=rule.confidence,
                suggest_alias=rule.suggest_alias,
            )

    return VendorMatch(suggest_alias=True)


# ============================================
# Alias management
# ============================================

async def add_vendor_alias(repo: Repository, owner_id: str, alias: VendorAliasCreate) -> VendorAlias:
    """Create a user alias, enforcing the per-owner limit."""
    existing = await repo.get_vendor_aliases(owner_id)
    if len(existing) >= settings.vendor_alias_limit:
        raise VendorAliasLimitError(
            f"Alias limit reached ({settings.vendor_alias_limit})"
        )

    return await repo.create_vendor_alias(VendorAlias(
        user_id=owner_id,
        alias_pattern=alias.alias_pattern.strip(),
        canonical_name=alias.canonical_name.strip(),
        match_type=alias.match_type,
        priority=alias.priority,
        source="user",
    ))


async def seed_default_aliases(repo: Repository, owner_id: str) -> int:
    """Add the system aliases the owner doesn't have yet. Returns how many were added."""
    existing = {a.alias_pattern.upper() for a in await repo.get_vendor_aliases(owner_id)}
    added = 0
    for default in DEFAULT_VENDOR_ALIASES:
        if default.alias_pattern.upper() in existing:
            continue
        await repo.create_vendor_alias(default.model_copy(update={"user_id": owner_id}))
        added += 1
    return added


async def learn_vendor_alias(
    repo: Repository,
    owner_id: str,
    transaction_description: str,
    canonical_name: str,
) -> Optional[VendorAlias]:
    """
    Remember that a statement merchant belongs to ``canonical_name``.

    Called after a manual link the scorer couldn't explain by vendor. Skips
    descriptions an existing alias already resolves, unusable patterns and
    owners at the alias limit.
    """
    description = (transaction_description or "").strip()
    pattern = parse_merchant_name(description).strip()
    if pattern.upper() not in description.upper():
        # Abbreviation was expanded; the raw statement text is what must match
        pattern = description.split()[0] if description else ""
    if len(pattern) < 3 or not canonical_name.strip():
        return None

    aliases = await repo.get_vendor_aliases(owner_id)
    if resolve_vendor_name(transaction_description, aliases):
        return None
    if len(aliases) >= settings.vendor_alias_limit:
        logger.info(f"Not learning alias for {owner_id}: alias limit reached")
        return None

    alias = await repo.create_vendor_alias(VendorAlias(
        user_id=owner_id,
        alias_pattern=pattern.upper(),
        canonical_name=canonical_name.strip(),
        match_type="contains",
        source="learned",
        priority=LEARNED_ALIAS_PRIORITY,
    ))
    logger.info(f"Learned vendor alias {alias.alias_pattern!r} -> {alias.canonical_name!r}")
    return alias
