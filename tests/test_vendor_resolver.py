# tests/test_vendor_resolver.py

"""
Tests for vendor aliases and vendor scoring.
"""

import pytest

from app.core import vendor_resolver
from app.core.vendor_resolver import (
    DEFAULT_VENDOR_ALIASES,
    LEARNED_ALIAS_PRIORITY,
    VendorAliasLimitError,
    add_vendor_alias,
    get_vendor_display_info,
    learn_vendor_alias,
    match_vendor,
    matches_alias_pattern,
    resolve_vendor_name,
    seed_default_aliases,
)
from app.models import VendorAlias, VendorAliasCreate
from tests.fakes import OWNER, FakeRepository


def alias(pattern, canonical, match_type="contains", priority=0) -> VendorAlias:
    return VendorAlias(
        alias_pattern=pattern,
        canonical_name=canonical,
        match_type=match_type,
        priority=priority,
    )


# ============================================
# Alias resolution
# ============================================

class TestAliasPatterns:

    @pytest.mark.parametrize("match_type,description,expected", [
        ("contains", "payment to facebk ads", True),
        ("exact", "FACEBK", True),
        ("exact", "FACEBK ADS", False),
        ("starts_with", "FACEBK *123", True),
        ("starts_with", "PAY FACEBK", False),
        ("ends_with", "PAY FACEBK", True),
    ])
    def test_match_types(self, match_type, description, expected):
        assert matches_alias_pattern(description, alias("facebk", "Meta", match_type)) is expected

    def test_empty_description(self):
        assert not matches_alias_pattern("", alias("X", "Y"))
        assert not matches_alias_pattern(None, alias("X", "Y"))

    def test_highest_priority_wins(self):
        aliases = [
            alias("GOOG", "Google", priority=10),
            alias("GOOGLE CLOUD", "Google Cloud Platform", priority=90),
        ]

        assert resolve_vendor_name("GOOGLE CLOUD EMEA", aliases) == "Google Cloud Platform"

    def test_no_match(self):
        assert resolve_vendor_name("CORNER SHOP", DEFAULT_VENDOR_ALIASES) is None

    def test_display_info(self):
        resolved = get_vendor_display_info("FACEBK *94ED4BD5F2", DEFAULT_VENDOR_ALIASES)
        unresolved = get_vendor_display_info("GREENHOUSE CAFE  TLV", [])

        assert resolved.display_name == "Meta (Facebook)"
        assert resolved.is_resolved
        assert unresolved.display_name == "GREENHOUSE CAFE"
        assert not unresolved.is_resolved


# ============================================
# Vendor scoring
# ============================================

class TestMatchVendor:

    def test_alias_match(self):
        result = match_vendor("Meta", None, "FACEBK *ADS", DEFAULT_VENDOR_ALIASES)

        assert result.points == 25
        assert result.method == "user_alias"
        assert result.matched_alias.canonical_name == "Meta (Facebook)"

    def test_two_exact_words(self):
        result = match_vendor("Acme Software Ltd", None, "ACME SOFTWARE 0042", [])

        assert result.points == 25
        assert result.method == "fuzzy"
        assert result.confidence == 90
        assert not result.suggest_alias

    def test_one_exact_word(self):
        result = match_vendor("Cloudflare Inc", None, "CLOUDFLARE.COM", [])

        assert result.points == 20
        assert result.suggest_alias

    def test_substring_word(self):
        result = match_vendor("DigitalOcean", None, "DIGITALOCEANCOM 123", [])

        assert result.points == 18
        assert result.confidence == 70

    def test_line_description_counts(self):
        result = match_vendor(None, "Figma professional plan", "FIGMA MONTHLY", [])

        assert result.points == 20

    def test_alias_canonical_tokens_are_folded_in(self):
        aliases = [alias("AMZN MKTP", "Amazon Marketplace")]

        result = match_vendor("Marketplace Amazon", None, "AMZN MKTP US*2K1", aliases)

        assert result.method == "fuzzy"
        assert result.points == 25

    def test_noise_words_never_match(self):
        result = match_vendor("Payment Services Ltd", None, "PAYMENT SERVICES", [])

        assert result.points == 0
        assert result.suggest_alias

    def test_missing_sides(self):
        assert match_vendor(None, None, "ACME", []).points == 0
        assert match_vendor("Acme", None, "", []).points == 0
        assert not match_vendor("Acme", None, "", []).suggest_alias


# ============================================
# Alias management
# ============================================

class TestAliasManagement:

    @pytest.mark.asyncio
    async def test_add_alias(self):
        repo = FakeRepository()

        created = await add_vendor_alias(repo, OWNER, VendorAliasCreate(
            alias_pattern="  SHUFERSAL ", canonical_name="Shufersal",
        ))

        assert created.id
        assert created.alias_pattern == "SHUFERSAL"
        assert created.source == "user"
        assert created.user_id == OWNER

    @pytest.mark.asyncio
    async def test_alias_limit(self, monkeypatch):
        monkeypatch.setattr(vendor_resolver.settings, "vendor_alias_limit", 1)
        repo = FakeRepository()
        await add_vendor_alias(repo, OWNER, VendorAliasCreate(alias_pattern="A1", canonical_name="A"))

        with pytest.raises(VendorAliasLimitError):
            await add_vendor_alias(repo, OWNER, VendorAliasCreate(alias_pattern="B1", canonical_name="B"))

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self):
        repo = FakeRepository()

        first = await seed_default_aliases(repo, OWNER)
        second = await seed_default_aliases(repo, OWNER)

        assert first == len(DEFAULT_VENDOR_ALIASES)
        assert second == 0
        assert all(a.source == "system" for a in repo.aliases.values())

    @pytest.mark.asyncio
    async def test_learn_alias(self):
        repo = FakeRepository()

        learned = await learn_vendor_alias(repo, OWNER, "GREENHOUSE CAFE  TLV", "Greenhouse Ltd")

        assert learned.alias_pattern == "GREENHOUSE CAFE"
        assert learned.source == "learned"
        assert learned.priority == LEARNED_ALIAS_PRIORITY
        assert resolve_vendor_name("GREENHOUSE CAFE  TLV", list(repo.aliases.values())) == "Greenhouse Ltd"

    @pytest.mark.asyncio
    async def test_learn_uses_raw_text_when_name_was_expanded(self):
        repo = FakeRepository()

        learned = await learn_vendor_alias(repo, OWNER, "FACEBK *94ED4BD5F2", "Meta")

        assert learned.alias_pattern == "FACEBK"

    @pytest.mark.asyncio
    async def test_learn_skips_already_resolved(self):
        repo = FakeRepository()
        await learn_vendor_alias(repo, OWNER, "GREENHOUSE CAFE  TLV", "Greenhouse Ltd")

        assert await learn_vendor_alias(repo, OWNER, "GREENHOUSE CAFE  HAIFA", "Greenhouse Ltd") is None
        assert len(repo.aliases) == 1

    @pytest.mark.asyncio
    async def test_learn_skips_short_patterns(self):
        repo = FakeRepository()

        assert await learn_vendor_alias(repo, OWNER, "AB", "Ab Corp") is None
        assert repo.aliases == {}
