# tests/test_scoring.py

"""
Tests for line item <-> transaction scoring.
"""

import pytest
from datetime import date

from app.core.scoring import date_points, score_match
from app.models import (
    ExtractedInvoiceData,
    ExtractedLineItem,
    RateQuote,
    ScoringContext,
    TransactionKind,
    VendorAlias,
)
from tests.fakes import make_invoice, make_line_item, make_transaction

DAY = date(2025, 3, 10)


def make_context(line_item=None, invoice=None, **fields) -> ScoringContext:
    return ScoringContext(
        line_item=line_item or make_line_item(),
        invoice=invoice if invoice is not None else make_invoice(vendor_name="Acme Software Ltd"),
        **fields,
    )


def usd_rates(rate: float = 3.7) -> dict:
    return {"USD": RateQuote(rate=rate, rate_date=DAY)}


# ============================================
# Disqualifiers
# ============================================

class TestDisqualifiers:
    """Hard rules short-circuit with a zero score."""

    def test_income_transaction(self):
        tx = make_transaction(amount=10000, is_income=True, description="ACME SOFTWARE")

        score = score_match(tx, make_context())

        assert score.is_disqualified
        assert score.total == 0
        assert score.disqualify_reason == "Transaction is income, but matching expenses only"

    def test_bank_cc_charge_not_eligible(self):
        tx = make_transaction(kind=TransactionKind.BANK_CC_CHARGE, description="ACME SOFTWARE")

        score = score_match(tx, make_context())

        assert score.is_disqualified
        assert score.total == 0
        assert score.disqualify_reason == "Transaction type 'bank_cc_charge' not eligible for matching"

    def test_income_invoice(self):
        invoice = make_invoice(vendor_name="Acme Software Ltd", is_income=True)
        tx = make_transaction(description="ACME SOFTWARE")

        score = score_match(tx, make_context(invoice=invoice))

        assert score.is_disqualified
        assert score.total == 0
        assert "income invoice" in score.disqualify_reason

    def test_disqualified_ignores_perfect_signals(self):
        """Even a perfect amount/date/vendor pair scores 0 when disqualified."""
        tx = make_transaction(is_income=True, description="ACME SOFTWARE")

        score = score_match(tx, make_context())

        assert score.total == 0
        assert score.breakdown.amount == 0
        assert score.match_reasons == []

    def test_cc_purchase_is_eligible(self):
        tx = make_transaction(kind=TransactionKind.CC_PURCHASE, description="ACME SOFTWARE")

        score = score_match(tx, make_context())

        assert not score.is_disqualified


# ============================================
# Normalization
# ============================================

class TestNormalization:

    def test_perfect_match_without_reference_scores_100(self):
        tx = make_transaction(description="ACME SOFTWARE PAYMENT")

        score = score_match(tx, make_context())

        assert score.breakdown.amount == 30
        assert score.breakdown.date == 30
        assert score.breakdown.vendor == 25
        assert score.breakdown.currency == 5
        assert score.raw_total == 90
        assert score.total == 100

    def test_perfect_match_with_alias_scores_100(self):
        alias = VendorAlias(alias_pattern="FACEBK", canonical_name="Meta (Facebook)")
        tx = make_transaction(description="FACEBK *ADS 4421")
        context = make_context(invoice=make_invoice(vendor_name="Meta"), vendor_aliases=[alias])

        score = score_match(tx, context)

        assert score.vendor_match.method == "user_alias"
        assert score.breakdown.vendor == 25
        assert score.total == 100

    def test_reference_counts_when_line_has_one(self):
        line = make_line_item(reference_id="INV-123456789")
        tx = make_transaction(description="ACME SOFTWARE", reference="INV-123456789")

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.reference == 10
        assert score.raw_total == 100
        assert score.total == 100
        assert "Exact reference match" in score.match_reasons

    def test_unmatched_reference_stays_in_denominator(self):
        line = make_line_item(reference_id="INV-123456789")
        tx = make_transaction(description="ACME SOFTWARE")

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.reference == 0
        assert score.total == 90

    def test_transaction_reference_alone_keeps_reference_weight(self):
        tx = make_transaction(description="ACME SOFTWARE", reference="BANK-REF-1")

        score = score_match(tx, make_context())

        assert score.raw_total == 90
        assert score.total == 90

    def test_total_is_rounded(self):
        # 30 + 30 + 0 + 5 = 65 of 90
        tx = make_transaction(description="UNRELATED MERCHANT")

        score = score_match(tx, make_context())

        assert score.raw_total == 65
        assert score.total == round(65 / 90 * 100)


# ============================================
# Reference
# ============================================

class TestReference:

    def test_reference_in_description(self):
        line = make_line_item(reference_id="inv-123456789")
        tx = make_transaction(description="PAYMENT INV-123456789 ACME")

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.reference == 8
        assert "Reference found in description" in score.match_reasons

    def test_partial_reference(self):
        line = make_line_item(reference_id="INV-123456789")
        tx = make_transaction(description="ACME 456789")

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.reference == 5
        assert "Partial reference match" in score.match_reasons

    def test_short_reference_has_no_partial_match(self):
        line = make_line_item(reference_id="123456")
        tx = make_transaction(description="ACME 23456")

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.reference == 0

    def test_reference_from_extracted_data(self):
        line = make_line_item(description="Annual license")
        extracted = ExtractedInvoiceData(line_items=[
            ExtractedLineItem(description="Support", reference_id="SUP-1"),
            ExtractedLineItem(description="Annual license", reference_id="LIC-42"),
        ])
        tx = make_transaction(description="ACME SOFTWARE", reference="LIC-42")

        score = score_match(tx, make_context(line_item=line, extracted_data=extracted))

        assert score.breakdown.reference == 10


# ============================================
# Amount
# ============================================

class TestAmountScoring:

    @pytest.mark.parametrize("tx_amount,points", [
        (-10000, 30),
        (-10050, 27),
        (-10150, 24),
        (-10250, 20),
        (-10450, 16),
        (-10800, 8),
        (-13000, 0),
    ])
    def test_same_currency_tiers(self, tx_amount, points):
        tx = make_transaction(amount=tx_amount)

        score = score_match(tx, make_context())

        assert score.breakdown.amount == points

    def test_vat_added_scores_17_percent_tier(self):
        """100 vs 117 lands on the VAT tier, not the 17% difference tier."""
        tx = make_transaction(amount=-11700)

        score = score_match(tx, make_context())

        assert score.breakdown.amount == 20
        assert "Amount matches with 17% VAT added" in score.match_reasons

    def test_vat_removed(self):
        line = make_line_item(total=11700)
        tx = make_transaction(amount=-10000)

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.amount == 20
        assert "Amount matches with 17% VAT removed" in score.match_reasons

    def test_vat_shaped_difference_outside_tolerance(self):
        tx = make_transaction(amount=-12500)

        score = score_match(tx, make_context())

        assert score.breakdown.amount == 0

    def test_large_difference_warns(self):
        tx = make_transaction(amount=-20000)

        score = score_match(tx, make_context())

        assert score.breakdown.amount == 0
        assert any("Amount differs by" in w for w in score.warnings)

    def test_zero_line_amount(self):
        line = make_line_item(total=0)

        score = score_match(make_transaction(), make_context(line_item=line))

        assert score.breakdown.amount == 0
        assert "Line item amount is zero" in score.warnings

    def test_cross_currency_line_item(self):
        line = make_line_item(total=10000, currency="USD")
        tx = make_transaction(amount=-37500)

        score = score_match(tx, make_context(line_item=line, exchange_rates=usd_rates()))

        assert score.breakdown.amount == 30
        assert score.conversion_details.from_currency == "USD"
        assert score.conversion_details.converted_amount == 37000
        assert any("USD→ILS" in r for r in score.match_reasons)

    def test_cross_currency_never_uses_vat(self):
        line = make_line_item(total=10000, currency="USD")
        tx = make_transaction(amount=-43290)  # 37000 * 1.17

        score = score_match(tx, make_context(line_item=line, exchange_rates=usd_rates()))

        assert score.breakdown.amount == 5

    def test_foreign_transaction_uses_foreign_amount(self):
        line = make_line_item(total=10000, currency="USD")
        tx = make_transaction(amount=-36000, foreign_amount_cents=-10000, foreign_currency="USD")

        score = score_match(tx, make_context(line_item=line, exchange_rates=usd_rates()))

        assert score.breakdown.amount == 30
        assert score.breakdown.currency == 5
        assert score.conversion_details.original_amount == 10000

    @pytest.mark.parametrize("tx_amount,points", [
        (-38000, 30),   # 2.7%
        (-39000, 25),   # 5.4%
        (-40000, 20),   # 8.1%
        (-42000, 10),   # 13.5%
        (-44000, 5),    # 18.9%
        (-46000, 0),    # 24.3%
    ])
    def test_cross_currency_tiers(self, tx_amount, points):
        line = make_line_item(total=10000, currency="USD")
        tx = make_transaction(amount=tx_amount)

        score = score_match(tx, make_context(line_item=line, exchange_rates=usd_rates()))

        assert score.breakdown.amount == points
        assert score.breakdown.amount <= 30

    def test_missing_rate_gives_fixed_low_score(self):
        line = make_line_item(total=10000, currency="USD")
        tx = make_transaction(amount=-37000)

        score = score_match(tx, make_context(line_item=line))

        assert not score.is_disqualified
        assert score.breakdown.amount == 8
        assert "Exchange rate unavailable for USD" in score.warnings

    def test_missing_transaction_rate(self):
        tx = make_transaction(amount=-37000, foreign_amount_cents=-10000, foreign_currency="EUR")

        score = score_match(tx, make_context(exchange_rates=usd_rates()))

        assert score.breakdown.amount == 8
        assert "Exchange rate unavailable for EUR" in score.warnings


# ============================================
# Date
# ============================================

class TestDateScoring:

    def test_date_points_are_monotonic(self):
        points = [date_points(d) for d in range(0, 16)]

        assert points[0] == 30
        assert points[1] == 30
        assert points[2] == 25
        assert points[3] == 22
        assert points[10] == 1
        assert all(p == 0 for p in points[11:])
        assert all(a >= b for a, b in zip(points, points[1:]))

    def test_symmetric(self):
        before = make_transaction(on=date(2025, 3, 6))
        after = make_transaction(on=date(2025, 3, 14))

        assert score_match(before, make_context()).breakdown.date == \
            score_match(after, make_context()).breakdown.date == 19

    def test_value_date_used_when_closer(self):
        tx = make_transaction(on=date(2025, 3, 25), value_date=date(2025, 3, 11))

        score = score_match(tx, make_context())

        assert score.breakdown.date == 30
        assert "1 day apart" in score.match_reasons

    def test_line_date_preferred_over_invoice_date(self):
        line = make_line_item(transaction_date=date(2025, 3, 1))
        tx = make_transaction(on=date(2025, 3, 1))

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.date == 30
        assert "Same day" in score.match_reasons

    def test_no_date_gives_half_weight(self):
        invoice = make_invoice(vendor_name="Acme", invoice_date=None)

        score = score_match(make_transaction(), make_context(invoice=invoice))

        assert score.breakdown.date == 15
        assert "No date available on line item" in score.warnings

    def test_month_boundary(self):
        line = make_line_item(transaction_date=date(2025, 2, 28))
        tx = make_transaction(on=date(2025, 3, 2))

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.date == 25


# ============================================
# Vendor and currency
# ============================================

class TestVendorAndCurrency:

    def test_vendor_mismatch_never_negative(self):
        tx = make_transaction(description="SOMETHING ELSE ENTIRELY")

        score = score_match(tx, make_context())

        assert score.breakdown.vendor == 0
        assert score.vendor_match.suggest_alias
        assert score.raw_total >= 0

    def test_single_word_match(self):
        tx = make_transaction(description="ACME 8842")

        score = score_match(tx, make_context())

        assert score.breakdown.vendor == 20
        assert "Vendor match (fuzzy)" in score.match_reasons

    def test_currency_mismatch(self):
        line = make_line_item(currency="EUR")
        tx = make_transaction(foreign_amount_cents=-10000, foreign_currency="USD")

        score = score_match(tx, make_context(line_item=line))

        assert score.breakdown.currency == 0

    def test_foreign_line_against_home_transaction(self):
        line = make_line_item(currency="USD")

        score = score_match(make_transaction(), make_context(line_item=line, exchange_rates=usd_rates()))

        assert score.breakdown.currency == 0
