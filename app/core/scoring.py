# app/core/scoring.py

"""
Line item <-> transaction match scoring.

Scoring breakdown (raw points, normalized to 0-100):
- Reference:  0-10 points (left out of the denominator when neither side has one)
- Amount:     0-30 points
- Date:       0-30 points
- Vendor:     0-25 points
- Currency:   0-5 points

Hard disqualifiers are checked first and short-circuit with a score of 0.
Missing data degrades to a partial score, never to an error.
"""

import logging
from datetime import date
from typing import Optional

from app.config import get_settings
from app.core.exchange_rates import convert_to_home, create_conversion_details
from app.core.normalizers import day_number, percent_difference
from app.core.vendor_resolver import VENDOR_WEIGHT, match_vendor
from app.models import (
    ELIGIBLE_KINDS,
    ConversionDetails,
    MatchScore,
    ScoreBreakdown,
    ScoringContext,
    Transaction,
)

settings = get_settings()
logger = logging.getLogger(__name__)

REFERENCE_WEIGHT = 10
AMOUNT_WEIGHT = 30
DATE_WEIGHT = 30
CURRENCY_WEIGHT = 5

MAX_RAW_SCORE = REFERENCE_WEIGHT + AMOUNT_WEIGHT + DATE_WEIGHT + VENDOR_WEIGHT + CURRENCY_WEIGHT
MAX_RAW_SCORE_NO_REF = MAX_RAW_SCORE - REFERENCE_WEIGHT

MISSING_RATE_POINTS = 8
MISSING_DATE_POINTS = DATE_WEIGHT // 2

# Percent-difference tiers, tried top to bottom: (max percent, points)
CROSS_CURRENCY_TIERS: tuple[tuple[float, int], ...] = (
    (3, 30),
    (6, 25),
    (9, 20),
    (15, 10),
    (20, 5),
)
SAME_CURRENCY_TIERS: tuple[tuple[float, int], ...] = (
    (1, 27),
    (2, 24),
    (3, 20),
)
# Checked after VAT-adjusted matching
LOOSE_TIERS: tuple[tuple[float, int], ...] = (
    (5, 16),
    (10, 8),
)
# Tiers at or past this percentage also carry a warning
WARN_FROM_PERCENT = 9

# Historical VAT rates, current first
VAT_RATES: tuple[float, ...] = (0.17, 0.18, 0.16, 0.15)
CURRENT_VAT_RATE = 0.17
VAT_TOLERANCE = 0.02

# Date rules, tried top to bottom: (max days apart, points)
DATE_RULES: tuple[tuple[int, int], ...] = (
    (1, DATE_WEIGHT),
    (2, 25),
)
DATE_DECAY_PER_DAY = 3


# ============================================
# Entry point
# ============================================

def score_match(transaction: Transaction, context: ScoringContext) -> MatchScore:
    """
    Score how likely ``transaction`` pays for ``context.line_item``.

    Pure function: everything it needs (aliases, rates, extracted data)
    is already in the context.
    """
    reason = _disqualify_reason(transaction, context)
    if reason:
        return MatchScore(total=0, is_disqualified=True, disqualify_reason=reason)

    breakdown = ScoreBreakdown()
    reasons: list[str] = []
    warnings: list[str] = []

    # ============================================
    # Reference (0-10 points, optional)
    # ============================================
    line_reference = line_item_reference(context)
    has_reference = bool(line_reference) or bool(transaction.reference)
    if line_reference:
        breakdown.reference = score_reference(line_reference, transaction, reasons)

    # ============================================
    # Amount (0-30 points)
    # ============================================
    breakdown.amount, conversion = score_amount(transaction, context, reasons, warnings)

    # ============================================
    # Date (0-30 points)
    # ============================================
    breakdown.date = score_date(
        context.line_item.effective_date(context.invoice),
        transaction,
        reasons,
        warnings,
    )

    # ============================================
    # Vendor (0-25 points)
    # ============================================
    vendor = match_vendor(
        _vendor_name(context),
        context.line_item.description,
        transaction.description,
        context.vendor_aliases,
    )
    breakdown.vendor = vendor.points
    if vendor.points > 0:
        reasons.append(f"Vendor match ({vendor.method})")

    # ============================================
    # Currency (0-5 points)
    # ============================================
    breakdown.currency = score_currency(context.line_item.currency, transaction, reasons)

    raw_total = max(
        0,
        breakdown.reference + breakdown.amount + breakdown.date + breakdown.vendor + breakdown.currency,
    )
    max_score = MAX_RAW_SCORE if has_reference else MAX_RAW_SCORE_NO_REF
    total = max(0, min(100, round(raw_total / max_score * 100)))

    return MatchScore(
        total=total,
        raw_total=raw_total,
        breakdown=breakdown,
        match_reasons=reasons,
        warnings=warnings,
        conversion_details=conversion,
        vendor_match=vendor,
    )


def _disqualify_reason(transaction: Transaction, context: ScoringContext) -> Optional[str]:
    if transaction.is_income:
        return "Transaction is income, but matching expenses only"
    if transaction.transaction_type not in ELIGIBLE_KINDS:
        return f"Transaction type '{transaction.transaction_type.value}' not eligible for matching"
    if context.invoice is not None and context.invoice.is_income:
        return "Line item is from an income invoice, cannot match to expense transaction"
    return None


def _vendor_name(context: ScoringContext) -> Optional[str]:
    if context.invoice and context.invoice.vendor_name:
        return context.invoice.vendor_name
    if context.extracted_data:
        return context.extracted_data.vendor_name
    return None


# ============================================
# Reference
# ============================================

def line_item_reference(context: ScoringContext) -> Optional[str]:
    """The line item's own reference, else the one extracted for its description."""
    if context.line_item.reference_id:
        return context.line_item.reference_id
    if context.extracted_data:
        return context.extracted_data.reference_for(context.line_item.description)
    return None


def score_reference(reference: str, transaction: Transaction, reasons: list[str]) -> int:
    """Score reference matching (0-10 points)."""
    if transaction.reference and transaction.reference == reference:
        reasons.append("Exact reference match")
        return REFERENCE_WEIGHT

    description = (transaction.description or "").upper()
    ref = reference.upper()

    if ref in description:
        reasons.append("Reference found in description")
        return 8

    if len(ref) > 6 and ref[-6:] in description:
        reasons.append("Partial reference match")
        return 5

    return 0


# ============================================
# Amount
# ============================================

def _tier_points(percent: float, tiers: tuple[tuple[float, int], ...]) -> Optional[tuple[float, int]]:
    for limit, points in tiers:
        if percent <= limit:
            return limit, points
    return None


def _vat_adjusted_match(line_amount: int, tx_amount: int) -> Optional[tuple[int, str]]:
    """Points and reason if the amounts differ by (roughly) one VAT rate."""
    tolerance = line_amount * VAT_TOLERANCE
    for rate in VAT_RATES:
        points = 20 if rate == CURRENT_VAT_RATE else 16
        percent = round(rate * 100)
        if abs(tx_amount - line_amount * (1 + rate)) <= tolerance:
            return points, f"Amount matches with {percent}% VAT added"
        if abs(tx_amount - line_amount / (1 + rate)) <= tolerance:
            return points, f"Amount matches with {percent}% VAT removed"
    return None


def score_amount(
    transaction: Transaction,
    context: ScoringContext,
    reasons: list[str],
    warnings: list[str],
) -> tuple[int, Optional[ConversionDetails]]:
    """
    Score amount matching (0-30 points).

    Both sides are converted to the home currency first. Conversions get the
    forgiving cross-currency tiers; same-currency pairs get the strict tiers
    plus VAT-adjusted matching.
    """
    home = settings.home_currency.upper()
    line_item = context.line_item
    rates = context.exchange_rates

    line_currency = (line_item.currency or home).upper()
    line_amount = abs(line_item.total_agorot or 0)

    if transaction.is_foreign:
        tx_currency = transaction.foreign_currency.upper()
        tx_amount = abs(transaction.foreign_amount_cents)
    else:
        tx_currency = home
        tx_amount = abs(transaction.amount_agorot)

    if line_amount == 0:
        warnings.append("Line item amount is zero")
        return 0, None
    if tx_amount == 0:
        warnings.append("Transaction amount is zero")
        return 0, None

    requested = line_item.effective_date(context.invoice) or date.today()
    conversion: Optional[ConversionDetails] = None

    line_home = line_amount
    if line_currency != home:
        quote = rates.get(line_currency)
        if quote is None:
            warnings.append(f"Exchange rate unavailable for {line_currency}")
            return MISSING_RATE_POINTS, None
        line_home = convert_to_home(line_amount, quote.rate)
        conversion = create_conversion_details(line_currency, line_amount, quote, requested, home)

    tx_home = tx_amount
    if tx_currency != home:
        quote = rates.get(tx_currency)
        if quote is None:
            warnings.append(f"Exchange rate unavailable for {tx_currency}")
            return MISSING_RATE_POINTS, None
        tx_home = convert_to_home(tx_amount, quote.rate)
        # The transaction side is the one shown when both were converted
        conversion = create_conversion_details(tx_currency, tx_amount, quote, requested, home)

    percent = percent_difference(tx_home, line_home)

    if line_currency != home or tx_currency != home:
        via = line_currency if line_currency != home else tx_currency
        note = f" (via {via}→{home} conversion)"
        tier = _tier_points(percent, CROSS_CURRENCY_TIERS)
        if tier is None:
            warnings.append(f"Amount differs by {percent:.1f}%{note}")
            return 0, conversion
        limit, points = tier
        reasons.append(f"Amount within {limit:g}%{note}")
        if limit > WARN_FROM_PERCENT:
            warnings.append(f"Amount differs by {percent:.1f}%")
        return points, conversion

    if line_home == tx_home:
        reasons.append("Exact amount match")
        return AMOUNT_WEIGHT, conversion

    tier = _tier_points(percent, SAME_CURRENCY_TIERS)
    if tier is None:
        vat = _vat_adjusted_match(line_home, tx_home)
        if vat:
            points, reason = vat
            reasons.append(reason)
            return points, conversion
        tier = _tier_points(percent, LOOSE_TIERS)

    if tier is None:
        warnings.append(f"Amount differs by {percent:.1f}%")
        return 0, conversion

    limit, points = tier
    reasons.append(f"Amount within {limit:g}%")
    if limit > WARN_FROM_PERCENT:
        warnings.append(f"Amount differs by {percent:.1f}%")
    return points, conversion


# ============================================
# Date
# ============================================

def date_points(days_apart: int) -> int:
    """Points for a whole-day distance: full at 0-1, 25 at 2, then -3 a day."""
    for max_days, points in DATE_RULES:
        if days_apart <= max_days:
            return points
    return max(0, 25 - DATE_DECAY_PER_DAY * (days_apart - 2))


def score_date(
    line_date: Optional[date],
    transaction: Transaction,
    reasons: list[str],
    warnings: list[str],
) -> int:
    """Score date proximity (0-30 points), using the closer of date and value date."""
    if line_date is None:
        warnings.append("No date available on line item")
        return MISSING_DATE_POINTS

    line_day = day_number(line_date)
    days_apart = abs(day_number(transaction.date) - line_day)
    if transaction.value_date:
        days_apart = min(days_apart, abs(day_number(transaction.value_date) - line_day))

    points = date_points(days_apart)
    if points == 0:
        warnings.append(f"Date differs by {days_apart} days")
    elif days_apart == 0:
        reasons.append("Same day")
    elif days_apart == 1:
        reasons.append("1 day apart")
    else:
        reasons.append(f"{days_apart} days apart")
    return points


# ============================================
# Currency
# ============================================

def score_currency(line_currency: Optional[str], transaction: Transaction, reasons: list[str]) -> int:
    """Score currency agreement (0-5 points)."""
    home = settings.home_currency.upper()
    line = (line_currency or home).upper()
    foreign = transaction.foreign_currency.upper() if transaction.foreign_currency else None

    if foreign == line or (line == home and not foreign):
        reasons.append("Currency match")
        return CURRENCY_WEIGHT
    return 0
