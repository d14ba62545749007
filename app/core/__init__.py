# app/core/__init__.py

from app.core.scoring import score_match
from app.core.exchange_rates import (
    ExchangeRateCache,
    ExchangeRateError,
    CurrencyNormalizer,
    InMemoryRateCache,
    convert_to_home,
)
from app.core.allocation import batch_get_allocation_info
from app.core.auto_matcher import AutoMatcher
from app.core.cc_consolidation import run_cc_bank_consolidation, detect_credit_card_charge
from app.core.linking import link_line_item_to_transaction, unlink_line_item_from_transaction
from app.core.vendor_resolver import match_vendor, resolve_vendor_name
from app.core.normalizers import (
    normalize_date,
    normalize_merchant_name,
    parse_merchant_name,
)

__all__ = [
    "score_match",
    "ExchangeRateCache",
    "ExchangeRateError",
    "CurrencyNormalizer",
    "InMemoryRateCache",
    "convert_to_home",
    "batch_get_allocation_info",
    "AutoMatcher",
    "run_cc_bank_consolidation",
    "detect_credit_card_charge",
    "link_line_item_to_transaction",
    "unlink_line_item_from_transaction",
    "match_vendor",
    "resolve_vendor_name",
    "normalize_date",
    "normalize_merchant_name",
    "parse_merchant_name",
]
