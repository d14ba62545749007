# app/models/__init__.py

from app.models.transaction import (
    Transaction,
    TransactionKind,
    ELIGIBLE_KINDS,
)
from app.models.invoice import (
    Invoice,
    LineItem,
    LinkStatus,
    BillingPeriod,
    ExtractedLineItem,
    ExtractedInvoiceData,
)
from app.models.vendor import (
    VendorAlias,
    VendorAliasCreate,
    VendorDisplayInfo,
    AliasMatchType,
    AliasSource,
)
from app.models.exchange_rate import (
    ExchangeRate,
    RateQuote,
    CachedRate,
    ConversionDetails,
)
from app.models.match import (
    ScoreBreakdown,
    VendorMatch,
    MatchScore,
    ScoringContext,
    AllocationRow,
    AllocationInfo,
    AutoMatchStatus,
    AutoMatchMethod,
    MatchMethod,
    AutoMatchOptions,
    MatchCandidate,
    LineItemCandidate,
    LineItemMatchResult,
    AutoMatchSummary,
    AutoMatchInvoiceResult,
    OperationResult,
    ApplyResult,
    ApplyInvoiceResult,
    TransactionLinkSummary,
    LineItemLinkSummary,
)
from app.models.consolidation import (
    ConsolidationStatus,
    ConsolidationSettings,
    CCGroup,
    BankChargeMatch,
    ConsolidationResult,
    ConsolidationRunResult,
    ConsolidationSummary,
)

__all__ = [
    # Transaction
    "Transaction",
    "TransactionKind",
    "ELIGIBLE_KINDS",
    # Invoice
    "Invoice",
    "LineItem",
    "LinkStatus",
    "BillingPeriod",
    "ExtractedLineItem",
    "ExtractedInvoiceData",
    # Vendor
    "VendorAlias",
    "VendorAliasCreate",
    "VendorDisplayInfo",
    "AliasMatchType",
    "AliasSource",
    # Exchange rates
    "ExchangeRate",
    "RateQuote",
    "CachedRate",
    "ConversionDetails",
    # Match
    "ScoreBreakdown",
    "VendorMatch",
    "MatchScore",
    "ScoringContext",
    "AllocationRow",
    "AllocationInfo",
    "AutoMatchStatus",
    "AutoMatchMethod",
    "MatchMethod",
    "AutoMatchOptions",
    "MatchCandidate",
    "LineItemCandidate",
    "LineItemMatchResult",
    "AutoMatchSummary",
    "AutoMatchInvoiceResult",
    "OperationResult",
    "ApplyResult",
    "ApplyInvoiceResult",
    "TransactionLinkSummary",
    "LineItemLinkSummary",
    # Consolidation
    "ConsolidationStatus",
    "ConsolidationSettings",
    "CCGroup",
    "BankChargeMatch",
    "ConsolidationResult",
    "ConsolidationRunResult",
    "ConsolidationSummary",
]
