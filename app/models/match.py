# app/models/match.py

from typing import Optional, Literal
from pydantic import BaseModel, Field

from app.models.transaction import Transaction
from app.models.invoice import Invoice, LineItem, ExtractedInvoiceData
from app.models.vendor import VendorAlias
from app.models.exchange_rate import ConversionDetails, RateQuote


# ============================================
# Scoring
# ============================================

class ScoreBreakdown(BaseModel):
    """Points awarded per signal."""

    reference: int = Field(default=0, ge=0, le=10, description="0-10 points for reference match")
    amount: int = Field(default=0, ge=0, le=30, description="0-30 points for amount match")
    date: int = Field(default=0, ge=0, le=30, description="0-30 points for date proximity")
    vendor: int = Field(default=0, ge=0, le=25, description="0-25 points for vendor match")
    currency: int = Field(default=0, ge=0, le=5, description="0-5 points for currency match")


VendorMatchMethod = Literal["user_alias", "fuzzy", "none"]


class VendorMatch(BaseModel):
    """Outcome of vendor matching."""

    points: int = 0
    method: VendorMatchMethod = "none"
    confidence: int = 0
    matched_alias: Optional[VendorAlias] = None
    suggest_alias: bool = False


class MatchScore(BaseModel):
    """Normalized confidence that a transaction pays for a line item."""

    total: int = Field(ge=0, le=100, description="Normalized score")
    raw_total: int = Field(default=0, ge=0, description="Weighted points before normalization")
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    match_reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    is_disqualified: bool = False
    disqualify_reason: Optional[str] = None
    conversion_details: Optional[ConversionDetails] = None
    vendor_match: Optional[VendorMatch] = None


class ScoringContext(BaseModel):
    """Everything the scorer needs besides the transaction. Built before scoring."""

    line_item: LineItem
    invoice: Optional[Invoice] = None
    extracted_data: Optional[ExtractedInvoiceData] = None
    vendor_aliases: list[VendorAlias] = Field(default_factory=list)
    exchange_rates: dict[str, RateQuote] = Field(default_factory=dict)


# ============================================
# Allocation
# ============================================

class AllocationRow(BaseModel):
    """A line item linked to a transaction."""

    transaction_id: str
    line_item_id: Optional[str] = None
    total_agorot: Optional[int] = None
    allocation_amount_agorot: Optional[int] = None

    @property
    def allocated(self) -> int:
        if self.allocation_amount_agorot is not None:
            return abs(self.allocation_amount_agorot)
        return abs(self.total_agorot or 0)


class AllocationInfo(BaseModel):
    transaction_id: str
    amount_agorot: int
    allocated_agorot: int
    remaining_agorot: int
    is_fully_allocated: bool


# ============================================
# Auto matching
# ============================================

AutoMatchStatus = Literal["auto_matched", "candidate", "no_match"]
AutoMatchMethod = Literal["manual", "auto_approved", "auto_matched", "candidate"]

# Values persisted in invoice_rows.match_method
MatchMethod = Literal["manual", "rule_reference", "rule_amount_date", "rule_fuzzy", "ai_assisted"]


class AutoMatchOptions(BaseModel):
    auto_approve_threshold: int = Field(default=85, ge=0, le=100)
    candidate_threshold: int = Field(default=50, ge=0, le=100)
    max_candidates: int = Field(default=10, ge=1)
    date_range_days: int = Field(default=30, ge=0)
    amount_tolerance_percent: float = Field(default=50, ge=0)
    force_rematch: bool = False


class MatchCandidate(BaseModel):
    """A scored transaction for a line item."""

    transaction: Transaction
    score: MatchScore
    confidence: int
    remaining_agorot: Optional[int] = None


class LineItemCandidate(BaseModel):
    """A scored line item for a transaction."""

    line_item: LineItem
    invoice: Optional[Invoice] = None
    score: MatchScore
    confidence: int


class LineItemMatchResult(BaseModel):
    line_item_id: str
    status: AutoMatchStatus
    method: Optional[str] = None
    best_match: Optional[MatchCandidate] = None
    candidates: list[MatchCandidate] = Field(default_factory=list)
    error: Optional[str] = None


class AutoMatchSummary(BaseModel):
    auto_matched: int = 0
    candidates: int = 0
    no_match: int = 0


class AutoMatchInvoiceResult(BaseModel):
    invoice_id: str
    results: list[LineItemMatchResult] = Field(default_factory=list)
    summary: AutoMatchSummary = Field(default_factory=AutoMatchSummary)


# ============================================
# Persistence outcomes
# ============================================

class OperationResult(BaseModel):
    """Outcome of a write. Failures are reported here, never raised."""

    success: bool
    error: Optional[str] = None


class ApplyResult(BaseModel):
    line_item_id: str
    success: bool
    error: Optional[str] = None


class ApplyInvoiceResult(BaseModel):
    applied: int = 0
    failed: int = 0
    results: list[ApplyResult] = Field(default_factory=list)


# ============================================
# Link summaries
# ============================================

class TransactionLinkSummary(BaseModel):
    transaction_id: str
    linked_count: int
    total_allocated_agorot: int
    remaining_agorot: int
    is_fully_allocated: bool
    line_items: list[LineItem] = Field(default_factory=list)


class LineItemLinkSummary(BaseModel):
    line_item_id: str
    is_linked: bool
    transaction: Optional[Transaction] = None
    allocation_amount_agorot: Optional[int] = None
    match_method: Optional[str] = None
    match_confidence: Optional[int] = None
