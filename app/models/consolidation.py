# app/models/consolidation.py

from datetime import date
from typing import Optional, Literal
from pydantic import BaseModel, Field

from app.models.transaction import Transaction

ConsolidationStatus = Literal["pending", "approved", "rejected"]


class ConsolidationSettings(BaseModel):
    date_tolerance_days: int = Field(default=2, ge=0)
    amount_tolerance_percent: float = Field(default=2, gt=0)


class CCGroup(BaseModel):
    """CC purchases that share a card and a charge date."""

    card_last_four: str
    charge_date: date
    transactions: list[Transaction] = Field(default_factory=list)
    total_amount_agorot: int = 0

    @property
    def key(self) -> str:
        return f"{self.card_last_four}|{self.charge_date.isoformat()}"


class BankChargeMatch(BaseModel):
    """Best bank charge found for a group."""

    bank_transaction: Transaction
    confidence: int
    days_diff: int


class ConsolidationResult(BaseModel):
    """Stored outcome of matching one CC group to one bank charge."""

    id: Optional[str] = None
    user_id: str
    bank_transaction_id: str
    card_last_four: str
    charge_date: date
    total_cc_amount_agorot: int
    bank_amount_agorot: int
    discrepancy_agorot: int
    discrepancy_percent: float = 0.0
    cc_transaction_count: int
    match_confidence: int
    status: ConsolidationStatus = "pending"

    class Config:
        from_attributes = True


class ConsolidationRunResult(BaseModel):
    matched_groups: int = 0
    matched_cc_transactions: int = 0
    total_discrepancy_agorot: int = 0
    errors: list[str] = Field(default_factory=list)


class ConsolidationSummary(BaseModel):
    total_matches: int = 0
    total_discrepancy_agorot: int = 0
    avg_confidence: float = 0.0
    total_cc_transactions: int = 0
    pending_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
