# app/models/transaction.py

from datetime import date
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class TransactionKind(str, Enum):
    """Where a transaction row came from."""

    BANK_REGULAR = "bank_regular"
    BANK_CC_CHARGE = "bank_cc_charge"
    CC_PURCHASE = "cc_purchase"


# Kinds a line item may be matched against. Aggregated CC charges are
# reconciled through consolidation, never against line items.
ELIGIBLE_KINDS: frozenset[TransactionKind] = frozenset({
    TransactionKind.BANK_REGULAR,
    TransactionKind.CC_PURCHASE,
})


class Transaction(BaseModel):
    """A bank or credit card transaction. Amounts are integer minor units."""

    id: str
    user_id: Optional[str] = None
    date: date
    value_date: Optional[date] = None
    description: str = ""
    amount_agorot: int
    foreign_amount_cents: Optional[int] = None
    foreign_currency: Optional[str] = None
    is_income: bool = False
    transaction_type: TransactionKind = TransactionKind.BANK_REGULAR
    reference: Optional[str] = None

    # CC purchase -> consolidating bank charge
    parent_bank_charge_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    card_last_four: Optional[str] = None
    match_confidence: Optional[int] = None

    class Config:
        from_attributes = True

    @property
    def is_foreign(self) -> bool:
        return bool(self.foreign_amount_cents) and bool(self.foreign_currency)

    @property
    def charge_date(self) -> date:
        """Date the purchase lands on the bank statement."""
        return self.value_date or self.date
