# app/models/invoice.py

from datetime import date, datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field

LinkStatus = Literal["unmatched", "matched", "partial"]


class Invoice(BaseModel):
    """An uploaded invoice or receipt."""

    id: str
    user_id: Optional[str] = None
    vendor_name: Optional[str] = None
    invoice_date: Optional[date] = None
    is_income: bool = False
    currency: Optional[str] = None
    file_id: Optional[str] = None

    class Config:
        from_attributes = True


class LineItem(BaseModel):
    """One row of an invoice, optionally linked to a transaction."""

    id: str
    invoice_id: str
    description: Optional[str] = None
    reference_id: Optional[str] = None
    currency: Optional[str] = None
    total_agorot: Optional[int] = None
    transaction_date: Optional[date] = None

    # Link state
    transaction_id: Optional[str] = None
    allocation_amount_agorot: Optional[int] = None
    match_status: LinkStatus = "unmatched"
    match_method: Optional[str] = None
    match_confidence: Optional[int] = None
    matched_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_linked(self) -> bool:
        return self.transaction_id is not None

    def effective_date(self, invoice: Optional[Invoice]) -> Optional[date]:
        """Line date, falling back to the invoice date."""
        if self.transaction_date:
            return self.transaction_date
        return invoice.invoice_date if invoice else None


# ============================================
# Extracted document data
# ============================================

class BillingPeriod(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None


class ExtractedLineItem(BaseModel):
    description: Optional[str] = None
    reference_id: Optional[str] = None


class ExtractedInvoiceData(BaseModel):
    """Structured data pulled from the invoice file by the extraction pipeline."""

    billing_period: Optional[BillingPeriod] = None
    line_items: list[ExtractedLineItem] = Field(default_factory=list)
    vendor_name: Optional[str] = None
    vendor_vat_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> Optional["ExtractedInvoiceData"]:
        """Build from the extraction pipeline's JSON (files.extracted_data)."""
        if not payload:
            return None

        document = payload.get("document") or {}
        period = document.get("billing_period") or {}
        vendor = payload.get("vendor") or {}

        return cls(
            billing_period=BillingPeriod(
                start=period.get("start") or None,
                end=period.get("end") or None,
            ) if period else None,
            line_items=[
                ExtractedLineItem(
                    description=item.get("description"),
                    reference_id=item.get("reference_id"),
                )
                for item in payload.get("line_items") or []
                if isinstance(item, dict)
            ],
            vendor_name=vendor.get("name"),
            vendor_vat_id=vendor.get("vat_id"),
        )

    def reference_for(self, description: Optional[str]) -> Optional[str]:
        """Reference id of the extracted line whose description equals ``description``."""
        if not description:
            return None
        for item in self.line_items:
            if item.description == description and item.reference_id:
                return item.reference_id
        return None
