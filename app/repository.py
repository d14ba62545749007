# app/repository.py

"""
Persistence interface used by the matching core.

Production uses SupabaseRepository (app/database.py); tests use an
in-memory fake. Every method is a coroutine.
"""

from datetime import date
from typing import Iterable, Optional, Protocol

from app.models import (
    AllocationRow,
    ConsolidationResult,
    ExtractedInvoiceData,
    Invoice,
    LineItem,
    Transaction,
    TransactionKind,
    VendorAlias,
)


class RepositoryError(Exception):
    """A read or write against the store failed."""


class Repository(Protocol):

    # ============================================
    # Transactions
    # ============================================

    async def find_transactions_by_date_amount_window(
        self,
        owner_id: str,
        start: date,
        end: date,
        kinds: Iterable[TransactionKind],
        is_income: bool = False,
        min_amount: Optional[int] = None,
        max_amount: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]: ...

    async def get_transaction(self, owner_id: str, transaction_id: str) -> Optional[Transaction]: ...

    async def get_transactions(self, owner_id: str, ids: list[str]) -> list[Transaction]: ...

    async def find_unmatched_cc_purchases(self, owner_id: str) -> list[Transaction]: ...

    async def find_bank_cc_charges(self, owner_id: str) -> list[Transaction]: ...

    async def find_cc_purchases_for_charge(self, owner_id: str, bank_charge_id: str) -> list[Transaction]: ...

    async def update_consolidated_transactions(
        self, owner_id: str, ids: list[str], bank_charge_id: str, confidence: int
    ) -> None: ...

    async def clear_consolidated_transactions(self, owner_id: str, ids: list[str]) -> None: ...

    # ============================================
    # Invoices and line items
    # ============================================

    async def find_unmatched_line_items(
        self,
        owner_id: str,
        start: date,
        end: date,
        limit: Optional[int] = None,
    ) -> list[tuple[LineItem, Invoice]]: ...

    async def get_line_item(self, owner_id: str, line_item_id: str) -> Optional[LineItem]: ...

    async def get_invoice(self, owner_id: str, invoice_id: str) -> Optional[Invoice]: ...

    async def get_line_items_for_invoice(self, invoice_id: str) -> list[LineItem]: ...

    async def get_line_items_for_transaction(self, transaction_id: str) -> list[LineItem]: ...

    async def get_extracted_invoice_data(self, invoice_id: str) -> Optional[ExtractedInvoiceData]: ...

    # ============================================
    # Allocation and links
    # ============================================

    async def get_transaction_amounts(self, ids: list[str]) -> dict[str, int]: ...

    async def get_allocations_for_transactions(self, ids: list[str]) -> list[AllocationRow]: ...

    async def save_link(
        self,
        line_item_id: str,
        transaction_id: str,
        allocation_agorot: Optional[int],
        method: str,
        confidence: Optional[int],
    ) -> None: ...

    async def clear_link(self, line_item_id: str) -> None: ...

    # ============================================
    # Consolidation results
    # ============================================

    async def save_consolidation_results(
        self, owner_id: str, results: list[ConsolidationResult]
    ) -> None: ...

    async def get_consolidation_results(
        self, owner_id: str, status: Optional[str] = None
    ) -> list[ConsolidationResult]: ...

    async def get_consolidation_result(
        self, owner_id: str, result_id: str
    ) -> Optional[ConsolidationResult]: ...

    async def get_consolidation_result_for_bank_charge(
        self, owner_id: str, bank_transaction_id: str
    ) -> Optional[ConsolidationResult]: ...

    async def insert_consolidation_result(self, result: ConsolidationResult) -> ConsolidationResult: ...

    async def update_consolidation_result(self, result_id: str, updates: dict) -> None: ...

    async def delete_consolidation_result(self, result_id: str) -> None: ...

    # ============================================
    # Vendors and preferences
    # ============================================

    async def get_vendor_aliases(self, owner_id: str) -> list[VendorAlias]: ...

    async def create_vendor_alias(self, alias: VendorAlias) -> VendorAlias: ...

    async def delete_vendor_alias(self, owner_id: str, alias_id: str) -> bool: ...

    async def get_user_thresholds(self, owner_id: str) -> dict: ...
