# app/database.py

import logging
from datetime import date
from functools import lru_cache
from typing import Iterable, Optional

from supabase import create_client, Client

from app.config import get_settings
from app.core.linking import UNLINKED_FIELDS, build_link_fields
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
from app.repository import RepositoryError

settings = get_settings()
logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_admin() -> Client:
    """Admin client (bypasses RLS - every query below scopes by owner)."""
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


# ============================================
# Row mapping
# ============================================

def _execute(query):
    try:
        return query.execute()
    except Exception as exc:
        raise RepositoryError(str(exc)) from exc


def _to_transaction(row: dict) -> Transaction:
    row = dict(row)
    card = row.pop("credit_cards", None) or {}
    if not row.get("card_last_four"):
        row["card_last_four"] = card.get("card_last_four")
    if not row.get("transaction_type"):
        row["transaction_type"] = (
            TransactionKind.BANK_CC_CHARGE if row.get("is_credit_card_charge")
            else TransactionKind.BANK_REGULAR
        )
    return Transaction.model_validate(row)


def _to_line_item(row: dict) -> LineItem:
    row = {k: v for k, v in row.items() if k != "invoices"}
    return LineItem.model_validate(row)


def _serialize(values: dict) -> dict:
    return {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in values.items()}


TRANSACTION_SELECT = "*, credit_cards!credit_card_id(card_last_four)"


# ============================================
# Repository
# ============================================

class SupabaseRepository:
    """Repository backed by the Supabase tables."""

    def __init__(self, client: Optional[Client] = None):
        self.client = client or get_supabase_admin()

    # ---------- transactions ----------

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
    ) -> list[Transaction]:
        query = (
            self.client.table("transactions")
            .select(TRANSACTION_SELECT)
            .eq("user_id", owner_id)
            .in_("transaction_type", [k.value for k in kinds])
            .eq("is_income", is_income)
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
        )

        # The window applies to abs(amount_agorot), whichever sign the row was stored with
        if min_amount is not None or max_amount is not None:
            low = max(0, min_amount or 0)
            bounds = [f"amount_agorot.gte.{low}"]
            mirrored = [f"amount_agorot.lte.{-low}"]
            if max_amount is not None:
                bounds.append(f"amount_agorot.lte.{max_amount}")
                mirrored.append(f"amount_agorot.gte.{-max_amount}")
            query = query.or_(f"and({','.join(bounds)}),and({','.join(mirrored)})")

        query = query.order("date", desc=True)
        if limit:
            query = query.limit(limit)

        response = _execute(query)
        return [_to_transaction(row) for row in response.data or []]

    async def get_transaction(self, owner_id: str, transaction_id: str) -> Optional[Transaction]:
        response = _execute(
            self.client.table("transactions")
            .select(TRANSACTION_SELECT)
            .eq("id", transaction_id)
            .eq("user_id", owner_id)
        )
        return _to_transaction(response.data[0]) if response.data else None

    async def get_transactions(self, owner_id: str, ids: list[str]) -> list[Transaction]:
        if not ids:
            return []
        response = _execute(
            self.client.table("transactions")
            .select(TRANSACTION_SELECT)
            .eq("user_id", owner_id)
            .in_("id", ids)
        )
        return [_to_transaction(row) for row in response.data or []]

    async def get_transaction_amounts(self, ids: list[str]) -> dict[str, int]:
        if not ids:
            return {}
        response = _execute(
            self.client.table("transactions").select("id, amount_agorot").in_("id", ids)
        )
        return {row["id"]: row["amount_agorot"] for row in response.data or []}

    async def find_unmatched_cc_purchases(self, owner_id: str) -> list[Transaction]:
        response = _execute(
            self.client.table("transactions")
            .select(TRANSACTION_SELECT)
            .eq("user_id", owner_id)
            .eq("transaction_type", TransactionKind.CC_PURCHASE.value)
            .is_("parent_bank_charge_id", "null")
        )
        return [_to_transaction(row) for row in response.data or []]

    async def find_bank_cc_charges(self, owner_id: str) -> list[Transaction]:
        response = _execute(
            self.client.table("transactions")
            .select(TRANSACTION_SELECT)
            .eq("user_id", owner_id)
            .eq("transaction_type", TransactionKind.BANK_CC_CHARGE.value)
        )
        return [_to_transaction(row) for row in response.data or []]

    async def find_cc_purchases_for_charge(self, owner_id: str, bank_charge_id: str) -> list[Transaction]:
        response = _execute(
            self.client.table("transactions")
            .select(TRANSACTION_SELECT)
            .eq("user_id", owner_id)
            .eq("transaction_type", TransactionKind.CC_PURCHASE.value)
            .eq("parent_bank_charge_id", bank_charge_id)
        )
        return [_to_transaction(row) for row in response.data or []]

    async def update_consolidated_transactions(
        self, owner_id: str, ids: list[str], bank_charge_id: str, confidence: int
    ) -> None:
        _execute(
            self.client.table("transactions")
            .update({
                "parent_bank_charge_id": bank_charge_id,
                "match_status": "matched",
                "match_confidence": confidence,
            })
            .eq("user_id", owner_id)
            .eq("transaction_type", TransactionKind.CC_PURCHASE.value)
            .in_("id", ids)
        )

    async def clear_consolidated_transactions(self, owner_id: str, ids: list[str]) -> None:
        _execute(
            self.client.table("transactions")
            .update({
                "parent_bank_charge_id": None,
                "match_status": "unmatched",
                "match_confidence": None,
            })
            .eq("user_id", owner_id)
            .eq("transaction_type", TransactionKind.CC_PURCHASE.value)
            .in_("id", ids)
        )

    # ---------- invoices and line items ----------

    async def find_unmatched_line_items(
        self,
        owner_id: str,
        start: date,
        end: date,
        limit: Optional[int] = None,
    ) -> list[tuple[LineItem, Invoice]]:
        def unmatched():
            return (
                self.client.table("invoice_rows")
                .select("*, invoices!inner(*)")
                .eq("invoices.user_id", owner_id)
                .eq("invoices.is_income", False)
                .is_("transaction_id", "null")
            )

        # The effective date is the row's own date, else the invoice date;
        # PostgREST can't OR across the join, so each case is its own query.
        dated = (
            unmatched()
            .gte("transaction_date", start.isoformat())
            .lte("transaction_date", end.isoformat())
        )
        undated = (
            unmatched()
            .is_("transaction_date", "null")
            .gte("invoices.invoice_date", start.isoformat())
            .lte("invoices.invoice_date", end.isoformat())
        )

        pairs: list[tuple[LineItem, Invoice]] = []
        for query in (dated, undated):
            if limit:
                query = query.limit(limit)
            response = _execute(query.order("id"))
            for row in response.data or []:
                pairs.append((_to_line_item(row), Invoice.model_validate(row["invoices"])))

        return pairs[:limit] if limit else pairs

    async def get_line_item(self, owner_id: str, line_item_id: str) -> Optional[LineItem]:
        response = _execute(
            self.client.table("invoice_rows")
            .select("*, invoices!inner(user_id)")
            .eq("id", line_item_id)
            .eq("invoices.user_id", owner_id)
        )
        return _to_line_item(response.data[0]) if response.data else None

    async def get_invoice(self, owner_id: str, invoice_id: str) -> Optional[Invoice]:
        response = _execute(
            self.client.table("invoices").select("*").eq("id", invoice_id).eq("user_id", owner_id)
        )
        return Invoice.model_validate(response.data[0]) if response.data else None

    async def get_line_items_for_invoice(self, invoice_id: str) -> list[LineItem]:
        response = _execute(
            self.client.table("invoice_rows").select("*").eq("invoice_id", invoice_id).order("id")
        )
        return [_to_line_item(row) for row in response.data or []]

    async def get_line_items_for_transaction(self, transaction_id: str) -> list[LineItem]:
        response = _execute(
            self.client.table("invoice_rows").select("*").eq("transaction_id", transaction_id)
        )
        return [_to_line_item(row) for row in response.data or []]

    async def get_extracted_invoice_data(self, invoice_id: str) -> Optional[ExtractedInvoiceData]:
        invoice = _execute(self.client.table("invoices").select("file_id").eq("id", invoice_id))
        file_id = invoice.data[0].get("file_id") if invoice.data else None
        if not file_id:
            return None

        response = _execute(self.client.table("files").select("extracted_data").eq("id", file_id))
        if not response.data:
            return None
        return ExtractedInvoiceData.from_payload(response.data[0].get("extracted_data"))

    # ---------- allocation and links ----------

    async def get_allocations_for_transactions(self, ids: list[str]) -> list[AllocationRow]:
        if not ids:
            return []
        response = _execute(
            self.client.table("invoice_rows")
            .select("id, transaction_id, total_agorot, allocation_amount_agorot")
            .in_("transaction_id", ids)
        )
        return [
            AllocationRow(
                transaction_id=row["transaction_id"],
                line_item_id=row.get("id"),
                total_agorot=row.get("total_agorot"),
                allocation_amount_agorot=row.get("allocation_amount_agorot"),
            )
            for row in response.data or []
        ]

    async def save_link(
        self,
        line_item_id: str,
        transaction_id: str,
        allocation_agorot: Optional[int],
        method: str,
        confidence: Optional[int],
    ) -> None:
        fields = build_link_fields(transaction_id, allocation_agorot, method, confidence)
        _execute(
            self.client.table("invoice_rows").update(_serialize(fields)).eq("id", line_item_id)
        )

    async def clear_link(self, line_item_id: str) -> None:
        _execute(self.client.table("invoice_rows").update(UNLINKED_FIELDS).eq("id", line_item_id))

    # ---------- consolidation results ----------

    async def save_consolidation_results(
        self, owner_id: str, results: list[ConsolidationResult]
    ) -> None:
        if not results:
            return
        bank_ids = [r.bank_transaction_id for r in results]
        _execute(
            self.client.table("cc_bank_match_results")
            .delete()
            .eq("user_id", owner_id)
            .in_("bank_transaction_id", bank_ids)
        )
        rows = [_serialize(r.model_dump(exclude={"id"})) for r in results]
        _execute(self.client.table("cc_bank_match_results").insert(rows))

    async def get_consolidation_results(
        self, owner_id: str, status: Optional[str] = None
    ) -> list[ConsolidationResult]:
        query = self.client.table("cc_bank_match_results").select("*").eq("user_id", owner_id)
        if status:
            query = query.eq("status", status)
        response = _execute(query.order("charge_date", desc=True))
        return [ConsolidationResult.model_validate(row) for row in response.data or []]

    async def get_consolidation_result(
        self, owner_id: str, result_id: str
    ) -> Optional[ConsolidationResult]:
        response = _execute(
            self.client.table("cc_bank_match_results")
            .select("*")
            .eq("id", result_id)
            .eq("user_id", owner_id)
        )
        return ConsolidationResult.model_validate(response.data[0]) if response.data else None

    async def get_consolidation_result_for_bank_charge(
        self, owner_id: str, bank_transaction_id: str
    ) -> Optional[ConsolidationResult]:
        response = _execute(
            self.client.table("cc_bank_match_results")
            .select("*")
            .eq("user_id", owner_id)
            .eq("bank_transaction_id", bank_transaction_id)
        )
        return ConsolidationResult.model_validate(response.data[0]) if response.data else None

    async def insert_consolidation_result(self, result: ConsolidationResult) -> ConsolidationResult:
        response = _execute(
            self.client.table("cc_bank_match_results")
            .insert(_serialize(result.model_dump(exclude={"id"})))
        )
        return ConsolidationResult.model_validate(response.data[0]) if response.data else result

    async def update_consolidation_result(self, result_id: str, updates: dict) -> None:
        _execute(
            self.client.table("cc_bank_match_results").update(_serialize(updates)).eq("id", result_id)
        )

    async def delete_consolidation_result(self, result_id: str) -> None:
        _execute(self.client.table("cc_bank_match_results").delete().eq("id", result_id))

    # ---------- vendors and preferences ----------

    async def get_vendor_aliases(self, owner_id: str) -> list[VendorAlias]:
        response = _execute(
            self.client.table("vendor_aliases")
            .select("*")
            .eq("user_id", owner_id)
            .order("priority", desc=True)
        )
        return [VendorAlias.model_validate(row) for row in response.data or []]

    async def create_vendor_alias(self, alias: VendorAlias) -> VendorAlias:
        response = _execute(
            self.client.table("vendor_aliases").insert(alias.model_dump(exclude={"id"}))
        )
        return VendorAlias.model_validate(response.data[0]) if response.data else alias

    async def delete_vendor_alias(self, owner_id: str, alias_id: str) -> bool:
        response = _execute(
            self.client.table("vendor_aliases").delete().eq("id", alias_id).eq("user_id", owner_id)
        )
        return bool(response.data)

    async def get_user_thresholds(self, owner_id: str) -> dict:
        response = _execute(
            self.client.table("user_settings")
            .select("auto_approval_threshold")
            .eq("user_id", owner_id)
        )
        return response.data[0] if response.data else {}
