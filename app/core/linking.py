# app/core/linking.py

"""
Link and unlink line items to transactions.

Writes never raise: failures come back as OperationResult(success=False)
so batch callers can record them and carry on.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.models import (
    LineItemLinkSummary,
    OperationResult,
    TransactionLinkSummary,
)
from app.repository import Repository, RepositoryError

logger = logging.getLogger(__name__)


# ============================================
# Field sets
# ============================================

UNLINKED_FIELDS: dict = {
    "transaction_id": None,
    "allocation_amount_agorot": None,
    "match_status": "unmatched",
    "match_method": None,
    "match_confidence": None,
    "matched_at": None,
}


def build_link_fields(
    transaction_id: str,
    allocation_agorot: Optional[int],
    method: str,
    confidence: Optional[int],
    now: Optional[datetime] = None,
) -> dict:
    """Column values for a linked line item."""
    return {
        "transaction_id": transaction_id,
        "allocation_amount_agorot": allocation_agorot,
        "match_status": "partial" if allocation_agorot is not None else "matched",
        "match_method": method,
        "match_confidence": confidence,
        "matched_at": now or datetime.now(timezone.utc),
    }


# ============================================
# Link / unlink
# ============================================

async def link_line_item_to_transaction(
    repo: Repository,
    line_item_id: str,
    transaction_id: str,
    allocation_amount: Optional[int] = None,
    match_method: str = "manual",
    match_confidence: Optional[int] = None,
) -> OperationResult:
    """Link a line item to a transaction, optionally allocating part of it."""
    try:
        await repo.save_link(
            line_item_id,
            transaction_id,
            allocation_amount,
            match_method,
            match_confidence,
        )
    except RepositoryError as exc:
        logger.warning(f"Failed to link line item {line_item_id} to {transaction_id}: {exc}")
        return OperationResult(success=False, error=str(exc))

    return OperationResult(success=True)


async def unlink_line_item_from_transaction(repo: Repository, line_item_id: str) -> OperationResult:
    """Reset a line item to its unlinked state."""
    try:
        await repo.clear_link(line_item_id)
    except RepositoryError as exc:
        logger.warning(f"Failed to unlink line item {line_item_id}: {exc}")
        return OperationResult(success=False, error=str(exc))

    return OperationResult(success=True)


# ============================================
# Summaries
# ============================================

async def get_transaction_link_summary(
    repo: Repository,
    owner_id: str,
    transaction_id: str,
) -> Optional[TransactionLinkSummary]:
    """How much of a transaction is covered by linked line items."""
    transaction = await repo.get_transaction(owner_id, transaction_id)
    if transaction is None:
        return None

    line_items = await repo.get_line_items_for_transaction(transaction_id)
    total_allocated = sum(
        abs(li.allocation_amount_agorot) if li.allocation_amount_agorot is not None
        else abs(li.total_agorot or 0)
        for li in line_items
    )
    remaining = abs(transaction.amount_agorot) - total_allocated

    return TransactionLinkSummary(
        transaction_id=transaction_id,
        linked_count=len(line_items),
        total_allocated_agorot=total_allocated,
        remaining_agorot=remaining,
        is_fully_allocated=remaining == 0 and len(line_items) > 0,
        line_items=line_items,
    )


async def get_line_item_link_summary(
    repo: Repository,
    owner_id: str,
    line_item_id: str,
) -> Optional[LineItemLinkSummary]:
    line_item = await repo.get_line_item(owner_id, line_item_id)
    if line_item is None:
        return None

    transaction = None
    if line_item.transaction_id:
        transaction = await repo.get_transaction(owner_id, line_item.transaction_id)

    return LineItemLinkSummary(
        line_item_id=line_item_id,
        is_linked=line_item.is_linked,
        transaction=transaction,
        allocation_amount_agorot=line_item.allocation_amount_agorot,
        match_method=line_item.match_method,
        match_confidence=line_item.match_confidence,
    )
