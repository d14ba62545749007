# app/core/allocation.py

"""
Partial allocation accounting.

A transaction can pay for several line items. A linked line item consumes
its explicit allocation if it has one, else its full total.
"""

import logging

from app.models import AllocationInfo
from app.repository import Repository

logger = logging.getLogger(__name__)


async def batch_get_allocation_info(repo: Repository, transaction_ids: list[str]) -> dict[str, AllocationInfo]:
    """
    Allocation state for many transactions with two repository reads.

    Ids that don't resolve to a transaction are left out of the result.
    """
    ids = list(dict.fromkeys(transaction_ids))
    if not ids:
        return {}

    amounts = await repo.get_transaction_amounts(ids)
    rows = await repo.get_allocations_for_transactions(ids)

    allocated: dict[str, int] = {tx_id: 0 for tx_id in amounts}
    for row in rows:
        if row.transaction_id in allocated:
            allocated[row.transaction_id] += row.allocated

    result: dict[str, AllocationInfo] = {}
    for tx_id, amount in amounts.items():
        total = abs(amount)
        remaining = max(0, total - allocated[tx_id])
        result[tx_id] = AllocationInfo(
            transaction_id=tx_id,
            amount_agorot=total,
            allocated_agorot=allocated[tx_id],
            remaining_agorot=remaining,
            is_fully_allocated=remaining <= 0,
        )

    logger.debug(f"Loaded allocation info for {len(result)}/{len(ids)} transactions")
    return result


async def get_allocation_info(repo: Repository, transaction_id: str) -> AllocationInfo | None:
    """Single-transaction convenience wrapper."""
    info = await batch_get_allocation_info(repo, [transaction_id])
    return info.get(transaction_id)
