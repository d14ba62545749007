# app/core/cc_consolidation.py

"""
Credit card purchase <-> bank charge consolidation.

The bank statement shows one aggregated charge per card per billing date,
while the card statement lists every purchase. Purchases are grouped by
(card, charge date) and each group is matched to the bank charge for the
same card closest in date and amount.
"""

import logging
import re
from typing import Optional

from app.config import get_settings
from app.core.batching import process_in_batches
from app.core.normalizers import days_between, percent_difference
from app.models import (
    BankChargeMatch,
    CCGroup,
    ConsolidationResult,
    ConsolidationRunResult,
    ConsolidationSettings,
    ConsolidationSummary,
    OperationResult,
    Transaction,
    TransactionKind,
)
from app.repository import Repository, RepositoryError

settings = get_settings()
logger = logging.getLogger(__name__)

DATE_WEIGHT = 0.6
AMOUNT_WEIGHT = 0.4
MANUAL_CONFIDENCE = 100
UNKNOWN_CARD = "XXXX"

# Issuer names and phrases that mark a bank row as a card charge
CARD_KEYWORDS: tuple[str, ...] = (
    'כרטיס',
    'ויזא',
    'ויזה',
    'visa',
    'מאסטרקארד',
    'mastercard',
    'אמריקן אקספרס',
    'amex',
    'ישראכרט',
    'לאומי קארד',
    'מקס',
    'כאל',
    'חיוב לכרטיס',
)


# ============================================
# Detection and grouping
# ============================================

def detect_credit_card_charge(description: Optional[str]) -> Optional[str]:
    """Card last four of a bank card-charge row, or None if it isn't one."""
    if not description:
        return None

    text = description.lower()
    if not any(keyword in text for keyword in CARD_KEYWORDS):
        return None

    digits = re.findall(r'\d{4}', description)
    return digits[-1] if digits else None


def group_cc_transactions(transactions: list[Transaction]) -> dict[str, CCGroup]:
    """Group purchases by (card, charge date), summing absolute amounts."""
    groups: dict[str, CCGroup] = {}
    for tx in transactions:
        card = tx.card_last_four or UNKNOWN_CARD
        key = f"{card}|{tx.charge_date.isoformat()}"
        group = groups.get(key)
        if group is None:
            group = groups[key] = CCGroup(card_last_four=card, charge_date=tx.charge_date)
        group.transactions.append(tx)
        group.total_amount_agorot += abs(tx.amount_agorot)
    return groups


def discrepancy_percent(bank_amount: int, group_total: int) -> float:
    if bank_amount == 0:
        return 0.0
    return percent_difference(group_total, bank_amount)


def calculate_confidence(
    days_diff: int,
    date_tolerance_days: int,
    percent: float,
    amount_tolerance_percent: float,
) -> int:
    """
    Blend of date and amount closeness, 0-100.

    Each part is 100 when exact and falls linearly to 0 at its tolerance.
    """
    if date_tolerance_days > 0:
        date_score = max(0.0, 100 - days_diff / date_tolerance_days * 100)
    else:
        date_score = 100.0 if days_diff == 0 else 0.0

    amount_score = max(0.0, 100 - percent / amount_tolerance_percent * 100)

    return round(DATE_WEIGHT * date_score + AMOUNT_WEIGHT * amount_score)


def find_best_bank_match(
    group: CCGroup,
    bank_charges: list[Transaction],
    options: ConsolidationSettings,
) -> Optional[BankChargeMatch]:
    """Highest-confidence bank charge for the group's card within the date window."""
    best: Optional[BankChargeMatch] = None

    for bank_tx in bank_charges:
        if detect_credit_card_charge(bank_tx.description) != group.card_last_four:
            continue

        days_diff = days_between(bank_tx.date, group.charge_date)
        if days_diff > options.date_tolerance_days:
            continue

        confidence = calculate_confidence(
            days_diff,
            options.date_tolerance_days,
            discrepancy_percent(abs(bank_tx.amount_agorot), group.total_amount_agorot),
            options.amount_tolerance_percent,
        )
        if best is None or confidence > best.confidence:
            best = BankChargeMatch(bank_transaction=bank_tx, confidence=confidence, days_diff=days_diff)

    return best


def build_result(owner_id: str, group: CCGroup, match: BankChargeMatch) -> ConsolidationResult:
    bank_amount = abs(match.bank_transaction.amount_agorot)
    return ConsolidationResult(
        user_id=owner_id,
        bank_transaction_id=match.bank_transaction.id,
        card_last_four=group.card_last_four,
        charge_date=group.charge_date,
        total_cc_amount_agorot=group.total_amount_agorot,
        bank_amount_agorot=bank_amount,
        discrepancy_agorot=bank_amount - group.total_amount_agorot,
        discrepancy_percent=discrepancy_percent(bank_amount, group.total_amount_agorot),
        cc_transaction_count=len(group.transactions),
        match_confidence=match.confidence,
        status="pending",
    )


# ============================================
# Run
# ============================================

async def run_cc_bank_consolidation(
    repo: Repository,
    owner_id: str,
    options: Optional[ConsolidationSettings] = None,
) -> ConsolidationRunResult:
    """
    Match every unconsolidated purchase group to a bank charge.

    Never raises for repository failures: they are collected in ``errors``
    and the remaining groups are still processed.
    """
    options = options or ConsolidationSettings(
        date_tolerance_days=settings.cc_date_tolerance_days,
        amount_tolerance_percent=settings.cc_amount_tolerance_percent,
    )
    result = ConsolidationRunResult()

    try:
        purchases = await repo.find_unmatched_cc_purchases(owner_id)
    except RepositoryError as exc:
        result.errors.append(f"Failed to fetch CC transactions: {exc}")
        return result
    if not purchases:
        return result

    try:
        bank_charges = await repo.find_bank_cc_charges(owner_id)
    except RepositoryError as exc:
        result.errors.append(f"Failed to fetch bank charges: {exc}")
        return result
    if not bank_charges:
        return result

    matched: list[tuple[CCGroup, BankChargeMatch]] = []
    for group in group_cc_transactions(purchases).values():
        match = find_best_bank_match(group, bank_charges, options)
        if match:
            matched.append((group, match))

    async def attach_group(item: tuple[CCGroup, BankChargeMatch]) -> Optional[ConsolidationResult]:
        group, match = item
        try:
            await repo.update_consolidated_transactions(
                owner_id,
                [tx.id for tx in group.transactions],
                match.bank_transaction.id,
                match.confidence,
            )
        except RepositoryError as exc:
            logger.warning(f"Failed to update CC group {group.key}: {exc}")
            result.errors.append(f"Failed to update CC transactions for {group.key}: {exc}")
            return None
        return build_result(owner_id, group, match)

    saved = await process_in_batches(
        matched,
        attach_group,
        batch_size=settings.cc_update_batch_size,
        delay=settings.cc_update_batch_delay,
    )
    records = [r for r in saved if r is not None]

    for record in records:
        result.matched_groups += 1
        result.matched_cc_transactions += record.cc_transaction_count
        result.total_discrepancy_agorot += record.discrepancy_agorot

    if records:
        try:
            await repo.save_consolidation_results(owner_id, records)
        except RepositoryError as exc:
            logger.warning(f"Failed to save consolidation results for {owner_id}: {exc}")
            result.errors.append(f"Failed to insert match results: {exc}")

    logger.info(
        f"CC consolidation for {owner_id}: {result.matched_groups} groups, "
        f"{result.matched_cc_transactions} purchases, discrepancy {result.total_discrepancy_agorot}"
    )
    return result


# ============================================
# Review actions
# ============================================

async def update_consolidation_status(repo: Repository, result_id: str, status: str) -> OperationResult:
    try:
        await repo.update_consolidation_result(result_id, {"status": status})
    except RepositoryError as exc:
        logger.warning(f"Failed to update consolidation result {result_id}: {exc}")
        return OperationResult(success=False, error=str(exc))
    return OperationResult(success=True)


def _totals(bank_amount: int, purchases: list[Transaction]) -> dict:
    total = sum(abs(tx.amount_agorot) for tx in purchases)
    return {
        "total_cc_amount_agorot": total,
        "cc_transaction_count": len(purchases),
        "discrepancy_agorot": bank_amount - total,
        "discrepancy_percent": discrepancy_percent(bank_amount, total),
    }


async def unmatch_cc_transactions(
    repo: Repository,
    owner_id: str,
    result_id: str,
    transaction_ids: list[str],
) -> OperationResult:
    """
    Detach purchases from a consolidation result.

    The result is deleted once no purchase is left on it; otherwise its
    totals are recomputed from the purchases that remain.
    """
    try:
        record = await repo.get_consolidation_result(owner_id, result_id)
        if record is None:
            return OperationResult(success=False, error="Consolidation result not found")

        linked = await repo.find_cc_purchases_for_charge(owner_id, record.bank_transaction_id)
        detach = {tx.id for tx in linked} & set(transaction_ids)
        if not detach:
            return OperationResult(success=False, error="Transactions are not part of this result")

        await repo.clear_consolidated_transactions(owner_id, sorted(detach))
        remaining = [tx for tx in linked if tx.id not in detach]

        if not remaining:
            await repo.delete_consolidation_result(result_id)
        else:
            await repo.update_consolidation_result(
                result_id, _totals(record.bank_amount_agorot, remaining)
            )
    except RepositoryError as exc:
        logger.warning(f"Failed to unmatch CC transactions from {result_id}: {exc}")
        return OperationResult(success=False, error=str(exc))

    return OperationResult(success=True)


async def attach_cc_transactions(
    repo: Repository,
    owner_id: str,
    bank_transaction_id: str,
    transaction_ids: list[str],
) -> OperationResult:
    """
    Manually attach purchases to a bank charge.

    Creates the consolidation result if the charge has none yet.
    """
    if not transaction_ids:
        return OperationResult(success=False, error="No transactions to attach")

    try:
        bank_tx = await repo.get_transaction(owner_id, bank_transaction_id)
        if bank_tx is None:
            return OperationResult(success=False, error="Bank transaction not found")

        purchases = await repo.get_transactions(owner_id, transaction_ids)
        found = {tx.id for tx in purchases if tx.transaction_type == TransactionKind.CC_PURCHASE}
        missing = [i for i in transaction_ids if i not in found]
        if missing:
            return OperationResult(
                success=False, error=f"CC purchases not found: {', '.join(missing)}"
            )

        await repo.update_consolidated_transactions(
            owner_id, transaction_ids, bank_transaction_id, MANUAL_CONFIDENCE
        )
        linked = await repo.find_cc_purchases_for_charge(owner_id, bank_transaction_id)

        bank_amount = abs(bank_tx.amount_agorot)
        totals = _totals(bank_amount, linked)

        existing = await repo.get_consolidation_result_for_bank_charge(owner_id, bank_transaction_id)
        if existing and existing.id:
            await repo.update_consolidation_result(existing.id, totals)
        else:
            await repo.insert_consolidation_result(ConsolidationResult(
                user_id=owner_id,
                bank_transaction_id=bank_transaction_id,
                card_last_four=(linked[0].card_last_four if linked else None) or UNKNOWN_CARD,
                charge_date=bank_tx.date,
                bank_amount_agorot=bank_amount,
                match_confidence=MANUAL_CONFIDENCE,
                status="pending",
                **totals,
            ))
    except RepositoryError as exc:
        logger.warning(f"Failed to attach CC transactions to {bank_transaction_id}: {exc}")
        return OperationResult(success=False, error=str(exc))

    return OperationResult(success=True)


async def get_consolidation_summary(repo: Repository, owner_id: str) -> ConsolidationSummary:
    results = await repo.get_consolidation_results(owner_id)
    if not results:
        return ConsolidationSummary()

    return ConsolidationSummary(
        total_matches=len(results),
        total_discrepancy_agorot=sum(abs(r.discrepancy_agorot) for r in results),
        avg_confidence=sum(r.match_confidence for r in results) / len(results),
        total_cc_transactions=sum(r.cc_transaction_count for r in results),
        pending_count=sum(1 for r in results if r.status == "pending"),
        approved_count=sum(1 for r in results if r.status == "approved"),
        rejected_count=sum(1 for r in results if r.status == "rejected"),
    )
