# app/core/auto_matcher.py

"""
Automatic matching of invoice line items to transactions.

For each line item: pull transactions from a date/amount window, drop the
fully allocated ones, pre-fetch rates for every currency in play, score
each candidate and classify the best one against the owner's thresholds.

All I/O happens before the scoring loop; the loop itself is pure.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from app.config import get_settings
from app.core.allocation import batch_get_allocation_info
from app.core.exchange_rates import ExchangeRateCache
from app.core.linking import link_line_item_to_transaction
from app.core.scoring import score_match
from app.models import (
    ELIGIBLE_KINDS,
    ApplyInvoiceResult,
    ApplyResult,
    AutoMatchInvoiceResult,
    AutoMatchOptions,
    AutoMatchSummary,
    ExtractedInvoiceData,
    Invoice,
    LineItem,
    LineItemCandidate,
    LineItemMatchResult,
    MatchCandidate,
    MatchScore,
    OperationResult,
    ScoringContext,
    Transaction,
    VendorAlias,
)
from app.repository import Repository, RepositoryError

settings = get_settings()
logger = logging.getLogger(__name__)


def classify(best_score: Optional[int], options: AutoMatchOptions) -> tuple[str, Optional[str]]:
    """(status, method) for the best candidate's score."""
    if best_score is None:
        return "no_match", None
    if best_score >= options.auto_approve_threshold:
        return "auto_matched", "auto_approved"
    if best_score >= options.candidate_threshold:
        return "candidate", "candidate"
    return "no_match", None


def amount_window(line_item: LineItem, tolerance_percent: float) -> tuple[Optional[int], Optional[int]]:
    """
    Absolute amount bounds for the candidate query.

    Only home-currency line items get a window; a foreign amount can't be
    compared to home-currency rows before conversion.
    """
    currency = (line_item.currency or settings.home_currency).upper()
    total = abs(line_item.total_agorot or 0)
    if currency != settings.home_currency.upper() or total == 0:
        return None, None

    max_amount = int(total * (1 + tolerance_percent / 100))
    min_amount = None if tolerance_percent >= 100 else int(total * (1 - tolerance_percent / 100))
    return min_amount, max_amount


def currencies_in_play(line_item: LineItem, transactions: list[Transaction]) -> set[str]:
    """Non-home currencies that need a rate to score these pairs."""
    home = settings.home_currency.upper()
    currencies: set[str] = set()
    if line_item.currency and line_item.currency.upper() != home:
        currencies.add(line_item.currency.upper())
    for tx in transactions:
        if tx.is_foreign and tx.foreign_currency.upper() != home:
            currencies.add(tx.foreign_currency.upper())
    return currencies


def _safe_score(transaction: Transaction, context: ScoringContext, label: str) -> Optional[MatchScore]:
    """score_match, or None when scoring this one pair blows up."""
    try:
        return score_match(transaction, context)
    except Exception as exc:
        logger.warning(f"Scoring failed for {label}: {exc}")
        return None


class AutoMatcher:
    """Candidate retrieval, scoring and classification for line items."""

    def __init__(self, repo: Repository, rates: ExchangeRateCache):
        self.repo = repo
        self.rates = rates

    # ============================================
    # Options
    # ============================================

    async def get_options(self, owner_id: str, **overrides) -> AutoMatchOptions:
        """
        Settings defaults, then the owner's stored threshold, then explicit overrides.
        """
        options = AutoMatchOptions(
            auto_approve_threshold=settings.auto_approve_threshold,
            candidate_threshold=settings.candidate_threshold,
            max_candidates=settings.max_candidates,
            date_range_days=settings.date_range_days,
            amount_tolerance_percent=settings.amount_tolerance_percent,
        )

        try:
            stored = await self.repo.get_user_thresholds(owner_id)
        except RepositoryError as exc:
            logger.warning(f"Could not load thresholds for {owner_id}, using defaults: {exc}")
            stored = {}

        if stored.get("auto_approval_threshold") is not None:
            options.auto_approve_threshold = stored["auto_approval_threshold"]

        updates = {k: v for k, v in overrides.items() if v is not None}
        return options.model_copy(update=updates) if updates else options

    # ============================================
    # Line item -> transactions
    # ============================================

    async def get_match_candidates(
        self,
        owner_id: str,
        line_item: LineItem,
        invoice: Optional[Invoice],
        options: AutoMatchOptions,
        vendor_aliases: Optional[list[VendorAlias]] = None,
        extracted_data: Optional[ExtractedInvoiceData] = None,
        prefetched: bool = False,
    ) -> list[MatchCandidate]:
        """
        Scored transactions for a line item, best first.

        Pass ``vendor_aliases`` and ``extracted_data`` with ``prefetched=True``
        to reuse fetches across the line items of one invoice.
        """
        line_date = line_item.effective_date(invoice)
        if line_date is None:
            return []

        window = timedelta(days=options.date_range_days)
        min_amount, max_amount = amount_window(line_item, options.amount_tolerance_percent)

        transactions = await self.repo.find_transactions_by_date_amount_window(
            owner_id,
            line_date - window,
            line_date + window,
            ELIGIBLE_KINDS,
            is_income=False,
            min_amount=min_amount,
            max_amount=max_amount,
            limit=settings.candidate_query_limit,
        )
        if not transactions:
            return []

        allocation = await batch_get_allocation_info(self.repo, [tx.id for tx in transactions])
        open_transactions = [
            tx for tx in transactions
            if not (tx.id in allocation and allocation[tx.id].is_fully_allocated)
        ]
        if not open_transactions:
            return []

        if not prefetched:
            vendor_aliases = await self.repo.get_vendor_aliases(owner_id)
            if invoice is not None:
                extracted_data = await self.repo.get_extracted_invoice_data(invoice.id)

        exchange_rates = await self.rates.get_rates_for_date(
            line_date, currencies_in_play(line_item, open_transactions)
        )

        context = ScoringContext(
            line_item=line_item,
            invoice=invoice,
            extracted_data=extracted_data,
            vendor_aliases=vendor_aliases or [],
            exchange_rates=exchange_rates,
        )

        candidates: list[MatchCandidate] = []
        for tx in open_transactions:
            score = _safe_score(tx, context, f"transaction {tx.id} for line item {line_item.id}")
            if score is None:
                continue
            if score.is_disqualified or score.total < options.candidate_threshold:
                continue
            info = allocation.get(tx.id)
            candidates.append(MatchCandidate(
                transaction=tx,
                score=score,
                confidence=score.total,
                remaining_agorot=info.remaining_agorot if info else abs(tx.amount_agorot),
            ))

        candidates.sort(key=lambda c: c.score.total, reverse=True)
        return candidates[:options.max_candidates]

    async def _match_line_item(
        self,
        owner_id: str,
        line_item: LineItem,
        invoice: Optional[Invoice],
        options: AutoMatchOptions,
        vendor_aliases: Optional[list[VendorAlias]] = None,
        extracted_data: Optional[ExtractedInvoiceData] = None,
        prefetched: bool = False,
    ) -> LineItemMatchResult:
        if line_item.is_linked and not options.force_rematch:
            return LineItemMatchResult(
                line_item_id=line_item.id,
                status="auto_matched",
                method=line_item.match_method or "manual",
            )

        candidates = await self.get_match_candidates(
            owner_id, line_item, invoice, options, vendor_aliases, extracted_data, prefetched
        )
        best = candidates[0] if candidates else None
        status, method = classify(best.score.total if best else None, options)

        return LineItemMatchResult(
            line_item_id=line_item.id,
            status=status,
            method=method,
            best_match=best if status != "no_match" else None,
            candidates=candidates,
        )

    async def auto_match_line_item(
        self,
        owner_id: str,
        line_item_id: str,
        options: Optional[AutoMatchOptions] = None,
    ) -> Optional[LineItemMatchResult]:
        """Match one line item. None when the owner has no such line item."""
        options = options or await self.get_options(owner_id)

        line_item = await self.repo.get_line_item(owner_id, line_item_id)
        if line_item is None:
            return None
        invoice = await self.repo.get_invoice(owner_id, line_item.invoice_id)

        return await self._match_line_item(owner_id, line_item, invoice, options)

    async def auto_match_invoice(
        self,
        owner_id: str,
        invoice_id: str,
        options: Optional[AutoMatchOptions] = None,
    ) -> Optional[AutoMatchInvoiceResult]:
        """
        Match every line item of an invoice.

        Aliases and extracted data are fetched once for the whole invoice.
        A failure on one line item is recorded on its result and the rest
        carry on.
        """
        options = options or await self.get_options(owner_id)

        invoice = await self.repo.get_invoice(owner_id, invoice_id)
        if invoice is None:
            return None

        line_items = await self.repo.get_line_items_for_invoice(invoice_id)
        vendor_aliases = await self.repo.get_vendor_aliases(owner_id)
        extracted_data = await self.repo.get_extracted_invoice_data(invoice_id)

        result = AutoMatchInvoiceResult(invoice_id=invoice_id)
        for line_item in line_items:
            try:
                item_result = await self._match_line_item(
                    owner_id, line_item, invoice, options, vendor_aliases, extracted_data,
                    prefetched=True,
                )
            except Exception as exc:
                logger.warning(f"Auto-match failed for line item {line_item.id}: {exc}")
                item_result = LineItemMatchResult(
                    line_item_id=line_item.id,
                    status="no_match",
                    error=str(exc),
                )
            result.results.append(item_result)

        result.summary = AutoMatchSummary(
            auto_matched=sum(1 for r in result.results if r.status == "auto_matched"),
            candidates=sum(1 for r in result.results if r.status == "candidate"),
            no_match=sum(1 for r in result.results if r.status == "no_match"),
        )
        logger.info(
            f"Invoice {invoice_id} auto-match: {result.summary.auto_matched} auto, "
            f"{result.summary.candidates} candidates, {result.summary.no_match} no match"
        )
        return result

    async def score_pair(
        self,
        owner_id: str,
        line_item: LineItem,
        invoice: Optional[Invoice],
        transaction: Transaction,
    ) -> MatchScore:
        """Score one explicit line item / transaction pair with a freshly built context."""
        line_date = line_item.effective_date(invoice)
        currencies = currencies_in_play(line_item, [transaction])
        exchange_rates = {}
        if line_date is not None and currencies:
            exchange_rates = await self.rates.get_rates_for_date(line_date, currencies)

        context = ScoringContext(
            line_item=line_item,
            invoice=invoice,
            extracted_data=(
                await self.repo.get_extracted_invoice_data(invoice.id) if invoice else None
            ),
            vendor_aliases=await self.repo.get_vendor_aliases(owner_id),
            exchange_rates=exchange_rates,
        )
        return score_match(transaction, context)

    # ============================================
    # Applying matches
    # ============================================

    async def apply_auto_match(
        self,
        line_item_id: str,
        transaction_id: str,
        score: MatchScore,
        allocation_agorot: Optional[int] = None,
        match_method: str = "auto_approved",
    ) -> OperationResult:
        """Persist a chosen match, recording the score as its confidence."""
        method = "manual" if match_method == "manual" else "rule_amount_date"
        return await link_line_item_to_transaction(
            self.repo,
            line_item_id,
            transaction_id,
            allocation_amount=allocation_agorot,
            match_method=method,
            match_confidence=score.total,
        )

    async def apply_auto_matches_for_invoice(
        self,
        owner_id: str,
        invoice_id: str,
        options: Optional[AutoMatchOptions] = None,
        match_result: Optional[AutoMatchInvoiceResult] = None,
    ) -> Optional[ApplyInvoiceResult]:
        """
        Link every auto-matched line item of an invoice.

        Items that were already linked are left alone. One failed write is
        reported and the rest are still applied.
        """
        if match_result is None:
            match_result = await self.auto_match_invoice(owner_id, invoice_id, options)
            if match_result is None:
                return None

        outcome = ApplyInvoiceResult()
        for item in match_result.results:
            if item.status != "auto_matched" or item.best_match is None:
                continue

            link = await self.apply_auto_match(
                item.line_item_id,
                item.best_match.transaction.id,
                item.best_match.score,
            )
            outcome.results.append(ApplyResult(
                line_item_id=item.line_item_id,
                success=link.success,
                error=link.error,
            ))
            if link.success:
                outcome.applied += 1
            else:
                outcome.failed += 1

        return outcome

    # ============================================
    # Transaction -> line items
    # ============================================

    async def get_line_item_candidates(
        self,
        owner_id: str,
        transaction: Transaction,
        options: Optional[AutoMatchOptions] = None,
    ) -> list[LineItemCandidate]:
        """Scored unlinked line items for a transaction, best first."""
        # Transaction-side disqualifiers would reject every line item
        if transaction.is_income or transaction.transaction_type not in ELIGIBLE_KINDS:
            return []

        options = options or await self.get_options(owner_id)

        window = timedelta(days=options.date_range_days)
        pairs = await self.repo.find_unmatched_line_items(
            owner_id,
            transaction.date - window,
            transaction.date + window,
            limit=settings.candidate_query_limit,
        )
        if not pairs:
            return []

        vendor_aliases = await self.repo.get_vendor_aliases(owner_id)
        extracted: dict[str, Optional[ExtractedInvoiceData]] = {}
        for _, invoice in pairs:
            if invoice.id not in extracted:
                extracted[invoice.id] = await self.repo.get_extracted_invoice_data(invoice.id)

        rates_by_date: dict[date, dict] = {}
        for line_item, invoice in pairs:
            line_date = line_item.effective_date(invoice)
            currencies = currencies_in_play(line_item, [transaction])
            if line_date is None or not currencies:
                continue
            known = rates_by_date.setdefault(line_date, {})
            missing = currencies - set(known)
            if missing:
                known.update(await self.rates.get_rates_for_date(line_date, missing))

        candidates: list[LineItemCandidate] = []
        for line_item, invoice in pairs:
            context = ScoringContext(
                line_item=line_item,
                invoice=invoice,
                extracted_data=extracted.get(invoice.id),
                vendor_aliases=vendor_aliases,
                exchange_rates=rates_by_date.get(line_item.effective_date(invoice), {}),
            )
            score = _safe_score(
                transaction, context, f"line item {line_item.id} for transaction {transaction.id}"
            )
            if score is None:
                continue
            if score.is_disqualified or score.total < options.candidate_threshold:
                continue
            candidates.append(LineItemCandidate(
                line_item=line_item,
                invoice=invoice,
                score=score,
                confidence=score.total,
            ))

        candidates.sort(key=lambda c: c.score.total, reverse=True)
        return candidates[:options.max_candidates]
