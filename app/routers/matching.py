# app/routers/matching.py

"""
Line item <-> transaction matching routes.

Candidates in both directions, auto-matching for one line item or a whole
invoice, and manual link management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.core.auto_matcher import AutoMatcher
from app.core.linking import (
    get_line_item_link_summary,
    get_transaction_link_summary,
    link_line_item_to_transaction,
    unlink_line_item_from_transaction,
)
from app.core.vendor_resolver import learn_vendor_alias
from app.dependencies import get_auto_matcher, get_current_user, get_repository
from app.repository import Repository

router = APIRouter()


# ============================================
# Request Models
# ============================================

class AutoMatchRequest(BaseModel):
    force_rematch: bool = False
    apply: bool = False


class LinkRequest(BaseModel):
    transaction_id: str
    allocation_amount_agorot: Optional[int] = None
    match_method: str = "manual"
    match_confidence: Optional[int] = None


class ScoreRequest(BaseModel):
    line_item_id: str
    transaction_id: str


# ============================================
# Line Items
# ============================================

@router.get("/line-items/{line_item_id}/candidates")
async def line_item_candidates(
    line_item_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    matcher: AutoMatcher = Depends(get_auto_matcher),
):
    """Ranked transactions that could pay for this line item."""
    line_item = await repo.get_line_item(user_id, line_item_id)
    if not line_item:
        raise HTTPException(status_code=404, detail="Line item not found")
    invoice = await repo.get_invoice(user_id, line_item.invoice_id)

    options = await matcher.get_options(user_id)
    candidates = await matcher.get_match_candidates(user_id, line_item, invoice, options)

    return {
        "success": True,
        "line_item_id": line_item_id,
        "candidates": [c.model_dump(mode="json") for c in candidates],
        "count": len(candidates),
    }


@router.post("/line-items/{line_item_id}/auto-match")
async def auto_match_line_item(
    line_item_id: str,
    request: AutoMatchRequest,
    user_id: str = Depends(get_current_user),
    matcher: AutoMatcher = Depends(get_auto_matcher),
):
    """Classify the best candidate and, with ``apply``, link an auto-approved one."""
    options = await matcher.get_options(user_id, force_rematch=request.force_rematch)
    result = await matcher.auto_match_line_item(user_id, line_item_id, options)
    if result is None:
        raise HTTPException(status_code=404, detail="Line item not found")

    applied = None
    if request.apply and result.status == "auto_matched" and result.best_match:
        link = await matcher.apply_auto_match(
            line_item_id,
            result.best_match.transaction.id,
            result.best_match.score,
        )
        applied = link.model_dump()

    return {
        "success": True,
        "result": result.model_dump(mode="json"),
        "applied": applied,
    }


@router.post("/line-items/{line_item_id}/link")
async def link_line_item(
    line_item_id: str,
    request: LinkRequest,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    matcher: AutoMatcher = Depends(get_auto_matcher),
):
    """
    Manually link a line item to a transaction.

    When the vendor signal couldn't explain the pair, the statement text
    is learned as an alias for the invoice vendor.
    """
    line_item = await repo.get_line_item(user_id, line_item_id)
    if not line_item:
        raise HTTPException(status_code=404, detail="Line item not found")
    transaction = await repo.get_transaction(user_id, request.transaction_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    result = await link_line_item_to_transaction(
        repo,
        line_item_id,
        request.transaction_id,
        allocation_amount=request.allocation_amount_agorot,
        match_method=request.match_method,
        match_confidence=request.match_confidence,
    )

    learned = None
    if result.success and request.match_method == "manual":
        invoice = await repo.get_invoice(user_id, line_item.invoice_id)
        if invoice and invoice.vendor_name:
            score = await matcher.score_pair(user_id, line_item, invoice, transaction)
            if score.vendor_match and score.vendor_match.suggest_alias:
                alias = await learn_vendor_alias(
                    repo, user_id, transaction.description, invoice.vendor_name
                )
                learned = alias.model_dump() if alias else None

    return {
        "success": result.success,
        "error": result.error,
        "learned_alias": learned,
    }


@router.delete("/line-items/{line_item_id}/link")
async def unlink_line_item(
    line_item_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    line_item = await repo.get_line_item(user_id, line_item_id)
    if not line_item:
        raise HTTPException(status_code=404, detail="Line item not found")

    result = await unlink_line_item_from_transaction(repo, line_item_id)
    return result.model_dump()


@router.get("/line-items/{line_item_id}/summary")
async def line_item_summary(
    line_item_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    summary = await get_line_item_link_summary(repo, user_id, line_item_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Line item not found")
    return {"success": True, "summary": summary.model_dump(mode="json")}


# ============================================
# Invoices
# ============================================

@router.post("/invoices/{invoice_id}/auto-match")
async def auto_match_invoice(
    invoice_id: str,
    request: AutoMatchRequest,
    user_id: str = Depends(get_current_user),
    matcher: AutoMatcher = Depends(get_auto_matcher),
):
    """Auto-match every line item of an invoice, optionally applying the auto-approved ones."""
    options = await matcher.get_options(user_id, force_rematch=request.force_rematch)
    result = await matcher.auto_match_invoice(user_id, invoice_id, options)
    if result is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    applied = None
    if request.apply:
        outcome = await matcher.apply_auto_matches_for_invoice(
            user_id, invoice_id, options, match_result=result
        )
        applied = outcome.model_dump() if outcome else None

    return {
        "success": True,
        "result": result.model_dump(mode="json"),
        "applied": applied,
    }


# ============================================
# Transactions
# ============================================

@router.get("/transactions/{transaction_id}/candidates")
async def transaction_candidates(
    transaction_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    matcher: AutoMatcher = Depends(get_auto_matcher),
):
    """Ranked unlinked line items this transaction could pay for."""
    transaction = await repo.get_transaction(user_id, transaction_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    candidates = await matcher.get_line_item_candidates(user_id, transaction)
    return {
        "success": True,
        "transaction_id": transaction_id,
        "candidates": [c.model_dump(mode="json") for c in candidates],
        "count": len(candidates),
    }


@router.get("/transactions/{transaction_id}/summary")
async def transaction_summary(
    transaction_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    summary = await get_transaction_link_summary(repo, user_id, transaction_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"success": True, "summary": summary.model_dump(mode="json")}


# ============================================
# Explicit pair
# ============================================

@router.post("/score")
async def score_pair(
    request: ScoreRequest,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    matcher: AutoMatcher = Depends(get_auto_matcher),
):
    """Full score breakdown for one line item / transaction pair."""
    line_item = await repo.get_line_item(user_id, request.line_item_id)
    if not line_item:
        raise HTTPException(status_code=404, detail="Line item not found")
    transaction = await repo.get_transaction(user_id, request.transaction_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    invoice = await repo.get_invoice(user_id, line_item.invoice_id)
    score = await matcher.score_pair(user_id, line_item, invoice, transaction)
    return {"success": True, "score": score.model_dump(mode="json")}
