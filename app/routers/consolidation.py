# app/routers/consolidation.py

"""
Credit card consolidation routes.

Run the purchase-group <-> bank charge matcher and review its results.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from app.config import get_settings
from app.core.cc_consolidation import (
    attach_cc_transactions,
    get_consolidation_summary,
    run_cc_bank_consolidation,
    unmatch_cc_transactions,
    update_consolidation_status,
)
from app.dependencies import get_current_user, get_repository
from app.models import ConsolidationSettings, ConsolidationStatus
from app.repository import Repository

settings = get_settings()
router = APIRouter()


# ============================================
# Request Models
# ============================================

class RunRequest(BaseModel):
    date_tolerance_days: Optional[int] = Field(default=None, ge=0)
    amount_tolerance_percent: Optional[float] = Field(default=None, gt=0)


class StatusRequest(BaseModel):
    status: ConsolidationStatus


class UnmatchRequest(BaseModel):
    transaction_ids: list[str]


class AttachRequest(BaseModel):
    bank_transaction_id: str
    transaction_ids: list[str]


# ============================================
# Run
# ============================================

@router.post("/run")
async def run_consolidation(
    request: RunRequest,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    """Group unconsolidated CC purchases and match them to bank charges."""
    options = ConsolidationSettings(
        date_tolerance_days=(
            request.date_tolerance_days
            if request.date_tolerance_days is not None
            else settings.cc_date_tolerance_days
        ),
        amount_tolerance_percent=(
            request.amount_tolerance_percent
            if request.amount_tolerance_percent is not None
            else settings.cc_amount_tolerance_percent
        ),
    )
    result = await run_cc_bank_consolidation(repo, user_id, options)
    return {
        "success": not result.errors,
        "result": result.model_dump(),
    }


# ============================================
# Results
# ============================================

@router.get("/results")
async def list_results(
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    status: Optional[ConsolidationStatus] = Query(None, description="Filter by status"),
):
    results = await repo.get_consolidation_results(user_id, status)
    return {
        "success": True,
        "results": [r.model_dump(mode="json") for r in results],
        "count": len(results),
    }


@router.get("/summary")
async def summary(
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    result = await get_consolidation_summary(repo, user_id)
    return {"success": True, "summary": result.model_dump()}


@router.patch("/results/{result_id}")
async def update_status(
    result_id: str,
    request: StatusRequest,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    """Approve or reject a consolidation result."""
    record = await repo.get_consolidation_result(user_id, result_id)
    if not record:
        raise HTTPException(status_code=404, detail="Consolidation result not found")

    result = await update_consolidation_status(repo, result_id, request.status)
    return result.model_dump()


@router.post("/results/{result_id}/unmatch")
async def unmatch(
    result_id: str,
    request: UnmatchRequest,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    if not request.transaction_ids:
        raise HTTPException(status_code=400, detail="transaction_ids must not be empty")

    record = await repo.get_consolidation_result(user_id, result_id)
    if not record:
        raise HTTPException(status_code=404, detail="Consolidation result not found")

    result = await unmatch_cc_transactions(repo, user_id, result_id, request.transaction_ids)
    return result.model_dump()


@router.post("/attach")
async def attach(
    request: AttachRequest,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    """Manually attach CC purchases to a bank charge."""
    if not request.transaction_ids:
        raise HTTPException(status_code=400, detail="transaction_ids must not be empty")

    bank_tx = await repo.get_transaction(user_id, request.bank_transaction_id)
    if not bank_tx:
        raise HTTPException(status_code=404, detail="Bank transaction not found")

    result = await attach_cc_transactions(
        repo, user_id, request.bank_transaction_id, request.transaction_ids
    )
    return result.model_dump()
