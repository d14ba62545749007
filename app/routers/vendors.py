# app/routers/vendors.py

"""
Vendor alias management routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.vendor_resolver import (
    VendorAliasLimitError,
    add_vendor_alias,
    get_vendor_display_info,
    seed_default_aliases,
)
from app.dependencies import get_current_user, get_repository
from app.models import VendorAliasCreate
from app.repository import Repository

router = APIRouter()


@router.get("/aliases")
async def list_aliases(
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    aliases = await repo.get_vendor_aliases(user_id)
    return {
        "success": True,
        "aliases": [a.model_dump() for a in aliases],
        "count": len(aliases),
    }


@router.post("/aliases")
async def create_alias(
    request: VendorAliasCreate,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    try:
        alias = await add_vendor_alias(repo, user_id, request)
    except VendorAliasLimitError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return {"success": True, "alias": alias.model_dump()}


@router.delete("/aliases/{alias_id}")
async def delete_alias(
    alias_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    deleted = await repo.delete_vendor_alias(user_id, alias_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Alias not found")
    return {"success": True}


@router.post("/aliases/seed")
async def seed_aliases(
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    """Add the built-in aliases for common merchants."""
    added = await seed_default_aliases(repo, user_id)
    return {"success": True, "added": added}


@router.get("/resolve")
async def resolve(
    description: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
):
    """How a raw statement description resolves against the caller's aliases."""
    aliases = await repo.get_vendor_aliases(user_id)
    info = get_vendor_display_info(description, aliases)
    return {"success": True, "description": description, **info.model_dump()}
