# app/models/vendor.py

from typing import Optional, Literal
from pydantic import BaseModel, Field

AliasMatchType = Literal["exact", "contains", "starts_with", "ends_with"]
AliasSource = Literal["system", "user", "learned"]


class VendorAlias(BaseModel):
    """Maps raw statement text to a canonical vendor name."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    alias_pattern: str = Field(min_length=1)
    canonical_name: str = Field(min_length=1)
    match_type: AliasMatchType = "contains"
    source: AliasSource = "user"
    priority: int = 0

    class Config:
        from_attributes = True


class VendorAliasCreate(BaseModel):
    """Request body for a user-defined alias."""

    alias_pattern: str = Field(min_length=1)
    canonical_name: str = Field(min_length=1)
    match_type: AliasMatchType = "contains"
    priority: int = 0


class VendorDisplayInfo(BaseModel):
    """How a raw description should be shown."""

    display_name: str
    is_resolved: bool
    matched_alias: Optional[VendorAlias] = None
