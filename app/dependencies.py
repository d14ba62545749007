# app/dependencies.py

"""
FastAPI dependencies.

Validates Supabase JWTs and extracts user_id for all protected endpoints,
and hands out the repository, rate cache and matcher used by the routers.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.auto_matcher import AutoMatcher
from app.core.exchange_rates import ExchangeRateCache
from app.database import SupabaseRepository, get_supabase_admin
from app.integrations.boi import BOIRateSource
from app.integrations.rate_store import SupabaseRateCache
from app.repository import Repository

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Validate the Supabase JWT and return the user_id.

    Uses the admin client's auth.get_user() to verify the token.
    This is a sync function -- FastAPI auto-runs it in a threadpool.
    """
    token = credentials.credentials

    try:
        user_response = get_supabase_admin().auth.get_user(token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if user_response is None or user_response.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_response.user.id


# ============================================
# Services
# ============================================

def get_repository() -> Repository:
    return SupabaseRepository()


@lru_cache()
def get_exchange_rates() -> ExchangeRateCache:
    """Process-wide rate cache, persisted through Supabase."""
    return ExchangeRateCache(
        source=BOIRateSource(),
        cache=SupabaseRateCache(get_supabase_admin()),
    )


def get_auto_matcher(
    repo: Repository = Depends(get_repository),
    rates: ExchangeRateCache = Depends(get_exchange_rates),
) -> AutoMatcher:
    return AutoMatcher(repo, rates)
