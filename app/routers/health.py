# app/routers/health.py

from fastapi import APIRouter

from app.config import get_settings

settings = get_settings()
router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "ledger-match-api",
    }


@router.get("/ready")
async def readiness_check():
    """Readiness check: reports whether the external services are configured."""
    database = "ok" if settings.supabase_url and settings.supabase_service_role_key else "not_configured"
    exchange_rates = "ok" if settings.rate_source_url else "not_configured"
    return {
        "status": "ready" if database == "ok" else "degraded",
        "checks": {
            "database": database,
            "exchange_rates": exchange_rates,
        },
    }
