# app/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.repository import RepositoryError
from app.routers import health, matching, consolidation, exchange_rates, vendors

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ============================================
# Create FastAPI app
# ============================================

app = FastAPI(
    title=settings.app_name,
    description="Matching engine for invoice line items, bank and credit card transactions",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# ============================================
# CORS middleware
# ============================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# Error handlers
# ============================================

@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    """The data store is unreachable or rejected a query."""
    logger.error(f"Repository error on {request.method} {request.url.path}: {exc}")
    detail = str(exc) if settings.debug else "Data store unavailable, please retry"
    return JSONResponse(status_code=503, content={"success": False, "detail": detail})

# ============================================
# Include routers
# ============================================

app.include_router(health.router, tags=["Health"])
app.include_router(matching.router, prefix="/matching", tags=["Matching"])
app.include_router(consolidation.router, prefix="/consolidation", tags=["Consolidation"])
app.include_router(exchange_rates.router, prefix="/exchange-rates", tags=["Exchange Rates"])
app.include_router(vendors.router, prefix="/vendors", tags=["Vendors"])

# ============================================
# Root endpoint
# ============================================

@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs" if settings.debug else None,
    }
