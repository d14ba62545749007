# app/routers/__init__.py

from app.routers import health
from app.routers import matching
from app.routers import consolidation
from app.routers import exchange_rates
from app.routers import vendors

__all__ = ["health", "matching", "consolidation", "exchange_rates", "vendors"]
