# app/integrations/__init__.py

from app.integrations import boi
from app.integrations import rate_store

__all__ = ["boi", "rate_store"]
