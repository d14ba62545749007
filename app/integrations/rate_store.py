# app/integrations/rate_store.py

"""
Durable exchange rate cache.

Entries live in memory and are written through to the
``exchange_rate_cache`` table so they survive restarts.
"""

import logging
from datetime import date
from typing import Optional

from supabase import Client

from app.core.exchange_rates import InMemoryRateCache, cache_key
from app.models import CachedRate

logger = logging.getLogger(__name__)

TABLE = "exchange_rate_cache"


class SupabaseRateCache:
    """RateCache that reads through and writes through to Supabase."""

    def __init__(self, client: Client):
        self.client = client
        self.memory = InMemoryRateCache()

    async def get(self, currency: str, on: date) -> Optional[CachedRate]:
        entry = await self.memory.get(currency, on)
        if entry is not None:
            return entry

        try:
            response = (
                self.client.table(TABLE)
                .select("rate, rate_date, fetched_at")
                .eq("cache_key", cache_key(currency, on))
                .execute()
            )
        except Exception as exc:
            logger.warning(f"Rate store read failed for {cache_key(currency, on)}: {exc}")
            return None

        if not response.data:
            return None

        entry = CachedRate.model_validate(response.data[0])
        await self.memory.put(currency, on, entry)
        return entry

    async def put(self, currency: str, on: date, entry: CachedRate) -> None:
        await self.memory.put(currency, on, entry)
        row = {
            "cache_key": cache_key(currency, on),
            "currency": currency.upper(),
            "requested_date": on.isoformat(),
            "rate": entry.rate,
            "rate_date": entry.rate_date.isoformat(),
            "fetched_at": entry.fetched_at.isoformat(),
        }
        try:
            self.client.table(TABLE).upsert(row, on_conflict="cache_key").execute()
        except Exception as exc:
            # The in-memory entry still serves this process
            logger.warning(f"Rate store write failed for {row['cache_key']}: {exc}")

    async def clear(self) -> None:
        await self.memory.clear()
        try:
            # PostgREST refuses an unfiltered delete
            self.client.table(TABLE).delete().neq("cache_key", "").execute()
        except Exception as exc:
            logger.warning(f"Rate store clear failed: {exc}")
