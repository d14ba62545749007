# tests/test_rate_store.py

"""
Tests for the Supabase-backed rate cache, against a stubbed client.
"""

import pytest
from datetime import date, datetime, timezone

from app.integrations.rate_store import TABLE, SupabaseRateCache
from app.models import CachedRate
from tests.fakes import StubSupabaseClient

FRIDAY = date(2025, 3, 14)
FETCHED = datetime(2025, 3, 14, 15, 0, tzinfo=timezone.utc)


# ============================================
# Reads
# ============================================

class TestRead:

    @pytest.mark.asyncio
    async def test_read_through_on_memory_miss(self):
        client = StubSupabaseClient(rows=[{"rate": 3.7, "rate_date": "2025-03-14", "fetched_at": FETCHED.isoformat()}])
        store = SupabaseRateCache(client)

        entry = await store.get("usd", FRIDAY)

        assert entry.rate == 3.7
        assert entry.rate_date == FRIDAY
        query = client.executed[0]
        assert query.table == TABLE
        assert query.op("eq")[0] == ("cache_key", "USD:2025-03-14")

    @pytest.mark.asyncio
    async def test_read_through_result_is_kept_in_memory(self):
        client = StubSupabaseClient(rows=[{"rate": 3.7, "rate_date": "2025-03-14", "fetched_at": FETCHED.isoformat()}])
        store = SupabaseRateCache(client)

        await store.get("USD", FRIDAY)
        await store.get("USD", FRIDAY)

        assert len(client.executed) == 1

    @pytest.mark.asyncio
    async def test_missing_row(self):
        store = SupabaseRateCache(StubSupabaseClient())

        assert await store.get("USD", FRIDAY) is None

    @pytest.mark.asyncio
    async def test_read_failure_is_a_miss(self):
        client = StubSupabaseClient()
        client.fail = True

        assert await SupabaseRateCache(client).get("USD", FRIDAY) is None


# ============================================
# Writes
# ============================================

class TestWrite:

    @pytest.mark.asyncio
    async def test_upsert_payload(self):
        client = StubSupabaseClient()
        store = SupabaseRateCache(client)

        await store.put("usd", date(2025, 3, 15), CachedRate(rate=3.7, rate_date=FRIDAY, fetched_at=FETCHED))

        args, kwargs = client.executed[0].op("upsert")
        assert args[0] == {
            "cache_key": "USD:2025-03-15",
            "currency": "USD",
            "requested_date": "2025-03-15",
            "rate": 3.7,
            "rate_date": "2025-03-14",
            "fetched_at": FETCHED.isoformat(),
        }
        assert kwargs == {"on_conflict": "cache_key"}

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_entry(self):
        client = StubSupabaseClient()
        client.fail = True
        store = SupabaseRateCache(client)

        await store.put("USD", FRIDAY, CachedRate(rate=3.7, rate_date=FRIDAY, fetched_at=FETCHED))
        entry = await store.get("USD", FRIDAY)

        assert entry.rate == 3.7
        assert len(client.executed) == 1

    @pytest.mark.asyncio
    async def test_clear_empties_both_tiers(self):
        client = StubSupabaseClient()
        store = SupabaseRateCache(client)
        await store.put("USD", FRIDAY, CachedRate(rate=3.7, rate_date=FRIDAY, fetched_at=FETCHED))

        await store.clear()

        assert len(store.memory) == 0
        assert client.executed[-1].op("delete") == ((), {})
