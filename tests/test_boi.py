# tests/test_boi.py

"""
Tests for the Bank of Israel rate source, against a mocked transport.
"""

import pytest
from datetime import date, datetime, timezone

import httpx

from app.core.exchange_rates import ExchangeRateCache, ExchangeRateError
from app.integrations.boi import BOIRateSource

NOW = datetime(2025, 3, 17, 12, 0, tzinfo=timezone.utc)

PAYLOAD = {
    "exchangeRates": [
        {"key": "USD", "currentExchangeRate": 3.702, "unit": 1, "lastUpdate": "2025-03-14T13:22:00Z"},
        {"key": "JPY", "currentExchangeRate": 2.48, "unit": 100, "lastUpdate": "2025-03-14T13:22:00Z"},
        {"key": "EUR", "currentExchangeRate": None},
        {"currentExchangeRate": 1.0},
    ]
}


def make_source(handler, sleeps: list | None = None, attempts: int = 3) -> BOIRateSource:
    async def fake_sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)

    return BOIRateSource(
        base_url="https://rates.test/api",
        timeout=1.0,
        attempts=attempts,
        base_delay=0.5,
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
    )


# ============================================
# Parsing
# ============================================

class TestParsing:

    @pytest.mark.asyncio
    async def test_parses_rates_and_skips_malformed_rows(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PAYLOAD)

        rates = await make_source(handler).fetch_rates_for_date(date(2025, 3, 14))

        assert [r.currency for r in rates] == ["USD", "JPY"]
        assert rates[0].rate_date == date(2025, 3, 14)
        assert rates[1].per_unit == pytest.approx(0.0248)
        assert seen[0].url.params["startDate"] == "2025-03-14"
        assert seen[0].url.params["endDate"] == "2025-03-14"

    @pytest.mark.asyncio
    async def test_empty_day(self):
        source = make_source(lambda request: httpx.Response(200, json={"exchangeRates": []}))

        assert await source.fetch_rates_for_date(date(2025, 3, 15)) == []

    @pytest.mark.asyncio
    async def test_missing_last_update_uses_requested_date(self):
        payload = {"exchangeRates": [{"key": "usd", "currentExchangeRate": 3.7}]}
        source = make_source(lambda request: httpx.Response(200, json=payload))

        rates = await source.fetch_rates_for_date(date(2025, 3, 13))

        assert rates[0].currency == "USD"
        assert rates[0].rate_date == date(2025, 3, 13)

    @pytest.mark.asyncio
    async def test_unparseable_values_are_skipped(self):
        payload = {"exchangeRates": [
            {"key": "USD", "currentExchangeRate": "n/a", "unit": 1},
            {"key": "GBP", "currentExchangeRate": 4.6, "unit": "one"},
            "garbage",
            {"key": "EUR", "currentExchangeRate": "3.95", "unit": 1},
        ]}
        source = make_source(lambda request: httpx.Response(200, json=payload))

        rates = await source.fetch_rates_for_date(date(2025, 3, 14))

        assert [(r.currency, r.rate) for r in rates] == [("EUR", 3.95)]

    @pytest.mark.asyncio
    async def test_non_object_payload_is_an_error(self):
        source = make_source(lambda request: httpx.Response(200, json=["USD", 3.7]))

        with pytest.raises(ExchangeRateError, match="Unexpected BOI payload"):
            await source.fetch_rates_for_date(date(2025, 3, 14))

    @pytest.mark.asyncio
    async def test_malformed_payload_stays_inside_rate_cache(self):
        payload = {"exchangeRates": [{"key": "USD", "currentExchangeRate": "n/a", "unit": 1}]}
        source = make_source(lambda request: httpx.Response(200, json=payload))
        rates = ExchangeRateCache(source, clock=lambda: NOW)

        assert await rates.get_rate("USD", date(2025, 3, 14)) is None

        bad_shape = make_source(lambda request: httpx.Response(200, json="oops"))
        assert await ExchangeRateCache(bad_shape, clock=lambda: NOW).get_rate("USD", date(2025, 3, 14)) is None

    @pytest.mark.asyncio
    async def test_latest_rates(self):
        source = make_source(lambda request: httpx.Response(200, json=PAYLOAD))

        rates = await source.fetch_latest_rates()

        assert {r.currency for r in rates} == {"USD", "JPY"}

    @pytest.mark.asyncio
    async def test_latest_rates_empty_is_an_error(self):
        source = make_source(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ExchangeRateError):
            await source.fetch_latest_rates()


# ============================================
# Retry
# ============================================

class TestRetry:

    @pytest.mark.asyncio
    async def test_retries_server_errors_with_backoff(self):
        responses = [httpx.Response(503), httpx.Response(502), httpx.Response(200, json=PAYLOAD)]
        sleeps: list[float] = []

        source = make_source(lambda request: responses.pop(0), sleeps)
        rates = await source.fetch_rates_for_date(date(2025, 3, 14))

        assert len(rates) == 2
        assert sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        sleeps: list[float] = []
        source = make_source(handler, sleeps)

        with pytest.raises(ExchangeRateError):
            await source.fetch_rates_for_date(date(2025, 3, 14))
        assert len(calls) == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, text="not found")

        source = make_source(handler)

        with pytest.raises(ExchangeRateError, match="404"):
            await source.fetch_rates_for_date(date(2025, 3, 14))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=PAYLOAD)

        rates = await make_source(handler).fetch_rates_for_date(date(2025, 3, 14))

        assert len(rates) == 2
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        source = make_source(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(ExchangeRateError, match="invalid JSON"):
            await source.fetch_rates_for_date(date(2025, 3, 14))
