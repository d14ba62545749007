# app/integrations/boi.py

"""
Bank of Israel exchange rate source.

Representative rates are published as shekels per ``unit`` units of the
foreign currency, once per business day.
"""

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, Optional

import httpx

from app.config import get_settings
from app.core.exchange_rates import ExchangeRateError
from app.core.normalizers import normalize_date
from app.models import ExchangeRate

settings = get_settings()
logger = logging.getLogger(__name__)


class _RetryableError(Exception):
    pass


class BOIRateSource:
    """Fetches rates from the BOI public API with retry and exponential backoff."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url or settings.rate_source_url
        self.timeout = timeout if timeout is not None else settings.rate_request_timeout
        self.attempts = max(1, attempts if attempts is not None else settings.rate_fetch_attempts)
        self.base_delay = base_delay if base_delay is not None else settings.rate_retry_base_delay
        self.transport = transport
        self.sleep = sleep

    # ============================================
    # Public API
    # ============================================

    async def fetch_rates_for_date(self, on: date) -> list[ExchangeRate]:
        """Rates published on ``on``. Empty on weekends and holidays."""
        params = {
            "rateType": "ShkalPerUnit",
            "lang": "en",
            "startDate": on.isoformat(),
            "endDate": on.isoformat(),
        }
        data = await self._get_with_retry(params)
        return _parse_rates(data, fallback_date=on)

    async def fetch_latest_rates(self) -> list[ExchangeRate]:
        """Most recently published rates."""
        params = {"rateType": "ShkalPerUnit", "lang": "en", "last": "true"}
        data = await self._get_with_retry(params)
        rates = _parse_rates(data, fallback_date=None)
        if not rates:
            raise ExchangeRateError("No exchange rates returned")
        return rates

    # ============================================
    # Transport
    # ============================================

    async def _get_with_retry(self, params: dict) -> dict:
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.attempts + 1):
                try:
                    response = await client.get(
                        self.base_url,
                        params=params,
                        headers={"Accept": "application/json"},
                    )

                    if response.status_code >= 500:
                        raise _RetryableError(f"BOI server error: {response.status_code}")

                    if response.status_code != 200:
                        raise ExchangeRateError(
                            f"BOI API error ({response.status_code}): {response.text}"
                        )

                    return response.json()

                except (_RetryableError, httpx.TransportError) as exc:
                    last_error = exc
                    logger.warning(f"BOI fetch attempt {attempt}/{self.attempts} failed: {exc}")
                    if attempt < self.attempts:
                        await self.sleep(self.base_delay * 2 ** (attempt - 1))

                except ValueError as exc:
                    raise ExchangeRateError(f"BOI returned invalid JSON: {exc}") from exc

        raise ExchangeRateError(f"BOI fetch failed after {self.attempts} attempts: {last_error}")


def _parse_rates(data: dict, fallback_date: Optional[date]) -> list[ExchangeRate]:
    """Map a BOI payload to ExchangeRate records, skipping malformed rows."""
    if data is None:
        return []
    if not isinstance(data, dict):
        raise ExchangeRateError(f"Unexpected BOI payload: {type(data).__name__}")

    rates: list[ExchangeRate] = []

    for item in data.get("exchangeRates") or []:
        if not isinstance(item, dict):
            continue
        key = item.get("key")
        value = item.get("currentExchangeRate")
        if not key or value is None:
            continue

        rate_date = normalize_date(item.get("lastUpdate")) or fallback_date
        if rate_date is None:
            continue

        try:
            rates.append(ExchangeRate(
                currency=str(key).upper(),
                rate=float(value),
                unit=int(item.get("unit") or 1),
                rate_date=rate_date,
            ))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Skipping malformed BOI rate row for {key}: {exc}")

    return rates
