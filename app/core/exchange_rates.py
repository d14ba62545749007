# app/core/exchange_rates.py

"""
Exchange rates to the home currency, cached per (currency, date).

Rates come from an external source that publishes nothing on weekends and
holidays, so a miss walks back to the previous business day. Fetch failures
degrade to the last cached value (even if stale) and finally to None; they
never propagate to callers.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Protocol

from app.config import get_settings
from app.core.normalizers import previous_business_day
from app.models import CachedRate, ConversionDetails, ExchangeRate, RateQuote

settings = get_settings()
logger = logging.getLogger(__name__)

# Consecutive empty days to walk back before giving up (long holidays)
MAX_FALLBACK_DAYS = 10


class ExchangeRateError(Exception):
    """The rate source could not be reached or answered with an error."""


# ============================================
# Collaborator interfaces
# ============================================

class RateSource(Protocol):
    async def fetch_rates_for_date(self, on: date) -> list[ExchangeRate]: ...

    async def fetch_latest_rates(self) -> list[ExchangeRate]: ...


class RateCache(Protocol):
    async def get(self, currency: str, on: date) -> Optional[CachedRate]: ...

    async def put(self, currency: str, on: date, entry: CachedRate) -> None: ...

    async def clear(self) -> None: ...


def cache_key(currency: str, on: date) -> str:
    return f"{currency.upper()}:{on.isoformat()}"


class InMemoryRateCache:
    """Process-local rate cache."""

    def __init__(self):
        self._entries: dict[str, CachedRate] = {}

    async def get(self, currency: str, on: date) -> Optional[CachedRate]:
        return self._entries.get(cache_key(currency, on))

    async def put(self, currency: str, on: date, entry: CachedRate) -> None:
        self._entries[cache_key(currency, on)] = entry

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ============================================
# Conversion helpers
# ============================================

def convert_to_home(amount: int, rate: float) -> int:
    """Convert minor units of a foreign currency to home-currency minor units."""
    return int(math.floor(amount * rate + 0.5))


def create_conversion_details(
    from_currency: str,
    original_amount: int,
    quote: RateQuote,
    requested_date: date,
    to_currency: Optional[str] = None,
) -> ConversionDetails:
    return ConversionDetails(
        from_currency=from_currency.upper(),
        to_currency=(to_currency or settings.home_currency).upper(),
        original_amount=original_amount,
        converted_amount=convert_to_home(original_amount, quote.rate),
        rate=quote.rate,
        rate_date=quote.rate_date,
        rate_date_differs=quote.rate_date != requested_date,
        requested_date=requested_date,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# Cache
# ============================================

class ExchangeRateCache:
    """Date-aware rate lookups with TTL caching and business-day fallback."""

    def __init__(
        self,
        source: RateSource,
        cache: Optional[RateCache] = None,
        home_currency: Optional[str] = None,
        ttl_today: Optional[int] = None,
        ttl_historical: Optional[int] = None,
        max_history_years: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.cache = cache if cache is not None else InMemoryRateCache()
        self.home_currency = (home_currency or settings.home_currency).upper()
        self.ttl_today = ttl_today if ttl_today is not None else settings.rate_ttl_today_seconds
        self.ttl_historical = (
            ttl_historical if ttl_historical is not None else settings.rate_ttl_historical_seconds
        )
        self.max_history_years = (
            max_history_years if max_history_years is not None else settings.rate_max_history_years
        )
        self.clock = clock

    # ---------- helpers ----------

    def _today(self) -> date:
        return self.clock().date()

    def _horizon(self) -> date:
        today = self._today()
        try:
            return today.replace(year=today.year - self.max_history_years)
        except ValueError:  # Feb 29
            return today.replace(year=today.year - self.max_history_years, day=28)

    def _is_fresh(self, entry: CachedRate, on: date) -> bool:
        ttl = self.ttl_today if on == self._today() else self.ttl_historical
        fetched_at = entry.fetched_at
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return self.clock() - fetched_at < timedelta(seconds=ttl)

    async def _store(self, rates: Iterable[ExchangeRate], on: date) -> dict[str, RateQuote]:
        """Cache every rate of a fetched batch under the requested date."""
        now = self.clock()
        stored: dict[str, RateQuote] = {}
        for r in rates:
            currency = r.currency.upper()
            entry = CachedRate(rate=r.per_unit, rate_date=r.rate_date, fetched_at=now)
            await self.cache.put(currency, on, entry)
            stored[currency] = entry.to_quote()
        return stored

    async def _alias(self, currency: str, on: date, quote: RateQuote) -> None:
        """Remember a fallback answer under the date that was asked for."""
        await self.cache.put(
            currency, on,
            CachedRate(rate=quote.rate, rate_date=quote.rate_date, fetched_at=self.clock()),
        )

    async def clear(self) -> None:
        """Drop every cached rate; the next lookups go to the source."""
        await self.cache.clear()
        logger.info("Exchange rate cache cleared")

    # ---------- single currency ----------

    async def get_rate(self, currency: str, on: date, _depth: int = 0) -> Optional[RateQuote]:
        """
        Home-currency rate for 1 unit of ``currency`` on ``on``.

        Returns None when no rate can be found. Never raises for fetch errors.
        """
        currency = currency.upper()
        if currency == self.home_currency:
            return RateQuote(rate=1.0, rate_date=on)

        if on < self._horizon():
            logger.debug(f"Rate request for {currency} on {on} is beyond the history horizon")
            return None

        cached = await self.cache.get(currency, on)
        if cached and self._is_fresh(cached, on):
            logger.debug(f"Rate cache hit {cache_key(currency, on)}")
            return cached.to_quote()

        try:
            rates = await self.source.fetch_rates_for_date(on)
        except ExchangeRateError as exc:
            if cached:
                logger.warning(f"Rate fetch failed for {on}, using stale cached rate: {exc}")
                return cached.to_quote()
            logger.warning(f"Rate fetch failed for {on} and nothing is cached: {exc}")
            return None

        if not rates:
            if _depth >= MAX_FALLBACK_DAYS:
                return cached.to_quote() if cached else None
            quote = await self.get_rate(currency, previous_business_day(on), _depth + 1)
            if quote:
                await self._alias(currency, on, quote)
            return quote

        stored = await self._store(rates, on)
        if currency in stored:
            return stored[currency]
        return cached.to_quote() if cached else None

    # ---------- batch ----------

    async def get_rates_for_date(
        self,
        on: date,
        currencies: Iterable[str],
        _depth: int = 0,
    ) -> dict[str, RateQuote]:
        """
        Resolve many currencies with at most one source call per date.

        The home currency is always present in the result. Currencies
        with no available rate are left out.
        """
        result: dict[str, RateQuote] = {self.home_currency: RateQuote(rate=1.0, rate_date=on)}
        wanted = sorted({c.upper() for c in currencies if c} - {self.home_currency})
        if not wanted or on < self._horizon():
            return result

        stale: dict[str, CachedRate] = {}
        missing: list[str] = []
        for currency in wanted:
            cached = await self.cache.get(currency, on)
            if cached and self._is_fresh(cached, on):
                result[currency] = cached.to_quote()
            else:
                missing.append(currency)
                if cached:
                    stale[currency] = cached

        if not missing:
            return result

        try:
            rates = await self.source.fetch_rates_for_date(on)
        except ExchangeRateError as exc:
            logger.warning(f"Batch rate fetch failed for {on}: {exc}")
            for currency, entry in stale.items():
                result[currency] = entry.to_quote()
            return result

        if not rates:
            if _depth >= MAX_FALLBACK_DAYS:
                for currency, entry in stale.items():
                    result[currency] = entry.to_quote()
                return result
            fallback = await self.get_rates_for_date(previous_business_day(on), missing, _depth + 1)
            for currency in missing:
                quote = fallback.get(currency)
                if quote:
                    await self._alias(currency, on, quote)
                    result[currency] = quote
            return result

        stored = await self._store(rates, on)
        for currency in missing:
            if currency in stored:
                result[currency] = stored[currency]
            elif currency in stale:
                result[currency] = stale[currency].to_quote()
        return result

    # ---------- latest ----------

    async def get_latest_rates(self) -> dict[str, RateQuote]:
        """Most recently published rates, keyed by currency."""
        result: dict[str, RateQuote] = {
            self.home_currency: RateQuote(rate=1.0, rate_date=self._today()),
        }
        try:
            rates = await self.source.fetch_latest_rates()
        except ExchangeRateError as exc:
            logger.warning(f"Latest rate fetch failed: {exc}")
            return result

        now = self.clock()
        for r in rates:
            entry = CachedRate(rate=r.per_unit, rate_date=r.rate_date, fetched_at=now)
            await self.cache.put(r.currency, r.rate_date, entry)
            result[r.currency.upper()] = entry.to_quote()
        return result


# ============================================
# Normalizer
# ============================================

class CurrencyNormalizer:
    """Converts amounts into the home currency using an ExchangeRateCache."""

    def __init__(self, rates: ExchangeRateCache):
        self.rates = rates

    @property
    def home_currency(self) -> str:
        return self.rates.home_currency

    async def to_home(self, amount: int, currency: str, on: date) -> Optional[ConversionDetails]:
        """Conversion of ``amount`` on ``on``, or None when no rate is known."""
        quote = await self.rates.get_rate(currency, on)
        if quote is None:
            return None
        return create_conversion_details(currency, amount, quote, on, self.home_currency)
