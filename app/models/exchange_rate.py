# app/models/exchange_rate.py

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel


class ExchangeRate(BaseModel):
    """A rate as published by the rate source (home currency per ``unit`` units)."""

    currency: str
    rate: float
    unit: int = 1
    rate_date: date

    @property
    def per_unit(self) -> float:
        return self.rate / self.unit if self.unit else self.rate


class RateQuote(BaseModel):
    """Home currency per 1 unit of a foreign currency, and the day it was published."""

    rate: float
    rate_date: date


class CachedRate(BaseModel):
    """A rate cache entry."""

    rate: float
    rate_date: date
    fetched_at: datetime

    def to_quote(self) -> RateQuote:
        return RateQuote(rate=self.rate, rate_date=self.rate_date)


class ConversionDetails(BaseModel):
    """Provenance of a currency conversion, for display."""

    from_currency: str
    to_currency: str
    original_amount: int
    converted_amount: int
    rate: float
    rate_date: date
    rate_date_differs: bool = False
    requested_date: Optional[date] = None
