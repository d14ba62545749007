# app/routers/exchange_rates.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.exchange_rates import ExchangeRateCache
from app.dependencies import get_current_user, get_exchange_rates

router = APIRouter()


@router.get("/latest")
async def latest_rates(
    user_id: str = Depends(get_current_user),
    rates: ExchangeRateCache = Depends(get_exchange_rates),
):
    """Most recently published rates to the home currency."""
    latest = await rates.get_latest_rates()
    return {
        "success": True,
        "home_currency": rates.home_currency,
        "rates": {currency: quote.model_dump(mode="json") for currency, quote in latest.items()},
    }


@router.get("/{currency}")
async def rate_for_date(
    currency: str,
    user_id: str = Depends(get_current_user),
    rates: ExchangeRateCache = Depends(get_exchange_rates),
    on: Optional[date] = Query(None, description="Rate date (YYYY-MM-DD), defaults to today"),
):
    """Rate for one currency on a date, falling back to the previous business day."""
    requested = on or date.today()
    quote = await rates.get_rate(currency, requested)
    if quote is None:
        raise HTTPException(
            status_code=404,
            detail=f"No exchange rate available for {currency.upper()} on {requested.isoformat()}",
        )

    return {
        "success": True,
        "currency": currency.upper(),
        "requested_date": requested.isoformat(),
        "rate": quote.rate,
        "rate_date": quote.rate_date.isoformat(),
        "rate_date_differs": quote.rate_date != requested,
    }
