# app/config.py

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Ledger Match API"
    app_env: str = "development"
    debug: bool = True
    frontend_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Currency
    home_currency: str = "ILS"

    # Line item matching config
    auto_approve_threshold: int = 85
    candidate_threshold: int = 50
    max_candidates: int = 10
    date_range_days: int = 30
    amount_tolerance_percent: float = 50
    candidate_query_limit: int = 200

    # Exchange rates (Bank of Israel)
    rate_source_url: str = "https://www.boi.org.il/PublicApi/GetExchangeRates"
    rate_request_timeout: float = 10.0
    rate_fetch_attempts: int = 3
    rate_retry_base_delay: float = 1.0
    rate_ttl_today_seconds: int = 60 * 60
    rate_ttl_historical_seconds: int = 24 * 60 * 60
    rate_max_history_years: int = 3

    # CC <-> bank consolidation
    cc_date_tolerance_days: int = 2
    cc_amount_tolerance_percent: float = 2
    cc_update_batch_size: int = 3
    cc_update_batch_delay: float = 0.2

    # Vendor aliases
    vendor_alias_limit: int = 100

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
