from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # MetaAPI (execution venue)
    meta_api_token: str = ""
    meta_api_url: str = "https://mt-client-api-v1.agiliumtrade.agiliumtrade.ai"
    meta_api_market_data_url: str = ""  # Defaults to meta_api_url when empty
    gateway_timeout_seconds: float = 15.0

    # Database (trade ledger + audit log)
    database_url: str = "sqlite+aiosqlite:///./autotrader.db"
    database_echo: bool = False

    # Cycle parameters
    default_risk_percent: float = 1.0
    default_timeframe: str = "1h"
    candle_limit: int = 250
    max_parallel_fetches: int = 4
    forced_entry_enabled: bool = True

    # Position sizing bounds (lots)
    min_volume: float = 0.01
    max_volume: float = 10.0

    # Gateway used by the API process ("metaapi" or "paper")
    gateway_kind: str = "metaapi"

    # Scheduler
    scheduler_interval_seconds: Optional[int] = None  # Overrides the timeframe-derived interval
    scheduled_accounts: List[str] = []  # Registered with the scheduler on startup
    scheduler_autostart: bool = False

    # Paper trading
    paper_starting_balance: float = 10000.0

    log_level: str = "INFO"

    @field_validator("candle_limit")
    @classmethod
    def candle_limit_covers_trend_filter(cls, v: int) -> int:
        """The long trend filter (EMA200) needs at least 200 bars"""
        if v < 200:
            raise ValueError("candle_limit must be at least 200")
        return v

    def get_market_data_url(self) -> str:
        return (self.meta_api_market_data_url or self.meta_api_url).rstrip("/")

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
