"""
Execution Gateway Factory

Creates the execution gateway for a given kind from settings:
- "metaapi": live MetaAPI account (requires META_API_TOKEN)
- "paper": in-memory simulated venue
"""

from autotrader.config import Settings, settings as default_settings
from autotrader.exceptions import ConfigurationError
from autotrader.exchange_clients.base import ExecutionGateway
from autotrader.exchange_clients.metaapi_client import MetaApiClient
from autotrader.exchange_clients.paper_trading_client import PaperTradingGateway


def create_gateway(kind: str = "metaapi", settings: Settings = None) -> ExecutionGateway:
    """
    Factory function to create the appropriate execution gateway.

    Raises:
        ConfigurationError: unknown kind, or live gateway without credentials
    """
    settings = settings or default_settings
    kind = (kind or "").lower()

    if kind == "metaapi":
        if not settings.meta_api_token:
            raise ConfigurationError("META_API_TOKEN not configured")
        return MetaApiClient(
            token=settings.meta_api_token,
            base_url=settings.meta_api_url,
            market_data_url=settings.get_market_data_url(),
            timeout=settings.gateway_timeout_seconds,
        )

    if kind == "paper":
        return PaperTradingGateway(balance=settings.paper_starting_balance)

    raise ConfigurationError(f"Unknown gateway kind: {kind!r}. Must be 'metaapi' or 'paper'")
