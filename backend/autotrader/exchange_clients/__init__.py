"""
Execution venue adapters.

The engine depends only on ExecutionGateway; concrete adapters are built by
create_gateway().
"""

from autotrader.exchange_clients.base import ExecutionGateway
from autotrader.exchange_clients.factory import create_gateway
from autotrader.exchange_clients.metaapi_client import MetaApiClient
from autotrader.exchange_clients.paper_trading_client import PaperTradingGateway

__all__ = ["ExecutionGateway", "MetaApiClient", "PaperTradingGateway", "create_gateway"]
