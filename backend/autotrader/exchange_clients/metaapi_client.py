"""
MetaAPI Client

ExecutionGateway implementation for MetaTrader accounts reached through the
MetaAPI REST service.

- Uses httpx.AsyncClient with a per-request timeout
- `auth-token` header authentication
- Trades, closes, partial closes and stop modifications all go through the
  account's /trade endpoint with different action types
- Orders are submitted with the signal's final take-profit level; earlier
  levels are managed by the close analyzer
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from autotrader.constants import normalize_timeframe
from autotrader.exceptions import (
    ConfigurationError,
    GatewayRejectedError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)
from autotrader.exchange_clients.base import ExecutionGateway
from autotrader.trading_engine.types import (
    AccountState,
    Direction,
    HistoryDeal,
    OpenPosition,
    PriceBar,
    Signal,
)

logger = logging.getLogger(__name__)

# MetaTrader trade return codes that mean the request was executed
SUCCESS_CODES = {"TRADE_RETCODE_DONE", "TRADE_RETCODE_DONE_PARTIAL", "TRADE_RETCODE_PLACED", "ERR_NO_ERROR"}

# What the parsers raise on a 200 response with an unexpected body
MALFORMED_BODY_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def malformed(what: str, error: Exception) -> GatewayUnavailableError:
    logger.error(f"Malformed MetaAPI {what} response: {error!r}")
    return GatewayUnavailableError(f"Malformed MetaAPI {what} response: {error!r}")


def parse_time(value: Any) -> Optional[datetime]:
    """Parse MetaAPI ISO timestamps ("2024-01-01T00:00:00.000Z")"""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def parse_direction(raw_type: str) -> Direction:
    """POSITION_TYPE_BUY / DEAL_TYPE_SELL / ORDER_TYPE_BUY ... -> Direction"""
    return Direction.LONG if "BUY" in (raw_type or "").upper() else Direction.SHORT


def parse_price_bar(candle: Dict[str, Any]) -> PriceBar:
    return PriceBar(
        timestamp=parse_time(candle.get("time")),
        open=float(candle["open"]),
        high=float(candle["high"]),
        low=float(candle["low"]),
        close=float(candle["close"]),
        volume=float(candle.get("tickVolume") or candle.get("volume") or 0),
    )


def parse_position(data: Dict[str, Any]) -> OpenPosition:
    return OpenPosition(
        position_id=str(data["id"]),
        instrument=data["symbol"],
        direction=parse_direction(data.get("type", "")),
        volume=float(data.get("volume", 0)),
        open_price=float(data.get("openPrice", 0)),
        current_price=float(data.get("currentPrice") or data.get("openPrice") or 0),
        stop_loss=data.get("stopLoss"),
        take_profit=data.get("takeProfit"),
        profit=float(data.get("profit") or 0),
        open_time=parse_time(data.get("time")),
    )


def parse_deal(data: Dict[str, Any]) -> HistoryDeal:
    return HistoryDeal(
        deal_id=str(data["id"]),
        instrument=data.get("symbol", ""),
        direction=parse_direction(data.get("type", "")),
        volume=float(data.get("volume") or 0),
        price=float(data.get("price") or 0),
        profit=float(data.get("profit") or 0),
        time=parse_time(data.get("time")),
        position_id=str(data["positionId"]) if data.get("positionId") else None,
    )


class MetaApiClient(ExecutionGateway):
    """
    ExecutionGateway for MetaAPI-connected MT4/MT5 accounts.

    Endpoints used (relative to /users/current/accounts/{account_ref}):
      GET  /account-information                 - Balance, equity, margin
      GET  /positions                           - Open positions
      GET  /history-deals/time/{start}/{end}    - Deal history
      POST /trade                               - Open / close / modify
      GET  /historical-market-data/symbols/{s}/timeframes/{tf}/candles
    """

    def __init__(
        self,
        token: str,
        base_url: str,
        market_data_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not token:
            raise ConfigurationError("META_API_TOKEN not configured")

        self._base_url = base_url.rstrip("/")
        self._market_data_url = (market_data_url or base_url).rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"auth-token": token},
            transport=transport,
        )
        logger.info(f"MetaApiClient initialized (url={self._base_url}, timeout={timeout}s)")

    async def close(self):
        """Close the underlying httpx client to release connections."""
        if self._client:
            await self._client.aclose()

    def _account_url(self, account_ref: str, market_data: bool = False) -> str:
        root = self._market_data_url if market_data else self._base_url
        return f"{root}/users/current/accounts/{account_ref}"

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """Make HTTP request to MetaAPI.

        Raises:
            GatewayTimeoutError: Request timed out.
            GatewayRejectedError: HTTP client error (4xx), e.g. unknown
                position or invalid volume.
            GatewayUnavailableError: Server error (5xx) or connection failure.
        """
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException:
            logger.error(f"MetaAPI timeout: {method} {url}")
            raise GatewayTimeoutError(f"MetaAPI timeout: {method} {url}")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:200]
            logger.error(f"MetaAPI HTTP {status}: {method} {url} - {body}")
            if 400 <= status < 500:
                raise GatewayRejectedError(f"MetaAPI rejected request ({status}): {body}")
            raise GatewayUnavailableError(f"MetaAPI server error ({status}): {body}")
        except (httpx.TransportError, ValueError) as e:
            logger.error(f"MetaAPI request failed: {method} {url}: {e}")
            raise GatewayUnavailableError(f"MetaAPI unavailable: {e}")

    async def _trade(self, account_ref: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", f"{self._account_url(account_ref)}/trade", json=payload)
        if not isinstance(data, dict):
            raise malformed("trade", TypeError(f"expected an object, got {type(data).__name__}"))
        code = data.get("stringCode")
        if code and code not in SUCCESS_CODES:
            raise GatewayRejectedError(data.get("message") or f"Trade rejected ({code})")
        return data

    # ==========================================================
    # ACCOUNT & MARKET DATA
    # ==========================================================

    async def get_account_state(self, account_ref: str) -> Optional[AccountState]:
        try:
            data = await self._request("GET", f"{self._account_url(account_ref)}/account-information")
        except (GatewayTimeoutError, GatewayRejectedError, GatewayUnavailableError) as e:
            logger.warning(f"Account information unavailable for {account_ref}: {e}")
            return None

        try:
            return AccountState(
                balance=float(data.get("balance", 0)),
                equity=float(data.get("equity", 0)),
                margin=float(data.get("margin", 0)),
                free_margin=float(data.get("freeMargin", 0)),
            )
        except MALFORMED_BODY_ERRORS as e:
            logger.warning(f"Account information unavailable for {account_ref}: {malformed('account', e)}")
            return None

    async def get_price_bars(
        self,
        account_ref: str,
        instrument: str,
        timeframe: str,
        limit: int,
    ) -> List[PriceBar]:
        tf = normalize_timeframe(timeframe)
        url = (
            f"{self._account_url(account_ref, market_data=True)}"
            f"/historical-market-data/symbols/{instrument}/timeframes/{tf}/candles"
        )
        data = await self._request("GET", url, params={"limit": limit})
        try:
            bars = [parse_price_bar(c) for c in data or []]
            bars.sort(key=lambda b: b.timestamp or datetime.min.replace(tzinfo=timezone.utc))
        except MALFORMED_BODY_ERRORS as e:
            raise malformed(f"{instrument} candle", e)
        return bars

    async def get_open_positions(self, account_ref: str) -> List[OpenPosition]:
        data = await self._request("GET", f"{self._account_url(account_ref)}/positions")
        try:
            return [parse_position(p) for p in data or []]
        except MALFORMED_BODY_ERRORS as e:
            raise malformed("positions", e)

    async def get_trade_history(
        self,
        account_ref: str,
        start: datetime,
        end: datetime,
    ) -> List[HistoryDeal]:
        url = f"{self._account_url(account_ref)}/history-deals/time/{start.isoformat()}/{end.isoformat()}"
        data = await self._request("GET", url)
        try:
            return [parse_deal(d) for d in data or [] if d.get("symbol")]
        except MALFORMED_BODY_ERRORS as e:
            raise malformed("history", e)

    # ==========================================================
    # EXECUTION
    # ==========================================================

    async def place_trade(self, account_ref: str, signal: Signal, volume: float) -> str:
        payload = {
            "actionType": "ORDER_TYPE_BUY" if signal.direction is Direction.LONG else "ORDER_TYPE_SELL",
            "symbol": signal.instrument,
            "volume": volume,
            "stopLoss": signal.stop_loss,
            "takeProfit": signal.final_take_profit,
            "comment": f"{'FORCED' if signal.is_forced else 'AUTO'} {signal.confidence:.0f}%",
        }
        data = await self._trade(account_ref, payload)

        trade_id = data.get("positionId") or data.get("orderId")
        if not trade_id:
            raise GatewayRejectedError(data.get("message") or "Trade execution failed")

        logger.info(
            f"MetaAPI order placed: {signal.instrument} {signal.direction.value} "
            f"{volume} lots -> {trade_id}"
        )
        return str(trade_id)

    async def close_position(self, account_ref: str, position_id: str) -> None:
        await self._trade(account_ref, {"actionType": "POSITION_CLOSE_ID", "positionId": position_id})

    async def partial_close(self, account_ref: str, position_id: str, volume: float) -> None:
        await self._trade(
            account_ref,
            {"actionType": "POSITION_PARTIAL", "positionId": position_id, "volume": volume},
        )

    async def modify_position(
        self,
        account_ref: str,
        position_id: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> None:
        payload: Dict[str, Any] = {"actionType": "POSITION_MODIFY", "positionId": position_id}
        if stop_loss is not None:
            payload["stopLoss"] = stop_loss
        if take_profit is not None:
            payload["takeProfit"] = take_profit
        await self._trade(account_ref, payload)
