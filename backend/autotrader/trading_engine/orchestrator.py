"""
Trading Orchestrator

Runs one trading cycle for one account:
1. Fetch account state and open positions (account state failure is fatal)
2. Derive the concurrency ceiling from the balance
3. Manage every open position through the close analyzer
4. Discover candidates across the tiered instrument universe
5. Fall back to one forced signal when nothing qualified and slots remain
6. Rank by priority weight, then expected profit
7. Execute in ranked order until the free slots are used up
8. Return a CycleResult (never raises)

A cycle holds the account lease for its duration. Every gateway call is
bounded by the configured timeout; a failure on one position or instrument
is recorded in the summary and does not stop the others.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from autotrader.config import Settings, settings as default_settings
from autotrader.constants import (
    CLOSE_ANALYSIS_MIN_BARS,
    CONCURRENCY_TABLE,
    INSTRUMENT_TIERS,
    MAX_CONCURRENCY,
    TREND_LOOKBACK,
    normalize_timeframe,
)
from autotrader.exceptions import (
    AccountBusyError,
    AccountUnavailableError,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    InsufficientDataError,
    LedgerError,
)
from autotrader.exchange_clients.base import ExecutionGateway
from autotrader.services.ledger_service import Ledger
from autotrader.trading_engine.account_lease import account_lease
from autotrader.trading_engine.close_analyzer import analyze_position_close
from autotrader.trading_engine.fallback_signal import build_forced_signal
from autotrader.trading_engine.position_sizer import size_for_instrument
from autotrader.trading_engine.signal_scorer import score_instrument
from autotrader.trading_engine.types import (
    AccountState,
    CycleResult,
    DecisionAction,
    OpenPosition,
    PositionDecision,
    PriceBar,
    Signal,
)

logger = logging.getLogger(__name__)

MIN_PARTIAL_VOLUME = 0.01

Scorer = Callable[[str, Sequence[PriceBar]], Optional[Signal]]
CloseAnalyzer = Callable[[OpenPosition, Sequence[PriceBar]], PositionDecision]


def get_max_concurrent_trades(balance: float) -> int:
    """Maximum simultaneously open positions for an account balance"""
    for ceiling, slots in CONCURRENCY_TABLE:
        if balance < ceiling:
            return slots
    return MAX_CONCURRENCY


def rank_signals(signals: List[Signal]) -> List[Signal]:
    """Priority weight descending, then expected profit descending"""
    return sorted(signals, key=lambda s: (s.priority, s.expected_profit), reverse=True)


class TradingOrchestrator:
    """
    Per-cycle control loop.

    Holds no mutable state between cycles: everything a cycle needs is read
    from the gateway and ledger when it starts.
    """

    def __init__(
        self,
        gateway: ExecutionGateway,
        ledger: Ledger,
        settings: Optional[Settings] = None,
        tiers: Optional[List[Tuple[int, List[str]]]] = None,
        scorer: Scorer = score_instrument,
        close_analyzer: CloseAnalyzer = analyze_position_close,
        fallback_strategy: Optional[Scorer] = build_forced_signal,
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.settings = settings or default_settings
        self.tiers = tiers if tiers is not None else INSTRUMENT_TIERS
        self.scorer = scorer
        self.close_analyzer = close_analyzer
        self.fallback_strategy = fallback_strategy

    async def run_cycle(
        self,
        account_ref: str,
        risk_percent: Optional[float] = None,
        timeframe: Optional[str] = None,
    ) -> CycleResult:
        """
        Run one cycle for an account.

        Args:
            account_ref: Venue account identifier
            risk_percent: Percent of balance risked per new trade
            timeframe: Candle timeframe used for analysis (aliases accepted)

        Returns:
            CycleResult with counts, ranked signals and the errors encountered
        """
        risk_percent = self.settings.default_risk_percent if risk_percent is None else risk_percent
        timeframe = normalize_timeframe(timeframe or self.settings.default_timeframe)
        result = CycleResult(account_ref=account_ref)

        try:
            async with account_lease(account_ref):
                await self._run_locked(result, account_ref, risk_percent, timeframe)
        except AccountBusyError as e:
            logger.warning(e.message)
            result.errors.append(e.message)
        except AccountUnavailableError as e:
            logger.error(f"Cycle aborted for {account_ref}: {e.message}")
            # Fatal case: empty summary with a single top-level error
            result = CycleResult(account_ref=account_ref, errors=[e.message])
            await self._audit(result, account_ref, "CYCLE_FAILED", {"error": e.message}, record_error=False)

        logger.info(
            f"Cycle complete for {account_ref}: opened={result.opened} closed={result.closed} "
            f"partial={result.partially_closed} stops={result.stops_moved} errors={len(result.errors)}"
        )
        return result

    async def _run_locked(self, result: CycleResult, account_ref: str, risk_percent: float, timeframe: str):
        account = await self._fetch_account_state(account_ref)

        try:
            positions = await self._call(self.gateway.get_open_positions(account_ref), "get_open_positions")
        except GatewayError as e:
            # Without the position list neither the slot count nor the duplicate guard is safe
            result.errors.append(f"Could not fetch open positions: {e.message}")
            return

        ceiling = get_max_concurrent_trades(account.balance)
        available_slots = max(ceiling - len(positions), 0)
        result.available_slots = available_slots
        logger.info(
            f"{account_ref}: balance {account.balance:.2f}, {len(positions)} open, "
            f"ceiling {ceiling}, {available_slots} slot(s) free"
        )

        await self._manage_positions(result, account_ref, positions, timeframe)

        if available_slots <= 0:
            logger.info(f"{account_ref}: no free slots, skipping discovery")
            return

        open_instruments = {p.instrument for p in positions}
        candidates, fetched = await self._discover(result, account_ref, open_instruments, timeframe)

        if not candidates and self.settings.forced_entry_enabled and self.fallback_strategy:
            forced = await self._forced_signal(result, account_ref, open_instruments, fetched)
            if forced:
                candidates.append(forced)

        ranked = rank_signals(candidates)
        result.signals = ranked
        await self._execute(result, account_ref, ranked, account, risk_percent, available_slots, open_instruments)

    # ------------------------------------------------------------------ gateway

    async def _call(self, awaitable: Awaitable[Any], what: str) -> Any:
        timeout = self.settings.gateway_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise GatewayTimeoutError(f"{what} timed out after {timeout}s")
        except GatewayError:
            raise
        except Exception as e:
            # Anything else a gateway raises is treated as the venue being unavailable
            logger.error(f"{what} failed unexpectedly: {e!r}")
            raise GatewayUnavailableError(f"{what} failed: {e!r}")

    async def _fetch_account_state(self, account_ref: str) -> AccountState:
        try:
            account = await self._call(self.gateway.get_account_state(account_ref), "get_account_state")
        except GatewayError as e:
            raise AccountUnavailableError(f"Could not fetch account information: {e.message}")
        if account is None:
            raise AccountUnavailableError()
        return account

    async def _fetch_candles(self, account_ref: str, instrument: str, timeframe: str) -> List[PriceBar]:
        return await self._call(
            self.gateway.get_price_bars(account_ref, instrument, timeframe, self.settings.candle_limit),
            f"get_price_bars({instrument})",
        )

    async def _fetch_many(self, account_ref: str, instruments: List[str], timeframe: str) -> Dict[str, Any]:
        """Fetch candles for several instruments concurrently (bounded). Failures come back as GatewayErrors."""
        semaphore = asyncio.Semaphore(max(self.settings.max_parallel_fetches, 1))

        async def fetch(instrument: str):
            async with semaphore:
                try:
                    return await self._fetch_candles(account_ref, instrument, timeframe)
                except GatewayError as e:
                    return e

        results = await asyncio.gather(*(fetch(i) for i in instruments))
        return dict(zip(instruments, results))

    @staticmethod
    def _require_bars(instrument: str, candles: Sequence[PriceBar], required: int):
        if len(candles) < required:
            raise InsufficientDataError(instrument, len(candles), required)

    # ---------------------------------------------------------------- positions

    async def _manage_positions(
        self, result: CycleResult, account_ref: str, positions: List[OpenPosition], timeframe: str
    ):
        if not positions:
            return

        instruments = list(dict.fromkeys(p.instrument for p in positions))
        fetched = await self._fetch_many(account_ref, instruments, timeframe)

        for position in positions:
            candles = fetched[position.instrument]
            if isinstance(candles, GatewayError):
                logger.warning(f"Could not fetch candles for {position.instrument}: {candles.message}")
                result.errors.append(f"{position.instrument}: {candles.message}")
                continue
            try:
                self._require_bars(position.instrument, candles, CLOSE_ANALYSIS_MIN_BARS)
            except InsufficientDataError as e:
                logger.info(f"#{position.position_id}: {e.message}, holding")
                result.skipped.append(position.instrument)
                continue

            try:
                decision = self.close_analyzer(position, candles)
            except Exception as e:
                logger.error(f"Close analysis failed for {position.instrument} #{position.position_id}: {e}")
                result.errors.append(f"{position.instrument}: close analysis failed: {e}")
                continue

            if decision.action is DecisionAction.HOLD:
                logger.debug(f"{position.instrument} #{position.position_id}: HOLD - {decision.reason}")
                continue

            try:
                await self._apply_decision(result, account_ref, position, decision)
            except GatewayError as e:
                logger.error(
                    f"Failed to apply {decision.action.value} on {position.instrument} "
                    f"#{position.position_id}: {e.message}"
                )
                result.errors.append(f"{position.instrument}: {decision.action.value} failed: {e.message}")

    async def _apply_decision(
        self, result: CycleResult, account_ref: str, position: OpenPosition, decision: PositionDecision
    ):
        if decision.action is DecisionAction.CLOSE:
            await self._call(
                self.gateway.close_position(account_ref, position.position_id),
                f"close_position({position.instrument})",
            )
            result.closed += 1
            logger.info(
                f"Closed {position.instrument} #{position.position_id} "
                f"(profit {position.profit:.2f}): {decision.reason}"
            )
            try:
                await self.ledger.update_trade_record(
                    account_ref,
                    position.instrument,
                    status="closed",
                    profit=position.profit,
                    close_price=position.current_price,
                    close_time=datetime.utcnow(),
                )
            except LedgerError as e:
                result.errors.append(f"{position.instrument}: {e.message}")
            await self._audit(result, account_ref, "POSITION_CLOSED", {
                "instrument": position.instrument,
                "position_id": position.position_id,
                "profit": position.profit,
                "close_price": position.current_price,
                "reason": decision.reason,
            })
            return

        if decision.action is DecisionAction.PARTIAL_CLOSE:
            percent = decision.close_percent or 0.0
            close_volume = max(round(position.volume * percent / 100, 2), MIN_PARTIAL_VOLUME)
            if close_volume >= position.volume:
                logger.info(
                    f"{position.instrument} #{position.position_id}: volume {position.volume} too small "
                    f"to split, keeping it whole"
                )
            else:
                await self._call(
                    self.gateway.partial_close(account_ref, position.position_id, close_volume),
                    f"partial_close({position.instrument})",
                )
                result.partially_closed += 1
                logger.info(
                    f"Partially closed {position.instrument} #{position.position_id}: "
                    f"{close_volume} of {position.volume} lots - {decision.reason}"
                )
                await self._audit(result, account_ref, "POSITION_PARTIAL_CLOSE", {
                    "instrument": position.instrument,
                    "position_id": position.position_id,
                    "volume": close_volume,
                    "percent": percent,
                    "reason": decision.reason,
                })

        if decision.new_stop_loss is not None:
            await self._call(
                self.gateway.modify_position(account_ref, position.position_id, stop_loss=decision.new_stop_loss),
                f"modify_position({position.instrument})",
            )
            result.stops_moved += 1
            logger.info(
                f"Moved stop on {position.instrument} #{position.position_id} "
                f"{position.stop_loss} -> {decision.new_stop_loss}"
            )
            await self._audit(result, account_ref, "STOP_MOVED", {
                "instrument": position.instrument,
                "position_id": position.position_id,
                "old_stop_loss": position.stop_loss,
                "new_stop_loss": decision.new_stop_loss,
                "reason": decision.reason,
            })

    # ---------------------------------------------------------------- discovery

    async def _discover(
        self, result: CycleResult, account_ref: str, open_instruments: Set[str], timeframe: str
    ) -> Tuple[List[Signal], Dict[str, Any]]:
        instruments = [
            instrument
            for _, tier in self.tiers
            for instrument in tier
            if instrument not in open_instruments
        ]
        instruments = list(dict.fromkeys(instruments))
        fetched = await self._fetch_many(account_ref, instruments, timeframe)

        candidates: List[Signal] = []
        for instrument in instruments:
            candles = fetched[instrument]
            if isinstance(candles, GatewayError):
                logger.warning(f"Could not fetch candles for {instrument}: {candles.message}")
                result.errors.append(f"{instrument}: {candles.message}")
                continue
            try:
                self._require_bars(instrument, candles, TREND_LOOKBACK)
            except InsufficientDataError as e:
                logger.info(f"{e.message}, skipping")
                result.skipped.append(instrument)
                continue

            try:
                signal = self.scorer(instrument, candles)
            except Exception as e:
                logger.error(f"Scoring failed for {instrument}: {e}")
                result.errors.append(f"{instrument}: scoring failed: {e}")
                continue
            if signal:
                candidates.append(signal)

        logger.info(f"{account_ref}: {len(candidates)} candidate(s) from {len(instruments)} instrument(s)")
        return candidates, fetched

    async def _forced_signal(
        self,
        result: CycleResult,
        account_ref: str,
        open_instruments: Set[str],
        fetched: Dict[str, Any],
    ) -> Optional[Signal]:
        """One relaxed pass over the top tier, reusing discovery's bars; the first instrument with a bias wins."""
        if not self.tiers:
            return None

        _, top_tier = self.tiers[0]
        for instrument in top_tier:
            candles = fetched.get(instrument)
            if instrument in open_instruments or candles is None or isinstance(candles, GatewayError):
                continue

            try:
                signal = self.fallback_strategy(instrument, candles)
            except Exception as e:
                logger.error(f"Forced entry evaluation failed for {instrument}: {e}")
                result.errors.append(f"{instrument}: forced entry failed: {e}")
                continue
            if signal:
                logger.warning(f"{account_ref}: no qualifying signals, forcing {signal.rationale}")
                return signal
        return None

    # ---------------------------------------------------------------- execution

    async def _execute(
        self,
        result: CycleResult,
        account_ref: str,
        ranked: List[Signal],
        account: AccountState,
        risk_percent: float,
        available_slots: int,
        open_instruments: Set[str],
    ):
        for signal in ranked:
            if result.opened >= available_slots:
                break
            if signal.instrument in open_instruments:
                logger.info(f"{signal.instrument}: position already open, skipping")
                continue

            volume = size_for_instrument(
                signal.instrument, account.balance, risk_percent, signal.entry_price, signal.stop_loss
            )
            try:
                trade_id = await self._call(
                    self.gateway.place_trade(account_ref, signal, volume),
                    f"place_trade({signal.instrument})",
                )
            except GatewayError as e:
                logger.error(f"Failed to open {signal.direction.value} {signal.instrument}: {e.message}")
                result.errors.append(f"{signal.instrument}: trade failed: {e.message}")
                await self._audit(result, account_ref, "TRADE_FAILED", {
                    "instrument": signal.instrument,
                    "direction": signal.direction.value,
                    "volume": volume,
                    "error": e.message,
                })
                continue

            result.opened += 1
            open_instruments.add(signal.instrument)
            logger.info(
                f"Opened {signal.direction.value.upper()} {volume} {signal.instrument} @ {signal.entry_price} "
                f"(SL {signal.stop_loss}, TP {signal.final_take_profit}, {signal.confidence}%) - {signal.rationale}"
            )

            try:
                await self.ledger.create_trade_record(account_ref, signal, volume, trade_id)
            except LedgerError as e:
                result.errors.append(f"{signal.instrument}: {e.message}")
            await self._audit(result, account_ref, "TRADE_OPENED", {
                "instrument": signal.instrument,
                "direction": signal.direction.value,
                "volume": volume,
                "entry_price": signal.entry_price,
                "stop_loss": signal.stop_loss,
                "take_profits": list(signal.take_profits),
                "confidence": signal.confidence,
                "is_forced": signal.is_forced,
                "trade_id": trade_id,
                "rationale": signal.rationale,
            })

    async def _audit(
        self,
        result: CycleResult,
        account_ref: str,
        action: str,
        details: Dict[str, Any],
        record_error: bool = True,
    ):
        try:
            await self.ledger.append_audit_entry(account_ref, action, details)
        except LedgerError as e:
            logger.error(f"Audit entry {action} failed for {account_ref}: {e.message}")
            if record_error:
                result.errors.append(e.message)
