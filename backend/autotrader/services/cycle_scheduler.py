"""
Cycle Scheduler

Runs TradingOrchestrator.run_cycle for every registered account on an
interval derived from the account's timeframe (or a fixed override).
Accounts run concurrently with one another; a failing account is logged and
retried on its next interval without affecting the others.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from autotrader.constants import TIMEFRAME_INTERVALS, normalize_timeframe
from autotrader.trading_engine.orchestrator import TradingOrchestrator
from autotrader.trading_engine.types import CycleResult

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60 * 60


@dataclass
class ScheduledAccount:
    account_ref: str
    risk_percent: float
    timeframe: str
    last_run: Optional[datetime] = None
    last_summary: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None


class CycleScheduler:
    """Interval-driven cycle runner with start/stop/status control"""

    def __init__(
        self,
        orchestrator: TradingOrchestrator,
        interval_seconds: Optional[int] = None,
        tick_seconds: float = 5.0,
    ):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.tick_seconds = tick_seconds
        self.accounts: Dict[str, ScheduledAccount] = {}
        self.running = False
        self.task: Optional[asyncio.Task] = None

    def register(self, account_ref: str, risk_percent: Optional[float] = None, timeframe: Optional[str] = None):
        settings = self.orchestrator.settings
        self.accounts[account_ref] = ScheduledAccount(
            account_ref=account_ref,
            risk_percent=settings.default_risk_percent if risk_percent is None else risk_percent,
            timeframe=normalize_timeframe(timeframe or settings.default_timeframe),
        )
        logger.info(f"Scheduled account {account_ref} ({self.accounts[account_ref].timeframe})")

    def unregister(self, account_ref: str) -> bool:
        return self.accounts.pop(account_ref, None) is not None

    def interval_for(self, timeframe: str) -> int:
        if self.interval_seconds:
            return self.interval_seconds
        return TIMEFRAME_INTERVALS.get(normalize_timeframe(timeframe), DEFAULT_INTERVAL_SECONDS)

    def is_due(self, account: ScheduledAccount, now: datetime) -> bool:
        if account.last_run is None:
            return True
        return now - account.last_run >= timedelta(seconds=self.interval_for(account.timeframe))

    async def _run_account(self, account: ScheduledAccount, now: datetime) -> Optional[CycleResult]:
        account.last_run = now
        try:
            result = await self.orchestrator.run_cycle(account.account_ref, account.risk_percent, account.timeframe)
        except Exception as e:
            logger.error(f"Scheduled cycle failed for {account.account_ref}: {e}")
            account.last_error = str(e)
            return None
        account.last_summary = result.to_dict()
        account.last_error = result.errors[0] if result.errors else None
        return result

    async def run_due(self, now: Optional[datetime] = None) -> List[CycleResult]:
        """Run every account whose interval has elapsed. Returns the completed results."""
        now = now or datetime.utcnow()
        due = [a for a in list(self.accounts.values()) if self.is_due(a, now)]
        if not due:
            return []
        results = await asyncio.gather(*(self._run_account(a, now) for a in due))
        return [r for r in results if r is not None]

    async def monitor_loop(self):
        while self.running:
            try:
                await self.run_due()
            except Exception as e:
                logger.error(f"Error in cycle scheduler loop: {e}")
            await asyncio.sleep(self.tick_seconds)

    def start(self):
        if not self.running:
            self.running = True  # Set before creating the task to block a double start
            self.task = asyncio.create_task(self.monitor_loop())
            logger.info(f"Cycle scheduler started ({len(self.accounts)} account(s))")
        else:
            logger.warning("Scheduler already running, ignoring duplicate start() call")

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
            logger.info("Cycle scheduler stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "accounts": [
                {
                    "account_ref": a.account_ref,
                    "risk_percent": a.risk_percent,
                    "timeframe": a.timeframe,
                    "interval_seconds": self.interval_for(a.timeframe),
                    "last_run": a.last_run.isoformat() if a.last_run else None,
                    "last_error": a.last_error,
                    "last_summary": a.last_summary,
                }
                for a in self.accounts.values()
            ],
        }
