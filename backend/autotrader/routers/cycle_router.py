"""
Cycle API routes

Handles engine control endpoints:
- Run one trading cycle for an account
- Scheduler control (status, start/stop, account registration)
- Ledger reconciliation against the venue
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from autotrader.exceptions import GatewayError, LedgerError
from autotrader.schemas import (
    CycleRequest,
    CycleSummaryResponse,
    ScheduleAccountRequest,
    SchedulerStatusResponse,
    SyncResponse,
)
from autotrader.services.cycle_scheduler import CycleScheduler
from autotrader.services.trade_sync_service import sync_trades
from autotrader.trading_engine.orchestrator import TradingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cycles"])


# Dependencies - will be injected from main.py
def get_orchestrator() -> TradingOrchestrator:
    """Get orchestrator - will be overridden in main.py"""
    raise NotImplementedError("Must override orchestrator dependency")


def get_scheduler() -> CycleScheduler:
    """Get scheduler - will be overridden in main.py"""
    raise NotImplementedError("Must override scheduler dependency")


@router.post("/api/cycles/{account_ref}", response_model=CycleSummaryResponse)
async def run_cycle(
    account_ref: str,
    request: Optional[CycleRequest] = None,
    orchestrator: TradingOrchestrator = Depends(get_orchestrator),
):
    """Run one trading cycle now. Always answers with the cycle summary."""
    request = request or CycleRequest()
    result = await orchestrator.run_cycle(account_ref, request.risk_percent, request.timeframe)
    return result.to_dict()


@router.get("/api/scheduler/status", response_model=SchedulerStatusResponse)
async def get_scheduler_status(scheduler: CycleScheduler = Depends(get_scheduler)):
    return scheduler.get_status()


@router.post("/api/scheduler/start")
async def start_scheduler(scheduler: CycleScheduler = Depends(get_scheduler)):
    """Start the cycle scheduler"""
    if not scheduler.running:
        scheduler.start()
        return {"message": "Scheduler started"}
    return {"message": "Scheduler already running"}


@router.post("/api/scheduler/stop")
async def stop_scheduler(scheduler: CycleScheduler = Depends(get_scheduler)):
    """Stop the cycle scheduler"""
    if scheduler.running:
        await scheduler.stop()
        return {"message": "Scheduler stopped"}
    return {"message": "Scheduler not running"}


@router.post("/api/scheduler/accounts/{account_ref}")
async def schedule_account(
    account_ref: str,
    request: Optional[ScheduleAccountRequest] = None,
    scheduler: CycleScheduler = Depends(get_scheduler),
):
    request = request or ScheduleAccountRequest()
    scheduler.register(account_ref, request.risk_percent, request.timeframe)
    return {"message": f"Account {account_ref} scheduled"}


@router.delete("/api/scheduler/accounts/{account_ref}")
async def unschedule_account(account_ref: str, scheduler: CycleScheduler = Depends(get_scheduler)):
    if not scheduler.unregister(account_ref):
        raise HTTPException(status_code=404, detail=f"Account {account_ref} is not scheduled")
    return {"message": f"Account {account_ref} unscheduled"}


@router.post("/api/trades/{account_ref}/sync", response_model=SyncResponse)
async def sync_account_trades(account_ref: str, orchestrator: TradingOrchestrator = Depends(get_orchestrator)):
    """Reconcile the ledger with the venue's positions and trade history"""
    try:
        counts = await sync_trades(orchestrator.gateway, orchestrator.ledger, account_ref)
    except GatewayError as e:
        logger.error(f"Trade sync failed for {account_ref}: {e.message}")
        raise HTTPException(status_code=502, detail=e.message)
    except LedgerError as e:
        logger.error(f"Trade sync failed for {account_ref}: {e.message}")
        raise HTTPException(status_code=500, detail=e.message)
    return {"message": "Sync completed", **counts}
