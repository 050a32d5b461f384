import logging
from typing import Optional

from fastapi import FastAPI

from autotrader.config import settings
from autotrader.database import async_session_maker, init_db
from autotrader.exchange_clients import ExecutionGateway, create_gateway
from autotrader.routers import cycle_router
from autotrader.services.cycle_scheduler import CycleScheduler
from autotrader.services.ledger_service import SqlLedger
from autotrader.trading_engine.orchestrator import TradingOrchestrator

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Autotrader Engine")

# Built on startup: the live gateway needs credentials that may be missing at import time
gateway: Optional[ExecutionGateway] = None
orchestrator: Optional[TradingOrchestrator] = None
scheduler: Optional[CycleScheduler] = None


def override_get_orchestrator() -> TradingOrchestrator:
    return orchestrator


def override_get_scheduler() -> CycleScheduler:
    return scheduler


app.include_router(cycle_router.router)
app.dependency_overrides[cycle_router.get_orchestrator] = override_get_orchestrator
app.dependency_overrides[cycle_router.get_scheduler] = override_get_scheduler


@app.get("/")
async def root():
    return {"message": "Autotrader Engine API", "status": "running", "gateway": settings.gateway_kind}


# Startup/Shutdown events
@app.on_event("startup")
async def startup_event():
    global gateway, orchestrator, scheduler

    logger.info("Initializing database...")
    await init_db()

    gateway = create_gateway(settings.gateway_kind, settings)
    orchestrator = TradingOrchestrator(gateway, SqlLedger(async_session_maker), settings)
    scheduler = CycleScheduler(orchestrator, interval_seconds=settings.scheduler_interval_seconds)

    for account_ref in settings.scheduled_accounts:
        scheduler.register(account_ref)

    if settings.scheduler_autostart:
        scheduler.start()
    logger.info(f"Startup complete (gateway={settings.gateway_kind}, {len(scheduler.accounts)} scheduled account(s))")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down - stopping scheduler...")
    if scheduler:
        await scheduler.stop()
    if gateway:
        await gateway.close()
    logger.info("Shutdown complete")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
