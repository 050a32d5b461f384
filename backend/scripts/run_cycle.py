#!/usr/bin/env python3
"""
Trading Cycle Runner

Runs one trading cycle for an account and prints the JSON summary. Intended
for cron/systemd timers and for manual dry runs.

With --paper, trades are simulated in memory. If a MetaAPI token is
configured, live candles are loaded into the paper venue first so the dry
run analyses real market data.

Usage:
    ./venv/bin/python scripts/run_cycle.py --account ACCOUNT_ID [--risk 1.0] [--timeframe 1h] [--paper]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add the backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from autotrader.config import settings  # noqa: E402
from autotrader.constants import INSTRUMENT_TIERS, normalize_timeframe  # noqa: E402
from autotrader.database import async_session_maker, init_db  # noqa: E402
from autotrader.exceptions import ConfigurationError, GatewayError  # noqa: E402
from autotrader.exchange_clients import PaperTradingGateway, create_gateway  # noqa: E402
from autotrader.services.ledger_service import SqlLedger  # noqa: E402
from autotrader.trading_engine.orchestrator import TradingOrchestrator  # noqa: E402

logger = logging.getLogger("run_cycle")


async def load_market_data(paper: PaperTradingGateway, account_ref: str, timeframe: str):
    """Copy live candles for the whole instrument universe into the paper venue"""
    source = create_gateway("metaapi", settings)
    try:
        for _, instruments in INSTRUMENT_TIERS:
            for instrument in instruments:
                try:
                    bars = await source.get_price_bars(account_ref, instrument, timeframe, settings.candle_limit)
                except GatewayError as e:
                    logger.warning(f"Could not load {instrument} candles: {e.message}")
                    continue
                paper.set_candles(instrument, bars)
    finally:
        await source.close()


async def run(args) -> dict:
    await init_db()

    timeframe = normalize_timeframe(args.timeframe or settings.default_timeframe)
    if args.paper:
        gateway = PaperTradingGateway(balance=settings.paper_starting_balance)
        if settings.meta_api_token:
            await load_market_data(gateway, args.account, timeframe)
        else:
            logger.warning("META_API_TOKEN not set - paper venue has no market data")
    else:
        gateway = create_gateway("metaapi", settings)

    orchestrator = TradingOrchestrator(gateway, SqlLedger(async_session_maker), settings)
    try:
        result = await orchestrator.run_cycle(args.account, args.risk, timeframe)
    finally:
        await gateway.close()
    return result.to_dict()


def main():
    parser = argparse.ArgumentParser(description="Run one trading cycle for an account")
    parser.add_argument("--account", required=True, help="MetaAPI account id")
    parser.add_argument("--risk", type=float, default=None, help="Percent of balance risked per trade")
    parser.add_argument("--timeframe", default=None, help="Candle timeframe (1h, 15m, h1, m15, ...)")
    parser.add_argument("--paper", action="store_true", help="Simulate trades instead of sending them")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        summary = asyncio.run(run(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        sys.exit(2)

    print(json.dumps(summary, indent=2, default=str))
    sys.exit(1 if summary["errors"] else 0)


if __name__ == "__main__":
    main()
