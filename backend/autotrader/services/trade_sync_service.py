"""
Trade Reconciliation

Brings the ledger back in line with the execution venue:
- Open ledger records whose position the venue no longer reports are marked
  closed, with profit and close price taken from the venue's deal history
- Positions in the venue history the ledger has never seen (opened by hand,
  or while the engine was down) are recorded as closed trades
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from autotrader.exchange_clients.base import ExecutionGateway
from autotrader.services.ledger_service import Ledger
from autotrader.trading_engine.types import HistoryDeal

logger = logging.getLogger(__name__)

HISTORY_LOOKBACK_DAYS = 30


def group_deals_by_position(deals: List[HistoryDeal]) -> Dict[str, List[HistoryDeal]]:
    """Group history deals by venue position id (deal id when a deal has none), oldest first"""
    groups: Dict[str, List[HistoryDeal]] = defaultdict(list)
    for deal in sorted(deals, key=lambda d: d.time):
        groups[deal.position_id or deal.deal_id].append(deal)
    return dict(groups)


async def sync_trades(
    gateway: ExecutionGateway,
    ledger: Ledger,
    account_ref: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Reconcile one account's ledger with the venue.

    Args:
        gateway: Execution venue
        ledger: Trade ledger
        account_ref: Venue account identifier
        start: History window start (default: 30 days ago)
        end: History window end (default: now)

    Returns:
        {"synced": records created from venue history,
         "updated": open records marked closed}

    Raises:
        GatewayError: positions or history could not be read
        LedgerError: ledger read/write failed
    """
    end = end or datetime.utcnow()
    start = start or end - timedelta(days=HISTORY_LOOKBACK_DAYS)

    positions = await gateway.get_open_positions(account_ref)
    deals = await gateway.get_trade_history(account_ref, start, end)
    open_ids = {p.position_id for p in positions}
    open_instruments = {p.instrument for p in positions}
    by_position = group_deals_by_position(deals)

    synced = 0
    updated = 0

    # Ledger says open, venue says gone
    for record in await ledger.get_open_trade_records(account_ref):
        if record.gateway_trade_id in open_ids:
            continue
        if record.gateway_trade_id is None and record.instrument in open_instruments:
            continue

        position_deals = by_position.get(record.gateway_trade_id or "", [])
        profit = sum(d.profit for d in position_deals) if position_deals else None
        close_price = position_deals[-1].price if position_deals else None
        close_time = position_deals[-1].time if position_deals else end

        await ledger.update_trade_record(
            account_ref,
            record.instrument,
            status="closed",
            profit=profit,
            close_price=close_price,
            close_time=close_time,
        )
        await ledger.append_audit_entry(account_ref, "TRADE_SYNCED", {
            "instrument": record.instrument,
            "trade_id": record.gateway_trade_id,
            "result": "closed",
            "profit": profit,
        })
        updated += 1
        logger.info(f"Sync: {record.instrument} ({record.gateway_trade_id}) closed on venue, profit {profit}")

    # Venue history the ledger has never seen
    known_ids = await ledger.get_known_trade_ids(account_ref)
    for position_id, position_deals in by_position.items():
        if position_id in known_ids or position_id in open_ids:
            continue

        first, last = position_deals[0], position_deals[-1]
        profit = sum(d.profit for d in position_deals)
        await ledger.record_closed_trade(
            account_ref,
            instrument=first.instrument,
            direction=first.direction.value,
            volume=max(d.volume for d in position_deals),
            open_price=first.price,
            profit=profit,
            close_price=last.price,
            open_time=first.time,
            close_time=last.time,
            gateway_trade_id=position_id,
        )
        await ledger.append_audit_entry(account_ref, "TRADE_SYNCED", {
            "instrument": first.instrument,
            "trade_id": position_id,
            "result": "recorded",
            "profit": profit,
        })
        synced += 1
        logger.info(f"Sync: recorded unknown venue trade {first.instrument} ({position_id}), profit {profit:.2f}")

    logger.info(f"Sync complete for {account_ref}: {synced} synced, {updated} updated")
    return {"synced": synced, "updated": updated}
