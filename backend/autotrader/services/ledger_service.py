"""
Trade Ledger Service

Persistence boundary for trade records and the audit trail. The engine
depends on the abstract Ledger; SqlLedger stores everything through
SQLAlchemy async sessions, one short transaction per call so a failed write
never leaves a half-applied cycle behind.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autotrader.exceptions import LedgerError
from autotrader.models import AuditLogEntry, TradeRecord
from autotrader.trading_engine.types import Signal

logger = logging.getLogger(__name__)


class Ledger(ABC):
    """Trade + audit persistence used by the orchestrator and reconciliation."""

    @abstractmethod
    async def create_trade_record(
        self,
        account_ref: str,
        signal: Signal,
        volume: float,
        gateway_trade_id: str,
        open_time: Optional[datetime] = None,
    ) -> int:
        """Persist a freshly opened trade. Returns the record id."""
        pass

    @abstractmethod
    async def update_trade_record(
        self,
        account_ref: str,
        instrument: str,
        status: str,
        profit: Optional[float] = None,
        close_price: Optional[float] = None,
        close_time: Optional[datetime] = None,
    ) -> bool:
        """Update the open record for (account, instrument). Returns False if none is open."""
        pass

    @abstractmethod
    async def append_audit_entry(self, account_ref: str, action: str, details: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get_open_trade_records(self, account_ref: str) -> List[TradeRecord]:
        pass

    @abstractmethod
    async def get_known_trade_ids(self, account_ref: str) -> Set[str]:
        """Gateway trade ids already recorded for an account"""
        pass

    @abstractmethod
    async def record_closed_trade(
        self,
        account_ref: str,
        instrument: str,
        direction: str,
        volume: float,
        open_price: float,
        profit: float,
        close_price: float,
        open_time: datetime,
        close_time: datetime,
        gateway_trade_id: Optional[str] = None,
    ) -> int:
        """Persist a trade that was opened and closed outside the engine's view"""
        pass


class SqlLedger(Ledger):
    """SQLAlchemy-backed ledger"""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def _commit(self, session: AsyncSession, what: str):
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Ledger write failed ({what}): {e}")
            raise LedgerError(f"Ledger write failed ({what}): {e}")

    async def create_trade_record(
        self,
        account_ref: str,
        signal: Signal,
        volume: float,
        gateway_trade_id: str,
        open_time: Optional[datetime] = None,
    ) -> int:
        async with self._session_maker() as session:
            record = TradeRecord(
                account_ref=account_ref,
                instrument=signal.instrument,
                direction=signal.direction.value,
                volume=volume,
                open_price=signal.entry_price,
                stop_loss=signal.stop_loss,
                take_profit=signal.final_take_profit,
                confidence=signal.confidence,
                rationale=signal.rationale,
                is_forced=signal.is_forced,
                gateway_trade_id=gateway_trade_id,
                status="open",
                open_time=open_time or datetime.utcnow(),
            )
            session.add(record)
            await self._commit(session, f"create {signal.instrument}")
            return record.id

    async def update_trade_record(
        self,
        account_ref: str,
        instrument: str,
        status: str,
        profit: Optional[float] = None,
        close_price: Optional[float] = None,
        close_time: Optional[datetime] = None,
    ) -> bool:
        async with self._session_maker() as session:
            try:
                result = await session.execute(
                    select(TradeRecord)
                    .where(
                        TradeRecord.account_ref == account_ref,
                        TradeRecord.instrument == instrument,
                        TradeRecord.status == "open",
                    )
                    .order_by(TradeRecord.open_time.desc())
                )
            except SQLAlchemyError as e:
                raise LedgerError(f"Ledger read failed ({instrument}): {e}")

            record = result.scalars().first()
            if record is None:
                logger.warning(f"No open trade record for {account_ref}/{instrument}")
                return False

            record.status = status
            if profit is not None:
                record.profit = profit
            if close_price is not None:
                record.close_price = close_price
            if status == "closed":
                record.close_time = close_time or datetime.utcnow()
            await self._commit(session, f"update {instrument}")
            return True

    async def append_audit_entry(self, account_ref: str, action: str, details: Dict[str, Any]) -> None:
        async with self._session_maker() as session:
            session.add(AuditLogEntry(account_ref=account_ref, action=action, details=details))
            await self._commit(session, f"audit {action}")

    async def get_open_trade_records(self, account_ref: str) -> List[TradeRecord]:
        async with self._session_maker() as session:
            try:
                result = await session.execute(
                    select(TradeRecord).where(
                        TradeRecord.account_ref == account_ref,
                        TradeRecord.status == "open",
                    )
                )
            except SQLAlchemyError as e:
                raise LedgerError(f"Ledger read failed: {e}")
            return list(result.scalars().all())

    async def get_known_trade_ids(self, account_ref: str) -> Set[str]:
        async with self._session_maker() as session:
            try:
                result = await session.execute(
                    select(TradeRecord.gateway_trade_id).where(
                        TradeRecord.account_ref == account_ref,
                        TradeRecord.gateway_trade_id.isnot(None),
                    )
                )
            except SQLAlchemyError as e:
                raise LedgerError(f"Ledger read failed: {e}")
            return set(result.scalars().all())

    async def record_closed_trade(
        self,
        account_ref: str,
        instrument: str,
        direction: str,
        volume: float,
        open_price: float,
        profit: float,
        close_price: float,
        open_time: datetime,
        close_time: datetime,
        gateway_trade_id: Optional[str] = None,
    ) -> int:
        async with self._session_maker() as session:
            record = TradeRecord(
                account_ref=account_ref,
                instrument=instrument,
                direction=direction,
                volume=volume,
                open_price=open_price,
                gateway_trade_id=gateway_trade_id,
                status="closed",
                profit=profit,
                close_price=close_price,
                open_time=open_time,
                close_time=close_time,
            )
            session.add(record)
            await self._commit(session, f"record closed {instrument}")
            return record.id
