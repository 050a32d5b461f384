"""Ledger models: executed trades and the audit trail."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
)

from autotrader.database import Base


class TradeRecord(Base):
    """
    Persisted trade opened by the engine (or discovered by reconciliation).

    Keyed by account + instrument + open time. At most one record per
    (account_ref, instrument) is "open" at a time; the orchestrator refuses to
    open a second position in an instrument that already has one.
    """
    __tablename__ = "trade_records"
    __table_args__ = (
        Index("ix_trade_records_account_instrument_status", "account_ref", "instrument", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_ref = Column(String, nullable=False, index=True)
    instrument = Column(String, nullable=False)
    direction = Column(String, nullable=False)  # "long" or "short"
    volume = Column(Float, nullable=False)
    open_price = Column(Float, nullable=False)
    stop_loss = Column(Float, nullable=True)
    take_profit = Column(Float, nullable=True)
    confidence = Column(Float, nullable=True)
    rationale = Column(Text, nullable=True)
    is_forced = Column(Boolean, default=False)  # Opened by the forced-entry strategy
    gateway_trade_id = Column(String, nullable=True, index=True)

    status = Column(String, default="open", nullable=False)  # "open" or "closed"
    profit = Column(Float, nullable=True)
    close_price = Column(Float, nullable=True)
    open_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    close_time = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<TradeRecord {self.id} {self.account_ref} {self.instrument} {self.direction} {self.status}>"


class AuditLogEntry(Base):
    """Append-only audit trail of every engine action."""
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    account_ref = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)  # TRADE_OPENED, POSITION_CLOSED, ...
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
