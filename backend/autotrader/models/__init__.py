"""
Database Models

All model classes are re-exported here:
    from autotrader.models import TradeRecord, AuditLogEntry
"""

from autotrader.database import Base  # noqa: F401 (re-exported for tests/conftest.py)
from autotrader.models.ledger import AuditLogEntry, TradeRecord

__all__ = ["Base", "AuditLogEntry", "TradeRecord"]
