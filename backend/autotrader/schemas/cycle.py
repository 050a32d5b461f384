"""Cycle, scheduler and reconciliation Pydantic schemas"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CycleRequest(BaseModel):
    risk_percent: Optional[float] = Field(default=None, gt=0, le=100)
    timeframe: Optional[str] = None  # "1h", "15m" or legacy aliases ("h1", "m15")


class SignalResponse(BaseModel):
    instrument: str
    direction: str  # "long" or "short"
    confidence: float
    entry_price: float
    stop_loss: float
    take_profits: List[float]
    rationale: str
    priority: float
    expected_profit: float
    risk_reward_ratio: float
    is_forced: bool = False


class CycleSummaryResponse(BaseModel):
    account_ref: str
    opened: int
    closed: int
    partially_closed: int = 0
    stops_moved: int = 0
    available_slots: int = 0
    signals: List[SignalResponse] = []
    errors: List[str] = []
    skipped: List[str] = []


class ScheduleAccountRequest(BaseModel):
    risk_percent: Optional[float] = Field(default=None, gt=0, le=100)
    timeframe: Optional[str] = None


class ScheduledAccountResponse(BaseModel):
    account_ref: str
    risk_percent: float
    timeframe: str
    interval_seconds: int
    last_run: Optional[str] = None
    last_error: Optional[str] = None
    last_summary: Optional[Dict[str, Any]] = None


class SchedulerStatusResponse(BaseModel):
    running: bool
    accounts: List[ScheduledAccountResponse] = []


class SyncResponse(BaseModel):
    message: str
    synced: int
    updated: int
