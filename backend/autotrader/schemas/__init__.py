"""Centralized Pydantic schemas for API requests/responses"""

from .cycle import (
    CycleRequest,
    CycleSummaryResponse,
    ScheduleAccountRequest,
    ScheduledAccountResponse,
    SchedulerStatusResponse,
    SignalResponse,
    SyncResponse,
)

__all__ = [
    # Cycle schemas
    "CycleRequest",
    "CycleSummaryResponse",
    "SignalResponse",
    # Scheduler schemas
    "ScheduleAccountRequest",
    "ScheduledAccountResponse",
    "SchedulerStatusResponse",
    # Reconciliation schemas
    "SyncResponse",
]
