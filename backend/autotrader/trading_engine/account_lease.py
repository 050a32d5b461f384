"""
Per-account cycle lease.

A cycle holds an exclusive lease on its account for its whole duration so
the available-slots check and the trades that consume those slots cannot
interleave with another cycle against the same account. Cycles for
different accounts never contend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict

from autotrader.exceptions import AccountBusyError

logger = logging.getLogger(__name__)

_account_locks: Dict[str, asyncio.Lock] = {}


def _get_account_lock(account_ref: str) -> asyncio.Lock:
    """Return (or create) the asyncio.Lock for a given account"""
    if account_ref not in _account_locks:
        _account_locks[account_ref] = asyncio.Lock()
    return _account_locks[account_ref]


def is_leased(account_ref: str) -> bool:
    lock = _account_locks.get(account_ref)
    return bool(lock and lock.locked())


@asynccontextmanager
async def account_lease(account_ref: str):
    """
    Hold the account's lease, refusing (not queueing) when another cycle has it.

    Raises:
        AccountBusyError: a cycle for this account is already running
    """
    lock = _get_account_lock(account_ref)
    if lock.locked():
        raise AccountBusyError(account_ref)

    await lock.acquire()
    logger.debug(f"Lease acquired for account {account_ref}")
    try:
        yield
    finally:
        lock.release()
        logger.debug(f"Lease released for account {account_ref}")
