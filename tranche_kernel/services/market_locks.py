"""
Market locks -- in-process serialization of writers per market.

Responsibility:
    Hands out one re-entrant lock per market code and provides
    ``market_transaction()``, which holds that lock around a complete
    ``session_scope()`` so no other thread can read the ledger between
    this writer's load and its commit.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    SINGLE_WRITER -- at most one mutating entry point per market runs at a
        time inside a process (the yield model call included).  Across
        processes, SELECT ... FOR UPDATE on the ledger row takes over.

Failure modes:
    - None of its own; exceptions from the body propagate after rollback
      and lock release.
"""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import ClassVar

from sqlalchemy.orm import Session

from tranche_kernel.db.engine import session_scope
from tranche_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.market_locks")


class MarketLockRegistry:
    """Process-wide registry of per-market re-entrant locks."""

    _locks: ClassVar[dict[str, threading.RLock]] = {}
    _guard: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def lock_for(cls, market_code: str) -> threading.RLock:
        with cls._guard:
            lock = cls._locks.get(market_code)
            if lock is None:
                lock = threading.RLock()
                cls._locks[market_code] = lock
            return lock

    @classmethod
    def clear(cls) -> None:
        """Drop all locks.  For test isolation only."""
        with cls._guard:
            cls._locks.clear()


@contextmanager
def market_lock(market_code: str) -> Generator[None, None, None]:
    """Hold the market's lock for the duration of the block."""
    lock = MarketLockRegistry.lock_for(market_code)
    with lock:
        yield


@contextmanager
def market_transaction(market_code: str) -> Generator[Session, None, None]:
    """
    Serialized transactional scope for one market.

    Usage:
        with market_transaction("MKT-1") as session:
            TrancheAccountant(session, "MKT-1", ...).pre_op_sync(...)
    """
    with market_lock(market_code), LogContext.bind(market_code=market_code):
        logger.debug("market_lock_acquired")
        with session_scope() as session:
            yield session
