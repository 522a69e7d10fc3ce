"""Kernel services - ledger persistence and per-market serialization."""

from tranche_kernel.services.base import BaseService
from tranche_kernel.services.ledger_service import LedgerService, state_from_row
from tranche_kernel.services.market_locks import (
    MarketLockRegistry,
    market_lock,
    market_transaction,
)

__all__ = [
    "BaseService",
    "LedgerService",
    "state_from_row",
    "MarketLockRegistry",
    "market_lock",
    "market_transaction",
]
