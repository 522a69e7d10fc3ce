"""ORM models for the tranche kernel."""

from tranche_kernel.models.market_ledger import MarketLedger
from tranche_kernel.models.sync_checkpoint import SyncCheckpointRecord

__all__ = [
    "MarketLedger",
    "SyncCheckpointRecord",
]
