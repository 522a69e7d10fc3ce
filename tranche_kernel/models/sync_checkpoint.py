"""
Module: tranche_kernel.models.sync_checkpoint
Responsibility: Append-only audit trail of committed syncs and parameter
    changes, one row per ledger write.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are inserted only; LedgerService exposes no update or delete.
    - raw_total == effective_total on every row (conservation at the
      checkpoint).

Audit relevance:
    Replaying the checkpoints of a market reconstructs every value movement
    between tranches, the fees earmarked and when yield was distributed.
"""

from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tranche_kernel.db.base import FixedPointString, TrackedBase, UUIDString


class SyncCheckpointRecord(TrackedBase):
    """One committed ledger transition."""

    __tablename__ = "sync_checkpoints"

    __table_args__ = (
        Index("idx_sync_checkpoint_market_seq", "market_ledger_id", "sequence", unique=True),
    )

    market_ledger_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("market_ledgers.id"),
        nullable=False,
    )

    # Ledger version this checkpoint produced
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # pre_op_sync, post_op_sync:<kind>, set_coverage, ...
    operation: Mapped[str] = mapped_column(String(50), nullable=False)

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    st_raw_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    jt_raw_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    st_effective_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    jt_effective_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    st_debt: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    jt_debt: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    st_fee_accrued: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)
    jt_fee_accrued: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)

    yield_distributed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<SyncCheckpointRecord #{self.sequence} {self.operation}>"
