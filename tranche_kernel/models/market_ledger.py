"""
Module: tranche_kernel.models.market_ledger
Responsibility: ORM persistence for the per-market accounting ledger -- the
    durable form of ``AccountingState``.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per market (uq_market_ledger_code).
    - SINGLE_WRITER: writers lock the row with SELECT ... FOR UPDATE, and the
      ``version`` column makes a lost update raise StaleDataError at flush.
    - Fixed-point columns are FixedPointString, never floats.

Failure modes:
    - IntegrityError on a duplicate market_code.
    - StaleDataError (translated to OptimisticLockError by LedgerService)
      when another transaction committed a newer version first.

Audit relevance:
    kernel_id and admin_id bind the market to the only actors allowed to
    sync it and to change its parameters.  Every committed change is also
    recorded in sync_checkpoints.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tranche_kernel.db.base import FixedPointString, TrackedBase, UUIDString


class MarketLedger(TrackedBase):
    """
    Accounting ledger row for one market.

    Contract:
        Mirrors every field of ``AccountingState``.  Ratios are stored as WAD
        ints, NAVs and debts as unit ints.  Rows are never deleted.

    Non-goals:
        - Holds no share balances or custody data.
    """

    __tablename__ = "market_ledgers"

    __table_args__ = (
        UniqueConstraint("market_code", name="uq_market_ledger_code"),
    )

    market_code: Mapped[str] = mapped_column(String(50), nullable=False)

    # Authorized actors
    kernel_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    admin_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Parameters (WAD ints)
    coverage: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    beta: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    st_protocol_fee: Mapped[int] = mapped_column(FixedPointString(), nullable=False)
    jt_protocol_fee: Mapped[int] = mapped_column(FixedPointString(), nullable=False)

    # Yield distribution model registry key
    yield_model_ref: Mapped[str] = mapped_column(String(100), nullable=False)

    # Last checkpointed NAVs (units)
    last_st_raw_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)
    last_jt_raw_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)
    last_st_effective_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)
    last_jt_effective_nav: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)

    # ST->JT and JT->ST debts (units)
    last_st_debt: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)
    last_jt_debt: Mapped[int] = mapped_column(FixedPointString(), nullable=False, default=0)

    # Yield-share accrual window (WAD-seconds, epoch seconds)
    tw_jt_yield_share_accumulator: Mapped[int] = mapped_column(
        FixedPointString(), nullable=False, default=0
    )
    last_accrual_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_distribution_timestamp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    # Adapted curve point of a stateful yield model (NULL = configured value)
    yield_curve_share: Mapped[int | None] = mapped_column(FixedPointString(), nullable=True)
    yield_curve_updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<MarketLedger {self.market_code} v{self.version}>"
