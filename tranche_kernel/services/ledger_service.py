"""
LedgerService -- persistence of per-market accounting state.

Responsibility:
    Creates market ledgers, loads them (optionally row-locked), converts
    between the ORM row and the immutable ``AccountingState`` snapshot,
    writes new snapshots back and appends sync checkpoints.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the sync orchestrator; never calls engines.

Invariants enforced:
    SINGLE_WRITER -- ``load(for_update=True)`` issues SELECT ... FOR UPDATE
        and the ledger's version column rejects lost updates.
    CONSERVATION  -- ``save`` refuses a snapshot whose raw and effective
        totals differ.

Failure modes:
    - MarketNotFoundError: no ledger for the market code.
    - MarketAlreadyExistsError: create_market on an existing code.
    - OptimisticLockError: another transaction committed first.
    - ConservationViolationError: snapshot out of balance at save time.
    - InvalidCoverageConfigError / ProtocolFeeTooHighError /
      MissingReferenceError: bad parameters at create_market.

Audit relevance:
    ``market_created`` is logged at INFO.  Every ledger write is paired with
    a ``SyncCheckpointRecord`` whose sequence equals the ledger version.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from tranche_kernel.domain.accounting_state import (
    AccountingLimits,
    AccountingState,
    validate_market_parameters,
)
from tranche_kernel.domain.fixed_point import NAV, Ratio
from tranche_kernel.exceptions import (
    ConservationViolationError,
    MarketAlreadyExistsError,
    MarketNotFoundError,
    OptimisticLockError,
)
from tranche_kernel.logging_config import get_logger
from tranche_kernel.models.market_ledger import MarketLedger
from tranche_kernel.models.sync_checkpoint import SyncCheckpointRecord
from tranche_kernel.services.base import BaseService

logger = get_logger("services.ledger")


def state_from_row(row: MarketLedger) -> AccountingState:
    """Build the immutable snapshot from a ledger row."""
    return AccountingState(
        coverage=Ratio(row.coverage),
        beta=Ratio(row.beta),
        st_protocol_fee=Ratio(row.st_protocol_fee),
        jt_protocol_fee=Ratio(row.jt_protocol_fee),
        yield_model_ref=row.yield_model_ref,
        last_st_raw_nav=NAV(row.last_st_raw_nav),
        last_jt_raw_nav=NAV(row.last_jt_raw_nav),
        last_st_effective_nav=NAV(row.last_st_effective_nav),
        last_jt_effective_nav=NAV(row.last_jt_effective_nav),
        last_st_debt=NAV(row.last_st_debt),
        last_jt_debt=NAV(row.last_jt_debt),
        tw_jt_yield_share_accumulator=row.tw_jt_yield_share_accumulator,
        last_accrual_timestamp=row.last_accrual_timestamp,
        last_distribution_timestamp=row.last_distribution_timestamp,
        yield_curve_share=Ratio(row.yield_curve_share) if row.yield_curve_share is not None else None,
        yield_curve_updated_at=row.yield_curve_updated_at,
    )


def _apply_state(row: MarketLedger, state: AccountingState) -> None:
    row.coverage = state.coverage.wad
    row.beta = state.beta.wad
    row.st_protocol_fee = state.st_protocol_fee.wad
    row.jt_protocol_fee = state.jt_protocol_fee.wad
    row.yield_model_ref = state.yield_model_ref
    row.last_st_raw_nav = state.last_st_raw_nav.units
    row.last_jt_raw_nav = state.last_jt_raw_nav.units
    row.last_st_effective_nav = state.last_st_effective_nav.units
    row.last_jt_effective_nav = state.last_jt_effective_nav.units
    row.last_st_debt = state.last_st_debt.units
    row.last_jt_debt = state.last_jt_debt.units
    row.tw_jt_yield_share_accumulator = state.tw_jt_yield_share_accumulator
    row.last_accrual_timestamp = state.last_accrual_timestamp
    row.last_distribution_timestamp = state.last_distribution_timestamp
    row.yield_curve_share = state.yield_curve_share.wad if state.yield_curve_share is not None else None
    row.yield_curve_updated_at = state.yield_curve_updated_at


class LedgerService(BaseService[MarketLedger]):
    """
    Reads and writes market ledgers within the caller's transaction.

    Contract:
        Every method flushes; none commits.

    Non-goals:
        - Does NOT compute anything; waterfall and accrual live in
          ``tranche_engines`` and are driven by the orchestrator.
    """

    def create_market(
        self,
        market_code: str,
        *,
        kernel_id: UUID,
        admin_id: UUID,
        coverage: Ratio,
        beta: Ratio,
        st_protocol_fee: Ratio,
        jt_protocol_fee: Ratio,
        yield_model_ref: str,
        limits: AccountingLimits,
        actor_id: UUID,
    ) -> MarketLedger:
        """
        Create a ledger with zero NAVs and debts.

        Parameters are validated before anything is added to the session.
        """
        validate_market_parameters(
            coverage=coverage,
            beta=beta,
            st_protocol_fee=st_protocol_fee,
            jt_protocol_fee=jt_protocol_fee,
            yield_model_ref=yield_model_ref,
            limits=limits,
        )
        existing = self.session.execute(
            select(MarketLedger.id).where(MarketLedger.market_code == market_code)
        ).scalar_one_or_none()
        if existing is not None:
            raise MarketAlreadyExistsError(market_code)

        state = AccountingState.initial(
            coverage=coverage,
            beta=beta,
            st_protocol_fee=st_protocol_fee,
            jt_protocol_fee=jt_protocol_fee,
            yield_model_ref=yield_model_ref,
        )
        row = MarketLedger(
            market_code=market_code,
            kernel_id=kernel_id,
            admin_id=admin_id,
            created_by_id=actor_id,
        )
        _apply_state(row, state)
        self.session.add(row)
        self.session.flush()

        logger.info(
            "market_created",
            extra={
                "market_code": market_code,
                "coverage": str(coverage),
                "beta": str(beta),
                "st_protocol_fee": str(st_protocol_fee),
                "jt_protocol_fee": str(jt_protocol_fee),
                "yield_model_ref": yield_model_ref,
            },
        )
        return row

    def load(self, market_code: str, *, for_update: bool = False) -> MarketLedger:
        """
        Load a ledger row, re-reading it from the database.

        With ``for_update`` the row stays locked until the caller's
        transaction ends.
        """
        stmt = select(MarketLedger).where(MarketLedger.market_code == market_code)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise MarketNotFoundError(market_code)
        return row

    def get_state(self, market_code: str) -> AccountingState:
        return state_from_row(self.load(market_code))

    def save(self, row: MarketLedger, state: AccountingState, actor_id: UUID) -> int:
        """
        Write ``state`` onto ``row`` and flush.

        Returns:
            The new ledger version.

        Raises:
            ConservationViolationError: if the snapshot is out of balance.
            OptimisticLockError: on a concurrent committed update.
        """
        raw_total = state.last_st_raw_nav + state.last_jt_raw_nav
        effective_total = state.last_st_effective_nav + state.last_jt_effective_nav
        if raw_total != effective_total:
            raise ConservationViolationError(raw_total.units, effective_total.units, "save")

        # The row's attributes are unreadable once a flush has failed.
        ledger_id = str(row.id)
        _apply_state(row, state)
        row.updated_by_id = actor_id
        # Every save is a ledger transition and bumps the version.
        flag_modified(row, "updated_by_id")
        try:
            self.session.flush()
        except StaleDataError as e:
            raise OptimisticLockError("MarketLedger", ledger_id) from e
        return row.version

    def record_checkpoint(
        self,
        row: MarketLedger,
        *,
        operation: str,
        timestamp: int,
        st_fee_accrued: NAV,
        jt_fee_accrued: NAV,
        yield_distributed: bool,
        actor_id: UUID,
    ) -> SyncCheckpointRecord:
        """Append a checkpoint mirroring the ledger row as just saved."""
        record = SyncCheckpointRecord(
            market_ledger_id=row.id,
            sequence=row.version,
            operation=operation,
            timestamp=timestamp,
            st_raw_nav=row.last_st_raw_nav,
            jt_raw_nav=row.last_jt_raw_nav,
            st_effective_nav=row.last_st_effective_nav,
            jt_effective_nav=row.last_jt_effective_nav,
            st_debt=row.last_st_debt,
            jt_debt=row.last_jt_debt,
            st_fee_accrued=st_fee_accrued.units,
            jt_fee_accrued=jt_fee_accrued.units,
            yield_distributed=yield_distributed,
            created_by_id=actor_id,
        )
        self.session.add(record)
        self.session.flush()
        return record

    def list_checkpoints(self, market_code: str) -> list[SyncCheckpointRecord]:
        """All checkpoints for a market in sequence order."""
        row = self.load(market_code)
        return list(
            self.session.execute(
                select(SyncCheckpointRecord)
                .where(SyncCheckpointRecord.market_ledger_id == row.id)
                .order_by(SyncCheckpointRecord.sequence)
            ).scalars()
        )
