"""
tranche_services.sync_orchestrator -- The tranche accounting aggregate.

Responsibility:
    Expose the accounting engine to the kernel and administrators: pre-op
    sync (settle PnL), post-op sync (reconcile a deposit or withdrawal),
    the coverage-enforcing post-op variant, previews, capacity queries and
    the parameter setters.  Each mutating entry point authorizes the
    caller, computes the new snapshot with the pure engines, and only then
    writes the ledger and its checkpoint.

Architecture position:
    Services -- orchestration over engines + kernel.
    Composes ``tranche_engines`` (accrual, waterfall, coverage, yield
    models) with ``LedgerService`` (persistence) and the market lock
    registry (serialization).

Invariants enforced:
    - CONSERVATION: checked by the waterfall and again by LedgerService.save.
    - COVERAGE: ``post_op_sync_and_enforce_coverage`` raises before writing.
    - SINGLE_WRITER: every mutating call runs under the market's lock and
      loads the ledger row FOR UPDATE.
    - SYNC_BEFORE_PARAMETER_CHANGE: setters settle PnL under the old
      parameters in the same write that applies the new ones.
    - Preview/commit equivalence: previews run the same code path with the
      yield model's preview call and never write.

Failure modes:
    - UnauthorizedCallerError: caller is not the market's kernel / admin.
    - InvalidPostOpStateError, ConservationViolationError,
      ClockRegressionError: propagated from the engines.
    - CoverageRequirementUnsatisfiedError: enforcing post-op sync only.
    - InvalidCoverageConfigError, ProtocolFeeTooHighError,
      YieldModelNotFoundError: setter input rejected before any change.
    - MissingReferenceError: a setter was called without a RawNAVSource.
    Every failure leaves the ledger exactly as it was.

Audit relevance:
    Each committed call appends a ``SyncCheckpointRecord`` and logs a
    structured event (``pre_op_sync_completed``,
    ``post_op_sync_completed``, ``parameter_changed``,
    ``yield_distributed``).

Usage:
    with market_transaction("MKT-1") as session:
        accountant = TrancheAccountant(
            session, "MKT-1", clock=SystemClock(), yield_models=registry,
        )
        accountant.pre_op_sync(kernel_id, st_nav, jt_nav)
        accountant.post_op_sync_and_enforce_coverage(
            kernel_id, PostOpKind.ST_INCREASE_NAV, st_nav + deposit, jt_nav,
        )
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from tranche_engines.accrual import accrue, preview_accrue
from tranche_engines.coverage import (
    UTILIZATION_INFINITE,
    JTWithdrawalCapacity,
    is_coverage_satisfied,
    max_jt_withdrawal,
    max_st_deposit,
    utilization,
)
from tranche_engines.waterfall import WaterfallEngine, WaterfallOutcome, reconcile_post_op
from tranche_engines.yield_models import YieldModelRegistry
from tranche_kernel.domain.accounting_state import (
    AccountingLimits,
    AccountingState,
    PostOpKind,
    SyncResult,
    validate_coverage_parameters,
    validate_protocol_fees,
)
from tranche_kernel.domain.clock import Clock
from tranche_kernel.domain.fixed_point import NAV, Ratio
from tranche_kernel.domain.nav_source import RawNAVSource
from tranche_kernel.exceptions import (
    CoverageRequirementUnsatisfiedError,
    MissingReferenceError,
)
from tranche_kernel.logging_config import LogContext, get_logger
from tranche_kernel.models.market_ledger import MarketLedger
from tranche_kernel.services.ledger_service import LedgerService, state_from_row
from tranche_kernel.services.market_locks import market_lock
from tranche_services.authority import require_admin, require_kernel

logger = get_logger("services.sync_orchestrator")


def _format_utilization(value: Ratio) -> str:
    return "inf" if value == UTILIZATION_INFINITE else str(value)


def _result_fields(result: SyncResult) -> dict[str, str]:
    return {
        "st_raw_nav": str(result.st_raw_nav),
        "jt_raw_nav": str(result.jt_raw_nav),
        "st_effective_nav": str(result.st_effective_nav),
        "jt_effective_nav": str(result.jt_effective_nav),
        "st_debt": str(result.st_debt),
        "jt_debt": str(result.jt_debt),
        "st_fee_accrued": str(result.st_fee_accrued),
        "jt_fee_accrued": str(result.jt_fee_accrued),
    }


class TrancheAccountant:
    """
    Accounting engine for one market, bound to the caller's session.

    Contract:
        Flushes, never commits.  Wrap calls in ``market_transaction()`` (or
        ``session_scope()`` while holding ``market_lock()``) so the lock
        spans the commit.

    Guarantees:
        - Same-instant idempotence: a second ``pre_op_sync`` with the same
          raw NAVs at the same timestamp changes nothing.
        - ``preview_sync`` returns what ``pre_op_sync`` would at that
          instant and leaves ledger and yield model untouched.

    Non-goals:
        - Does NOT mint or burn shares or move assets; fee earmarks and
          effective NAVs are reported for the share layer to act on.
    """

    def __init__(
        self,
        session: Session,
        market_code: str,
        *,
        clock: Clock,
        yield_models: YieldModelRegistry,
        nav_source: RawNAVSource | None = None,
        limits: AccountingLimits | None = None,
    ):
        self._session = session
        self.market_code = market_code
        self._clock = clock
        self._yield_models = yield_models
        self._nav_source = nav_source
        self._limits = limits or AccountingLimits()
        self._ledgers = LedgerService(session)
        self._waterfall = WaterfallEngine()

    # ------------------------------------------------------------------
    # Shared computation
    # ------------------------------------------------------------------

    def _settle(
        self,
        state: AccountingState,
        st_raw_nav: NAV,
        jt_raw_nav: NAV,
        now: int,
        *,
        preview: bool,
    ) -> tuple[AccountingState, WaterfallOutcome]:
        """
        Accrue, run the waterfall and roll the accrual window on distribution.

        The yield curve point reported by the accrual rides on the returned
        snapshot, so it is written (or rolled back) with the ledger.
        """
        model = self._yield_models.get(state.yield_model_ref)
        accrual_fn = preview_accrue if preview else accrue
        accrual = accrual_fn(state=state, model=model, now=now)

        outcome = self._waterfall.run(
            state=state,
            st_raw_nav=st_raw_nav,
            jt_raw_nav=jt_raw_nav,
            accumulator=accrual.accumulator,
            now=now,
            last_distribution_timestamp=accrual.last_distribution_timestamp,
        )

        settled = state.checkpoint(outcome.sync_result)
        if outcome.yield_distributed:
            settled = settled.with_accrual(
                accumulator=0,
                last_accrual_timestamp=accrual.last_accrual_timestamp,
                last_distribution_timestamp=now,
            )
        else:
            settled = settled.with_accrual(
                accumulator=accrual.accumulator,
                last_accrual_timestamp=accrual.last_accrual_timestamp,
                last_distribution_timestamp=accrual.last_distribution_timestamp,
            )
        settled = settled.with_yield_curve(
            accrual.yield_curve_share, accrual.yield_curve_updated_at
        )
        return settled, outcome

    def _write(
        self,
        ledger: MarketLedger,
        state: AccountingState,
        *,
        operation: str,
        now: int,
        result: SyncResult,
        yield_distributed: bool,
        actor_id: UUID,
    ) -> int:
        version = self._ledgers.save(ledger, state, actor_id)
        self._ledgers.record_checkpoint(
            ledger,
            operation=operation,
            timestamp=now,
            st_fee_accrued=result.st_fee_accrued,
            jt_fee_accrued=result.jt_fee_accrued,
            yield_distributed=yield_distributed,
            actor_id=actor_id,
        )
        if yield_distributed:
            logger.info(
                "yield_distributed",
                extra={"timestamp": now, "ledger_version": version},
            )
        return version

    def _bind(self, actor_id: UUID | None, operation: str):
        return LogContext.bind(
            market_code=self.market_code,
            actor_id=str(actor_id) if actor_id is not None else None,
            operation=operation,
        )

    # ------------------------------------------------------------------
    # Kernel entry points
    # ------------------------------------------------------------------

    def pre_op_sync(self, actor_id: UUID, st_raw_nav: NAV, jt_raw_nav: NAV) -> SyncResult:
        """
        Settle PnL since the last checkpoint and persist the new checkpoint.

        Raises:
            UnauthorizedCallerError: if ``actor_id`` is not the kernel.
            ClockRegressionError: if the clock went backwards.
        """
        with market_lock(self.market_code), self._bind(actor_id, "pre_op_sync"):
            ledger = self._ledgers.load(self.market_code, for_update=True)
            require_kernel(ledger, actor_id)

            now = self._clock.timestamp()
            settled, outcome = self._settle(
                state_from_row(ledger), st_raw_nav, jt_raw_nav, now, preview=False
            )
            result = outcome.sync_result
            version = self._write(
                ledger,
                settled,
                operation="pre_op_sync",
                now=now,
                result=result,
                yield_distributed=outcome.yield_distributed,
                actor_id=actor_id,
            )
            logger.info(
                "pre_op_sync_completed",
                extra={
                    **_result_fields(result),
                    "yield_distributed": outcome.yield_distributed,
                    "ledger_version": version,
                },
            )
            return result

    def preview_sync(self, st_raw_nav: NAV, jt_raw_nav: NAV) -> SyncResult:
        """What ``pre_op_sync`` would return right now.  Writes nothing."""
        _, outcome = self._settle(
            self.state(), st_raw_nav, jt_raw_nav, self._clock.timestamp(), preview=True
        )
        return outcome.sync_result

    def post_op_sync(
        self, actor_id: UUID, kind: PostOpKind, st_raw_nav: NAV, jt_raw_nav: NAV
    ) -> SyncResult:
        """
        Reconcile a deposit or withdrawal (not PnL) and persist.

        The resulting state may leave coverage unsatisfied; use
        ``post_op_sync_and_enforce_coverage`` where ST must be protected.
        """
        return self._post_op(actor_id, kind, st_raw_nav, jt_raw_nav, enforce_coverage=False)

    def post_op_sync_and_enforce_coverage(
        self, actor_id: UUID, kind: PostOpKind, st_raw_nav: NAV, jt_raw_nav: NAV
    ) -> SyncResult:
        """
        ``post_op_sync`` that refuses to persist a coverage-violating state.

        Raises:
            CoverageRequirementUnsatisfiedError: before anything is written.
        """
        return self._post_op(actor_id, kind, st_raw_nav, jt_raw_nav, enforce_coverage=True)

    def _post_op(
        self,
        actor_id: UUID,
        kind: PostOpKind,
        st_raw_nav: NAV,
        jt_raw_nav: NAV,
        *,
        enforce_coverage: bool,
    ) -> SyncResult:
        kind = PostOpKind(kind)
        operation = "post_op_sync_and_enforce_coverage" if enforce_coverage else "post_op_sync"
        with market_lock(self.market_code), self._bind(actor_id, operation):
            ledger = self._ledgers.load(self.market_code, for_update=True)
            require_kernel(ledger, actor_id)

            state = state_from_row(ledger)
            result = reconcile_post_op(
                state=state, kind=kind, st_raw_nav=st_raw_nav, jt_raw_nav=jt_raw_nav
            )
            reconciled = state.checkpoint(result)

            if enforce_coverage:
                self._enforce_coverage(reconciled, kind)

            now = self._clock.timestamp()
            version = self._write(
                ledger,
                reconciled,
                operation=f"post_op_sync:{kind.value}",
                now=now,
                result=result,
                yield_distributed=False,
                actor_id=actor_id,
            )
            logger.info(
                "post_op_sync_completed",
                extra={
                    **_result_fields(result),
                    "kind": kind.value,
                    "coverage_enforced": enforce_coverage,
                    "ledger_version": version,
                },
            )
            return result

    def _enforce_coverage(self, state: AccountingState, kind: PostOpKind) -> None:
        navs = {
            "st_raw_nav": state.last_st_raw_nav,
            "jt_raw_nav": state.last_jt_raw_nav,
            "beta": state.beta,
            "coverage": state.coverage,
            "jt_effective_nav": state.last_jt_effective_nav,
        }
        if is_coverage_satisfied(**navs):
            return
        current = _format_utilization(utilization(**navs))
        logger.warning(
            "coverage_requirement_unsatisfied",
            extra={"kind": kind.value, "utilization": current},
        )
        raise CoverageRequirementUnsatisfiedError(self.market_code, current)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self) -> AccountingState:
        """Current persisted snapshot."""
        return self._ledgers.get_state(self.market_code)

    def _previewed(self, st_raw_nav: NAV, jt_raw_nav: NAV) -> AccountingState:
        settled, _ = self._settle(
            self.state(), st_raw_nav, jt_raw_nav, self._clock.timestamp(), preview=True
        )
        return settled

    def utilization(self, st_raw_nav: NAV, jt_raw_nav: NAV) -> Ratio:
        """Coverage utilization after a preview sync at the given raw NAVs."""
        s = self._previewed(st_raw_nav, jt_raw_nav)
        return utilization(
            st_raw_nav=s.last_st_raw_nav,
            jt_raw_nav=s.last_jt_raw_nav,
            beta=s.beta,
            coverage=s.coverage,
            jt_effective_nav=s.last_jt_effective_nav,
        )

    def max_st_deposit(self, st_raw_nav: NAV, jt_raw_nav: NAV) -> NAV:
        """Largest ST deposit the coverage-enforcing post-op sync will accept."""
        s = self._previewed(st_raw_nav, jt_raw_nav)
        return max_st_deposit(
            st_raw_nav=s.last_st_raw_nav,
            jt_raw_nav=s.last_jt_raw_nav,
            beta=s.beta,
            coverage=s.coverage,
            jt_effective_nav=s.last_jt_effective_nav,
        )

    def max_jt_withdrawal(
        self, st_raw_nav: NAV, jt_raw_nav: NAV, st_claim_ratio: Ratio
    ) -> JTWithdrawalCapacity:
        """Largest JT withdrawal that keeps coverage, split by ``st_claim_ratio``."""
        s = self._previewed(st_raw_nav, jt_raw_nav)
        return max_jt_withdrawal(
            st_raw_nav=s.last_st_raw_nav,
            jt_raw_nav=s.last_jt_raw_nav,
            beta=s.beta,
            coverage=s.coverage,
            jt_effective_nav=s.last_jt_effective_nav,
            st_claim_ratio=st_claim_ratio,
        )

    # ------------------------------------------------------------------
    # Administrator setters
    # ------------------------------------------------------------------

    def set_protocol_fees(
        self, actor_id: UUID, st_protocol_fee: Ratio, jt_protocol_fee: Ratio
    ) -> AccountingState:
        def validate(_: AccountingState) -> None:
            validate_protocol_fees(st_protocol_fee, jt_protocol_fee, self._limits)

        return self._change_parameters(
            actor_id,
            "set_protocol_fees",
            validate,
            st_protocol_fee=st_protocol_fee,
            jt_protocol_fee=jt_protocol_fee,
        )

    def set_coverage(self, actor_id: UUID, coverage: Ratio) -> AccountingState:
        def validate(current: AccountingState) -> None:
            validate_coverage_parameters(coverage, current.beta, self._limits)

        return self._change_parameters(actor_id, "set_coverage", validate, coverage=coverage)

    def set_beta(self, actor_id: UUID, beta: Ratio) -> AccountingState:
        def validate(current: AccountingState) -> None:
            validate_coverage_parameters(current.coverage, beta, self._limits)

        return self._change_parameters(actor_id, "set_beta", validate, beta=beta)

    def set_yield_model(self, actor_id: UUID, yield_model_ref: str) -> AccountingState:
        def validate(_: AccountingState) -> None:
            if not yield_model_ref:
                raise MissingReferenceError("yield_model_ref")
            self._yield_models.get(yield_model_ref)

        return self._change_parameters(
            actor_id, "set_yield_model", validate, yield_model_ref=yield_model_ref
        )

    def _change_parameters(
        self,
        actor_id: UUID,
        operation: str,
        validate: Callable[[AccountingState], None],
        **changes: object,
    ) -> AccountingState:
        """
        Authorize, validate, settle under the old parameters, then apply.

        Settlement and the change are one ledger write, so no PnL can be
        attributed under the new parameters before they were set.
        """
        with market_lock(self.market_code), self._bind(actor_id, operation):
            ledger = self._ledgers.load(self.market_code, for_update=True)
            require_admin(ledger, actor_id)

            current = state_from_row(ledger)
            validate(current)
            if self._nav_source is None:
                raise MissingReferenceError("nav_source")

            navs = self._nav_source.measure()
            now = self._clock.timestamp()
            settled, outcome = self._settle(
                current, navs.st_raw_nav, navs.jt_raw_nav, now, preview=False
            )
            updated = settled.with_params(**changes)
            version = self._write(
                ledger,
                updated,
                operation=operation,
                now=now,
                result=outcome.sync_result,
                yield_distributed=outcome.yield_distributed,
                actor_id=actor_id,
            )
            logger.info(
                "parameter_changed",
                extra={
                    "parameter_change": operation,
                    "previous": {k: str(getattr(current, k)) for k in changes},
                    "updated": {k: str(v) for k, v in changes.items()},
                    "ledger_version": version,
                },
            )
            return updated
