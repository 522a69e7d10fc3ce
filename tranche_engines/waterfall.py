"""
Module: tranche_engines.waterfall
Responsibility:
    Route the unrealized PnL since the last checkpoint between the senior
    and junior tranches: loss absorption, cross-tranche debt, debt
    repayment, the time-weighted yield split and protocol fee earmarks.
    Also reconciles the discrete NAV deltas of deposits and withdrawals
    (post-op reconciliation), which are not PnL.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import tranche_kernel.domain and tranche_kernel.exceptions.

Invariants enforced:
    - CONSERVATION: ``st_raw + jt_raw == st_effective + jt_effective``
      exactly, checked before any outcome is returned.
    - DEBT_NON_NEGATIVE: debts are NAVs; repayments are bounded by the
      outstanding balance.
    - SENIOR_ROUNDING: every floor/ceil choice leaves the remainder with ST.

Algorithm (pre-op):
    Phase A processes the JT raw delta first, because JT-side effects move
    debts that the ST phase reads.

      JT loss:   JT effective absorbs up to its balance; the residual hits
                 ST effective, cancels ST->JT debt and adds JT->ST debt.
      JT gain:   first repays JT->ST debt into ST effective (creating an
                 equal ST->JT debt); the rest goes to JT effective with the
                 JT protocol fee earmarked on it.

    Phase B processes the ST raw delta.

      ST loss:   JT effective buffers up to its balance as new ST->JT debt;
                 the residual hits ST effective as new JT->ST debt.
      ST gain:   repays JT->ST debt into ST effective, then ST->JT debt
                 into JT effective; the remainder is yield.  With no time
                 elapsed since the last distribution it all goes to ST.
                 Otherwise JT receives
                 ``floor(remainder * accumulator / (elapsed * WAD))`` and
                 ST the rest, each with its own floor-rounded fee.

Failure modes:
    - ConservationViolationError if the input checkpoint or the outcome is
      out of balance.
    - InvalidPostOpStateError when a post-op delta does not match its kind
      or exceeds the tranche's effective NAV.

Audit relevance:
    ``yield_distributed`` is True only for a genuine yield split, never for
    debt repayment alone; it is the sole trigger for resetting the accrual
    window.
"""

from __future__ import annotations

from dataclasses import dataclass

from tranche_engines.tracer import traced_engine
from tranche_kernel.domain.accounting_state import AccountingState, PostOpKind, SyncResult
from tranche_kernel.domain.fixed_point import NAV, WAD, Rounding
from tranche_kernel.exceptions import ConservationViolationError, InvalidPostOpStateError
from tranche_kernel.logging_config import get_logger

logger = get_logger("engines.waterfall")


@dataclass(frozen=True)
class WaterfallOutcome:
    """Result of one waterfall run."""

    st_raw_nav: NAV
    jt_raw_nav: NAV
    st_effective_nav: NAV
    jt_effective_nav: NAV
    st_debt: NAV
    jt_debt: NAV
    st_fee_accrued: NAV
    jt_fee_accrued: NAV
    yield_distributed: bool

    @property
    def sync_result(self) -> SyncResult:
        return SyncResult(
            st_raw_nav=self.st_raw_nav,
            jt_raw_nav=self.jt_raw_nav,
            st_effective_nav=self.st_effective_nav,
            jt_effective_nav=self.jt_effective_nav,
            st_debt=self.st_debt,
            jt_debt=self.jt_debt,
            st_fee_accrued=self.st_fee_accrued,
            jt_fee_accrued=self.jt_fee_accrued,
        )


def _check_conservation(raw_total: NAV, effective_total: NAV, stage: str) -> None:
    if raw_total != effective_total:
        logger.critical(
            "conservation_violation",
            extra={
                "stage": stage,
                "raw_total": str(raw_total),
                "effective_total": str(effective_total),
            },
        )
        raise ConservationViolationError(raw_total.units, effective_total.units, stage)


def _check_checkpoint(state: AccountingState) -> None:
    _check_conservation(
        state.last_st_raw_nav + state.last_jt_raw_nav,
        state.last_st_effective_nav + state.last_jt_effective_nav,
        "checkpoint",
    )


class _Ledger:
    """Mutable scratch pad for one waterfall run."""

    def __init__(self, state: AccountingState):
        self.st_eff = state.last_st_effective_nav
        self.jt_eff = state.last_jt_effective_nav
        self.st_debt = state.last_st_debt
        self.jt_debt = state.last_jt_debt
        self.st_fee = NAV.zero()
        self.jt_fee = NAV.zero()
        self.yield_distributed = False


class WaterfallEngine:
    """
    Pure waterfall calculator.

    Contract:
        ``run`` takes the last checkpoint, the current raw NAVs and the
        accrual window and returns a ``WaterfallOutcome``.  It performs no
        I/O and does not consult a clock.

    Guarantees:
        - Identical inputs give identical outputs.
        - Unchanged raw NAVs give an outcome equal to the checkpoint with
          zero fees.

    Non-goals:
        - Does NOT accrue the yield share (``tranche_engines.accrual``).
        - Does NOT persist or enforce coverage.
    """

    @traced_engine(
        "waterfall",
        "1.0",
        fingerprint_fields=("st_raw_nav", "jt_raw_nav", "accumulator", "now"),
    )
    def run(
        self,
        *,
        state: AccountingState,
        st_raw_nav: NAV,
        jt_raw_nav: NAV,
        accumulator: int,
        now: int,
        last_distribution_timestamp: int,
    ) -> WaterfallOutcome:
        _check_checkpoint(state)
        ledger = _Ledger(state)

        if jt_raw_nav < state.last_jt_raw_nav:
            self._jt_loss(ledger, state.last_jt_raw_nav - jt_raw_nav)
        elif jt_raw_nav > state.last_jt_raw_nav:
            self._jt_gain(ledger, jt_raw_nav - state.last_jt_raw_nav, state)

        if st_raw_nav < state.last_st_raw_nav:
            self._st_loss(ledger, state.last_st_raw_nav - st_raw_nav)
        elif st_raw_nav > state.last_st_raw_nav:
            elapsed = now - last_distribution_timestamp
            self._st_gain(ledger, st_raw_nav - state.last_st_raw_nav, state, accumulator, elapsed)

        _check_conservation(st_raw_nav + jt_raw_nav, ledger.st_eff + ledger.jt_eff, "waterfall")

        return WaterfallOutcome(
            st_raw_nav=st_raw_nav,
            jt_raw_nav=jt_raw_nav,
            st_effective_nav=ledger.st_eff,
            jt_effective_nav=ledger.jt_eff,
            st_debt=ledger.st_debt,
            jt_debt=ledger.jt_debt,
            st_fee_accrued=ledger.st_fee,
            jt_fee_accrued=ledger.jt_fee,
            yield_distributed=ledger.yield_distributed,
        )

    # Phase A

    @staticmethod
    def _jt_loss(ledger: _Ledger, loss: NAV) -> None:
        absorbed = min(loss, ledger.jt_eff)
        ledger.jt_eff = ledger.jt_eff - absorbed
        residual = loss - absorbed
        if residual.is_zero:
            return
        ledger.st_eff = ledger.st_eff - residual
        ledger.st_debt = ledger.st_debt - min(residual, ledger.st_debt)
        ledger.jt_debt = ledger.jt_debt + residual

    @staticmethod
    def _jt_gain(ledger: _Ledger, gain: NAV, state: AccountingState) -> None:
        repaid = min(gain, ledger.jt_debt)
        ledger.st_eff = ledger.st_eff + repaid
        ledger.jt_debt = ledger.jt_debt - repaid
        ledger.st_debt = ledger.st_debt + repaid

        residual = gain - repaid
        ledger.jt_eff = ledger.jt_eff + residual
        ledger.jt_fee = ledger.jt_fee + residual.mul_ratio(state.jt_protocol_fee, Rounding.FLOOR)

    # Phase B

    @staticmethod
    def _st_loss(ledger: _Ledger, loss: NAV) -> None:
        covered = min(loss, ledger.jt_eff)
        ledger.jt_eff = ledger.jt_eff - covered
        ledger.st_debt = ledger.st_debt + covered

        residual = loss - covered
        ledger.st_eff = ledger.st_eff - residual
        ledger.jt_debt = ledger.jt_debt + residual

    @staticmethod
    def _st_gain(
        ledger: _Ledger,
        gain: NAV,
        state: AccountingState,
        accumulator: int,
        elapsed: int,
    ) -> None:
        to_st = min(gain, ledger.jt_debt)
        ledger.st_eff = ledger.st_eff + to_st
        ledger.jt_debt = ledger.jt_debt - to_st
        remaining = gain - to_st

        to_jt = min(remaining, ledger.st_debt)
        ledger.jt_eff = ledger.jt_eff + to_jt
        ledger.st_debt = ledger.st_debt - to_jt
        remaining = remaining - to_jt

        if remaining.is_zero:
            return

        if elapsed <= 0:
            ledger.st_eff = ledger.st_eff + remaining
            ledger.st_fee = ledger.st_fee + remaining.mul_ratio(state.st_protocol_fee, Rounding.FLOOR)
            return

        jt_share = min(remaining, remaining.mul_div(accumulator, elapsed * WAD, Rounding.FLOOR))
        st_share = remaining - jt_share
        ledger.st_eff = ledger.st_eff + st_share
        ledger.jt_eff = ledger.jt_eff + jt_share
        ledger.st_fee = ledger.st_fee + st_share.mul_ratio(state.st_protocol_fee, Rounding.FLOOR)
        ledger.jt_fee = ledger.jt_fee + jt_share.mul_ratio(state.jt_protocol_fee, Rounding.FLOOR)
        ledger.yield_distributed = True


def _signed_delta(current: NAV, previous: NAV) -> int:
    return current.units - previous.units


@traced_engine("post_op_reconciliation", "1.0", fingerprint_fields=("kind", "st_raw_nav", "jt_raw_nav"))
def reconcile_post_op(
    *,
    state: AccountingState,
    kind: PostOpKind,
    st_raw_nav: NAV,
    jt_raw_nav: NAV,
) -> SyncResult:
    """
    Apply a deposit or withdrawal's raw-NAV delta to effective NAVs.

    Increases credit the named tranche's effective NAV and require the other
    tranche's raw NAV to be unchanged.  Decreases take the combined
    magnitude of both deltas out of the named tranche's effective NAV.  An
    ST decrease also scales both debts by ``st_after / st_before``: the
    JT->ST debt rounds down and the ST->JT debt rounds up.

    Fees are always zero: deposits and withdrawals are not PnL.

    Raises:
        InvalidPostOpStateError: on a delta that does not fit ``kind``.
        ConservationViolationError: if the checkpoint is out of balance.
    """
    _check_checkpoint(state)
    d_st = _signed_delta(st_raw_nav, state.last_st_raw_nav)
    d_jt = _signed_delta(jt_raw_nav, state.last_jt_raw_nav)

    def reject(reason: str) -> InvalidPostOpStateError:
        return InvalidPostOpStateError(kind.value, d_st, d_jt, reason)

    st_eff = state.last_st_effective_nav
    jt_eff = state.last_jt_effective_nav
    st_debt = state.last_st_debt
    jt_debt = state.last_jt_debt

    if kind is PostOpKind.ST_INCREASE_NAV:
        if d_st < 0 or d_jt != 0:
            raise reject("ST increase requires ST delta >= 0 and JT delta == 0")
        st_eff = NAV(st_eff.units + d_st)
    elif kind is PostOpKind.JT_INCREASE_NAV:
        if d_jt < 0 or d_st != 0:
            raise reject("JT increase requires JT delta >= 0 and ST delta == 0")
        jt_eff = NAV(jt_eff.units + d_jt)
    elif kind is PostOpKind.ST_DECREASE_NAV:
        if d_st > 0 or d_jt > 0:
            raise reject("ST decrease requires both deltas <= 0")
        magnitude = -(d_st + d_jt)
        if magnitude > st_eff.units:
            raise reject("decrease exceeds ST effective NAV")
        before = st_eff.units
        st_eff = NAV(before - magnitude)
        if before:
            jt_debt = jt_debt.mul_div(st_eff.units, before, Rounding.FLOOR)
            st_debt = st_debt.mul_div(st_eff.units, before, Rounding.CEIL)
    elif kind is PostOpKind.JT_DECREASE_NAV:
        if d_st > 0 or d_jt > 0:
            raise reject("JT decrease requires both deltas <= 0")
        magnitude = -(d_st + d_jt)
        if magnitude > jt_eff.units:
            raise reject("decrease exceeds JT effective NAV")
        jt_eff = NAV(jt_eff.units - magnitude)
    else:
        raise reject(f"unknown post-op kind {kind!r}")

    _check_conservation(st_raw_nav + jt_raw_nav, st_eff + jt_eff, "post_op")

    return SyncResult(
        st_raw_nav=st_raw_nav,
        jt_raw_nav=jt_raw_nav,
        st_effective_nav=st_eff,
        jt_effective_nav=jt_eff,
        st_debt=st_debt,
        jt_debt=jt_debt,
        st_fee_accrued=NAV.zero(),
        jt_fee_accrued=NAV.zero(),
    )
