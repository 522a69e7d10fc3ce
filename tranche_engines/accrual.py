"""
Module: tranche_engines.accrual
Responsibility:
    Advance the time-weighted JT yield-share accumulator: the integral of
    the yield distribution model's instantaneous output since the last
    distribution.

Architecture position:
    Engines -- pure calculation layer.  Samples the yield model and hands
    back the curve point it reported; the orchestrator persists that point
    with the rest of the ledger.

Invariants enforced:
    - Monotonic time: ``now`` earlier than the last accrual is rejected.
    - Same-instant idempotence: zero elapsed time leaves the accumulator
      untouched and does not call the model.
    - Bounded share: the model's output is clamped to [0, 1] before it is
      integrated, so ``accumulator <= elapsed * WAD``.
    - The preview path reports the stored curve point unchanged.

Failure modes:
    - ClockRegressionError if ``now < last_accrual_timestamp``.

Audit relevance:
    A clamped model output is logged as ``yield_share_clamped`` with the
    raw value so a misbehaving model is visible.  A moved curve point is
    logged as ``yield_curve_adapted``.

Window reset:
    This module never resets the window.  The orchestrator zeroes the
    accumulator and moves ``last_distribution_timestamp`` to ``now`` only
    when the waterfall reports a distribution.
"""

from __future__ import annotations

from dataclasses import dataclass

from tranche_engines.tracer import traced_engine
from tranche_engines.yield_models import YieldDistributionModel, YieldModelInputs
from tranche_kernel.domain.accounting_state import AccountingState
from tranche_kernel.domain.fixed_point import Ratio
from tranche_kernel.exceptions import ClockRegressionError
from tranche_kernel.logging_config import get_logger

logger = get_logger("engines.accrual")


@dataclass(frozen=True)
class AccrualOutcome:
    """
    New accrual window values and the yield curve point to store.

    ``jt_yield_share`` is None when the model was not sampled.
    """

    accumulator: int
    last_accrual_timestamp: int
    last_distribution_timestamp: int
    yield_curve_share: Ratio | None = None
    yield_curve_updated_at: int = 0
    jt_yield_share: Ratio | None = None


def model_inputs(state: AccountingState, now: int) -> YieldModelInputs:
    """Yield model view of the last checkpoint."""
    return YieldModelInputs(
        st_raw_nav=state.last_st_raw_nav,
        jt_raw_nav=state.last_jt_raw_nav,
        beta=state.beta,
        coverage=state.coverage,
        jt_effective_nav=state.last_jt_effective_nav,
        timestamp=now,
        curve_share=state.yield_curve_share,
        curve_updated_at=state.yield_curve_updated_at,
    )


def _clamp(share: Ratio, model: YieldDistributionModel) -> Ratio:
    clamped = share.clamp_unit()
    if clamped != share:
        logger.warning(
            "yield_share_clamped",
            extra={"model": type(model).__name__, "raw_share": str(share)},
        )
    return clamped


def _advance(
    state: AccountingState,
    now: int,
    model: YieldDistributionModel,
    *,
    preview: bool,
) -> AccrualOutcome:
    if now < state.last_accrual_timestamp:
        raise ClockRegressionError(now, state.last_accrual_timestamp)

    unchanged_curve = {
        "yield_curve_share": state.yield_curve_share,
        "yield_curve_updated_at": state.yield_curve_updated_at,
    }
    if not state.accrual_started:
        return AccrualOutcome(
            accumulator=0,
            last_accrual_timestamp=now,
            last_distribution_timestamp=now,
            **unchanged_curve,
        )

    elapsed = now - state.last_accrual_timestamp
    if elapsed == 0:
        return AccrualOutcome(
            accumulator=state.tw_jt_yield_share_accumulator,
            last_accrual_timestamp=state.last_accrual_timestamp,
            last_distribution_timestamp=state.last_distribution_timestamp,
            **unchanged_curve,
        )

    inputs = model_inputs(state, now)
    if preview:
        raw_share = model.preview_jt_yield_share(inputs)
        curve = unchanged_curve
    else:
        quote = model.jt_yield_share(inputs)
        raw_share = quote.share
        curve = {
            "yield_curve_share": quote.curve_share,
            "yield_curve_updated_at": quote.curve_updated_at,
        }
        if quote.curve_share != state.yield_curve_share:
            logger.debug(
                "yield_curve_adapted",
                extra={
                    "previous_share_at_target": str(state.yield_curve_share),
                    "share_at_target": str(quote.curve_share),
                },
            )

    share = _clamp(raw_share, model)
    return AccrualOutcome(
        accumulator=state.tw_jt_yield_share_accumulator + share.wad * elapsed,
        last_accrual_timestamp=now,
        last_distribution_timestamp=state.last_distribution_timestamp,
        jt_yield_share=share,
        **curve,
    )


@traced_engine("accrual", "1.1", fingerprint_fields=("now",))
def accrue(*, state: AccountingState, model: YieldDistributionModel, now: int) -> AccrualOutcome:
    """Accrue through ``now``; the outcome carries the model's new curve point."""
    return _advance(state, now, model, preview=False)


@traced_engine("accrual_preview", "1.1", fingerprint_fields=("now",))
def preview_accrue(
    *, state: AccountingState, model: YieldDistributionModel, now: int
) -> AccrualOutcome:
    """Same accumulator as ``accrue`` at ``now``; the stored curve point is left as is."""
    return _advance(state, now, model, preview=True)
