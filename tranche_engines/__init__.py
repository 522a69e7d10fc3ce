"""
Module: tranche_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: coverage,
    yield-share accrual, yield distribution models and the waterfall.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import tranche_kernel.domain, tranche_kernel.exceptions and
    kernel logging.  MUST NOT import tranche_services or tranche_config.

Invariants enforced:
    - Purity: engines never read a clock; ``now`` is always a parameter.
    - Integer-only arithmetic through ``tranche_kernel.domain.fixed_point``.
    - Determinism: identical inputs give identical outputs (the adaptive
      yield curve's state is an explicit input held on the model).

Audit relevance:
    Engine invocations are traced via ``@traced_engine``
    (TRANCHE_ENGINE_TRACE records with an input fingerprint).
"""

from tranche_engines.accrual import AccrualOutcome, accrue, model_inputs, preview_accrue
from tranche_engines.coverage import (
    UTILIZATION_INFINITE,
    JTWithdrawalCapacity,
    covered_exposure,
    is_coverage_satisfied,
    max_jt_withdrawal,
    max_st_deposit,
    utilization,
)
from tranche_engines.waterfall import WaterfallEngine, WaterfallOutcome, reconcile_post_op
from tranche_engines.yield_models import (
    AdaptiveCurveYieldModel,
    KinkedCurveYieldModel,
    StaticYieldModel,
    YieldDistributionModel,
    YieldModelInputs,
    YieldModelRegistry,
    YieldQuote,
)

__all__ = [
    "AccrualOutcome",
    "accrue",
    "preview_accrue",
    "model_inputs",
    "UTILIZATION_INFINITE",
    "JTWithdrawalCapacity",
    "covered_exposure",
    "is_coverage_satisfied",
    "utilization",
    "max_st_deposit",
    "max_jt_withdrawal",
    "WaterfallEngine",
    "WaterfallOutcome",
    "reconcile_post_op",
    "YieldDistributionModel",
    "YieldModelInputs",
    "YieldQuote",
    "StaticYieldModel",
    "KinkedCurveYieldModel",
    "AdaptiveCurveYieldModel",
    "YieldModelRegistry",
]
