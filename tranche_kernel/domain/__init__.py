"""Pure domain layer: fixed-point values, accounting state, clock, NAV source."""

from tranche_kernel.domain.accounting_state import (
    AccountingLimits,
    AccountingState,
    DebtDirection,
    PostOpKind,
    SyncResult,
    validate_coverage_parameters,
    validate_market_parameters,
    validate_protocol_fees,
)
from tranche_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from tranche_kernel.domain.fixed_point import NAV, WAD, Ratio, Rounding, mul_div
from tranche_kernel.domain.nav_source import RawNAVs, RawNAVSource, StaticNAVSource

__all__ = [
    "NAV",
    "Ratio",
    "Rounding",
    "WAD",
    "mul_div",
    "AccountingState",
    "AccountingLimits",
    "SyncResult",
    "PostOpKind",
    "DebtDirection",
    "validate_coverage_parameters",
    "validate_protocol_fees",
    "validate_market_parameters",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "RawNAVs",
    "RawNAVSource",
    "StaticNAVSource",
]
