"""
Kernel Invariants Contract.

These invariants are structural law for every market ledger.  No market
parameter, yield model, or admin action may switch them off.

This module exists solely to declare the invariants explicitly.  The
enforcement is distributed across the waterfall engine, the coverage
calculator, the NAV value type and the sync orchestrator.
"""

from enum import Enum, unique


@unique
class AccountingInvariant(str, Enum):
    """Non-configurable invariants enforced by the tranche kernel."""

    CONSERVATION = "conservation"
    """st_raw + jt_raw == st_effective + jt_effective at every checkpoint.
    Enforced by WaterfallEngine and the post-op reconciliation before any
    state is written."""

    COVERAGE = "coverage"
    """jt_effective >= (st_raw + beta * jt_raw) * coverage after operations
    that can endanger ST.  Enforced by
    TrancheAccountant.post_op_sync_and_enforce_coverage."""

    DEBT_NON_NEGATIVE = "debt_non_negative"
    """Cross-tranche debts never go negative.  Enforced by the NAV value
    type, which rejects negative unit counts."""

    SENIOR_ROUNDING = "senior_rounding"
    """Every ambiguous rounding favors the senior tranche."""

    SINGLE_WRITER = "single_writer"
    """Mutations of one market are serialized.  Enforced by
    MarketLockRegistry and SELECT ... FOR UPDATE on the ledger row."""

    SYNC_BEFORE_PARAMETER_CHANGE = "sync_before_parameter_change"
    """Unaccrued PnL settles under the old parameters before a setter
    applies new ones."""


ALL_ACCOUNTING_INVARIANTS: frozenset[AccountingInvariant] = frozenset(AccountingInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "tranche_engines",
    "tranche_config",
    "tranche_services",
)
