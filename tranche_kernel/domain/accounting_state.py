"""
AccountingState -- the per-market tranche ledger as an immutable snapshot.

Responsibility:
    Holds every field the accounting engine checkpoints for one market:
    parameters (coverage, beta, fee rates, yield model reference), the last
    raw and effective NAVs, cross-tranche debts, the yield-share accrual
    window and the adapted point of a stateful yield curve.  Also defines
    the transient ``SyncResult``, the post-op kinds, the admin-configurable
    limits and the parameter validation that every setter runs before
    mutating anything.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Persisted by ``tranche_kernel.services.ledger_service`` (ORM row
    ``MarketLedger``); consumed by all engines.

Invariants enforced:
    - DEBT_NON_NEGATIVE: debts are NAVs and cannot go negative.
    - Coverage domain: ``coverage in [min_coverage, 1)`` and
      ``ceil(coverage * beta) < 1`` (``validate_coverage_parameters``).
    - Fee bound: each protocol fee rate <= ``max_protocol_fee``.

Failure modes:
    - InvalidCoverageConfigError, ProtocolFeeTooHighError,
      MissingReferenceError from the validators.

Debt direction convention:
    ``last_st_debt`` is the ST->JT debt: value the senior tranche owes the
    junior tranche because JT's buffer absorbed ST losses.
    ``last_jt_debt`` is the JT->ST debt: value the junior tranche owes the
    senior tranche because ST absorbed losses beyond JT's buffer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from tranche_kernel.domain.fixed_point import NAV, WAD, Ratio, Rounding
from tranche_kernel.exceptions import (
    InvalidCoverageConfigError,
    MissingReferenceError,
    ProtocolFeeTooHighError,
)


class PostOpKind(str, Enum):
    """What the kernel physically did to raw NAV between pre- and post-op sync."""

    ST_INCREASE_NAV = "st_increase_nav"
    JT_INCREASE_NAV = "jt_increase_nav"
    ST_DECREASE_NAV = "st_decrease_nav"
    JT_DECREASE_NAV = "jt_decrease_nav"


class DebtDirection(str, Enum):
    """Net direction of the cross-tranche liability."""

    NONE = "none"
    ST_OWES_JT = "st_owes_jt"
    JT_OWES_ST = "jt_owes_st"


@dataclass(frozen=True)
class AccountingLimits:
    """
    Admin-time bounds on market parameters.

    Guarantees:
        - ``0 < min_coverage < 1``.
        - ``max_protocol_fee <= 1``.
    """

    min_coverage: Ratio = Ratio.of("0.01")
    max_protocol_fee: Ratio = Ratio.of("0.5")

    def __post_init__(self) -> None:
        if self.min_coverage.is_zero or self.min_coverage >= Ratio.one():
            raise ValueError(f"min_coverage must be in (0, 1): {self.min_coverage}")
        if self.max_protocol_fee > Ratio.one():
            raise ValueError(f"max_protocol_fee must be <= 1: {self.max_protocol_fee}")


def validate_coverage_parameters(coverage: Ratio, beta: Ratio, limits: AccountingLimits) -> None:
    """
    Reject coverage/beta combinations that could block JT withdrawals.

    ``ceil(coverage * beta) < 1`` guarantees that every JT withdrawal
    reduces required coverage by strictly less than it reduces JT's
    effective NAV, so JT can always exit once ST has.

    Raises:
        InvalidCoverageConfigError: on any violation.
    """
    if coverage < limits.min_coverage:
        raise InvalidCoverageConfigError(
            str(coverage), str(beta), f"coverage below minimum {limits.min_coverage}"
        )
    if coverage >= Ratio.one():
        raise InvalidCoverageConfigError(str(coverage), str(beta), "coverage must be below 1")
    if coverage.mul(beta, Rounding.CEIL).wad >= WAD:
        raise InvalidCoverageConfigError(
            str(coverage), str(beta), "ceil(coverage * beta) must be below 1"
        )


def validate_protocol_fees(st_fee: Ratio, jt_fee: Ratio, limits: AccountingLimits) -> None:
    """Raises ProtocolFeeTooHighError if either rate exceeds the maximum."""
    if st_fee > limits.max_protocol_fee:
        raise ProtocolFeeTooHighError("ST", str(st_fee), str(limits.max_protocol_fee))
    if jt_fee > limits.max_protocol_fee:
        raise ProtocolFeeTooHighError("JT", str(jt_fee), str(limits.max_protocol_fee))


def validate_market_parameters(
    *,
    coverage: Ratio,
    beta: Ratio,
    st_protocol_fee: Ratio,
    jt_protocol_fee: Ratio,
    yield_model_ref: str | None,
    limits: AccountingLimits,
) -> None:
    """Full parameter validation for market creation."""
    if not yield_model_ref:
        raise MissingReferenceError("yield_model_ref")
    validate_coverage_parameters(coverage, beta, limits)
    validate_protocol_fees(st_protocol_fee, jt_protocol_fee, limits)


@dataclass(frozen=True)
class SyncResult:
    """Transient outcome of one sync: the new checkpoint plus fees earmarked."""

    st_raw_nav: NAV
    jt_raw_nav: NAV
    st_effective_nav: NAV
    jt_effective_nav: NAV
    st_debt: NAV
    jt_debt: NAV
    st_fee_accrued: NAV
    jt_fee_accrued: NAV

    @property
    def raw_total(self) -> NAV:
        return self.st_raw_nav + self.jt_raw_nav

    @property
    def effective_total(self) -> NAV:
        return self.st_effective_nav + self.jt_effective_nav


@dataclass(frozen=True)
class AccountingState:
    """
    Persisted accounting ledger for one market.

    Contract:
        Immutable snapshot.  Transitions produce new instances via
        ``checkpoint()`` / ``with_params()``; nothing mutates in place, so a
        failed computation can never leave a half-updated ledger behind.

    Guarantees:
        - All NAV and debt fields are non-negative.
        - Timestamps are non-negative whole epoch seconds; zero
          ``last_accrual_timestamp`` means accrual never started.
    """

    coverage: Ratio
    beta: Ratio
    st_protocol_fee: Ratio
    jt_protocol_fee: Ratio
    yield_model_ref: str
    last_st_raw_nav: NAV = NAV.zero()
    last_jt_raw_nav: NAV = NAV.zero()
    last_st_effective_nav: NAV = NAV.zero()
    last_jt_effective_nav: NAV = NAV.zero()
    last_st_debt: NAV = NAV.zero()
    last_jt_debt: NAV = NAV.zero()
    tw_jt_yield_share_accumulator: int = 0
    last_accrual_timestamp: int = 0
    last_distribution_timestamp: int = 0
    yield_curve_share: Ratio | None = None
    yield_curve_updated_at: int = 0

    def __post_init__(self) -> None:
        for name in (
            "tw_jt_yield_share_accumulator",
            "last_accrual_timestamp",
            "last_distribution_timestamp",
            "yield_curve_updated_at",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative int: {value!r}")

    @classmethod
    def initial(
        cls,
        *,
        coverage: Ratio,
        beta: Ratio,
        st_protocol_fee: Ratio,
        jt_protocol_fee: Ratio,
        yield_model_ref: str,
    ) -> AccountingState:
        """Fresh market: zero NAVs, zero debts, accrual not started."""
        return cls(
            coverage=coverage,
            beta=beta,
            st_protocol_fee=st_protocol_fee,
            jt_protocol_fee=jt_protocol_fee,
            yield_model_ref=yield_model_ref,
        )

    @property
    def accrual_started(self) -> bool:
        return self.last_accrual_timestamp != 0

    @property
    def net_debt(self) -> tuple[DebtDirection, NAV]:
        """Net cross-tranche liability after offsetting both directions."""
        if self.last_st_debt > self.last_jt_debt:
            return DebtDirection.ST_OWES_JT, self.last_st_debt - self.last_jt_debt
        if self.last_jt_debt > self.last_st_debt:
            return DebtDirection.JT_OWES_ST, self.last_jt_debt - self.last_st_debt
        return DebtDirection.NONE, NAV.zero()

    def checkpoint(self, result: SyncResult) -> AccountingState:
        """Return a copy with NAVs and debts taken from ``result``."""
        return replace(
            self,
            last_st_raw_nav=result.st_raw_nav,
            last_jt_raw_nav=result.jt_raw_nav,
            last_st_effective_nav=result.st_effective_nav,
            last_jt_effective_nav=result.jt_effective_nav,
            last_st_debt=result.st_debt,
            last_jt_debt=result.jt_debt,
        )

    def with_accrual(
        self,
        *,
        accumulator: int,
        last_accrual_timestamp: int,
        last_distribution_timestamp: int,
    ) -> AccountingState:
        return replace(
            self,
            tw_jt_yield_share_accumulator=accumulator,
            last_accrual_timestamp=last_accrual_timestamp,
            last_distribution_timestamp=last_distribution_timestamp,
        )

    def with_yield_curve(self, share: Ratio | None, updated_at: int) -> AccountingState:
        return replace(self, yield_curve_share=share, yield_curve_updated_at=updated_at)

    def with_params(self, **changes: object) -> AccountingState:
        """
        Copy with parameter fields replaced (coverage, beta, fees, model).

        Switching ``yield_model_ref`` discards the adapted curve point, which
        belonged to the previous model.
        """
        allowed = {"coverage", "beta", "st_protocol_fee", "jt_protocol_fee", "yield_model_ref"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Not parameter fields: {sorted(unknown)}")
        updated = replace(self, **changes)
        if updated.yield_model_ref != self.yield_model_ref:
            updated = updated.with_yield_curve(None, 0)
        return updated
