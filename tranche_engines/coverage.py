"""
Module: tranche_engines.coverage
Responsibility:
    Compute coverage utilization and the capacity queries derived from it:
    how much ST may still deposit and how much JT may still withdraw before
    the coverage requirement binds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import tranche_kernel.domain.

Invariants enforced:
    - COVERAGE: ``jt_effective >= (st_raw + ceil(beta * jt_raw)) * coverage``.
      Checked on integers, ``exposure * coverage <= jt_effective * WAD``,
      with no intermediate rounding.
    - Utilization is never under-reported: exposure rounds up and the
      outer division rounds up.
    - Capacities never over-report: every quotient rounds down and each
      candidate withdrawal is re-checked against the exact inequality.

Failure modes:
    - ValueError if ``st_claim_ratio`` is above one.

Audit relevance:
    The coverage-enforcing post-op sync and the capacity queries use the
    same predicate, so a deposit or withdrawal sized by a capacity query
    always passes enforcement.

Usage:
    from tranche_engines.coverage import utilization, max_st_deposit

    u = utilization(
        st_raw_nav=NAV.of(800), jt_raw_nav=NAV.of(1000),
        beta=Ratio.zero(), coverage=Ratio.of("0.2"),
        jt_effective_nav=NAV.of(1000),
    )
    assert u == Ratio.of("0.16")
"""

from __future__ import annotations

from dataclasses import dataclass

from tranche_kernel.domain.fixed_point import NAV, WAD, Ratio, Rounding, mul_div

# Returned when JT has no effective NAV but there is exposure to cover.
UTILIZATION_INFINITE = Ratio(2**256 - 1)


@dataclass(frozen=True)
class JTWithdrawalCapacity:
    """
    Maximum JT withdrawal and its split across the asset sides.

    Guarantees:
        - ``from_st_assets + from_jt_assets <= total`` (each rounds down).
        - ``total <= jt_effective_nav`` of the inputs.
    """

    total: NAV
    from_st_assets: NAV
    from_jt_assets: NAV


def covered_exposure(st_raw_nav: NAV, jt_raw_nav: NAV, beta: Ratio) -> NAV:
    """``st_raw + ceil(jt_raw * beta)``: the exposure JT must cover."""
    return st_raw_nav + jt_raw_nav.mul_ratio(beta, Rounding.CEIL)


def is_coverage_satisfied(
    *,
    st_raw_nav: NAV,
    jt_raw_nav: NAV,
    beta: Ratio,
    coverage: Ratio,
    jt_effective_nav: NAV,
) -> bool:
    """True iff utilization <= 1."""
    exposure = covered_exposure(st_raw_nav, jt_raw_nav, beta)
    return exposure.units * coverage.wad <= jt_effective_nav.units * WAD


def utilization(
    *,
    st_raw_nav: NAV,
    jt_raw_nav: NAV,
    beta: Ratio,
    coverage: Ratio,
    jt_effective_nav: NAV,
) -> Ratio:
    """
    ``exposure * coverage / jt_effective``, rounded up.

    The outer division rounds up rather than down, so utilization is never
    under-reported: a requirement one unit over JT's buffer reads above
    one instead of exactly one.  Gating and the capacity queries do not use
    this value; they evaluate the exact integer predicate in
    ``is_coverage_satisfied``.

    Returns ``Ratio.zero()`` when there is no exposure (or zero coverage)
    and ``UTILIZATION_INFINITE`` when JT has nothing to cover a non-zero
    requirement with.
    """
    exposure = covered_exposure(st_raw_nav, jt_raw_nav, beta)
    numerator = exposure.units * coverage.wad
    if numerator == 0:
        return Ratio.zero()
    if jt_effective_nav.is_zero:
        return UTILIZATION_INFINITE
    return Ratio(mul_div(exposure.units, coverage.wad, jt_effective_nav.units, Rounding.CEIL))


def max_st_deposit(
    *,
    st_raw_nav: NAV,
    jt_raw_nav: NAV,
    beta: Ratio,
    coverage: Ratio,
    jt_effective_nav: NAV,
) -> NAV:
    """
    Largest ST raw-NAV increment ``x`` with ``(exposure + x) * coverage <= jt_effective``.

    Zero if coverage is already saturated or violated.
    """
    if coverage.is_zero:
        raise ValueError("coverage must be positive to bound ST deposits")
    exposure = covered_exposure(st_raw_nav, jt_raw_nav, beta)
    ceiling = mul_div(jt_effective_nav.units, WAD, coverage.wad, Rounding.FLOOR)
    return NAV(max(ceiling - exposure.units, 0))


def _split(total: int, st_claim_ratio: Ratio) -> tuple[int, int]:
    from_st = mul_div(total, st_claim_ratio.wad, WAD, Rounding.FLOOR)
    from_jt = mul_div(total, st_claim_ratio.complement().wad, WAD, Rounding.FLOOR)
    return from_st, from_jt


def _satisfied_after_withdrawal(
    d: int,
    st_raw_nav: NAV,
    jt_raw_nav: NAV,
    beta: Ratio,
    coverage: Ratio,
    jt_effective_nav: NAV,
    st_claim_ratio: Ratio,
) -> bool:
    from_st, from_jt = _split(d, st_claim_ratio)
    return is_coverage_satisfied(
        st_raw_nav=NAV(st_raw_nav.units - from_st),
        jt_raw_nav=NAV(jt_raw_nav.units - from_jt),
        beta=beta,
        coverage=coverage,
        jt_effective_nav=NAV(jt_effective_nav.units - d),
    )


def max_jt_withdrawal(
    *,
    st_raw_nav: NAV,
    jt_raw_nav: NAV,
    beta: Ratio,
    coverage: Ratio,
    jt_effective_nav: NAV,
    st_claim_ratio: Ratio,
) -> JTWithdrawalCapacity:
    """
    Largest JT effective-NAV decrement ``d`` that keeps coverage.

    A withdrawal of ``d`` removes ``d * p_st`` from ST raw NAV,
    ``d * (1 - p_st)`` from JT raw NAV and ``d`` from JT effective NAV,
    where ``p_st = st_claim_ratio`` is the share of JT's claim currently
    deployed on the ST side.  Solving the coverage equality gives::

        d = (jt_eff - exposure * cov) / (1 - cov * (p_st + beta * p_jt))

    computed with conservative rounding, then confirmed against the exact
    predicate (shrinking by bisection if component rounding left it a few
    units over).
    """
    if st_claim_ratio > Ratio.one():
        raise ValueError(f"st_claim_ratio must be <= 1: {st_claim_ratio}")
    zero = JTWithdrawalCapacity(NAV.zero(), NAV.zero(), NAV.zero())
    if jt_effective_nav.is_zero:
        return zero

    exposure = covered_exposure(st_raw_nav, jt_raw_nav, beta)
    required = mul_div(exposure.units, coverage.wad, WAD, Rounding.CEIL)
    surplus = jt_effective_nav.units - required
    if surplus <= 0:
        return zero

    p_st = st_claim_ratio.wad
    p_jt = WAD - p_st
    weight = p_st + mul_div(beta.wad, p_jt, WAD, Rounding.FLOOR)
    denominator = WAD - min(mul_div(coverage.wad, weight, WAD, Rounding.FLOOR), WAD - 1)
    candidate = min(mul_div(surplus, WAD, denominator, Rounding.FLOOR), jt_effective_nav.units)

    # A component can never exceed the raw NAV it is drawn from.
    if p_st:
        candidate = min(candidate, mul_div(st_raw_nav.units, WAD, p_st, Rounding.FLOOR))
    if p_jt:
        candidate = min(candidate, mul_div(jt_raw_nav.units, WAD, p_jt, Rounding.FLOOR))

    args = (st_raw_nav, jt_raw_nav, beta, coverage, jt_effective_nav, st_claim_ratio)
    if not _satisfied_after_withdrawal(candidate, *args):
        lo, hi = 0, candidate
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if _satisfied_after_withdrawal(mid, *args):
                lo = mid
            else:
                hi = mid - 1
        candidate = lo

    from_st, from_jt = _split(candidate, st_claim_ratio)
    return JTWithdrawalCapacity(NAV(candidate), NAV(from_st), NAV(from_jt))
