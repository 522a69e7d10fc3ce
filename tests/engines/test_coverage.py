"""
Tests for coverage utilization and capacity queries.

Covers:
- Utilization for the reference market and with beta
- Zero / infinite utilization edge cases
- Exact-boundary coverage predicate
- Max ST deposit and max JT withdrawal, including the asset-side split
"""

import pytest

from tranche_engines.coverage import (
    UTILIZATION_INFINITE,
    covered_exposure,
    is_coverage_satisfied,
    max_jt_withdrawal,
    max_st_deposit,
    utilization,
)
from tranche_kernel.domain.fixed_point import NAV, WAD, Ratio


def market(st="800", jt="1000", beta="0", coverage="0.2", jt_eff=None) -> dict:
    return dict(
        st_raw_nav=NAV.of(st),
        jt_raw_nav=NAV.of(jt),
        beta=Ratio.of(beta),
        coverage=Ratio.of(coverage),
        jt_effective_nav=NAV.of(jt_eff if jt_eff is not None else jt),
    )


def withdraw(inputs: dict, capacity) -> dict:
    """Market inputs after applying a JT withdrawal."""
    return dict(
        inputs,
        st_raw_nav=inputs["st_raw_nav"] - capacity.from_st_assets,
        jt_raw_nav=inputs["jt_raw_nav"] - capacity.from_jt_assets,
        jt_effective_nav=inputs["jt_effective_nav"] - capacity.total,
    )


class TestUtilization:
    def test_reference_market(self):
        assert utilization(**market()) == Ratio.of("0.16")

    def test_beta_adds_jt_exposure(self):
        assert covered_exposure(NAV.of("800"), NAV.of("1000"), Ratio.of("0.5")) == NAV.of("1300")
        assert utilization(**market(beta="0.5")) == Ratio.of("0.26")

    def test_no_exposure_is_zero(self):
        assert utilization(**market(st="0", jt="0", jt_eff="0")) == Ratio.zero()

    def test_no_jt_is_infinite(self):
        assert utilization(**market(st="100", jt="0", jt_eff="0")) == UTILIZATION_INFINITE

    def test_rounds_up(self):
        """A remainder pushes utilization up by one wad unit."""
        u = utilization(**market(st="1", jt="3", coverage="0.1"))
        assert u == Ratio(WAD // 30 + 1)


class TestCoveragePredicate:
    def test_exact_boundary_is_satisfied(self):
        assert is_coverage_satisfied(**market(st="5000", jt="1000"))

    def test_one_unit_over_is_violated(self):
        inputs = market(st="5000", jt="1000")
        inputs["st_raw_nav"] = NAV(inputs["st_raw_nav"].units + 1)
        assert not is_coverage_satisfied(**inputs)

    def test_agrees_with_utilization(self):
        inputs = market(st="5000", jt="1000")
        assert utilization(**inputs) == Ratio.one()

    def test_one_unit_over_reads_above_one(self):
        inputs = market(st="5000", jt="1000")
        inputs["st_raw_nav"] = NAV(inputs["st_raw_nav"].units + 1)
        assert utilization(**inputs) == Ratio(WAD + 1)


class TestMaxSTDeposit:
    def test_reference_market(self):
        assert max_st_deposit(**market()) == NAV.of("4200")

    def test_deposit_of_capacity_keeps_coverage(self):
        inputs = market(beta="0.3")
        capacity = max_st_deposit(**inputs)
        after = dict(inputs, st_raw_nav=inputs["st_raw_nav"] + capacity)

        assert is_coverage_satisfied(**after)
        after["st_raw_nav"] = NAV(after["st_raw_nav"].units + 1)
        assert not is_coverage_satisfied(**after)

    def test_violated_coverage_gives_zero(self):
        assert max_st_deposit(**market(st="9000")) == NAV.zero()

    def test_zero_coverage_rejected(self):
        with pytest.raises(ValueError):
            max_st_deposit(**market(coverage="0"))


class TestMaxJTWithdrawal:
    def test_all_from_jt_side(self):
        capacity = max_jt_withdrawal(**market(), st_claim_ratio=Ratio.zero())

        assert capacity.total == NAV.of("840")
        assert capacity.from_jt_assets == NAV.of("840")
        assert capacity.from_st_assets == NAV.zero()

    @pytest.mark.parametrize("beta", ["0", "0.5", "2"])
    @pytest.mark.parametrize("st_claim_ratio", ["0", "0.25", "1"])
    def test_capacity_is_tight(self, beta, st_claim_ratio):
        """Withdrawing the capacity keeps coverage and leaves only rounding dust."""
        inputs = market(st="800", jt="1000", beta=beta, coverage="0.2", jt_eff="1200")
        inputs["st_raw_nav"] = NAV.of("1000")
        ratio = Ratio.of(st_claim_ratio)
        capacity = max_jt_withdrawal(**inputs, st_claim_ratio=ratio)

        assert capacity.total > NAV.zero()
        assert capacity.from_st_assets + capacity.from_jt_assets <= capacity.total
        assert is_coverage_satisfied(**withdraw(inputs, capacity))

        more = max_jt_withdrawal(**withdraw(inputs, capacity), st_claim_ratio=ratio)
        assert more.total.units < 10

    def test_saturated_coverage_gives_zero(self):
        capacity = max_jt_withdrawal(**market(st="5000"), st_claim_ratio=Ratio.zero())
        assert capacity.total == NAV.zero()

    def test_empty_jt_gives_zero(self):
        capacity = max_jt_withdrawal(**market(jt="0", jt_eff="0"), st_claim_ratio=Ratio.zero())
        assert capacity.total == NAV.zero()

    def test_no_st_exposure_allows_full_exit(self):
        capacity = max_jt_withdrawal(**market(st="0"), st_claim_ratio=Ratio.zero())
        assert capacity.total == NAV.of("1000")

    def test_claim_ratio_above_one_rejected(self):
        with pytest.raises(ValueError):
            max_jt_withdrawal(**market(), st_claim_ratio=Ratio.of("1.1"))
