"""
Tests for the administrator parameter setters.

Each setter settles PnL under the old parameters in the same write that
applies the new ones, and validates before touching anything.
"""

import pytest

from tranche_kernel.domain.fixed_point import NAV, Ratio
from tranche_kernel.exceptions import (
    InvalidCoverageConfigError,
    MissingReferenceError,
    ProtocolFeeTooHighError,
    UnauthorizedCallerError,
    YieldModelNotFoundError,
)
from tranche_kernel.services.ledger_service import LedgerService


class TestSetProtocolFees:
    def test_settles_under_old_fees(self, funded_accountant, admin_id, nav_source, clock, session):
        nav_source.set(NAV.of("900"), NAV.of("1000"))
        clock.advance(100)

        state = funded_accountant.set_protocol_fees(admin_id, Ratio.of("0.1"), Ratio.of("0.1"))

        assert state.st_protocol_fee == Ratio.of("0.1")
        assert state.last_st_effective_nav == NAV.of("880")
        assert state.last_jt_effective_nav == NAV.of("1020")
        assert state.tw_jt_yield_share_accumulator == 0

        last = LedgerService(session).list_checkpoints("MKT-1")[-1]
        assert last.operation == "set_protocol_fees"
        assert last.st_fee_accrued == 0
        assert last.yield_distributed is True

    def test_new_fees_apply_afterwards(self, funded_accountant, admin_id, kernel_id, nav_source, clock):
        nav_source.set(NAV.of("800"), NAV.of("1000"))
        funded_accountant.set_protocol_fees(admin_id, Ratio.of("0.1"), Ratio.of("0.1"))
        clock.advance(100)

        result = funded_accountant.pre_op_sync(kernel_id, NAV.of("900"), NAV.of("1000"))

        assert result.st_fee_accrued == NAV.of("8")
        assert result.jt_fee_accrued == NAV.of("2")

    def test_fee_above_max_rejected_before_settlement(self, funded_accountant, admin_id, nav_source, clock):
        nav_source.set(NAV.of("500"), NAV.of("1000"))
        clock.advance(100)
        before = funded_accountant.state()

        with pytest.raises(ProtocolFeeTooHighError):
            funded_accountant.set_protocol_fees(admin_id, Ratio.of("0.6"), Ratio.zero())

        assert funded_accountant.state() == before

    def test_kernel_is_not_admin(self, funded_accountant, kernel_id):
        with pytest.raises(UnauthorizedCallerError):
            funded_accountant.set_protocol_fees(kernel_id, Ratio.zero(), Ratio.zero())


class TestSetCoverageAndBeta:
    def test_set_coverage_changes_capacity(self, funded_accountant, admin_id, nav_source):
        nav_source.set(NAV.of("800"), NAV.of("1000"))
        funded_accountant.set_coverage(admin_id, Ratio.of("0.25"))

        assert funded_accountant.max_st_deposit(NAV.of("800"), NAV.of("1000")) == NAV.of("3200")

    @pytest.mark.parametrize("coverage", ["0.001", "1"])
    def test_invalid_coverage_rejected(self, funded_accountant, admin_id, nav_source, coverage):
        nav_source.set(NAV.of("800"), NAV.of("1000"))
        before = funded_accountant.state()

        with pytest.raises(InvalidCoverageConfigError):
            funded_accountant.set_coverage(admin_id, Ratio.of(coverage))

        assert funded_accountant.state() == before

    def test_beta_checked_against_current_coverage(self, funded_accountant, admin_id, nav_source):
        nav_source.set(NAV.of("800"), NAV.of("1000"))

        with pytest.raises(InvalidCoverageConfigError):
            funded_accountant.set_beta(admin_id, Ratio.of("5"))

        state = funded_accountant.set_beta(admin_id, Ratio.of("4.99"))
        assert state.beta == Ratio.of("4.99")

    def test_settles_pnl_under_old_coverage(self, funded_accountant, admin_id, nav_source):
        """An ST loss is booked before the coverage change lands."""
        nav_source.set(NAV.of("650"), NAV.of("1000"))

        state = funded_accountant.set_coverage(admin_id, Ratio.of("0.3"))

        assert state.coverage == Ratio.of("0.3")
        assert state.last_st_debt == NAV.of("150")
        assert state.last_jt_effective_nav == NAV.of("850")


class TestSetYieldModel:
    def test_new_model_drives_next_accrual(self, funded_accountant, admin_id, kernel_id, nav_source, clock):
        nav_source.set(NAV.of("800"), NAV.of("1000"))
        funded_accountant.set_yield_model(admin_id, "static_50")
        clock.advance(100)

        result = funded_accountant.pre_op_sync(kernel_id, NAV.of("900"), NAV.of("1000"))

        assert result.jt_effective_nav == NAV.of("1050")

    def test_old_model_covers_window_before_change(
        self, funded_accountant, admin_id, kernel_id, nav_source, clock
    ):
        """Time before the switch accrues at the old model's share."""
        nav_source.set(NAV.of("800"), NAV.of("1000"))
        clock.advance(100)
        funded_accountant.set_yield_model(admin_id, "static_0")
        clock.advance(100)

        result = funded_accountant.pre_op_sync(kernel_id, NAV.of("1000"), NAV.of("1000"))

        # 20% for the first half of the window, 0% for the second
        assert result.jt_effective_nav == NAV.of("1020")

    def test_unknown_model_rejected(self, funded_accountant, admin_id, nav_source):
        nav_source.set(NAV.of("800"), NAV.of("1000"))

        with pytest.raises(YieldModelNotFoundError):
            funded_accountant.set_yield_model(admin_id, "nope")

        assert funded_accountant.state().yield_model_ref == "static_20"

    def test_empty_model_rejected(self, funded_accountant, admin_id):
        with pytest.raises(MissingReferenceError):
            funded_accountant.set_yield_model(admin_id, "")


class TestSetterPreconditions:
    def test_nav_source_required(self, funded_accountant, make_accountant, admin_id):
        accountant = make_accountant(nav_source=None)
        before = accountant.state()

        with pytest.raises(MissingReferenceError) as exc_info:
            accountant.set_coverage(admin_id, Ratio.of("0.3"))

        assert exc_info.value.code == "MISSING_REFERENCE"
        assert accountant.state() == before

    def test_change_is_logged(self, funded_accountant, admin_id, nav_source, captured_logs):
        nav_source.set(NAV.of("800"), NAV.of("1000"))
        funded_accountant.set_coverage(admin_id, Ratio.of("0.3"))

        (record,) = [r for r in captured_logs() if r["message"] == "parameter_changed"]
        assert record["parameter_change"] == "set_coverage"
        assert record["previous"] == {"coverage": "0.2"}
        assert record["updated"] == {"coverage": "0.3"}
