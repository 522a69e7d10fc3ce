"""
Tests for yield distribution models and their registry.

Covers:
- Static share
- Kinked curve interpolation and saturation
- Adaptive curve drift, read from and returned to the caller
- Preview parity
- Registry lookup errors
"""

import pytest

from tranche_engines.coverage import UTILIZATION_INFINITE
from tranche_engines.yield_models import (
    AdaptiveCurveYieldModel,
    KinkedCurveYieldModel,
    StaticYieldModel,
    YieldModelInputs,
    YieldModelRegistry,
)
from tranche_kernel.domain.fixed_point import NAV, Ratio
from tranche_kernel.exceptions import YieldModelNotFoundError

T0 = 1_700_000_000


def inputs(
    st="800", jt="1000", jt_eff=None, coverage="0.2", timestamp=T0, curve=None, curve_at=0
) -> YieldModelInputs:
    """Market view; the default utilization is 0.16."""
    return YieldModelInputs(
        st_raw_nav=NAV.of(st),
        jt_raw_nav=NAV.of(jt),
        beta=Ratio.zero(),
        coverage=Ratio.of(coverage),
        jt_effective_nav=NAV.of(jt_eff if jt_eff is not None else jt),
        timestamp=timestamp,
        curve_share=curve,
        curve_updated_at=curve_at,
    )


def kinked(**overrides) -> KinkedCurveYieldModel:
    params = dict(
        share_at_zero=Ratio.of("0.1"),
        target_utilization=Ratio.of("0.8"),
        share_at_target=Ratio.of("0.3"),
        share_at_full=Ratio.of("0.9"),
    )
    params.update(overrides)
    return KinkedCurveYieldModel(**params)


def adaptive(speed="0.001") -> AdaptiveCurveYieldModel:
    return AdaptiveCurveYieldModel(
        share_at_zero=Ratio.zero(),
        target_utilization=Ratio.of("0.5"),
        share_at_target=Ratio.of("0.2"),
        share_at_full=Ratio.one(),
        adjustment_speed=Ratio.of(speed),
    )


class TestStaticYieldModel:
    def test_constant_share(self):
        model = StaticYieldModel(Ratio.of("0.25"))
        assert model.jt_yield_share(inputs()).share == Ratio.of("0.25")
        assert model.preview_jt_yield_share(inputs(st="0")) == Ratio.of("0.25")

    def test_share_above_one_rejected(self):
        with pytest.raises(ValueError):
            StaticYieldModel(Ratio.of("1.01"))


class TestKinkedCurveYieldModel:
    def test_zero_utilization(self):
        assert kinked().jt_yield_share(inputs(st="0")).share == Ratio.of("0.1")

    def test_at_target(self):
        # 4000 * 0.2 / 1000 = 0.8
        assert kinked().jt_yield_share(inputs(st="4000")).share == Ratio.of("0.3")

    def test_below_target_interpolates(self):
        # u = 0.4, halfway to the kink
        assert kinked().jt_yield_share(inputs(st="2000")).share == Ratio.of("0.2")

    def test_above_target_interpolates(self):
        # u = 0.9, halfway from the kink to full
        assert kinked().jt_yield_share(inputs(st="4500")).share == Ratio.of("0.6")

    def test_saturates_at_full(self):
        assert kinked().jt_yield_share(inputs(st="9000")).share == Ratio.of("0.9")

    def test_infinite_utilization(self):
        view = inputs(st="100", jt="0")
        assert view.utilization == UTILIZATION_INFINITE
        assert kinked().jt_yield_share(view).share == Ratio.of("0.9")

    def test_descending_curve_rounds_down(self):
        model = kinked(share_at_zero=Ratio.of("0.5"), share_at_target=Ratio(1))
        share = model.jt_yield_share(inputs(st="1")).share
        assert share < Ratio.of("0.5")

    @pytest.mark.parametrize("target", ["0", "1"])
    def test_target_out_of_range(self, target):
        with pytest.raises(ValueError):
            kinked(target_utilization=Ratio.of(target))


class TestAdaptiveCurveYieldModel:
    def test_first_quote_starts_at_configured_point(self):
        quote = adaptive().jt_yield_share(inputs(st="4000", timestamp=T0))

        assert quote.curve_share == Ratio.of("0.2")
        assert quote.curve_updated_at == T0

    def test_rises_above_target(self):
        quote = adaptive().jt_yield_share(
            inputs(st="4000", timestamp=T0 + 100, curve=Ratio.of("0.2"), curve_at=T0)
        )

        assert quote.curve_share > Ratio.of("0.2")
        assert quote.curve_updated_at == T0 + 100

    def test_falls_below_target(self):
        quote = adaptive().jt_yield_share(
            inputs(st="0", timestamp=T0 + 100, curve=Ratio.of("0.2"), curve_at=T0)
        )

        assert quote.curve_share < Ratio.of("0.2")

    def test_drifts_from_stored_point_not_configured_one(self):
        quote = adaptive().jt_yield_share(
            inputs(st="0", timestamp=T0 + 100, curve=Ratio.of("0.6"), curve_at=T0)
        )

        assert Ratio.of("0.2") < quote.curve_share < Ratio.of("0.6")

    def test_bounded_by_end_points(self):
        quote = adaptive(speed="1").jt_yield_share(
            inputs(st="0", timestamp=T0 + 10_000, curve=Ratio.of("0.2"), curve_at=T0)
        )

        assert quote.curve_share == Ratio.zero()

    def test_same_timestamp_drifts_by_nothing(self):
        quote = adaptive().jt_yield_share(
            inputs(st="4000", timestamp=T0, curve=Ratio.of("0.35"), curve_at=T0)
        )

        assert quote.curve_share == Ratio.of("0.35")
        assert quote.curve_updated_at == T0

    def test_model_holds_no_state(self):
        model = adaptive()
        view = inputs(st="4000", timestamp=T0 + 500, curve=Ratio.of("0.2"), curve_at=T0)

        first = model.jt_yield_share(view)
        second = model.jt_yield_share(view)

        assert first == second
        assert model.share_at_target == Ratio.of("0.2")

    def test_preview_matches_committing_call(self):
        model = adaptive()
        view = inputs(st="4000", timestamp=T0 + 500, curve=Ratio.of("0.2"), curve_at=T0)

        assert model.preview_jt_yield_share(view) == model.jt_yield_share(view).share


class TestYieldModelRegistry:
    def test_lookup(self):
        model = StaticYieldModel(Ratio.of("0.2"))
        registry = YieldModelRegistry({"s": model})

        assert registry.get("s") is model
        assert "s" in registry
        assert len(registry) == 1

    def test_unknown_name(self):
        with pytest.raises(YieldModelNotFoundError) as exc_info:
            YieldModelRegistry().get("missing")

        assert exc_info.value.code == "YIELD_MODEL_NOT_FOUND"

    def test_duplicate_rejected(self):
        registry = YieldModelRegistry({"s": StaticYieldModel(Ratio.zero())})
        with pytest.raises(ValueError):
            registry.register("s", StaticYieldModel(Ratio.zero()))

    def test_non_model_rejected(self):
        with pytest.raises(TypeError):
            YieldModelRegistry().register("x", object())

    def test_names_sorted(self):
        registry = YieldModelRegistry(
            {"b": StaticYieldModel(Ratio.zero()), "a": StaticYieldModel(Ratio.zero())}
        )
        assert registry.names() == ["a", "b"]
