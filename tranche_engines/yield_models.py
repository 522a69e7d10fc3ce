"""
Module: tranche_engines.yield_models
Responsibility:
    Pluggable strategies that decide JT's instantaneous share of ST's
    yield, and the registry the ledger's ``yield_model_ref`` resolves in.

Architecture position:
    Engines -- pure calculation layer.  Models are purely computational:
    a stateful curve (the adaptive one) reads its current point from the
    inputs and returns the next point in its ``YieldQuote``.  The ledger
    stores that point, so it commits and rolls back with the sync.

Invariants enforced:
    - Shared numeric contract: ``preview_jt_yield_share`` returns exactly
      ``jt_yield_share(...).share`` for the same inputs.
    - Built-in models only produce shares in [0, 1].  The accrual engine
      still clamps, since third-party models are not trusted.
    - Ambiguous rounding lowers JT's share (favors ST).

Failure modes:
    - ValueError on out-of-range model parameters at construction.
    - YieldModelNotFoundError when the registry has no model by that name.

Audit relevance:
    The ledger stores the registry key and the adapted curve point, so
    every sync can be attributed to the model state that produced it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from tranche_engines.coverage import UTILIZATION_INFINITE, utilization
from tranche_kernel.domain.fixed_point import NAV, WAD, Ratio, Rounding, mul_div
from tranche_kernel.exceptions import YieldModelNotFoundError


@dataclass(frozen=True)
class YieldModelInputs:
    """
    Checkpointed market view handed to a yield distribution model.

    ``curve_share`` / ``curve_updated_at`` are the adapted curve point
    stored on the ledger (None / 0 until a stateful model first reports one).
    """

    st_raw_nav: NAV
    jt_raw_nav: NAV
    beta: Ratio
    coverage: Ratio
    jt_effective_nav: NAV
    timestamp: int
    curve_share: Ratio | None = None
    curve_updated_at: int = 0

    @property
    def utilization(self) -> Ratio:
        return utilization(
            st_raw_nav=self.st_raw_nav,
            jt_raw_nav=self.jt_raw_nav,
            beta=self.beta,
            coverage=self.coverage,
            jt_effective_nav=self.jt_effective_nav,
        )


@dataclass(frozen=True)
class YieldQuote:
    """JT's share plus the curve point the ledger should hold afterwards."""

    share: Ratio
    curve_share: Ratio | None = None
    curve_updated_at: int = 0


class YieldDistributionModel(ABC):
    """
    Strategy returning JT's instantaneous share of ST yield.

    Contract:
        ``jt_yield_share`` is the committing call: its quote's curve point
        is persisted with the sync.  ``preview_jt_yield_share`` returns the
        same share and nothing to store.  Neither mutates the model.
    """

    @abstractmethod
    def jt_yield_share(self, inputs: YieldModelInputs) -> YieldQuote:
        ...

    def preview_jt_yield_share(self, inputs: YieldModelInputs) -> Ratio:
        return self.jt_yield_share(inputs).share


def _require_unit(name: str, value: Ratio) -> None:
    if value > Ratio.one():
        raise ValueError(f"{name} must be in [0, 1]: {value}")


def _interpolate(start: int, end: int, num: int, den: int) -> int:
    """Point ``num/den`` of the way from ``start`` to ``end``, rounded toward the lower share."""
    if end >= start:
        return start + mul_div(end - start, num, den, Rounding.FLOOR)
    return start - mul_div(start - end, num, den, Rounding.CEIL)


class StaticYieldModel(YieldDistributionModel):
    """Constant JT share."""

    def __init__(self, share: Ratio):
        _require_unit("share", share)
        self.share = share

    def jt_yield_share(self, inputs: YieldModelInputs) -> YieldQuote:
        return YieldQuote(self.share)

    def __repr__(self) -> str:
        return f"StaticYieldModel(share={self.share})"


class KinkedCurveYieldModel(YieldDistributionModel):
    """
    Piecewise-linear JT share as a function of coverage utilization.

    The curve passes through ``(0, share_at_zero)``,
    ``(target_utilization, share_at_target)`` and ``(1, share_at_full)``.
    Utilization above one (including infinite) pins to ``share_at_full``.
    """

    def __init__(
        self,
        *,
        share_at_zero: Ratio,
        target_utilization: Ratio,
        share_at_target: Ratio,
        share_at_full: Ratio,
    ):
        for name, value in (
            ("share_at_zero", share_at_zero),
            ("share_at_target", share_at_target),
            ("share_at_full", share_at_full),
        ):
            _require_unit(name, value)
        if target_utilization.is_zero or target_utilization >= Ratio.one():
            raise ValueError(f"target_utilization must be in (0, 1): {target_utilization}")
        self.share_at_zero = share_at_zero
        self.target_utilization = target_utilization
        self.share_at_target = share_at_target
        self.share_at_full = share_at_full

    def _curve(self, u: Ratio, share_at_target: Ratio) -> Ratio:
        target = self.target_utilization.wad
        if u == UTILIZATION_INFINITE or u.wad >= WAD:
            return self.share_at_full
        if u.wad <= target:
            return Ratio(_interpolate(self.share_at_zero.wad, share_at_target.wad, u.wad, target))
        return Ratio(
            _interpolate(share_at_target.wad, self.share_at_full.wad, u.wad - target, WAD - target)
        )

    def jt_yield_share(self, inputs: YieldModelInputs) -> YieldQuote:
        return YieldQuote(self._curve(inputs.utilization, self.share_at_target))


class AdaptiveCurveYieldModel(KinkedCurveYieldModel):
    """
    Kinked curve whose target-point share drifts to hold utilization at target.

    Above target the share at the kink rises (paying JT more attracts
    junior capital and lowers utilization); below target it falls.  The
    drift per second is ``adjustment_speed`` times the normalized distance
    from target, bounded by the curve's end points.

    The configured ``share_at_target`` is only the starting point.  The
    current point arrives in ``inputs.curve_share`` and the drifted one
    leaves in the quote, stamped with the timestamp it was computed at.
    A second call at that timestamp drifts by nothing.
    """

    def __init__(
        self,
        *,
        share_at_zero: Ratio,
        target_utilization: Ratio,
        share_at_target: Ratio,
        share_at_full: Ratio,
        adjustment_speed: Ratio,
    ):
        super().__init__(
            share_at_zero=share_at_zero,
            target_utilization=target_utilization,
            share_at_target=share_at_target,
            share_at_full=share_at_full,
        )
        self.adjustment_speed = adjustment_speed

    def _adapted_share_at_target(self, u: Ratio, inputs: YieldModelInputs) -> Ratio:
        current = inputs.curve_share if inputs.curve_share is not None else self.share_at_target
        last = inputs.curve_updated_at
        if last == 0 or inputs.timestamp <= last:
            return current
        elapsed = inputs.timestamp - last
        target = self.target_utilization.wad
        u_wad = min(u.wad, WAD)

        if u_wad > target:
            error = mul_div(u_wad - target, WAD, WAD - target, Rounding.FLOOR)
            step = mul_div(self.adjustment_speed.wad * elapsed, error, WAD, Rounding.FLOOR)
            upper = max(self.share_at_zero.wad, self.share_at_full.wad)
            return Ratio(min(current.wad + step, upper))

        error = mul_div(target - u_wad, WAD, target, Rounding.FLOOR)
        step = mul_div(self.adjustment_speed.wad * elapsed, error, WAD, Rounding.CEIL)
        lower = min(self.share_at_zero.wad, self.share_at_full.wad)
        return Ratio(max(current.wad - step, lower))

    def jt_yield_share(self, inputs: YieldModelInputs) -> YieldQuote:
        u = inputs.utilization
        adapted = self._adapted_share_at_target(u, inputs)
        return YieldQuote(
            share=self._curve(u, adapted),
            curve_share=adapted,
            curve_updated_at=max(inputs.curve_updated_at, inputs.timestamp),
        )


class YieldModelRegistry:
    """
    Name -> model lookup for one deployment.

    Models hold configuration only, so one registry may serve many
    markets; each market's adapted curve point lives on its own ledger.
    """

    def __init__(self, models: dict[str, YieldDistributionModel] | None = None):
        self._models: dict[str, YieldDistributionModel] = {}
        for name, model in (models or {}).items():
            self.register(name, model)

    def register(self, name: str, model: YieldDistributionModel) -> None:
        if not name:
            raise ValueError("Yield model name must be non-empty")
        if not isinstance(model, YieldDistributionModel):
            raise TypeError(f"Not a YieldDistributionModel: {type(model).__name__}")
        if name in self._models:
            raise ValueError(f"Yield model already registered: {name}")
        self._models[name] = model

    def get(self, name: str) -> YieldDistributionModel:
        model = self._models.get(name)
        if model is None:
            raise YieldModelNotFoundError(name)
        return model

    def names(self) -> list[str]:
        return sorted(self._models)

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)
