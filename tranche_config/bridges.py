"""
Config -> Kernel/Engine Bridges.

Functions that turn a validated ``MarketConfig`` into the objects the
kernel and engines consume.  They live in tranche_config (the producer)
because the kernel must NEVER import tranche_config.

Usage:
    from tranche_config import get_market_config
    from tranche_config.bridges import (
        build_accounting_limits, build_market_parameters, build_yield_model_registry,
    )

    config = get_market_config("MKT-1")
    limits = build_accounting_limits(config)
    registry = build_yield_model_registry(config)
    params = build_market_parameters(config)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tranche_config.schema import MarketConfig, YieldModelDef
from tranche_config.validator import parse_ratio
from tranche_engines.yield_models import (
    AdaptiveCurveYieldModel,
    KinkedCurveYieldModel,
    StaticYieldModel,
    YieldDistributionModel,
    YieldModelRegistry,
)
from tranche_kernel.domain.accounting_state import AccountingLimits
from tranche_kernel.domain.fixed_point import Ratio


@dataclass(frozen=True)
class MarketParameters:
    """Initial parameters for ``LedgerService.create_market``."""

    coverage: Ratio
    beta: Ratio
    st_protocol_fee: Ratio
    jt_protocol_fee: Ratio
    yield_model_ref: str

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "coverage": self.coverage,
            "beta": self.beta,
            "st_protocol_fee": self.st_protocol_fee,
            "jt_protocol_fee": self.jt_protocol_fee,
            "yield_model_ref": self.yield_model_ref,
        }


def build_accounting_limits(config: MarketConfig) -> AccountingLimits:
    return AccountingLimits(
        min_coverage=parse_ratio(config.limits.min_coverage, "limits.min_coverage"),
        max_protocol_fee=parse_ratio(config.limits.max_protocol_fee, "limits.max_protocol_fee"),
    )


def build_market_parameters(config: MarketConfig) -> MarketParameters:
    params = config.params
    return MarketParameters(
        coverage=parse_ratio(params.coverage, "market.coverage"),
        beta=parse_ratio(params.beta, "market.beta"),
        st_protocol_fee=parse_ratio(params.st_protocol_fee, "market.st_protocol_fee"),
        jt_protocol_fee=parse_ratio(params.jt_protocol_fee, "market.jt_protocol_fee"),
        yield_model_ref=params.yield_model,
    )


def build_yield_model(definition: YieldModelDef) -> YieldDistributionModel:
    """
    Instantiate one yield model from its definition.

    Raises:
        ValueError: on an unknown type or out-of-range parameters.
    """
    ratios = {
        key: parse_ratio(value, f"yield_models.{definition.name}.{key}")
        for key, value in definition.params.items()
    }
    if definition.model_type == "static":
        return StaticYieldModel(ratios["share"])
    if definition.model_type == "kinked":
        return KinkedCurveYieldModel(**ratios)
    if definition.model_type == "adaptive":
        return AdaptiveCurveYieldModel(**ratios)
    raise ValueError(f"Unknown yield model type: {definition.model_type!r}")


def build_yield_model_registry(config: MarketConfig) -> YieldModelRegistry:
    """Registry holding every model the config declares, keyed by name."""
    registry = YieldModelRegistry()
    for definition in config.yield_models:
        registry.register(definition.name, build_yield_model(definition))
    return registry
