"""
Market configuration schema.

Defines the human-authored, reviewable source artifact for a market's
accounting parameters.  YAML files are parsed into these types by the
loader, checked by the validator and turned into kernel/engine objects by
the bridges.

Decimal values are kept as the strings written in YAML; the bridges parse
them into exact ``Ratio`` values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class AccountingLimitsDef:
    """Admin bounds on market parameters."""

    min_coverage: Any = "0.01"
    max_protocol_fee: Any = "0.5"


@dataclass(frozen=True)
class MarketParamsDef:
    """Initial parameters for markets created from this configuration."""

    coverage: Any
    beta: Any
    st_protocol_fee: Any
    jt_protocol_fee: Any
    yield_model: str


@dataclass(frozen=True)
class YieldModelDef:
    """A named yield distribution model (type + parameters)."""

    name: str
    model_type: str  # static, kinked, adaptive
    parameters: tuple[tuple[str, Any], ...] = ()

    @property
    def params(self) -> dict[str, Any]:
        return dict(self.parameters)


@dataclass(frozen=True)
class MarketConfig:
    """
    One market configuration set.

    ``market_codes`` lists the markets it applies to; ``"*"`` matches any
    market that no other set names explicitly.
    """

    config_id: str
    version: int
    market_codes: tuple[str, ...]
    limits: AccountingLimitsDef
    params: MarketParamsDef
    yield_models: tuple[YieldModelDef, ...]
    checksum: str = ""

    def applies_to(self, market_code: str) -> bool:
        return market_code in self.market_codes or "*" in self.market_codes

    def yield_model(self, name: str) -> YieldModelDef | None:
        for model in self.yield_models:
            if model.name == name:
                return model
        return None
