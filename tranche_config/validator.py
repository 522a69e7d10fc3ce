"""
Configuration Validator (``tranche_config.validator``).

Responsibility
--------------
Validates a ``MarketConfig`` before anything is built from it.

Invariants enforced
-------------------
* Decimal values are quoted strings or ints (YAML floats are rejected
  since they are binary approximations).
* Yield model names are unique, of a known type, and the market's
  ``yield_model`` references one of them.
* Market parameters satisfy the same coverage/beta/fee rules the kernel
  enforces at creation time, under the configured limits.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``) -> the
  configuration MUST NOT be used.  ``get_market_config`` raises
  ``ConfigValidationError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tranche_config.schema import MarketConfig, YieldModelDef
from tranche_kernel.domain.accounting_state import (
    AccountingLimits,
    validate_coverage_parameters,
    validate_protocol_fees,
)
from tranche_kernel.domain.fixed_point import Ratio
from tranche_kernel.exceptions import TrancheKernelError

KNOWN_MODEL_TYPES: dict[str, frozenset[str]] = {
    "static": frozenset({"share"}),
    "kinked": frozenset({"share_at_zero", "target_utilization", "share_at_target", "share_at_full"}),
    "adaptive": frozenset(
        {"share_at_zero", "target_utilization", "share_at_target", "share_at_full", "adjustment_speed"}
    ),
}


class ConfigValidationError(ValueError):
    """Raised when a market configuration fails validation."""

    def __init__(self, config_id: str, errors: list[str]):
        self.config_id = config_id
        self.errors = list(errors)
        super().__init__(
            f"Configuration {config_id!r} failed validation:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def parse_ratio(value: Any, field_name: str) -> Ratio:
    """
    Parse a configured decimal into a Ratio.

    Raises:
        ValueError: on floats, bools or malformed values.
    """
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"{field_name}: expected a quoted decimal string, got {value!r}")
    try:
        return Ratio.of(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field_name}: {e}") from e


def _ratio_or_error(result: ConfigValidationResult, value: Any, field_name: str) -> Ratio | None:
    try:
        return parse_ratio(value, field_name)
    except ValueError as e:
        result.add_error(str(e))
        return None


def validate_market_config(config: MarketConfig) -> ConfigValidationResult:
    """Run every check and collect all errors."""
    result = ConfigValidationResult()

    if not config.market_codes:
        result.add_error("markets: at least one market code (or '*') is required")

    limits = _validate_limits(config, result)
    _validate_yield_models(config.yield_models, result)
    _validate_params(config, limits, result)

    return result


def _validate_limits(config: MarketConfig, result: ConfigValidationResult) -> AccountingLimits | None:
    min_coverage = _ratio_or_error(result, config.limits.min_coverage, "limits.min_coverage")
    max_fee = _ratio_or_error(result, config.limits.max_protocol_fee, "limits.max_protocol_fee")
    if min_coverage is None or max_fee is None:
        return None
    try:
        return AccountingLimits(min_coverage=min_coverage, max_protocol_fee=max_fee)
    except ValueError as e:
        result.add_error(f"limits: {e}")
        return None


def _validate_yield_models(models: tuple[YieldModelDef, ...], result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for model in models:
        if model.name in seen:
            result.add_error(f"yield_models: duplicate name {model.name!r}")
        seen.add(model.name)

        expected = KNOWN_MODEL_TYPES.get(model.model_type)
        if expected is None:
            result.add_error(f"yield_models.{model.name}: unknown type {model.model_type!r}")
            continue
        given = set(model.params)
        missing = expected - given
        unknown = given - expected
        if missing:
            result.add_error(f"yield_models.{model.name}: missing params {sorted(missing)}")
        if unknown:
            result.add_error(f"yield_models.{model.name}: unknown params {sorted(unknown)}")
        for key in sorted(given & expected):
            _ratio_or_error(result, model.params[key], f"yield_models.{model.name}.{key}")


def _validate_params(
    config: MarketConfig,
    limits: AccountingLimits | None,
    result: ConfigValidationResult,
) -> None:
    params = config.params
    coverage = _ratio_or_error(result, params.coverage, "market.coverage")
    beta = _ratio_or_error(result, params.beta, "market.beta")
    st_fee = _ratio_or_error(result, params.st_protocol_fee, "market.st_protocol_fee")
    jt_fee = _ratio_or_error(result, params.jt_protocol_fee, "market.jt_protocol_fee")

    if config.yield_model(params.yield_model) is None:
        result.add_error(f"market.yield_model: {params.yield_model!r} is not a declared yield model")

    if limits is None:
        return
    try:
        if coverage is not None and beta is not None:
            validate_coverage_parameters(coverage, beta, limits)
        if st_fee is not None and jt_fee is not None:
            validate_protocol_fees(st_fee, jt_fee, limits)
    except TrancheKernelError as e:
        result.add_error(f"market: {e}")
