"""
tranche_config -- single public entrypoint for market configuration.

Responsibility:
    Provides the runtime way to obtain a market's configuration through
    ``get_market_config()``.  YAML loading, validation and the bridges into
    kernel/engine objects live in the submodules.

Architecture position:
    Configuration -- sits above ``tranche_kernel`` and ``tranche_engines``
    and below ``tranche_services``.  The kernel MUST NEVER import from
    ``tranche_config``.

Invariants enforced:
    - Only validated configurations are returned.
    - Deterministic identity: the same YAML always has the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set applies to the market.
    - ``ConfigValidationError`` -- the matching set failed validation.

Audit relevance:
    Every successful ``get_market_config()`` call emits a
    ``TRANCHE_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying the market's parameters to a reviewed file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from tranche_config.loader import load_market_config
from tranche_config.schema import MarketConfig
from tranche_config.validator import ConfigValidationError, validate_market_config

_logger = logging.getLogger("tranche_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_market_config(market_code: str, config_dir: Path | None = None) -> MarketConfig:
    """
    Return the validated configuration that applies to ``market_code``.

    A set listing the market code explicitly wins over a ``"*"`` set.
    Sets are ``*.yaml`` files directly under ``config_dir`` (default:
    ``tranche_config/sets/``) and are scanned in file-name order.

    Raises:
        FileNotFoundError: if the directory is missing or no set applies.
        ConfigValidationError: if the matching set is invalid.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    config = _find_matching_config(sets_dir, market_code)

    validation = validate_market_config(config)
    if not validation.is_valid:
        raise ConfigValidationError(config.config_id, validation.errors)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    _logger.info(
        "TRANCHE_CONFIG_TRACE",
        extra={
            "trace_type": "TRANCHE_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "market_code": market_code,
            "yield_model_count": len(config.yield_models),
        },
    )
    return config


def _find_matching_config(sets_dir: Path, market_code: str) -> MarketConfig:
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Configuration sets directory not found: {sets_dir}")

    wildcard: MarketConfig | None = None
    for path in sorted(sets_dir.glob("*.yaml")):
        config = load_market_config(path)
        if market_code in config.market_codes:
            return config
        if wildcard is None and "*" in config.market_codes:
            wildcard = config

    if wildcard is None:
        raise FileNotFoundError(
            f"No configuration set in {sets_dir} applies to market {market_code!r}"
        )
    return wildcard


__all__ = [
    "get_market_config",
    "load_market_config",
    "validate_market_config",
    "ConfigValidationError",
    "MarketConfig",
]
