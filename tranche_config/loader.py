"""
Configuration Loader (``tranche_config.loader``).

Responsibility
--------------
Loads a market configuration YAML file and parses it into the frozen
``tranche_config.schema`` dataclasses.  Runtime callers go through
``tranche_config.get_market_config()`` instead.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on the kernel
or engines.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; no silent defaults for
  required fields.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed YAML for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from tranche_config.schema import (
    AccountingLimitsDef,
    MarketConfig,
    MarketParamsDef,
    YieldModelDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_limits(data: dict[str, Any]) -> AccountingLimitsDef:
    defaults = AccountingLimitsDef()
    return AccountingLimitsDef(
        min_coverage=data.get("min_coverage", defaults.min_coverage),
        max_protocol_fee=data.get("max_protocol_fee", defaults.max_protocol_fee),
    )


def parse_params(data: dict[str, Any]) -> MarketParamsDef:
    return MarketParamsDef(
        coverage=data["coverage"],
        beta=data.get("beta", "0"),
        st_protocol_fee=data.get("st_protocol_fee", "0"),
        jt_protocol_fee=data.get("jt_protocol_fee", "0"),
        yield_model=data["yield_model"],
    )


def parse_yield_model(data: dict[str, Any]) -> YieldModelDef:
    params = data.get("params") or {}
    return YieldModelDef(
        name=data["name"],
        model_type=data["type"],
        parameters=tuple(sorted(params.items())),
    )


def parse_market_config(data: dict[str, Any]) -> MarketConfig:
    """Parse an already-loaded YAML mapping."""
    markets = data.get("markets", ["*"])
    if isinstance(markets, str):
        markets = [markets]
    return MarketConfig(
        config_id=data["config_id"],
        version=data.get("version", 1),
        market_codes=tuple(markets),
        limits=parse_limits(data.get("limits") or {}),
        params=parse_params(data["market"]),
        yield_models=tuple(parse_yield_model(m) for m in data.get("yield_models", [])),
        checksum=compute_checksum(data),
    )


def load_market_config(path: Path) -> MarketConfig:
    """Load and parse one market configuration file (not validated)."""
    return parse_market_config(load_yaml_file(Path(path)))
