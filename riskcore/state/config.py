"""
Exchange-wide configuration.

``ExchangeConfig`` is passed explicitly to every operation; there is no global
singleton. Defaults equal the protocol constants. Use ``load_config`` to read an
override file (YAML) or ``config_from_mapping`` for an already-parsed dict.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Union

import yaml

from ..core.errors import ErrorCode, error_for
from ..core.fixed_point import BPS_DENOMINATOR
from ..core.funding import FUNDING_INTERVAL
from ..core.liquidation import LIQUIDATION_BONUS_BPS, MAX_LIQUIDATION_FRACTION_BPS, PERP_LIQUIDATION_THRESHOLD_BPS
from ..core.oracle import MAX_ORACLE_STALENESS
from .perps import DEFAULT_MAX_LEVERAGE, MAX_LEVERAGE, MIN_LEVERAGE


MAX_SWAP_FEE_BPS = 100
MAX_PERP_FEE_BPS = 50

MIN_PROPOSAL_SHARES = 1_000_000
PROPOSAL_VOTING_PERIOD = 5  # seconds
PROPOSAL_EXECUTION_DEADLINE = 60  # seconds after voting_end


@dataclass(frozen=True)
class ExchangeConfig:
    """Fees, leverage caps, liquidation parameters, pause flags and time windows."""

    admin: str = ""
    swap_fee_bps: int = 0
    perp_close_fee_bps: int = 0
    max_leverage: int = DEFAULT_MAX_LEVERAGE
    liquidation_bonus_bps: int = LIQUIDATION_BONUS_BPS
    max_liquidation_fraction_bps: int = MAX_LIQUIDATION_FRACTION_BPS
    perp_liquidation_threshold_bps: int = PERP_LIQUIDATION_THRESHOLD_BPS
    swap_paused: bool = False
    perp_paused: bool = False
    lending_paused: bool = False
    max_oracle_staleness: int = MAX_ORACLE_STALENESS
    funding_interval: int = FUNDING_INTERVAL
    min_proposal_shares: int = MIN_PROPOSAL_SHARES
    proposal_voting_period: int = PROPOSAL_VOTING_PERIOD
    proposal_execution_deadline: int = PROPOSAL_EXECUTION_DEADLINE

    def __post_init__(self) -> None:
        if not isinstance(self.admin, str):
            raise TypeError("admin must be a str")
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "admin":
                continue
            if f.name.endswith("_paused"):
                if not isinstance(value, bool):
                    raise TypeError(f"{f.name} must be a bool")
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise TypeError(f"{f.name} must be a non-negative int")

        if self.swap_fee_bps > MAX_SWAP_FEE_BPS:
            raise error_for(ErrorCode.FEE_EXCEEDS_MAXIMUM, "swap_fee_bps")
        if self.perp_close_fee_bps > MAX_PERP_FEE_BPS:
            raise error_for(ErrorCode.FEE_EXCEEDS_MAXIMUM, "perp_close_fee_bps")
        if not (MIN_LEVERAGE <= self.max_leverage <= MAX_LEVERAGE):
            raise error_for(ErrorCode.LEVERAGE_OUT_OF_BOUNDS, str(self.max_leverage))
        for name in ("liquidation_bonus_bps", "max_liquidation_fraction_bps", "perp_liquidation_threshold_bps"):
            if getattr(self, name) > BPS_DENOMINATOR:
                raise error_for(ErrorCode.INVALID_PARAMETER, f"{name} exceeds {BPS_DENOMINATOR}")
        if self.funding_interval == 0:
            raise error_for(ErrorCode.INVALID_PARAMETER, "funding_interval must be positive")


_FIELD_NAMES = frozenset(f.name for f in fields(ExchangeConfig))


def config_from_mapping(obj: Mapping[str, Any]) -> ExchangeConfig:
    """Build a config from a mapping; unknown keys are rejected."""
    if not isinstance(obj, Mapping):
        raise TypeError("config must be a mapping")
    unknown = sorted(set(obj) - _FIELD_NAMES)
    if unknown:
        raise ValueError(f"unknown config keys: {unknown}")
    return ExchangeConfig(**dict(obj))


def load_config(path: Union[str, Path]) -> ExchangeConfig:
    """Load an ``ExchangeConfig`` from a YAML file. An empty file yields defaults."""
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if obj is None:
        return ExchangeConfig()
    if not isinstance(obj, Mapping):
        raise TypeError("config YAML must be a mapping")
    return config_from_mapping(obj)
