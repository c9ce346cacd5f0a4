"""
Pure risk kernels: fixed-point math, oracle normalization, interest, funding,
liquidation, NAV and governance transitions. Nothing here performs I/O.
"""

from .errors import (
    CapacityError,
    DomainError,
    ErrorCode,
    MathError,
    OracleError,
    RiskError,
    StateError,
    StepOutcome,
    error_for,
    try_step,
)
from .fixed_point import BPS_DENOMINATOR, PRICE_PRECISION, WAD, bps_mul, wad_div, wad_mul, wad_mul_signed
from .oracle import OraclePrice, encode_price_feed, parse_price_feed
from .interest import accrue_interest, calculate_borrow_rate, get_balance, utilization
from .funding import calculate_funding_rate, compute_pnl, compute_position_funding, update_funding
from .liquidation import (
    compute_lending_health_factor,
    compute_lending_liquidation,
    compute_liquidation_price,
    compute_perp_health_factor,
    is_lending_liquidatable,
    is_perp_liquidatable,
)
from .nav import NavResult, calculate_total_nav
from .governance import decide_outcome, decode_action, encode_action

__all__ = [
    "CapacityError",
    "DomainError",
    "ErrorCode",
    "MathError",
    "OracleError",
    "RiskError",
    "StateError",
    "StepOutcome",
    "error_for",
    "try_step",
    "BPS_DENOMINATOR",
    "PRICE_PRECISION",
    "WAD",
    "bps_mul",
    "wad_div",
    "wad_mul",
    "wad_mul_signed",
    "OraclePrice",
    "encode_price_feed",
    "parse_price_feed",
    "accrue_interest",
    "calculate_borrow_rate",
    "get_balance",
    "utilization",
    "calculate_funding_rate",
    "compute_pnl",
    "compute_position_funding",
    "update_funding",
    "compute_lending_health_factor",
    "compute_lending_liquidation",
    "compute_liquidation_price",
    "compute_perp_health_factor",
    "is_lending_liquidatable",
    "is_perp_liquidatable",
    "NavResult",
    "calculate_total_nav",
    "decide_outcome",
    "decode_action",
    "encode_action",
]
