"""
Health factors and liquidation rules for perp and lending positions.

Perp health is in basis points of notional; lending health is a WAD ratio of
risk-weighted collateral to debt. Callers must pass an oracle price that has
already been validated as positive and fresh (see ``core.oracle``).
"""

from __future__ import annotations

from dataclasses import dataclass

from ..state.perps import Side
from .fixed_point import (
    BPS_DENOMINATOR,
    PRICE_PRECISION,
    U64_MAX,
    U128_MAX,
    WAD,
    bps_mul,
    checked_add,
    checked_mul,
    saturating_sub,
    to_i64,
    to_u64,
    wad_div,
    wad_mul,
)

PERP_LIQUIDATION_THRESHOLD_BPS = 500  # 5% margin ratio
LENDING_LIQUIDATION_THRESHOLD = WAD  # health < 1.0
LIQUIDATION_BONUS_BPS = 500
MAX_LIQUIDATION_FRACTION_BPS = 5_000


# -- Perp ----------------------------------------------------------------------

def compute_notional(size: int, price: int) -> int:
    return checked_mul(size, price) // PRICE_PRECISION


def compute_perp_health_factor(collateral: int, pnl: int, funding_payment: int, size: int, price: int) -> int:
    """Effective collateral over notional, in bps.

    0 when effective collateral is not positive (always liquidatable);
    ``U64_MAX`` when notional is 0 (no exposure, never liquidatable); otherwise
    saturates at ``U64_MAX``.
    """
    effective = to_i64(to_i64(collateral + pnl) - funding_payment)
    if effective <= 0:
        return 0
    notional = compute_notional(size, price)
    if notional == 0:
        return U64_MAX
    return min(checked_mul(effective, BPS_DENOMINATOR) // notional, U64_MAX)


def is_perp_liquidatable(health_bps: int, threshold_bps: int = PERP_LIQUIDATION_THRESHOLD_BPS) -> bool:
    return health_bps < threshold_bps


def compute_liquidation_price(
    side: Side,
    entry_price: int,
    collateral: int,
    size: int,
    threshold_bps: int = PERP_LIQUIDATION_THRESHOLD_BPS,
) -> int:
    """Price at which the position's margin falls to the maintenance threshold.

    Long positions floor at 0. Returns 0 for an empty position.
    """
    if size == 0:
        return 0
    margin_per_unit = checked_mul(collateral, PRICE_PRECISION) // size
    effective_margin = checked_mul(margin_per_unit, BPS_DENOMINATOR - threshold_bps) // BPS_DENOMINATOR
    if side is Side.LONG:
        return saturating_sub(entry_price, effective_margin)
    return to_u64(checked_add(entry_price, effective_margin))


# -- Lending -------------------------------------------------------------------

def compute_lending_health_factor(weighted_collateral_value: int, borrow_value: int) -> int:
    """WAD health; ``U128_MAX`` when there is no debt."""
    if borrow_value == 0:
        return U128_MAX
    return wad_div(weighted_collateral_value, borrow_value)


def lending_health(deposited: int, borrowed: int, price: int, collateral_factor: int) -> int:
    """Health of a single-asset position valued at ``price``."""
    weighted = wad_mul(checked_mul(deposited, price), collateral_factor)
    return compute_lending_health_factor(weighted, checked_mul(borrowed, price))


def is_lending_liquidatable(health: int) -> bool:
    return health < LENDING_LIQUIDATION_THRESHOLD


@dataclass(frozen=True)
class LendingLiquidation:
    actual_repay: int
    bonus: int
    collateral_to_seize: int


def compute_lending_liquidation(
    borrowed: int,
    deposited: int,
    repay_amount: int,
    bonus_bps: int = LIQUIDATION_BONUS_BPS,
    max_fraction_bps: int = MAX_LIQUIDATION_FRACTION_BPS,
) -> LendingLiquidation:
    """Repay at most ``max_fraction_bps`` of the debt; seize repay plus bonus.

    Seized collateral is capped at ``deposited``. A bonus the position cannot
    cover is simply not paid; this is never an error.
    """
    max_repay = bps_mul(borrowed, max_fraction_bps)
    actual_repay = min(repay_amount, max_repay)
    bonus = bps_mul(actual_repay, bonus_bps)
    seize = min(to_u64(actual_repay + bonus), deposited)
    return LendingLiquidation(actual_repay=actual_repay, bonus=bonus, collateral_to_seize=seize)
