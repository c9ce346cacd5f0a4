"""
Fund NAV aggregation and share pricing.

NAV = vault balance + sum(sign(holding) * value(holding)), all in WAD.
Assets and liabilities are summed separately before netting, so the result
does not depend on holding order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

from ..state.funds import HoldingType
from .errors import ErrorCode, require
from .fixed_point import PRICE_PRECISION, WAD, checked_add, checked_div, checked_mul, checked_sub, to_u64, to_wad


PricedHolding = Tuple[int, int, HoldingType]  # (amount, price, holding_type)


@dataclass(frozen=True)
class NavResult:
    total_nav_wad: int
    nav_per_share_wad: int


def holding_value_wad(amount: int, price: int) -> int:
    """``amount * price / PRICE_PRECISION`` scaled to WAD.

    WAD is a multiple of ``PRICE_PRECISION``, so the rescale is exact.
    """
    if amount == 0:
        return 0
    return checked_mul(checked_mul(to_u64(amount), to_u64(price)), WAD // PRICE_PRECISION)


def calculate_total_nav(vault_balance: int, holdings: Iterable[PricedHolding], total_shares: int) -> NavResult:
    """Net asset value and per-share NAV.

    Raises:
        MathError: ``MATH_UNDERFLOW`` when liabilities exceed assets.
    """
    assets = to_wad(vault_balance)
    liabilities = 0
    for amount, price, holding_type in holdings:
        value = holding_value_wad(amount, price)
        if holding_type.sign > 0:
            assets = checked_add(assets, value)
        else:
            liabilities = checked_add(liabilities, value)
    total = checked_sub(assets, liabilities)

    if total_shares == 0:
        per_share = WAD
    else:
        per_share = checked_div(total, total_shares)
    return NavResult(total_nav_wad=total, nav_per_share_wad=per_share)


def shares_for_deposit(amount: int, total_shares: int, nav_per_share: int) -> int:
    """Shares minted for ``amount``: 1:1 for the first deposit, else ``amount * WAD / nav``."""
    if total_shares == 0:
        shares = amount
    else:
        shares = to_u64(checked_div(checked_mul(amount, WAD), nav_per_share))
    require(shares > 0, ErrorCode.INVALID_AMOUNT, "deposit mints zero shares")
    return shares


def amount_for_shares(shares: int, nav_per_share: int) -> int:
    """Quote amount redeemed for ``shares`` (floor)."""
    amount = to_u64(checked_mul(shares, nav_per_share) // WAD)
    require(amount > 0, ErrorCode.INVALID_AMOUNT, "withdrawal redeems zero")
    return amount


def ratchet_high_water_mark(high_water_mark: int, nav_per_share: int) -> int:
    return max(high_water_mark, nav_per_share)
