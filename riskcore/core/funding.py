"""
Perpetual funding: imbalance-driven rate, mirrored cumulative indices,
per-position settlement and mark-to-market PnL.

Sign convention: a positive rate means longs pay shorts. A positive funding
payment means the position pays; a negative one means it receives.
"""

from __future__ import annotations

from dataclasses import replace

from ..state.perps import PerpMarket, Side
from .errors import ErrorCode, require
from .fixed_point import PRICE_PRECISION, WAD, _div_trunc, to_i64, to_i128, wad_mul_signed

FUNDING_INTERVAL = 3600  # seconds
MAX_FUNDING_RATE = 10_000_000_000_000_000  # 1% per interval (WAD)


def calculate_funding_rate(long_open_interest: int, short_open_interest: int) -> int:
    """``clamp((long - short) * WAD / (long + short), -MAX, +MAX)``; 0 with no OI."""
    total = long_open_interest + short_open_interest
    if total == 0:
        return 0
    imbalance = long_open_interest - short_open_interest
    rate = _div_trunc(to_i128(imbalance * WAD), total)
    return max(-MAX_FUNDING_RATE, min(MAX_FUNDING_RATE, rate))


def update_funding(market: PerpMarket, now: int, interval: int = FUNDING_INTERVAL) -> PerpMarket:
    """Apply one funding tick, at most once per ``interval`` seconds."""
    require(
        now - market.last_funding_update >= interval,
        ErrorCode.FUNDING_INTERVAL_NOT_ELAPSED,
        f"{now - market.last_funding_update}s < {interval}s",
    )
    rate = calculate_funding_rate(market.long_open_interest, market.short_open_interest)
    return replace(
        market,
        funding_rate=rate,
        cumulative_funding_long=to_i128(market.cumulative_funding_long + rate),
        cumulative_funding_short=to_i128(market.cumulative_funding_short - rate),
        last_funding_update=now,
    )


def compute_position_funding(
    size: int,
    side: Side,
    cumulative_funding_long: int,
    cumulative_funding_short: int,
    snapshot: int,
) -> int:
    """Funding owed since ``snapshot``: ``size * (index_now - snapshot) / WAD`` (i64)."""
    current = cumulative_funding_long if side is Side.LONG else cumulative_funding_short
    delta = to_i128(current - snapshot)
    return to_i64(wad_mul_signed(size, delta))


def compute_pnl(side: Side, size: int, entry_price: int, current_price: int) -> int:
    """Unrealized PnL in quote units, truncated toward zero (i64)."""
    if side is Side.LONG:
        diff = current_price - entry_price
    else:
        diff = entry_price - current_price
    return to_i64(_div_trunc(to_i128(size * diff), PRICE_PRECISION))
