"""
Kinked interest-rate curve and cumulative-index accrual for lending pools.

Utilization ``u = total_borrows / total_deposits`` (WAD). The borrow rate is
piecewise linear with a kink at ``optimal_utilization``:

    u <= opt: base + (u / opt) * slope1
    u >  opt: base + slope1 + ((u - opt) / (1 - opt)) * slope2

Both segments meet at ``u == opt``, so the curve is continuous.

Indices compound per elapsed second on each accrual and never decrease; a
position's live balance is re-derived from its snapshot on every read.
"""

from __future__ import annotations

from dataclasses import replace

from ..state.lending import LendingPool, LendingPosition
from .fixed_point import WAD, checked_add, to_u64, wad_div, wad_mul

SECONDS_PER_YEAR = 365 * 24 * 3600


def utilization(pool: LendingPool) -> int:
    """Borrowed fraction of deposits (WAD); 0 when the pool is empty."""
    if pool.total_deposits == 0:
        return 0
    return wad_div(pool.total_borrows, pool.total_deposits)


def borrow_rate_at(u: int, optimal_utilization: int, base_rate: int, slope1: int, slope2: int) -> int:
    """Annual borrow rate (WAD) at utilization ``u``."""
    if u <= optimal_utilization:
        return checked_add(base_rate, wad_mul(wad_div(u, optimal_utilization), slope1))
    excess = u - optimal_utilization
    max_excess = WAD - optimal_utilization
    return checked_add(checked_add(base_rate, slope1), wad_mul(wad_div(excess, max_excess), slope2))


def calculate_borrow_rate(pool: LendingPool) -> int:
    if pool.total_deposits == 0:
        return pool.base_rate
    return borrow_rate_at(utilization(pool), pool.optimal_utilization, pool.base_rate, pool.slope1, pool.slope2)


def accrue_interest(pool: LendingPool, now: int) -> LendingPool:
    """Compound both indices up to ``now`` and return the updated pool.

    The first accrual only records the clock; duplicate or out-of-order calls
    change nothing (the timestamp never moves backwards).
    """
    last = pool.last_update_timestamp
    if last == 0:
        return replace(pool, last_update_timestamp=now)
    if now <= last:
        return pool

    elapsed = now - last
    rate = calculate_borrow_rate(pool)
    year_fraction = wad_div(elapsed, SECONDS_PER_YEAR)

    period_rate = wad_mul(rate, year_fraction)
    borrow_index = wad_mul(pool.cumulative_borrow_index, checked_add(WAD, period_rate))

    deposit_index = pool.cumulative_deposit_index
    if pool.total_deposits > 0:
        supply_rate = wad_mul(wad_mul(rate, utilization(pool)), year_fraction)
        deposit_index = wad_mul(deposit_index, checked_add(WAD, supply_rate))

    return replace(
        pool,
        cumulative_borrow_index=borrow_index,
        cumulative_deposit_index=deposit_index,
        last_update_timestamp=now,
    )


def get_balance(raw_amount: int, snapshot_index: int, current_index: int) -> int:
    """Live balance of ``raw_amount`` recorded at ``snapshot_index`` (floor).

    A zero amount or an unset snapshot reads back unchanged.
    """
    if raw_amount == 0 or snapshot_index == 0:
        return raw_amount
    growth = wad_div(current_index, snapshot_index)
    return to_u64(wad_mul(raw_amount, growth))


def get_borrow_balance(position: LendingPosition, pool: LendingPool) -> int:
    return get_balance(position.borrowed_amount, position.borrow_index_snapshot, pool.cumulative_borrow_index)


def get_deposit_balance(position: LendingPosition, pool: LendingPool) -> int:
    return get_balance(position.deposited_amount, position.deposit_index_snapshot, pool.cumulative_deposit_index)
