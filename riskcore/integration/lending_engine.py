"""
Pooled lending operations.

Every operation accrues the pool to ``now`` first, then validates, then
returns the complete post-state. Nothing is mutated in place: a raised
``RiskError`` means the caller's records are exactly as they were.

Positions are re-priced on every mutation: the stored raw amount absorbs the
interest accrued since its snapshot and the snapshot moves to the current
index, so later reads see only interest earned from that point on. The same
delta is credited to the pool totals, which therefore always equal the sum of
the stored position amounts. Once all debt is repaid, every lender can
withdraw its full live balance.

Check order: authorization/pause -> input -> arithmetic -> domain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from ..core.errors import ErrorCode, error_for, require
from ..core.fixed_point import checked_add, checked_sub, saturating_sub, to_u64
from ..core.interest import accrue_interest, get_borrow_balance, get_deposit_balance
from ..core.liquidation import compute_lending_liquidation, is_lending_liquidatable, lending_health
from ..core.oracle import price_for
from ..state.accounts import MAX_LENDING_POSITIONS, UserAccount
from ..state.config import ExchangeConfig
from ..state.keys import lending_pool_key
from ..state.lending import LendingPool, LendingPosition


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LendingResult:
    pool: LendingPool
    position: LendingPosition
    amount: int
    user: Optional[UserAccount] = None


@dataclass(frozen=True)
class LendingLiquidationResult:
    pool: LendingPool
    position: LendingPosition
    actual_repay: int
    bonus: int
    collateral_seized: int


# -- Guards ----------------------------------------------------------------------

def _check_pool_open(config: ExchangeConfig, pool: LendingPool) -> None:
    require(not config.lending_paused, ErrorCode.EXCHANGE_PAUSED, "lending paused")
    require(not pool.paused, ErrorCode.EXCHANGE_PAUSED, "pool paused")


def _check_position(pool: LendingPool, position: LendingPosition, owner: Optional[str]) -> None:
    require(position.pool == lending_pool_key(pool), ErrorCode.INVALID_PARAMETER, "position belongs to another pool")
    if owner is not None:
        require(position.owner == owner, ErrorCode.UNAUTHORIZED, "not the position owner")


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise TypeError("amount must be an int")
    require(amount > 0, ErrorCode.INVALID_AMOUNT)
    to_u64(amount)


def _realize(pool: LendingPool, position: LendingPosition, now: int) -> tuple[LendingPool, LendingPosition]:
    """Fold accrued interest into the position and re-snapshot at the pool's indices.

    The pool totals move by exactly what the position gained, so they always
    equal the sum of the stored position amounts.
    """
    deposited = get_deposit_balance(position, pool)
    borrowed = get_borrow_balance(position, pool)
    pool = replace(
        pool,
        total_deposits=to_u64(pool.total_deposits + deposited - position.deposited_amount),
        total_borrows=to_u64(pool.total_borrows + borrowed - position.borrowed_amount),
    )
    position = replace(
        position,
        deposited_amount=deposited,
        borrowed_amount=borrowed,
        deposit_index_snapshot=pool.cumulative_deposit_index,
        borrow_index_snapshot=pool.cumulative_borrow_index,
        last_updated=now,
    )
    return pool, position


# -- Operations ------------------------------------------------------------------

def accrue(pool: LendingPool, now: int) -> LendingPool:
    """Permissionless accrual; see ``core.interest.accrue_interest``."""
    return accrue_interest(pool, now)


def open_lending_position(
    config: ExchangeConfig,
    pool: LendingPool,
    user: UserAccount,
    owner: str,
    now: int,
) -> tuple[LendingPosition, UserAccount]:
    """Create an empty position snapshotted at the pool's current indices."""
    _check_pool_open(config, pool)
    require(user.owner == owner, ErrorCode.UNAUTHORIZED, "user account belongs to another owner")
    require(
        user.open_lending_positions < MAX_LENDING_POSITIONS,
        ErrorCode.MAX_LENDING_POSITIONS_REACHED,
    )
    position = LendingPosition(
        owner=owner,
        pool=lending_pool_key(pool),
        deposit_index_snapshot=pool.cumulative_deposit_index,
        borrow_index_snapshot=pool.cumulative_borrow_index,
        last_updated=now,
    )
    user = replace(user, open_lending_positions=user.open_lending_positions + 1, last_activity=now)
    return position, user


def deposit(
    config: ExchangeConfig,
    pool: LendingPool,
    position: Optional[LendingPosition],
    user: UserAccount,
    owner: str,
    amount: int,
    now: int,
) -> LendingResult:
    """Deposit ``amount``; ``position=None`` opens a new position first."""
    _check_pool_open(config, pool)
    if position is not None:
        _check_position(pool, position, owner)
    require(user.owner == owner, ErrorCode.UNAUTHORIZED, "user account belongs to another owner")
    _check_amount(amount)

    pool = accrue_interest(pool, now)
    if position is not None:
        pool, position = _realize(pool, position, now)
    new_total = checked_add(pool.total_deposits, amount)
    to_u64(new_total)
    if pool.deposit_limit > 0:
        require(new_total <= pool.deposit_limit, ErrorCode.DEPOSIT_LIMIT_EXCEEDED, f"{new_total} > {pool.deposit_limit}")

    if position is None:
        position, user = open_lending_position(config, pool, user, owner, now)
    position = replace(position, deposited_amount=to_u64(position.deposited_amount + amount))
    pool = replace(pool, total_deposits=new_total)
    user = replace(user, last_activity=now)

    logger.debug("lending deposit owner=%s pool=%s amount=%d", owner, position.pool, amount)
    return LendingResult(pool=pool, position=position, amount=amount, user=user)


def withdraw(
    config: ExchangeConfig,
    pool: LendingPool,
    position: LendingPosition,
    owner: str,
    amount: int,
    feeds: Mapping[str, bytes],
    now: int,
) -> LendingResult:
    """Withdraw collateral; a position with debt must stay healthy afterwards."""
    _check_pool_open(config, pool)
    _check_position(pool, position, owner)
    _check_amount(amount)

    pool = accrue_interest(pool, now)
    pool, position = _realize(pool, position, now)
    require(position.deposited_amount >= amount, ErrorCode.INSUFFICIENT_COLLATERAL_VALUE)
    require(amount <= pool.available_liquidity, ErrorCode.INSUFFICIENT_POOL_LIQUIDITY)

    remaining = position.deposited_amount - amount
    if position.borrowed_amount > 0:
        price = price_for(pool.oracle, feeds, now, config.max_oracle_staleness).price
        health = lending_health(remaining, position.borrowed_amount, price, pool.collateral_factor)
        require(not is_lending_liquidatable(health), ErrorCode.WITHDRAWAL_WOULD_LIQUIDATE)

    position = replace(position, deposited_amount=remaining)
    pool = replace(pool, total_deposits=checked_sub(pool.total_deposits, amount))
    logger.debug("lending withdraw owner=%s pool=%s amount=%d", owner, position.pool, amount)
    return LendingResult(pool=pool, position=position, amount=amount)


def borrow(
    config: ExchangeConfig,
    pool: LendingPool,
    position: LendingPosition,
    owner: str,
    amount: int,
    feeds: Mapping[str, bytes],
    now: int,
) -> LendingResult:
    """Borrow against the position's collateral."""
    _check_pool_open(config, pool)
    _check_position(pool, position, owner)
    _check_amount(amount)

    pool = accrue_interest(pool, now)
    pool, position = _realize(pool, position, now)
    require(amount <= pool.available_liquidity, ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, "exceeds available liquidity")
    new_total_borrows = to_u64(checked_add(pool.total_borrows, amount))
    if pool.borrow_limit > 0:
        require(new_total_borrows <= pool.borrow_limit, ErrorCode.INSUFFICIENT_POOL_LIQUIDITY, "exceeds borrow limit")

    price = price_for(pool.oracle, feeds, now, config.max_oracle_staleness).price
    new_borrowed = to_u64(position.borrowed_amount + amount)
    health = lending_health(position.deposited_amount, new_borrowed, price, pool.collateral_factor)
    require(not is_lending_liquidatable(health), ErrorCode.INSUFFICIENT_COLLATERAL_VALUE)

    position = replace(position, borrowed_amount=new_borrowed)
    pool = replace(pool, total_borrows=new_total_borrows)
    logger.debug("lending borrow owner=%s pool=%s amount=%d", owner, position.pool, amount)
    return LendingResult(pool=pool, position=position, amount=amount)


def repay(
    config: ExchangeConfig,
    pool: LendingPool,
    position: LendingPosition,
    owner: str,
    amount: int,
    now: int,
) -> LendingResult:
    """Repay up to the live debt; ``amount`` above the debt is not taken."""
    _check_pool_open(config, pool)
    _check_position(pool, position, owner)
    _check_amount(amount)

    pool = accrue_interest(pool, now)
    pool, position = _realize(pool, position, now)
    repay_amount = min(amount, position.borrowed_amount)
    require(repay_amount > 0, ErrorCode.INVALID_AMOUNT, "no outstanding debt")

    position = replace(position, borrowed_amount=position.borrowed_amount - repay_amount)
    pool = replace(pool, total_borrows=saturating_sub(pool.total_borrows, repay_amount))
    logger.debug("lending repay owner=%s pool=%s amount=%d", owner, position.pool, repay_amount)
    return LendingResult(pool=pool, position=position, amount=repay_amount)


def liquidate_lending(
    config: ExchangeConfig,
    pool: LendingPool,
    position: LendingPosition,
    repay_amount: int,
    feeds: Mapping[str, bytes],
    now: int,
) -> LendingLiquidationResult:
    """Repay part of an unhealthy position's debt in exchange for its collateral.

    Permissionless. At most ``max_liquidation_fraction_bps`` of the debt is
    repaid per call; the seized collateral includes the liquidation bonus but
    never exceeds what the position holds.
    """
    require(not config.lending_paused, ErrorCode.EXCHANGE_PAUSED, "lending paused")
    _check_position(pool, position, None)
    _check_amount(repay_amount)

    pool = accrue_interest(pool, now)
    price = price_for(pool.oracle, feeds, now, config.max_oracle_staleness).price
    pool, position = _realize(pool, position, now)
    health = lending_health(position.deposited_amount, position.borrowed_amount, price, pool.collateral_factor)
    if not is_lending_liquidatable(health):
        raise error_for(ErrorCode.LENDING_NOT_LIQUIDATABLE, f"health {health}")

    liq = compute_lending_liquidation(
        position.borrowed_amount,
        position.deposited_amount,
        repay_amount,
        config.liquidation_bonus_bps,
        config.max_liquidation_fraction_bps,
    )
    position = replace(
        position,
        borrowed_amount=saturating_sub(position.borrowed_amount, liq.actual_repay),
        deposited_amount=saturating_sub(position.deposited_amount, liq.collateral_to_seize),
    )
    pool = replace(
        pool,
        total_borrows=saturating_sub(pool.total_borrows, liq.actual_repay),
        total_deposits=saturating_sub(pool.total_deposits, liq.collateral_to_seize),
    )
    logger.info(
        "lending position liquidated owner=%s pool=%s repaid=%d seized=%d bonus=%d",
        position.owner,
        position.pool,
        liq.actual_repay,
        liq.collateral_to_seize,
        liq.bonus,
    )
    return LendingLiquidationResult(
        pool=pool,
        position=position,
        actual_repay=liq.actual_repay,
        bonus=liq.bonus,
        collateral_seized=liq.collateral_to_seize,
    )
