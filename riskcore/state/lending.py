"""
Lending pool and lending position records.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..core.fixed_point import WAD
from .schema import SCHEMA_VERSION, check_bool, check_i64, check_key, check_u64, check_u128, check_version


DEFAULT_OPTIMAL_UTILIZATION = 800_000_000_000_000_000  # 0.80
DEFAULT_BASE_RATE = 20_000_000_000_000_000  # 0.02
DEFAULT_SLOPE1 = 40_000_000_000_000_000  # 0.04
DEFAULT_SLOPE2 = 750_000_000_000_000_000  # 0.75
DEFAULT_COLLATERAL_FACTOR = 750_000_000_000_000_000  # 0.75


@dataclass(frozen=True)
class LendingPool:
    """Pooled lending market for one mint.

    Rate-curve parameters and ``collateral_factor`` are WAD fractions. Both
    cumulative indices start at ``WAD`` and never decrease. A limit of 0 means
    unlimited.
    """

    mint: str
    oracle: str
    vault: str = ""
    pool_index: int = 0
    optimal_utilization: int = DEFAULT_OPTIMAL_UTILIZATION
    base_rate: int = DEFAULT_BASE_RATE
    slope1: int = DEFAULT_SLOPE1
    slope2: int = DEFAULT_SLOPE2
    collateral_factor: int = DEFAULT_COLLATERAL_FACTOR
    total_deposits: int = 0
    total_borrows: int = 0
    cumulative_deposit_index: int = WAD
    cumulative_borrow_index: int = WAD
    last_update_timestamp: int = 0
    deposit_limit: int = 0
    borrow_limit: int = 0
    paused: bool = False
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("mint", self.mint)
        check_key("oracle", self.oracle)
        if not isinstance(self.vault, str):
            raise TypeError("vault must be a str")
        check_u64("pool_index", self.pool_index)
        for name in ("optimal_utilization", "collateral_factor"):
            value = getattr(self, name)
            check_u128(name, value)
            if value > WAD:
                raise ValueError(f"{name} must be <= WAD")
        if self.optimal_utilization == 0 or self.optimal_utilization == WAD:
            # Both kink segments divide by a nonzero width.
            raise ValueError("optimal_utilization must be strictly between 0 and WAD")
        for name in ("base_rate", "slope1", "slope2"):
            check_u128(name, getattr(self, name))
        for name in ("total_deposits", "total_borrows", "deposit_limit", "borrow_limit"):
            check_u64(name, getattr(self, name))
        for name in ("cumulative_deposit_index", "cumulative_borrow_index"):
            value = getattr(self, name)
            check_u128(name, value)
            if value < WAD:
                raise ValueError(f"{name} must be >= WAD")
        check_i64("last_update_timestamp", self.last_update_timestamp)
        check_bool("paused", self.paused)

    @property
    def available_liquidity(self) -> int:
        return max(self.total_deposits - self.total_borrows, 0)


@dataclass(frozen=True)
class LendingPosition:
    """One owner's deposit and borrow in one pool.

    Raw amounts are live balances as of the matching snapshot index; the live
    balance now is ``raw * current_index / snapshot`` (see ``core.interest``).
    """

    owner: str
    pool: str
    deposited_amount: int = 0
    borrowed_amount: int = 0
    deposit_index_snapshot: int = 0
    borrow_index_snapshot: int = 0
    last_updated: int = 0
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("owner", self.owner)
        check_key("pool", self.pool)
        check_u64("deposited_amount", self.deposited_amount)
        check_u64("borrowed_amount", self.borrowed_amount)
        check_u128("deposit_index_snapshot", self.deposit_index_snapshot)
        check_u128("borrow_index_snapshot", self.borrow_index_snapshot)
        check_i64("last_updated", self.last_updated)

    @property
    def is_empty(self) -> bool:
        return self.deposited_amount == 0 and self.borrowed_amount == 0
