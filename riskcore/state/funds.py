"""
Governed fund records: the fund itself and its priced holdings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..core.fixed_point import WAD
from .schema import SCHEMA_VERSION, check_i64, check_key, check_u64, check_u128, check_version


INITIAL_NAV_PER_SHARE = WAD
MAX_FUND_HOLDINGS = 20
MAX_ACTIVE_PROPOSALS = 10
MAX_PERFORMANCE_FEE_BPS = 2000
MAX_MANAGEMENT_FEE_BPS = 500


class FundStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    WINDING_DOWN = "winding_down"


class HoldingType(str, Enum):
    SPOT = "spot"
    PERP_LONG = "perp_long"
    PERP_SHORT = "perp_short"
    LENDING_DEPOSIT = "lending_deposit"
    LENDING_BORROW = "lending_borrow"

    @property
    def sign(self) -> int:
        """+1 for assets, -1 for liabilities."""
        if self in (HoldingType.PERP_SHORT, HoldingType.LENDING_BORROW):
            return -1
        return 1


@dataclass(frozen=True)
class Fund:
    """Pooled fund. ``nav_per_share``, ``total_nav`` and ``high_water_mark`` are WAD."""

    admin: str
    quote_mint: str
    share_mint: str
    vault: str
    fee_recipient: str = ""
    total_deposits: int = 0
    total_shares: int = 0
    nav_per_share: int = INITIAL_NAV_PER_SHARE
    total_nav: int = 0
    performance_fee_bps: int = 0
    management_fee_bps: int = 0
    total_proposals: int = 0
    active_proposals: int = 0
    total_holdings: int = 0
    status: FundStatus = FundStatus.ACTIVE
    created_at: int = 0
    last_nav_update: int = 0
    high_water_mark: int = INITIAL_NAV_PER_SHARE
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        for name in ("admin", "quote_mint", "share_mint", "vault"):
            check_key(name, getattr(self, name))
        if not isinstance(self.fee_recipient, str):
            raise TypeError("fee_recipient must be a str")
        for name in ("total_deposits", "total_shares", "performance_fee_bps", "management_fee_bps", "total_proposals"):
            check_u64(name, getattr(self, name))
        for name in ("nav_per_share", "total_nav", "high_water_mark"):
            check_u128(name, getattr(self, name))
        if not (0 <= self.active_proposals <= MAX_ACTIVE_PROPOSALS):
            raise ValueError(f"active_proposals out of range: {self.active_proposals}")
        if not (0 <= self.total_holdings <= MAX_FUND_HOLDINGS):
            raise ValueError(f"total_holdings out of range: {self.total_holdings}")
        if not isinstance(self.status, FundStatus):
            raise TypeError("status must be a FundStatus")
        check_i64("created_at", self.created_at)
        check_i64("last_nav_update", self.last_nav_update)


@dataclass(frozen=True)
class FundHolding:
    """One priced leg of a fund's portfolio."""

    fund: str
    mint: str
    oracle: str
    amount: int
    holding_type: HoldingType = HoldingType.SPOT
    value_wad: int = 0
    related_position: str = ""
    holding_index: int = 0
    last_updated: int = 0
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("fund", self.fund)
        check_key("mint", self.mint)
        check_key("oracle", self.oracle)
        check_u64("amount", self.amount)
        if not isinstance(self.holding_type, HoldingType):
            raise TypeError("holding_type must be a HoldingType")
        check_u128("value_wad", self.value_wad)
        if not isinstance(self.related_position, str):
            raise TypeError("related_position must be a str")
        if not (0 <= self.holding_index < MAX_FUND_HOLDINGS):
            raise ValueError(f"holding_index out of range: {self.holding_index}")
        check_i64("last_updated", self.last_updated)
