"""
Per-user account summary and per-mint fee vault.
"""

from __future__ import annotations

from dataclasses import dataclass

from .schema import SCHEMA_VERSION, check_i64, check_key, check_u64, check_version


MAX_PERP_POSITIONS = 10
MAX_LENDING_POSITIONS = 10


@dataclass(frozen=True)
class UserAccount:
    """Activity counters and open-position counts for one owner."""

    owner: str
    open_perp_positions: int = 0
    open_lending_positions: int = 0
    total_trades: int = 0
    total_pnl: int = 0
    total_volume: int = 0
    total_fees_paid: int = 0
    created_at: int = 0
    last_activity: int = 0
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("owner", self.owner)
        if not (0 <= self.open_perp_positions <= MAX_PERP_POSITIONS):
            raise ValueError(f"open_perp_positions out of range: {self.open_perp_positions}")
        if not (0 <= self.open_lending_positions <= MAX_LENDING_POSITIONS):
            raise ValueError(f"open_lending_positions out of range: {self.open_lending_positions}")
        for name in ("total_trades", "total_volume", "total_fees_paid"):
            check_u64(name, getattr(self, name))
        check_i64("total_pnl", self.total_pnl)
        check_i64("created_at", self.created_at)
        check_i64("last_activity", self.last_activity)


@dataclass(frozen=True)
class FeeVault:
    """Protocol fees and insurance held for one mint."""

    mint: str
    collected_fees: int = 0
    insurance_balance: int = 0
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("mint", self.mint)
        check_u64("collected_fees", self.collected_fees)
        check_u64("insurance_balance", self.insurance_balance)
