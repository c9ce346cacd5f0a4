"""
Perpetual market and position records.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .schema import SCHEMA_VERSION, check_bool, check_i64, check_i128, check_key, check_u64, check_version


MIN_LEVERAGE = 1
MAX_LEVERAGE = 50
DEFAULT_MAX_LEVERAGE = 20


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def from_is_long(cls, is_long: bool) -> "Side":
        return cls.LONG if is_long else cls.SHORT


@dataclass(frozen=True)
class PerpMarket:
    """Perpetual futures market.

    Open interest is tracked per side in base units and capped by
    ``max_open_interest``. The two cumulative funding indices move by the same
    magnitude in opposite directions on every funding update.
    """

    base_mint: str
    quote_mint: str
    oracle: str
    market_index: int = 0
    max_leverage: int = DEFAULT_MAX_LEVERAGE
    min_position_size: int = 1
    long_open_interest: int = 0
    short_open_interest: int = 0
    max_open_interest: int = 0
    funding_rate: int = 0
    cumulative_funding_long: int = 0
    cumulative_funding_short: int = 0
    last_funding_update: int = 0
    paused: bool = False
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("base_mint", self.base_mint)
        check_key("quote_mint", self.quote_mint)
        check_key("oracle", self.oracle)
        check_u64("market_index", self.market_index)
        check_u64("max_leverage", self.max_leverage)
        if not (MIN_LEVERAGE <= self.max_leverage <= MAX_LEVERAGE):
            raise ValueError(f"max_leverage out of range [{MIN_LEVERAGE}, {MAX_LEVERAGE}]: {self.max_leverage}")
        for name in ("min_position_size", "long_open_interest", "short_open_interest", "max_open_interest"):
            check_u64(name, getattr(self, name))
        for name in ("funding_rate", "cumulative_funding_long", "cumulative_funding_short"):
            check_i128(name, getattr(self, name))
        check_i64("last_funding_update", self.last_funding_update)
        check_bool("paused", self.paused)

    def open_interest(self, side: Side) -> int:
        return self.long_open_interest if side is Side.LONG else self.short_open_interest

    def cumulative_funding(self, side: Side) -> int:
        return self.cumulative_funding_long if side is Side.LONG else self.cumulative_funding_short


@dataclass(frozen=True)
class PerpPosition:
    """Isolated-margin position. Prices are in ``PRICE_PRECISION`` units."""

    owner: str
    market: str
    side: Side
    size: int
    collateral: int
    entry_price: int
    leverage: int
    funding_index_snapshot: int = 0
    liquidation_price: int = 0
    # Price pnl, funding excluded. unrealized is refreshed by mark_position;
    # realized is written once, on the settled image returned by close/liquidate.
    realized_pnl: int = 0
    unrealized_pnl: int = 0
    opened_at: int = 0
    last_updated: int = 0
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        check_key("owner", self.owner)
        check_key("market", self.market)
        if not isinstance(self.side, Side):
            raise TypeError("side must be a Side")
        for name in ("size", "collateral", "entry_price", "leverage", "liquidation_price"):
            check_u64(name, getattr(self, name))
        check_i128("funding_index_snapshot", self.funding_index_snapshot)
        check_i64("realized_pnl", self.realized_pnl)
        check_i64("unrealized_pnl", self.unrealized_pnl)
        check_i64("opened_at", self.opened_at)
        check_i64("last_updated", self.last_updated)
