"""
Perpetual futures operations: open, close, liquidate, mark, funding update.

Positions are isolated-margin. Prices come from the market's oracle feed and
are validated (positive, fresh) before any risk computation; a bad feed aborts
the operation instead of falling back to an older price.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from ..core.errors import ErrorCode, error_for, require
from ..core.fixed_point import bps_mul, checked_add, saturating_sub, to_i64, to_u64
from ..core.funding import compute_pnl, compute_position_funding, update_funding
from ..core.liquidation import compute_liquidation_price, compute_notional, compute_perp_health_factor, is_perp_liquidatable
from ..core.oracle import price_for
from ..state.accounts import MAX_PERP_POSITIONS, FeeVault, UserAccount
from ..state.config import ExchangeConfig
from ..state.keys import perp_market_key
from ..state.perps import MIN_LEVERAGE, PerpMarket, PerpPosition, Side


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenResult:
    market: PerpMarket
    position: PerpPosition
    user: UserAccount
    notional: int


@dataclass(frozen=True)
class CloseResult:
    market: PerpMarket
    position: PerpPosition
    user: UserAccount
    fee_vault: Optional[FeeVault]
    pnl: int
    funding_payment: int
    fee: int
    payout: int


@dataclass(frozen=True)
class PerpLiquidationResult:
    market: PerpMarket
    position: PerpPosition
    user: UserAccount
    pnl: int
    funding_payment: int
    health_bps: int
    liquidator_reward: int


def _check_market_open(config: ExchangeConfig, market: PerpMarket) -> None:
    require(not config.perp_paused, ErrorCode.EXCHANGE_PAUSED, "perps paused")
    require(not market.paused, ErrorCode.EXCHANGE_PAUSED, "market paused")


def _check_position(market: PerpMarket, position: PerpPosition) -> None:
    require(position.market == perp_market_key(market), ErrorCode.INVALID_PARAMETER, "position belongs to another market")


def _with_open_interest(market: PerpMarket, side: Side, value: int) -> PerpMarket:
    if side is Side.LONG:
        return replace(market, long_open_interest=value)
    return replace(market, short_open_interest=value)


def _mark(market: PerpMarket, position: PerpPosition, price: int) -> tuple[int, int]:
    """(pnl, funding_payment) for ``position`` at ``price``."""
    pnl = compute_pnl(position.side, position.size, position.entry_price, price)
    funding = compute_position_funding(
        position.size,
        position.side,
        market.cumulative_funding_long,
        market.cumulative_funding_short,
        position.funding_index_snapshot,
    )
    return pnl, funding


def _settled(position: PerpPosition, pnl: int, now: int) -> PerpPosition:
    # Final image of a consumed position, for the caller's history.
    return replace(position, realized_pnl=to_i64(position.realized_pnl + pnl), unrealized_pnl=0, last_updated=now)


def open_position(
    config: ExchangeConfig,
    market: PerpMarket,
    user: UserAccount,
    owner: str,
    side: Side,
    size: int,
    collateral: int,
    feeds: Mapping[str, bytes],
    now: int,
) -> OpenResult:
    """Open an isolated position at the oracle price.

    Leverage is ``notional // collateral`` and must lie in
    ``[1, min(market.max_leverage, config.max_leverage)]``.
    """
    _check_market_open(config, market)
    require(user.owner == owner, ErrorCode.UNAUTHORIZED, "user account belongs to another owner")
    if not isinstance(side, Side):
        raise TypeError("side must be a Side")
    require(size > 0, ErrorCode.POSITION_TOO_SMALL)
    require(collateral > 0, ErrorCode.INSUFFICIENT_COLLATERAL)
    to_u64(size)
    to_u64(collateral)
    require(user.open_perp_positions < MAX_PERP_POSITIONS, ErrorCode.MAX_PERP_POSITIONS_REACHED)

    price = price_for(market.oracle, feeds, now, config.max_oracle_staleness).price
    notional = compute_notional(size, price)
    leverage = notional // collateral
    max_leverage = min(market.max_leverage, config.max_leverage)
    require(
        MIN_LEVERAGE <= leverage <= max_leverage,
        ErrorCode.EXCESSIVE_LEVERAGE,
        f"leverage {leverage} outside [{MIN_LEVERAGE}, {max_leverage}]",
    )
    require(size >= market.min_position_size, ErrorCode.POSITION_TOO_SMALL)

    liquidation_price = compute_liquidation_price(side, price, collateral, size, config.perp_liquidation_threshold_bps)
    new_oi = checked_add(market.open_interest(side), size)
    require(new_oi <= market.max_open_interest, ErrorCode.OPEN_INTEREST_LIMIT_EXCEEDED)

    market = _with_open_interest(market, side, new_oi)
    position = PerpPosition(
        owner=owner,
        market=perp_market_key(market),
        side=side,
        size=size,
        collateral=collateral,
        entry_price=price,
        leverage=leverage,
        funding_index_snapshot=market.cumulative_funding(side),
        liquidation_price=liquidation_price,
        opened_at=now,
        last_updated=now,
    )
    user = replace(
        user,
        open_perp_positions=user.open_perp_positions + 1,
        total_trades=to_u64(user.total_trades + 1),
        total_volume=to_u64(user.total_volume + notional),
        last_activity=now,
    )
    logger.debug(
        "perp open owner=%s side=%s size=%d collateral=%d price=%d leverage=%d",
        owner,
        side.value,
        size,
        collateral,
        price,
        leverage,
    )
    return OpenResult(market=market, position=position, user=user, notional=notional)


def close_position(
    config: ExchangeConfig,
    market: PerpMarket,
    position: PerpPosition,
    user: UserAccount,
    owner: str,
    feeds: Mapping[str, bytes],
    now: int,
    fee_vault: Optional[FeeVault] = None,
) -> CloseResult:
    """Close a position; payout = collateral + pnl - funding - close fee (paid only if > 0).

    The position record is consumed; the caller deletes it on success.
    ``CloseResult.position`` is its settled image with ``realized_pnl`` filled in.
    """
    _check_market_open(config, market)
    _check_position(market, position)
    require(position.owner == owner, ErrorCode.UNAUTHORIZED, "not the position owner")
    require(user.owner == owner, ErrorCode.UNAUTHORIZED, "user account belongs to another owner")
    if fee_vault is not None:
        require(fee_vault.mint == market.quote_mint, ErrorCode.INVALID_PARAMETER, "fee vault mint mismatch")

    price = price_for(market.oracle, feeds, now, config.max_oracle_staleness).price
    pnl, funding = _mark(market, position, price)
    fee = bps_mul(compute_notional(position.size, price), config.perp_close_fee_bps)
    payout_signed = to_i64(to_i64(to_i64(position.collateral + pnl) - funding) - fee)
    payout = payout_signed if payout_signed > 0 else 0

    market = _with_open_interest(market, position.side, saturating_sub(market.open_interest(position.side), position.size))
    user = replace(
        user,
        open_perp_positions=max(user.open_perp_positions - 1, 0),
        total_pnl=to_i64(user.total_pnl + pnl),
        total_fees_paid=to_u64(user.total_fees_paid + fee),
        last_activity=now,
    )
    if fee_vault is not None and fee > 0:
        fee_vault = replace(fee_vault, collected_fees=to_u64(fee_vault.collected_fees + fee))

    logger.debug("perp close owner=%s pnl=%d funding=%d fee=%d payout=%d", owner, pnl, funding, fee, payout)
    return CloseResult(
        market=market,
        position=_settled(position, pnl, now),
        user=user,
        fee_vault=fee_vault,
        pnl=pnl,
        funding_payment=funding,
        fee=fee,
        payout=payout,
    )


def liquidate_perp(
    config: ExchangeConfig,
    market: PerpMarket,
    position: PerpPosition,
    user: UserAccount,
    feeds: Mapping[str, bytes],
    now: int,
) -> PerpLiquidationResult:
    """Permissionless liquidation of a position below the maintenance threshold."""
    require(not config.perp_paused, ErrorCode.EXCHANGE_PAUSED, "perps paused")
    _check_position(market, position)
    require(user.owner == position.owner, ErrorCode.INVALID_PARAMETER, "user account does not own the position")

    price = price_for(market.oracle, feeds, now, config.max_oracle_staleness).price
    pnl, funding = _mark(market, position, price)
    health = compute_perp_health_factor(position.collateral, pnl, funding, position.size, price)
    if not is_perp_liquidatable(health, config.perp_liquidation_threshold_bps):
        raise error_for(ErrorCode.NOT_LIQUIDATABLE, f"health {health} bps")

    bonus = bps_mul(position.collateral, config.liquidation_bonus_bps)
    remaining = to_i64(to_i64(position.collateral + pnl) - funding)
    reward = min(bonus, remaining) if remaining > 0 else 0

    market = _with_open_interest(market, position.side, saturating_sub(market.open_interest(position.side), position.size))
    user = replace(
        user,
        open_perp_positions=max(user.open_perp_positions - 1, 0),
        total_pnl=to_i64(user.total_pnl + pnl),
    )
    logger.info(
        "perp position liquidated owner=%s side=%s size=%d health_bps=%d reward=%d",
        position.owner,
        position.side.value,
        position.size,
        health,
        reward,
    )
    return PerpLiquidationResult(
        market=market,
        position=_settled(position, pnl, now),
        user=user,
        pnl=pnl,
        funding_payment=funding,
        health_bps=health,
        liquidator_reward=reward,
    )


def mark_position(
    config: ExchangeConfig,
    market: PerpMarket,
    position: PerpPosition,
    feeds: Mapping[str, bytes],
    now: int,
) -> PerpPosition:
    """Refresh ``unrealized_pnl`` at the oracle price. Permissionless; funding is not included."""
    _check_position(market, position)
    price = price_for(market.oracle, feeds, now, config.max_oracle_staleness).price
    pnl, _ = _mark(market, position, price)
    return replace(position, unrealized_pnl=to_i64(pnl), last_updated=now)


def update_funding_rate(config: ExchangeConfig, market: PerpMarket, now: int) -> PerpMarket:
    """Permissionless funding tick, at most once per ``config.funding_interval``."""
    market = update_funding(market, now, config.funding_interval)
    logger.debug(
        "funding updated market=%d rate=%d long=%d short=%d",
        market.market_index,
        market.funding_rate,
        market.cumulative_funding_long,
        market.cumulative_funding_short,
    )
    return market
