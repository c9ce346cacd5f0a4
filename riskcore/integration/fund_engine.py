"""
Governed fund: share issuance, redemption, NAV updates and holdings registry.

``nav_per_share`` changes only in ``update_fund_nav``; ``total_shares`` changes
only on deposit and withdrawal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Mapping, Sequence, Tuple

from ..core.errors import ErrorCode, error_for, require
from ..core.fixed_point import checked_add, checked_sub, to_u64
from ..core.nav import amount_for_shares, calculate_total_nav, holding_value_wad, ratchet_high_water_mark, shares_for_deposit
from ..core.oracle import price_for
from ..state.config import ExchangeConfig
from ..state.funds import (
    MAX_FUND_HOLDINGS,
    MAX_MANAGEMENT_FEE_BPS,
    MAX_PERFORMANCE_FEE_BPS,
    Fund,
    FundHolding,
    FundStatus,
)
from ..state.keys import fund_key


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundDepositResult:
    fund: Fund
    shares_minted: int
    vault_balance: int


@dataclass(frozen=True)
class FundWithdrawResult:
    fund: Fund
    amount_out: int
    vault_balance: int
    holder_shares: int


@dataclass(frozen=True)
class NavUpdateResult:
    fund: Fund
    holdings: Tuple[FundHolding, ...]


def initialize_fund(
    admin: str,
    quote_mint: str,
    share_mint: str,
    vault: str,
    *,
    performance_fee_bps: int = 0,
    management_fee_bps: int = 0,
    fee_recipient: str = "",
    now: int = 0,
) -> Fund:
    require(performance_fee_bps <= MAX_PERFORMANCE_FEE_BPS, ErrorCode.FEE_EXCEEDS_MAXIMUM, "performance_fee_bps")
    require(management_fee_bps <= MAX_MANAGEMENT_FEE_BPS, ErrorCode.FEE_EXCEEDS_MAXIMUM, "management_fee_bps")
    fund = Fund(
        admin=admin,
        quote_mint=quote_mint,
        share_mint=share_mint,
        vault=vault,
        fee_recipient=fee_recipient or admin,
        performance_fee_bps=performance_fee_bps,
        management_fee_bps=management_fee_bps,
        created_at=now,
        last_nav_update=now,
    )
    logger.info("fund initialized admin=%s share_mint=%s", admin, share_mint)
    return fund


def deposit_to_fund(config: ExchangeConfig, fund: Fund, amount: int, vault_balance: int) -> FundDepositResult:
    """Mint shares for ``amount`` at the current NAV (1:1 for the first deposit)."""
    if fund.status is FundStatus.WINDING_DOWN:
        raise error_for(ErrorCode.FUND_WINDING_DOWN)
    require(fund.status is FundStatus.ACTIVE, ErrorCode.FUND_PAUSED)
    require(amount > 0, ErrorCode.INVALID_AMOUNT)
    to_u64(amount)

    shares = shares_for_deposit(amount, fund.total_shares, fund.nav_per_share)
    fund = replace(
        fund,
        total_deposits=to_u64(checked_add(fund.total_deposits, amount)),
        total_shares=to_u64(checked_add(fund.total_shares, shares)),
    )
    logger.debug("fund deposit amount=%d shares=%d nav=%d", amount, shares, fund.nav_per_share)
    return FundDepositResult(
        fund=fund,
        shares_minted=shares,
        vault_balance=to_u64(checked_add(vault_balance, amount)),
    )


def withdraw_from_fund(
    config: ExchangeConfig,
    fund: Fund,
    shares: int,
    holder_shares: int,
    vault_balance: int,
) -> FundWithdrawResult:
    """Burn ``shares`` and redeem them at the current NAV out of the vault."""
    require(fund.status is not FundStatus.PAUSED, ErrorCode.FUND_PAUSED)
    require(shares > 0, ErrorCode.INVALID_AMOUNT)
    require(holder_shares >= shares, ErrorCode.INSUFFICIENT_SHARES)

    amount = amount_for_shares(shares, fund.nav_per_share)
    require(vault_balance >= amount, ErrorCode.INSUFFICIENT_FUND_LIQUIDITY, f"{amount} > {vault_balance}")

    fund = replace(fund, total_shares=checked_sub(fund.total_shares, shares))
    logger.debug("fund withdraw shares=%d amount=%d nav=%d", shares, amount, fund.nav_per_share)
    return FundWithdrawResult(
        fund=fund,
        amount_out=amount,
        vault_balance=vault_balance - amount,
        holder_shares=holder_shares - shares,
    )


def register_holding(fund: Fund, caller: str, holding: FundHolding) -> Tuple[Fund, FundHolding]:
    """Add a holding to the fund; it takes the next free holding index."""
    require(caller == fund.admin, ErrorCode.UNAUTHORIZED, "not the fund admin")
    require(holding.fund == fund_key(fund), ErrorCode.INVALID_PARAMETER, "holding belongs to another fund")
    require(fund.total_holdings < MAX_FUND_HOLDINGS, ErrorCode.MAX_FUND_HOLDINGS)
    holding = replace(holding, holding_index=fund.total_holdings)
    fund = replace(fund, total_holdings=fund.total_holdings + 1)
    return fund, holding


def update_fund_nav(
    config: ExchangeConfig,
    fund: Fund,
    vault_balance: int,
    holdings: Sequence[FundHolding],
    feeds: Mapping[str, bytes],
    now: int,
) -> NavUpdateResult:
    """Re-price every holding and recompute NAV.

    The full registered holding set must be supplied exactly once; a partial
    set would let a caller leave liabilities out of the NAV.
    """
    key = fund_key(fund)
    seen = set()
    for holding in holdings:
        require(holding.fund == key, ErrorCode.INVALID_PARAMETER, "holding belongs to another fund")
        require(holding.holding_index not in seen, ErrorCode.INVALID_PARAMETER, "duplicate holding")
        seen.add(holding.holding_index)
    require(len(seen) == fund.total_holdings, ErrorCode.INVALID_PARAMETER, "holding set incomplete")

    priced: List[Tuple[int, int, object]] = []
    repriced: List[FundHolding] = []
    for holding in holdings:
        price = price_for(holding.oracle, feeds, now, config.max_oracle_staleness).price
        priced.append((holding.amount, price, holding.holding_type))
        repriced.append(replace(holding, value_wad=holding_value_wad(holding.amount, price), last_updated=now))

    nav = calculate_total_nav(vault_balance, priced, fund.total_shares)
    fund = replace(
        fund,
        total_nav=nav.total_nav_wad,
        nav_per_share=nav.nav_per_share_wad,
        last_nav_update=now,
        high_water_mark=ratchet_high_water_mark(fund.high_water_mark, nav.nav_per_share_wad),
    )
    logger.debug("fund nav updated total=%d per_share=%d", nav.total_nav_wad, nav.nav_per_share_wad)
    return NavUpdateResult(fund=fund, holdings=tuple(repriced))
