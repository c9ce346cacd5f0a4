"""Fund engine: share issuance and redemption, holdings and NAV updates."""

from __future__ import annotations

from dataclasses import replace

import pytest

from riskcore.core.errors import CapacityError, DomainError, ErrorCode, OracleError, StateError
from riskcore.core.fixed_point import WAD
from riskcore.core.oracle import encode_price_feed
from riskcore.integration.fund_engine import (
    deposit_to_fund,
    initialize_fund,
    register_holding,
    update_fund_nav,
    withdraw_from_fund,
)
from riskcore.state.config import ExchangeConfig
from riskcore.state.funds import FundHolding, FundStatus, HoldingType
from riskcore.state.keys import fund_key


NOW = 1_700_000_000
CONFIG = ExchangeConfig()


def _fund(**kwargs):
    fund = initialize_fund("admin", "usdc", "shares", "vault", now=NOW)
    return replace(fund, **kwargs) if kwargs else fund


def _holding(fund, **kwargs) -> FundHolding:
    base = dict(fund=fund_key(fund), mint="sol", oracle="oracle-sol", amount=100)
    base.update(kwargs)
    return FundHolding(**base)


def _feeds(price: int = 1_000_000_000, now: int = NOW) -> dict[str, bytes]:
    return {"oracle-sol": encode_price_feed(price, -6, now)}


# ---------------------------------------------------------------------------
# Initialize
# ---------------------------------------------------------------------------

class TestInitialize:
    def test_initial_state(self):
        fund = _fund()
        assert fund.nav_per_share == WAD
        assert fund.high_water_mark == WAD
        assert fund.status is FundStatus.ACTIVE
        assert fund.fee_recipient == "admin"
        assert fund.created_at == NOW

    @pytest.mark.parametrize("kwargs", [{"performance_fee_bps": 2_001}, {"management_fee_bps": 501}])
    def test_fee_caps(self, kwargs):
        with pytest.raises(StateError) as exc:
            initialize_fund("admin", "usdc", "shares", "vault", **kwargs)
        assert exc.value.code is ErrorCode.FEE_EXCEEDS_MAXIMUM


# ---------------------------------------------------------------------------
# Deposit / withdraw
# ---------------------------------------------------------------------------

class TestDeposit:
    def test_first_deposit_is_one_to_one(self):
        res = deposit_to_fund(CONFIG, _fund(), 1_000_000, 0)
        assert res.shares_minted == 1_000_000
        assert res.fund.total_shares == 1_000_000
        assert res.fund.total_deposits == 1_000_000
        assert res.fund.nav_per_share == WAD
        assert res.vault_balance == 1_000_000

    def test_deposit_at_higher_nav(self):
        first = deposit_to_fund(CONFIG, _fund(), 1_000_000, 0)
        fund = replace(first.fund, nav_per_share=1_200_000_000_000_000_000)
        res = deposit_to_fund(CONFIG, fund, 500_000, first.vault_balance)
        assert res.shares_minted == 500_000 * WAD // 1_200_000_000_000_000_000
        assert res.fund.nav_per_share == fund.nav_per_share

    def test_paused(self):
        with pytest.raises(StateError) as exc:
            deposit_to_fund(CONFIG, _fund(status=FundStatus.PAUSED), 1, 0)
        assert exc.value.code is ErrorCode.FUND_PAUSED

    def test_winding_down(self):
        with pytest.raises(StateError) as exc:
            deposit_to_fund(CONFIG, _fund(status=FundStatus.WINDING_DOWN), 1, 0)
        assert exc.value.code is ErrorCode.FUND_WINDING_DOWN

    def test_zero(self):
        with pytest.raises(DomainError):
            deposit_to_fund(CONFIG, _fund(), 0, 0)


class TestWithdraw:
    def test_redeem_at_nav(self):
        fund = _fund(total_shares=1_000_000, nav_per_share=1_100_000_000_000_000_000)
        res = withdraw_from_fund(CONFIG, fund, 100_000, 200_000, 2_000_000)
        assert res.amount_out == 110_000
        assert res.fund.total_shares == 900_000
        assert res.holder_shares == 100_000
        assert res.vault_balance == 2_000_000 - 110_000

    def test_more_than_held(self):
        fund = _fund(total_shares=1_000_000)
        with pytest.raises(DomainError) as exc:
            withdraw_from_fund(CONFIG, fund, 10, 9, 1_000_000)
        assert exc.value.code is ErrorCode.INSUFFICIENT_SHARES

    def test_vault_short(self):
        fund = _fund(total_shares=1_000_000)
        with pytest.raises(CapacityError) as exc:
            withdraw_from_fund(CONFIG, fund, 1_000, 1_000, 999)
        assert exc.value.code is ErrorCode.INSUFFICIENT_FUND_LIQUIDITY

    def test_paused(self):
        fund = _fund(total_shares=1_000, status=FundStatus.PAUSED)
        with pytest.raises(StateError):
            withdraw_from_fund(CONFIG, fund, 1, 1, 1_000)

    def test_winding_down_allows_withdrawal(self):
        fund = _fund(total_shares=1_000, status=FundStatus.WINDING_DOWN)
        assert withdraw_from_fund(CONFIG, fund, 1, 1, 1_000).amount_out == 1


# ---------------------------------------------------------------------------
# Holdings and NAV
# ---------------------------------------------------------------------------

class TestHoldings:
    def test_register_assigns_index(self):
        fund = _fund()
        fund, first = register_holding(fund, "admin", _holding(fund))
        fund, second = register_holding(fund, "admin", _holding(fund, mint="eth"))
        assert (first.holding_index, second.holding_index) == (0, 1)
        assert fund.total_holdings == 2

    def test_register_admin_only(self):
        fund = _fund()
        with pytest.raises(StateError) as exc:
            register_holding(fund, "mallory", _holding(fund))
        assert exc.value.code is ErrorCode.UNAUTHORIZED

    def test_holding_cap(self):
        fund = _fund(total_holdings=20)
        with pytest.raises(CapacityError) as exc:
            register_holding(fund, "admin", _holding(fund))
        assert exc.value.code is ErrorCode.MAX_FUND_HOLDINGS


class TestNav:
    def _with_holdings(self, *holdings):
        fund = deposit_to_fund(CONFIG, _fund(), 1_000_000, 0).fund
        registered = []
        for holding in holdings:
            fund, h = register_holding(fund, "admin", replace(holding, fund=fund_key(fund)))
            registered.append(h)
        return fund, registered

    def test_spot_holding_raises_nav(self):
        fund, holdings = self._with_holdings(_holding(_fund()))
        res = update_fund_nav(CONFIG, fund, 1_000_000, holdings, _feeds(), NOW + 10)
        # 100 units at $1000 on top of $1M cash over 1M shares.
        assert res.fund.total_nav == 1_100_000 * WAD
        assert res.fund.nav_per_share == 1_100_000_000_000_000_000
        assert res.fund.high_water_mark == res.fund.nav_per_share
        assert res.fund.last_nav_update == NOW + 10
        assert res.holdings[0].value_wad == 100_000 * WAD

    def test_high_water_mark_does_not_fall(self):
        fund, holdings = self._with_holdings(_holding(_fund(), holding_type=HoldingType.LENDING_BORROW))
        fund = replace(fund, high_water_mark=2 * WAD)
        res = update_fund_nav(CONFIG, fund, 1_000_000, holdings, _feeds(), NOW)
        assert res.fund.nav_per_share == 900_000_000_000_000_000
        assert res.fund.high_water_mark == 2 * WAD

    def test_incomplete_holding_set(self):
        fund, holdings = self._with_holdings(
            _holding(_fund()), _holding(_fund(), mint="eth", holding_type=HoldingType.LENDING_BORROW)
        )
        with pytest.raises(StateError) as exc:
            update_fund_nav(CONFIG, fund, 1_000_000, holdings[:1], _feeds(), NOW)
        assert exc.value.code is ErrorCode.INVALID_PARAMETER

    def test_duplicate_holding(self):
        fund, holdings = self._with_holdings(_holding(_fund()), _holding(_fund(), mint="eth"))
        with pytest.raises(StateError):
            update_fund_nav(CONFIG, fund, 1_000_000, [holdings[0], holdings[0]], _feeds(), NOW)

    def test_foreign_holding(self):
        fund, holdings = self._with_holdings(_holding(_fund()))
        with pytest.raises(StateError):
            update_fund_nav(CONFIG, fund, 1_000_000, [replace(holdings[0], fund="other")], _feeds(), NOW)

    def test_missing_feed(self):
        fund, holdings = self._with_holdings(_holding(_fund()))
        with pytest.raises(OracleError) as exc:
            update_fund_nav(CONFIG, fund, 1_000_000, holdings, {}, NOW)
        assert exc.value.code is ErrorCode.ORACLE_ACCOUNT_MISMATCH

    def test_stale_feed(self):
        fund, holdings = self._with_holdings(_holding(_fund()))
        with pytest.raises(OracleError):
            update_fund_nav(CONFIG, fund, 1_000_000, holdings, _feeds(now=NOW - 61), NOW)

    def test_order_does_not_matter(self):
        fund, holdings = self._with_holdings(
            _holding(_fund(), amount=500),
            _holding(_fund(), mint="eth", amount=300, holding_type=HoldingType.PERP_SHORT),
        )
        forward = update_fund_nav(CONFIG, fund, 1, holdings, _feeds(), NOW)
        backward = update_fund_nav(CONFIG, fund, 1, list(reversed(holdings)), _feeds(), NOW)
        assert forward.fund == backward.fund
