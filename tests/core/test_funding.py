"""Tests for riskcore/core/funding.py."""

from __future__ import annotations

import pytest
import hypothesis.strategies as st
from hypothesis import given

from riskcore.core.errors import DomainError, ErrorCode
from riskcore.core.fixed_point import WAD
from riskcore.core.funding import (
    FUNDING_INTERVAL,
    MAX_FUNDING_RATE,
    calculate_funding_rate,
    compute_pnl,
    compute_position_funding,
    update_funding,
)
from riskcore.state.perps import PerpMarket, Side


def _market(**kwargs) -> PerpMarket:
    base = dict(base_mint="sol", quote_mint="usdc", oracle="oracle-sol", max_open_interest=10**12)
    base.update(kwargs)
    return PerpMarket(**base)


class TestFundingRate:
    def test_no_open_interest(self):
        assert calculate_funding_rate(0, 0) == 0

    def test_balanced_is_zero(self):
        assert calculate_funding_rate(500, 500) == 0

    def test_clamped_to_max(self):
        assert calculate_funding_rate(1_000, 0) == MAX_FUNDING_RATE
        assert calculate_funding_rate(0, 1_000) == -MAX_FUNDING_RATE

    def test_small_imbalance_not_clamped(self):
        # (1001 - 999) / 2000 = 0.001
        assert calculate_funding_rate(1_001, 999) == WAD // 1_000

    @given(
        long_oi=st.integers(min_value=0, max_value=2**64 - 1),
        short_oi=st.integers(min_value=0, max_value=2**64 - 1),
    )
    def test_antisymmetric(self, long_oi, short_oi):
        assert calculate_funding_rate(long_oi, short_oi) == -calculate_funding_rate(short_oi, long_oi)


class TestUpdateFunding:
    def test_indices_mirror(self):
        market = _market(long_open_interest=1_001, short_open_interest=999)
        out = update_funding(market, FUNDING_INTERVAL)
        assert out.funding_rate == WAD // 1_000
        assert out.cumulative_funding_long == WAD // 1_000
        assert out.cumulative_funding_short == -(WAD // 1_000)
        assert out.last_funding_update == FUNDING_INTERVAL

    def test_rate_limited(self):
        market = _market(last_funding_update=1_000)
        with pytest.raises(DomainError) as exc:
            update_funding(market, 1_000 + FUNDING_INTERVAL - 1)
        assert exc.value.code is ErrorCode.FUNDING_INTERVAL_NOT_ELAPSED

    def test_custom_interval(self):
        market = _market(last_funding_update=1_000)
        assert update_funding(market, 1_060, interval=60).last_funding_update == 1_060


class TestPositionFunding:
    def test_long_pays_when_index_rises(self):
        assert compute_position_funding(1_000, Side.LONG, WAD // 100, 0, 0) == 10

    def test_short_receives_when_long_pays(self):
        assert compute_position_funding(1_000, Side.SHORT, WAD // 100, -(WAD // 100), 0) == -10

    def test_snapshot_subtracted(self):
        assert compute_position_funding(1_000, Side.LONG, WAD // 50, 0, WAD // 100) == 10

    def test_negative_truncates_toward_zero(self):
        # -1.5 -> -1
        assert compute_position_funding(3, Side.SHORT, 0, -(WAD // 2), 0) == -1


class TestPnl:
    def test_long_gain_scenario(self):
        assert compute_pnl(Side.LONG, 10, 100_000_000, 120_000_000) == 200

    def test_short_mirror(self):
        assert compute_pnl(Side.SHORT, 10, 100_000_000, 120_000_000) == -200

    def test_loss_truncates_toward_zero(self):
        # 3 * -500_000 / 1e6 = -1.5 -> -1
        assert compute_pnl(Side.LONG, 3, 1_000_000, 500_000) == -1

    @given(
        size=st.integers(min_value=0, max_value=10**9),
        entry=st.integers(min_value=1, max_value=10**12),
        price=st.integers(min_value=1, max_value=10**12),
    )
    def test_long_and_short_are_opposite(self, size, entry, price):
        assert compute_pnl(Side.LONG, size, entry, price) == -compute_pnl(Side.SHORT, size, entry, price)
