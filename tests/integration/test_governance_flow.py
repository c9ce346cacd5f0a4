"""Proposal lifecycle end to end: create, finalize, execute through the engines, expire."""

from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from riskcore.core.errors import CapacityError, DomainError, ErrorCode, OracleError, StateError
from riskcore.core.governance import TWAP_OFFSET, LendingActionData, PerpActionData, SwapActionData, encode_action
from riskcore.core.oracle import encode_price_feed
from riskcore.integration.fund_engine import initialize_fund
from riskcore.integration.governance import (
    ExecutionContext,
    create_proposal,
    execute_proposal,
    expire_proposal,
    finalize_proposal,
)
from riskcore.integration.perp_engine import OpenResult
from riskcore.integration.venues import Gateway, Instruction, default_registry
from riskcore.state.accounts import UserAccount
from riskcore.state.config import ExchangeConfig
from riskcore.state.funds import FundStatus
from riskcore.state.keys import fund_key
from riskcore.state.lending import LendingPool
from riskcore.state.perps import PerpMarket, Side
from riskcore.state.proposals import ACTION_DATA_LEN, ActionType, ProposalStatus


NOW = 1_700_000_000
CONFIG = ExchangeConfig()
SHARES = 1_000_000


class StaticGateway(Gateway):
    def __init__(self, amount_out: int) -> None:
        self.amount_out = amount_out

    def execute_external(self, venue: str, instruction: Instruction) -> int:
        return self.amount_out


def _fund(**kwargs):
    fund = initialize_fund("admin", "usdc", "shares", "vault", now=NOW)
    return replace(fund, **kwargs) if kwargs else fund


def _market_data(twap: int) -> bytes:
    data = bytearray(TWAP_OFFSET + 16 + 32)
    data[TWAP_OFFSET:TWAP_OFFSET + 16] = twap.to_bytes(16, "little")
    return bytes(data)


def _accounts(pass_twap: int, fail_twap: int) -> dict[str, bytes]:
    return {"pass-mkt": _market_data(pass_twap), "fail-mkt": _market_data(fail_twap)}


def _create(fund=None, action_type=ActionType.UPDATE_PARAM, payload=None, now=NOW):
    fund = fund or _fund()
    payload = payload if payload is not None else bytes(ACTION_DATA_LEN)
    return create_proposal(CONFIG, fund, "alice", SHARES, action_type, payload, "pass-mkt", "fail-mkt", now)


def _passed(action_type=ActionType.UPDATE_PARAM, payload=None):
    fund, proposal = _create(action_type=action_type, payload=payload)
    fund, proposal = finalize_proposal(
        CONFIG, fund, proposal, "anyone", proposal.voting_end,
        market_accounts=_accounts(101, 100),
    )
    assert proposal.status is ProposalStatus.PASSED
    return fund, proposal


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_schedule_and_counters(self):
        fund, proposal = _create()
        assert proposal.fund == fund_key(fund)
        assert proposal.proposal_index == 0
        assert proposal.voting_start == NOW
        assert proposal.voting_end == NOW + 5
        assert proposal.execution_deadline == NOW + 65
        assert proposal.status is ProposalStatus.ACTIVE
        assert fund.total_proposals == 1
        assert fund.active_proposals == 1

    def test_indices_increase(self):
        fund, _ = _create()
        fund, second = _create(fund)
        assert second.proposal_index == 1

    def test_below_share_threshold(self):
        with pytest.raises(DomainError) as exc:
            create_proposal(
                CONFIG, _fund(), "alice", SHARES - 1, ActionType.UPDATE_PARAM, bytes(ACTION_DATA_LEN), "p", "f", NOW
            )
        assert exc.value.code is ErrorCode.INSUFFICIENT_SHARES

    def test_active_cap(self):
        with pytest.raises(CapacityError) as exc:
            _create(_fund(active_proposals=10))
        assert exc.value.code is ErrorCode.MAX_ACTIVE_PROPOSALS

    def test_paused_fund(self):
        with pytest.raises(StateError) as exc:
            _create(_fund(status=FundStatus.PAUSED))
        assert exc.value.code is ErrorCode.FUND_PAUSED

    def test_malformed_payload(self):
        with pytest.raises(DomainError) as exc:
            _create(action_type=ActionType.BORROW, payload=b"\x01" * ACTION_DATA_LEN)
        assert exc.value.code is ErrorCode.INVALID_ACTION_DATA


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------

class TestFinalize:
    def test_tie_fails(self):
        fund, proposal = _create()
        fund, proposal = finalize_proposal(
            CONFIG, fund, proposal, "anyone", NOW + 5,
            market_accounts=_accounts(100, 100),
        )
        assert proposal.status is ProposalStatus.FAILED
        assert fund.active_proposals == 0

    def test_pass(self):
        fund, proposal = _passed()
        assert (proposal.pass_twap, proposal.fail_twap) == (101, 100)
        assert fund.active_proposals == 0

    def test_voting_not_ended(self):
        fund, proposal = _create()
        with pytest.raises(DomainError) as exc:
            finalize_proposal(
                CONFIG, fund, proposal, "anyone", NOW + 4,
                market_accounts=_accounts(2, 1),
            )
        assert exc.value.code is ErrorCode.VOTING_PERIOD_NOT_ENDED

    def test_accounts_under_other_keys_rejected(self):
        fund, proposal = _create()
        forged = {"forged-pass": _market_data(10**30), "forged-fail": _market_data(0)}
        with pytest.raises(OracleError) as exc:
            finalize_proposal(CONFIG, fund, proposal, "mallory", NOW + 5, market_accounts=forged)
        assert exc.value.code is ErrorCode.ORACLE_ACCOUNT_MISMATCH

    def test_fail_market_account_required(self):
        fund, proposal = _create()
        with pytest.raises(OracleError) as exc:
            finalize_proposal(
                CONFIG, fund, proposal, "anyone", NOW + 5, market_accounts={"pass-mkt": _market_data(10**30)}
            )
        assert exc.value.code is ErrorCode.ORACLE_ACCOUNT_MISMATCH

    def test_unrelated_accounts_are_ignored(self):
        fund, proposal = _create()
        accounts = {**_accounts(1, 2), "other-mkt": _market_data(10**30)}
        _, out = finalize_proposal(CONFIG, fund, proposal, "anyone", NOW + 5, market_accounts=accounts)
        assert out.status is ProposalStatus.FAILED

    def test_admin_override(self):
        fund, proposal = _create()
        _, out = finalize_proposal(CONFIG, fund, proposal, "admin", NOW + 5, admin_pass_twap=7, admin_fail_twap=3)
        assert out.status is ProposalStatus.PASSED

    def test_override_by_non_admin(self):
        fund, proposal = _create()
        with pytest.raises(StateError) as exc:
            finalize_proposal(CONFIG, fund, proposal, "mallory", NOW + 5, admin_pass_twap=7, admin_fail_twap=3)
        assert exc.value.code is ErrorCode.UNAUTHORIZED

    def test_no_twap_source_before_deadline(self):
        fund, proposal = _create()
        with pytest.raises(StateError):
            finalize_proposal(CONFIG, fund, proposal, "anyone", NOW + 5)

    def test_no_twap_source_after_deadline_fails(self):
        fund, proposal = _create()
        _, out = finalize_proposal(CONFIG, fund, proposal, "anyone", NOW + 66)
        assert out.status is ProposalStatus.FAILED

    def test_other_funds_proposal(self):
        _, proposal = _create()
        other = initialize_fund("admin", "usdc", "other-shares", "vault2")
        with pytest.raises(StateError) as exc:
            finalize_proposal(CONFIG, other, proposal, "admin", NOW + 5, admin_pass_twap=1, admin_fail_twap=0)
        assert exc.value.code is ErrorCode.INVALID_PARAMETER


# ---------------------------------------------------------------------------
# Execute
# ---------------------------------------------------------------------------

class TestExecute:
    def _context(self, fund, **kwargs) -> ExecutionContext:
        base = dict(user=UserAccount(owner=fund_key(fund)))
        base.update(kwargs)
        return ExecutionContext(**base)

    def test_update_param_is_a_no_op(self):
        fund, proposal = _passed()
        res = execute_proposal(CONFIG, fund, proposal, self._context(fund), NOW + 10)
        assert res.proposal.status is ProposalStatus.EXECUTED
        assert res.proposal.executed_at == NOW + 10
        assert res.outcome is None

    def test_open_perp_as_fund(self, caplog):
        payload = encode_action(PerpActionData(market_index=0, is_long=True, size=10, collateral=100))
        fund, proposal = _passed(ActionType.OPEN_PERP, payload)
        market = PerpMarket(base_mint="sol", quote_mint="usdc", oracle="oracle-sol", max_open_interest=1_000)
        context = self._context(
            fund,
            perp_markets={0: market},
            feeds={"oracle-sol": encode_price_feed(100_000_000, -6, NOW + 10)},
        )
        with caplog.at_level(logging.INFO, logger="riskcore.integration.governance"):
            res = execute_proposal(CONFIG, fund, proposal, context, NOW + 10)
        assert isinstance(res.outcome, OpenResult)
        assert res.outcome.position.owner == fund_key(fund)
        assert res.outcome.position.side is Side.LONG
        assert "proposal executed" in caplog.text

    def test_deposit_lending_opens_fund_position(self):
        payload = encode_action(LendingActionData(pool_index=0, amount=5_000))
        fund, proposal = _passed(ActionType.DEPOSIT_LENDING, payload)
        context = self._context(fund, lending_pools={0: LendingPool(mint="usdc", oracle="oracle-usdc")})
        res = execute_proposal(CONFIG, fund, proposal, context, NOW + 10)
        assert res.outcome.position.owner == fund_key(fund)
        assert res.outcome.pool.total_deposits == 5_000

    def test_borrow_without_position(self):
        payload = encode_action(LendingActionData(pool_index=0, amount=5))
        fund, proposal = _passed(ActionType.BORROW, payload)
        context = self._context(fund, lending_pools={0: LendingPool(mint="usdc", oracle="oracle-usdc")})
        with pytest.raises(StateError) as exc:
            execute_proposal(CONFIG, fund, proposal, context, NOW + 10)
        assert exc.value.code is ErrorCode.POSITION_NOT_FOUND

    def test_swap_through_venue(self):
        payload = encode_action(SwapActionData("0x" + "11" * 32, "0x" + "22" * 32, 10_000, 9_000))
        fund, proposal = _passed(ActionType.SWAP, payload)
        context = self._context(fund, registry=default_registry(), gateway=StaticGateway(9_500), venue="gamma")
        res = execute_proposal(CONFIG, fund, proposal, context, NOW + 10)
        assert res.outcome.amount_out == 9_500

    def test_failed_action_leaves_proposal_passed(self):
        payload = encode_action(SwapActionData("0x" + "11" * 32, "0x" + "22" * 32, 10_000, 9_000))
        fund, proposal = _passed(ActionType.SWAP, payload)
        context = self._context(fund, registry=default_registry(), gateway=StaticGateway(8_000), venue="gamma")
        with pytest.raises(DomainError) as exc:
            execute_proposal(CONFIG, fund, proposal, context, NOW + 10)
        assert exc.value.code is ErrorCode.SLIPPAGE_EXCEEDED
        assert proposal.status is ProposalStatus.PASSED

    def test_missing_market(self):
        payload = encode_action(PerpActionData(market_index=3, is_long=False, size=1, collateral=1))
        fund, proposal = _passed(ActionType.OPEN_PERP, payload)
        with pytest.raises(StateError):
            execute_proposal(CONFIG, fund, proposal, self._context(fund), NOW + 10)

    def test_not_passed(self):
        fund, proposal = _create()
        with pytest.raises(DomainError) as exc:
            execute_proposal(CONFIG, fund, proposal, self._context(fund), NOW + 10)
        assert exc.value.code is ErrorCode.PROPOSAL_NOT_PASSED

    def test_after_deadline(self):
        fund, proposal = _passed()
        with pytest.raises(DomainError) as exc:
            execute_proposal(CONFIG, fund, proposal, self._context(fund), proposal.execution_deadline + 1)
        assert exc.value.code is ErrorCode.PROPOSAL_EXPIRED

    def test_context_user_must_be_fund(self):
        fund, proposal = _passed()
        with pytest.raises(StateError) as exc:
            execute_proposal(CONFIG, fund, proposal, ExecutionContext(user=UserAccount(owner="alice")), NOW + 10)
        assert exc.value.code is ErrorCode.UNAUTHORIZED


class TestExpire:
    def test_expire_after_deadline(self, caplog):
        _, proposal = _passed()
        with caplog.at_level(logging.WARNING, logger="riskcore.integration.governance"):
            out = expire_proposal(proposal, proposal.execution_deadline + 1)
        assert out.status is ProposalStatus.EXPIRED
        assert "proposal expired" in caplog.text

    def test_expire_inside_window(self):
        _, proposal = _passed()
        with pytest.raises(StateError):
            expire_proposal(proposal, proposal.execution_deadline)
