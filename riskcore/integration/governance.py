"""
Futarchy governance over a fund: create, finalize, execute and expire proposals.

A proposal carries one encoded fund action. Once its pass market's TWAP beats
the fail market's, anyone may execute it before the deadline; execution
dispatches to the swap, perp or lending engine with the fund as the acting
owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Tuple

from ..core import governance as lifecycle
from ..core.errors import ErrorCode, error_for, require
from ..state.accounts import FeeVault, UserAccount
from ..state.config import ExchangeConfig
from ..state.funds import MAX_ACTIVE_PROPOSALS, Fund, FundStatus
from ..state.keys import fund_key
from ..state.lending import LendingPool, LendingPosition
from ..state.perps import PerpMarket, PerpPosition, Side
from ..state.proposals import ActionType, Proposal, ProposalStatus
from . import lending_engine, perp_engine
from .venues import Gateway, VenueRegistry, execute_swap


logger = logging.getLogger(__name__)


def create_proposal(
    config: ExchangeConfig,
    fund: Fund,
    proposer: str,
    proposer_shares: int,
    action_type: ActionType,
    action_payload: bytes,
    pass_market: str,
    fail_market: str,
    now: int,
) -> Tuple[Fund, Proposal]:
    """Open a proposal; voting closes ``proposal_voting_period`` seconds from ``now``."""
    require(fund.status is FundStatus.ACTIVE, ErrorCode.FUND_PAUSED)
    require(fund.active_proposals < MAX_ACTIVE_PROPOSALS, ErrorCode.MAX_ACTIVE_PROPOSALS)
    require(proposer_shares >= config.min_proposal_shares, ErrorCode.INSUFFICIENT_SHARES, "below proposal threshold")
    if not isinstance(action_type, ActionType):
        raise error_for(ErrorCode.INVALID_ACTION_DATA, f"unknown action type {action_type!r}")
    lifecycle.decode_action(action_type, action_payload)

    voting_end = now + config.proposal_voting_period
    proposal = Proposal(
        fund=fund_key(fund),
        proposer=proposer,
        action_type=action_type,
        action_payload=bytes(action_payload),
        pass_market=pass_market,
        fail_market=fail_market,
        proposal_index=fund.total_proposals,
        voting_start=now,
        voting_end=voting_end,
        execution_deadline=voting_end + config.proposal_execution_deadline,
    )
    fund = replace(
        fund,
        total_proposals=fund.total_proposals + 1,
        active_proposals=fund.active_proposals + 1,
    )
    logger.info(
        "proposal created index=%d action=%s voting_end=%d",
        proposal.proposal_index,
        action_type.value,
        voting_end,
    )
    return fund, proposal


def _market_twap(market_accounts: Mapping[str, bytes], market: str) -> int:
    data = market_accounts.get(market)
    require(data is not None, ErrorCode.ORACLE_ACCOUNT_MISMATCH, f"no account data for market {market}")
    return lifecycle.read_conditional_twap(data)


def finalize_proposal(
    config: ExchangeConfig,
    fund: Fund,
    proposal: Proposal,
    caller: str,
    now: int,
    *,
    market_accounts: Optional[Mapping[str, bytes]] = None,
    admin_pass_twap: Optional[int] = None,
    admin_fail_twap: Optional[int] = None,
) -> Tuple[Fund, Proposal]:
    """Settle voting from the conditional markets' TWAPs.

    ``market_accounts`` maps market keys to account data; the TWAPs are read
    from the entries for the proposal's own pass and fail markets. The fund
    admin may supply the TWAPs directly instead. With neither, the proposal can
    only be finalized after its execution deadline, and then fails.
    """
    require(proposal.status is ProposalStatus.ACTIVE, ErrorCode.PROPOSAL_NOT_ACTIVE, proposal.status.value)
    require(proposal.fund == fund_key(fund), ErrorCode.INVALID_PARAMETER, "proposal belongs to another fund")
    require(now >= proposal.voting_end, ErrorCode.VOTING_PERIOD_NOT_ENDED)

    if admin_pass_twap is not None or admin_fail_twap is not None:
        require(caller == fund.admin, ErrorCode.UNAUTHORIZED, "TWAP override is admin only")
        require(
            admin_pass_twap is not None and admin_fail_twap is not None,
            ErrorCode.INVALID_PARAMETER,
            "both TWAPs required",
        )
        pass_twap, fail_twap = admin_pass_twap, admin_fail_twap
    elif market_accounts:
        pass_twap = _market_twap(market_accounts, proposal.pass_market)
        fail_twap = _market_twap(market_accounts, proposal.fail_market)
    else:
        require(now > proposal.execution_deadline, ErrorCode.INVALID_PARAMETER, "no TWAP source")
        pass_twap, fail_twap = 0, 0

    proposal = lifecycle.finalize(proposal, now, pass_twap, fail_twap)
    fund = replace(fund, active_proposals=max(fund.active_proposals - 1, 0))
    logger.info(
        "proposal finalized index=%d status=%s pass_twap=%d fail_twap=%d",
        proposal.proposal_index,
        proposal.status.value,
        pass_twap,
        fail_twap,
    )
    return fund, proposal


@dataclass(frozen=True)
class ExecutionContext:
    """Records an executed action may touch, keyed by market/pool index.

    ``user`` is the fund's own account; its owner must be the fund key.
    """

    user: UserAccount
    feeds: Mapping[str, bytes] = field(default_factory=dict)
    registry: Optional[VenueRegistry] = None
    gateway: Optional[Gateway] = None
    venue: str = ""
    fee_vault: Optional[FeeVault] = None
    perp_markets: Mapping[int, PerpMarket] = field(default_factory=dict)
    perp_positions: Mapping[int, PerpPosition] = field(default_factory=dict)
    lending_pools: Mapping[int, LendingPool] = field(default_factory=dict)
    lending_positions: Mapping[int, LendingPosition] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionResult:
    proposal: Proposal
    outcome: Any = None


def _market(context: ExecutionContext, index: int) -> PerpMarket:
    market = context.perp_markets.get(index)
    if market is None or market.market_index != index:
        raise error_for(ErrorCode.INVALID_PARAMETER, f"perp market {index} not supplied")
    return market


def _pool(context: ExecutionContext, index: int) -> LendingPool:
    pool = context.lending_pools.get(index)
    if pool is None or pool.pool_index != index:
        raise error_for(ErrorCode.INVALID_PARAMETER, f"lending pool {index} not supplied")
    return pool


def _lending_position(context: ExecutionContext, index: int) -> LendingPosition:
    position = context.lending_positions.get(index)
    if position is None:
        raise error_for(ErrorCode.POSITION_NOT_FOUND, f"no lending position in pool {index}")
    return position


def _dispatch(config: ExchangeConfig, owner: str, action_type: ActionType, action: Any, context: ExecutionContext, now: int) -> Any:
    feeds = context.feeds
    if action_type is ActionType.SWAP:
        if context.registry is None or context.gateway is None:
            raise error_for(ErrorCode.UNSUPPORTED_PROTOCOL, "no swap venue configured")
        return execute_swap(
            config,
            context.registry,
            context.gateway,
            context.venue,
            action.amount_in,
            action.minimum_amount_out,
            context.fee_vault,
            signer=owner,
            user=context.user,
            now=now,
        )

    if action_type is ActionType.OPEN_PERP:
        market = _market(context, action.market_index)
        return perp_engine.open_position(
            config, market, context.user, owner, Side.from_is_long(action.is_long), action.size, action.collateral, feeds, now
        )
    if action_type is ActionType.CLOSE_PERP:
        market = _market(context, action.market_index)
        position = context.perp_positions.get(action.market_index)
        if position is None:
            raise error_for(ErrorCode.POSITION_NOT_FOUND, f"no perp position in market {action.market_index}")
        return perp_engine.close_position(config, market, position, context.user, owner, feeds, now, fee_vault=context.fee_vault)

    pool = _pool(context, action.pool_index)
    if action_type is ActionType.DEPOSIT_LENDING:
        position = context.lending_positions.get(action.pool_index)
        return lending_engine.deposit(config, pool, position, context.user, owner, action.amount, now)
    if action_type is ActionType.WITHDRAW_LENDING:
        position = _lending_position(context, action.pool_index)
        return lending_engine.withdraw(config, pool, position, owner, action.amount, feeds, now)
    if action_type is ActionType.BORROW:
        position = _lending_position(context, action.pool_index)
        return lending_engine.borrow(config, pool, position, owner, action.amount, feeds, now)
    if action_type is ActionType.REPAY:
        position = _lending_position(context, action.pool_index)
        return lending_engine.repay(config, pool, position, owner, action.amount, now)
    raise error_for(ErrorCode.INVALID_ACTION_DATA, f"unhandled action type {action_type!r}")


def execute_proposal(
    config: ExchangeConfig,
    fund: Fund,
    proposal: Proposal,
    context: ExecutionContext,
    now: int,
) -> ExecutionResult:
    """Run a passed proposal's action. Permissionless.

    The proposal is marked EXECUTED only if the action itself succeeds; any
    engine error propagates and the proposal stays PASSED.
    """
    lifecycle.check_executable(proposal, now)
    owner = fund_key(fund)
    require(proposal.fund == owner, ErrorCode.INVALID_PARAMETER, "proposal belongs to another fund")
    require(context.user.owner == owner, ErrorCode.UNAUTHORIZED, "user account is not the fund's")

    action = lifecycle.decode_action(proposal.action_type, proposal.action_payload)
    outcome = None
    if proposal.action_type is not ActionType.UPDATE_PARAM:
        outcome = _dispatch(config, owner, proposal.action_type, action, context, now)

    proposal = lifecycle.mark_executed(proposal, now)
    logger.info("proposal executed index=%d action=%s", proposal.proposal_index, proposal.action_type.value)
    return ExecutionResult(proposal=proposal, outcome=outcome)


def expire_proposal(proposal: Proposal, now: int) -> Proposal:
    """Retire a passed proposal that missed its execution window."""
    proposal = lifecycle.expire(proposal, now)
    logger.warning("proposal expired index=%d deadline=%d", proposal.proposal_index, proposal.execution_deadline)
    return proposal
