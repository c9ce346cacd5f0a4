"""
Governance proposal lifecycle and action payload codecs.

State machine (pure; each transition returns a new ``Proposal``):

    ACTIVE --finalize(now >= voting_end)--> PASSED  (pass_twap > fail_twap)
                                      \\--> FAILED  (otherwise; ties fail)
    PASSED --mark_executed(now <= deadline)--> EXECUTED
    PASSED --expire(now > deadline)----------> EXPIRED

Action payloads are fixed 256-byte buffers. The typed fields are packed
little-endian at the front; every remaining byte must be zero.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Union

from construct import Bytes, BytesInteger, ConstructError, Int16ul, Int64ul, Int8ul, Struct

from ..state.proposals import ACTION_DATA_LEN, ActionType, Proposal, ProposalStatus
from .errors import ErrorCode, error_for, require
from .fixed_point import U128_MAX


MINT_LEN = 32
TWAP_OFFSET = 208

SWAP_ACTION_LAYOUT = Struct(
    "input_mint" / Bytes(MINT_LEN),
    "output_mint" / Bytes(MINT_LEN),
    "amount_in" / Int64ul,
    "minimum_amount_out" / Int64ul,
)
PERP_ACTION_LAYOUT = Struct(
    "market_index" / Int16ul,
    "is_long" / Int8ul,
    "size" / Int64ul,
    "collateral" / Int64ul,
)
LENDING_ACTION_LAYOUT = Struct(
    "pool_index" / Int16ul,
    "amount" / Int64ul,
)
TWAP_LAYOUT = Struct("twap" / BytesInteger(16, swapped=True))


# -- Payloads ------------------------------------------------------------------

def _mint_to_bytes(mint: str) -> bytes:
    if not isinstance(mint, str) or not mint.startswith("0x") or len(mint) != 2 + 2 * MINT_LEN:
        raise ValueError(f"mint must be a 0x-prefixed {MINT_LEN}-byte hex string")
    return bytes.fromhex(mint[2:])


@dataclass(frozen=True)
class SwapActionData:
    input_mint: str
    output_mint: str
    amount_in: int
    minimum_amount_out: int


@dataclass(frozen=True)
class PerpActionData:
    market_index: int
    is_long: bool
    size: int
    collateral: int


@dataclass(frozen=True)
class LendingActionData:
    pool_index: int
    amount: int


ActionData = Union[SwapActionData, PerpActionData, LendingActionData]

_SWAP_ACTIONS = frozenset({ActionType.SWAP})
_PERP_ACTIONS = frozenset({ActionType.OPEN_PERP, ActionType.CLOSE_PERP})
_LENDING_ACTIONS = frozenset(
    {ActionType.DEPOSIT_LENDING, ActionType.WITHDRAW_LENDING, ActionType.BORROW, ActionType.REPAY}
)


def _pad(body: bytes) -> bytes:
    return body + bytes(ACTION_DATA_LEN - len(body))


def encode_action(action: ActionData) -> bytes:
    """Pack an action into a 256-byte payload buffer."""
    try:
        if isinstance(action, SwapActionData):
            body = SWAP_ACTION_LAYOUT.build(
                dict(
                    input_mint=_mint_to_bytes(action.input_mint),
                    output_mint=_mint_to_bytes(action.output_mint),
                    amount_in=action.amount_in,
                    minimum_amount_out=action.minimum_amount_out,
                )
            )
        elif isinstance(action, PerpActionData):
            body = PERP_ACTION_LAYOUT.build(
                dict(
                    market_index=action.market_index,
                    is_long=1 if action.is_long else 0,
                    size=action.size,
                    collateral=action.collateral,
                )
            )
        elif isinstance(action, LendingActionData):
            body = LENDING_ACTION_LAYOUT.build(dict(pool_index=action.pool_index, amount=action.amount))
        else:
            raise TypeError(f"unsupported action: {type(action).__name__}")
    except ConstructError as exc:
        raise error_for(ErrorCode.INVALID_ACTION_DATA, str(exc)) from exc
    return _pad(body)


def _parse(layout: Struct, payload: bytes):
    require(
        isinstance(payload, (bytes, bytearray)) and len(payload) == ACTION_DATA_LEN,
        ErrorCode.INVALID_ACTION_DATA,
        "payload must be 256 bytes",
    )
    size = layout.sizeof()
    require(not any(payload[size:]), ErrorCode.INVALID_ACTION_DATA, "non-zero padding")
    try:
        return layout.parse(bytes(payload[:size]))
    except ConstructError as exc:
        raise error_for(ErrorCode.INVALID_ACTION_DATA, str(exc)) from exc


def decode_action(action_type: ActionType, payload: bytes) -> ActionData | None:
    """Decode ``payload`` according to ``action_type``.

    ``UPDATE_PARAM`` carries no payload and decodes to None.
    """
    if action_type in _SWAP_ACTIONS:
        raw = _parse(SWAP_ACTION_LAYOUT, payload)
        return SwapActionData(
            input_mint="0x" + raw.input_mint.hex(),
            output_mint="0x" + raw.output_mint.hex(),
            amount_in=raw.amount_in,
            minimum_amount_out=raw.minimum_amount_out,
        )
    if action_type in _PERP_ACTIONS:
        raw = _parse(PERP_ACTION_LAYOUT, payload)
        require(raw.is_long in (0, 1), ErrorCode.INVALID_ACTION_DATA, f"is_long byte {raw.is_long}")
        return PerpActionData(
            market_index=raw.market_index,
            is_long=raw.is_long == 1,
            size=raw.size,
            collateral=raw.collateral,
        )
    if action_type in _LENDING_ACTIONS:
        raw = _parse(LENDING_ACTION_LAYOUT, payload)
        return LendingActionData(pool_index=raw.pool_index, amount=raw.amount)
    if action_type is ActionType.UPDATE_PARAM:
        return None
    raise error_for(ErrorCode.INVALID_ACTION_DATA, f"unknown action type {action_type!r}")


def read_conditional_twap(account_data: bytes) -> int:
    """TWAP (u128 LE) stored at byte 208 of a conditional-market account."""
    require(len(account_data) >= TWAP_OFFSET + 16, ErrorCode.INVALID_ACTION_DATA, "market account too short")
    return TWAP_LAYOUT.parse(bytes(account_data[TWAP_OFFSET:TWAP_OFFSET + 16])).twap


# -- Transitions -----------------------------------------------------------------

def decide_outcome(pass_twap: int, fail_twap: int) -> ProposalStatus:
    """PASSED iff ``pass_twap > fail_twap``; a tie fails."""
    return ProposalStatus.PASSED if pass_twap > fail_twap else ProposalStatus.FAILED


def finalize(proposal: Proposal, now: int, pass_twap: int, fail_twap: int) -> Proposal:
    require(proposal.status is ProposalStatus.ACTIVE, ErrorCode.PROPOSAL_NOT_ACTIVE, proposal.status.value)
    require(now >= proposal.voting_end, ErrorCode.VOTING_PERIOD_NOT_ENDED)
    for twap in (pass_twap, fail_twap):
        if twap < 0:
            raise error_for(ErrorCode.MATH_UNDERFLOW, "twap is negative")
        if twap > U128_MAX:
            raise error_for(ErrorCode.MATH_OVERFLOW, "twap exceeds u128")
    return replace(
        proposal,
        pass_twap=pass_twap,
        fail_twap=fail_twap,
        status=decide_outcome(pass_twap, fail_twap),
    )


def check_executable(proposal: Proposal, now: int) -> None:
    require(proposal.status is ProposalStatus.PASSED, ErrorCode.PROPOSAL_NOT_PASSED, proposal.status.value)
    require(now <= proposal.execution_deadline, ErrorCode.PROPOSAL_EXPIRED)


def mark_executed(proposal: Proposal, now: int) -> Proposal:
    check_executable(proposal, now)
    return replace(proposal, status=ProposalStatus.EXECUTED, executed_at=now)


def expire(proposal: Proposal, now: int) -> Proposal:
    """Retire a PASSED proposal whose execution window has closed."""
    require(proposal.status is ProposalStatus.PASSED, ErrorCode.PROPOSAL_NOT_PASSED, proposal.status.value)
    require(now > proposal.execution_deadline, ErrorCode.INVALID_PARAMETER, "execution window still open")
    return replace(proposal, status=ProposalStatus.EXPIRED)
