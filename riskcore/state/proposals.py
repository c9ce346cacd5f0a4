"""
Governance proposal record.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .schema import SCHEMA_VERSION, check_i64, check_key, check_u64, check_u128, check_version


ACTION_DATA_LEN = 256


class ActionType(str, Enum):
    SWAP = "swap"
    OPEN_PERP = "open_perp"
    CLOSE_PERP = "close_perp"
    DEPOSIT_LENDING = "deposit_lending"
    WITHDRAW_LENDING = "withdraw_lending"
    BORROW = "borrow"
    REPAY = "repay"
    UPDATE_PARAM = "update_param"


class ProposalStatus(str, Enum):
    ACTIVE = "active"
    PASSED = "passed"
    FAILED = "failed"
    EXECUTED = "executed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (ProposalStatus.FAILED, ProposalStatus.EXECUTED, ProposalStatus.EXPIRED)


@dataclass(frozen=True)
class Proposal:
    """Futarchy-gated fund action.

    Lifecycle: ACTIVE -> PASSED | FAILED at ``voting_end``; PASSED -> EXECUTED
    up to ``execution_deadline``, else PASSED -> EXPIRED.
    """

    fund: str
    proposer: str
    action_type: ActionType
    action_payload: bytes
    pass_market: str
    fail_market: str
    proposal_index: int = 0
    pass_twap: int = 0
    fail_twap: int = 0
    status: ProposalStatus = ProposalStatus.ACTIVE
    voting_start: int = 0
    voting_end: int = 0
    execution_deadline: int = 0
    executed_at: int = 0
    version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        check_version(self.version)
        for name in ("fund", "proposer", "pass_market", "fail_market"):
            check_key(name, getattr(self, name))
        if not isinstance(self.action_type, ActionType):
            raise TypeError("action_type must be an ActionType")
        if not isinstance(self.action_payload, bytes):
            raise TypeError("action_payload must be bytes")
        if len(self.action_payload) != ACTION_DATA_LEN:
            raise ValueError(f"action_payload must be {ACTION_DATA_LEN} bytes, got {len(self.action_payload)}")
        if not isinstance(self.status, ProposalStatus):
            raise TypeError("status must be a ProposalStatus")
        check_u64("proposal_index", self.proposal_index)
        check_u128("pass_twap", self.pass_twap)
        check_u128("fail_twap", self.fail_twap)
        for name in ("voting_start", "voting_end", "execution_deadline", "executed_at"):
            check_i64(name, getattr(self, name))
        if self.voting_end < self.voting_start:
            raise ValueError("voting_end must be >= voting_start")
        if self.execution_deadline < self.voting_end:
            raise ValueError("execution_deadline must be >= voting_end")
