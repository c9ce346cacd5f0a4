"""Failure taxonomy for the risk core.

Every rejected operation raises exactly one ``RiskError`` subclass carrying a
single ``ErrorCode``. The code is the observable failure reason; the class is
its category (arithmetic, oracle, state, capacity, domain).

``try_step()`` is provided for callers that prefer a result object over
exception handling.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Callable


@unique
class ErrorCode(Enum):
    """One member per failure reason. Value is ``(wire_id, category, message)``."""

    # Arithmetic
    MATH_OVERFLOW = (6000, "arithmetic", "Math overflow")
    MATH_UNDERFLOW = (6001, "arithmetic", "Math underflow")
    DIVISION_BY_ZERO = (6002, "arithmetic", "Division by zero")

    # Input / state / authorization
    INVALID_AMOUNT = (6003, "domain", "Invalid amount: must be greater than zero")
    UNAUTHORIZED = (6004, "state", "Unauthorized caller")
    EXCHANGE_PAUSED = (6005, "state", "Market, pool or exchange is paused")
    INVALID_PARAMETER = (6006, "state", "Invalid parameter")

    # Oracle
    ORACLE_PRICE_STALE = (6010, "oracle", "Oracle price is stale")
    ORACLE_PRICE_INVALID = (6011, "oracle", "Oracle price is invalid or negative")
    ORACLE_ACCOUNT_MISMATCH = (6013, "oracle", "Oracle account mismatch")

    # Swap
    SLIPPAGE_EXCEEDED = (6020, "domain", "Slippage tolerance exceeded")
    UNSUPPORTED_PROTOCOL = (6021, "state", "Unsupported swap protocol")
    SWAP_OUTPUT_ZERO = (6022, "domain", "Swap returned zero output")

    # Perp
    EXCESSIVE_LEVERAGE = (6030, "domain", "Leverage exceeds maximum allowed")
    POSITION_TOO_SMALL = (6031, "domain", "Position size too small")
    POSITION_NOT_FOUND = (6032, "state", "Position not found")
    OPEN_INTEREST_LIMIT_EXCEEDED = (6033, "capacity", "Open interest limit exceeded")
    NOT_LIQUIDATABLE = (6034, "domain", "Position is not liquidatable")
    FUNDING_INTERVAL_NOT_ELAPSED = (6035, "domain", "Funding interval not elapsed")
    INSUFFICIENT_COLLATERAL = (6038, "domain", "Insufficient collateral for position")
    MAX_PERP_POSITIONS_REACHED = (6039, "capacity", "Maximum perp positions reached")

    # Lending
    INSUFFICIENT_COLLATERAL_VALUE = (6050, "domain", "Insufficient collateral value")
    INSUFFICIENT_POOL_LIQUIDITY = (6052, "capacity", "Borrow amount exceeds pool availability")
    WITHDRAWAL_WOULD_LIQUIDATE = (6054, "domain", "Withdrawal would make position unhealthy")
    LENDING_NOT_LIQUIDATABLE = (6055, "domain", "Lending position not liquidatable")
    MAX_LENDING_POSITIONS_REACHED = (6056, "capacity", "Maximum lending positions reached")
    INVALID_COLLATERAL_FACTOR = (6057, "state", "Collateral factor out of range")
    DEPOSIT_LIMIT_EXCEEDED = (6058, "capacity", "Deposit limit exceeded")

    # Admin
    FEE_EXCEEDS_MAXIMUM = (6070, "state", "Fee exceeds maximum allowed")
    LEVERAGE_OUT_OF_BOUNDS = (6071, "state", "Leverage setting out of bounds")
    INSUFFICIENT_VAULT_BALANCE = (6072, "capacity", "Insufficient vault balance for withdrawal")

    # Fund
    FUND_PAUSED = (6080, "state", "Fund is paused")
    INSUFFICIENT_SHARES = (6081, "domain", "Insufficient shares for operation")
    MAX_ACTIVE_PROPOSALS = (6082, "capacity", "Maximum active proposals reached")
    MAX_FUND_HOLDINGS = (6083, "capacity", "Maximum fund holdings reached")
    PROPOSAL_NOT_ACTIVE = (6084, "domain", "Proposal is not in active status")
    PROPOSAL_NOT_PASSED = (6085, "domain", "Proposal did not pass")
    PROPOSAL_EXPIRED = (6086, "domain", "Proposal has expired past execution deadline")
    VOTING_PERIOD_NOT_ENDED = (6087, "domain", "Voting period has not ended")
    INVALID_ACTION_DATA = (6088, "domain", "Invalid action data for proposal")
    FUND_WINDING_DOWN = (6090, "state", "Fund is winding down, only withdrawals allowed")
    INSUFFICIENT_FUND_LIQUIDITY = (6091, "capacity", "Insufficient fund liquidity for withdrawal")

    @property
    def wire_id(self) -> int:
        return self.value[0]

    @property
    def category(self) -> str:
        return self.value[1]

    @property
    def message(self) -> str:
        return self.value[2]


class RiskError(Exception):
    """Base class: an operation was rejected and nothing was committed."""

    def __init__(self, code: ErrorCode, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        text = f"{code.name}: {code.message}"
        if detail:
            text = f"{text} ({detail})"
        super().__init__(text)


class MathError(RiskError):
    """Overflow, underflow or division by zero."""


class OracleError(RiskError):
    """Stale, invalid or mismatched price feed."""


class StateError(RiskError):
    """Unauthorized caller, wrong record, paused record or bad configuration."""


class CapacityError(RiskError):
    """A position, holding, proposal, open-interest or pool limit was reached."""


class DomainError(RiskError):
    """The request is well-formed but violates a product rule."""


_CATEGORY_CLASS: dict[str, type[RiskError]] = {
    "arithmetic": MathError,
    "oracle": OracleError,
    "state": StateError,
    "capacity": CapacityError,
    "domain": DomainError,
}


def error_for(code: ErrorCode, detail: str | None = None) -> RiskError:
    """Build the exception instance matching ``code``'s category."""
    return _CATEGORY_CLASS[code.category](code, detail)


def require(condition: bool, code: ErrorCode, detail: str | None = None) -> None:
    """Raise the error for ``code`` unless ``condition`` holds."""
    if not condition:
        raise error_for(code, detail)


@dataclass(frozen=True)
class StepOutcome:
    """Result of ``try_step``: either a value or a rejection code."""

    accepted: bool
    value: Any = None
    rejection: ErrorCode | None = None


def try_step(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> StepOutcome:
    """Run an operation and convert a ``RiskError`` into a rejected outcome."""
    try:
        return StepOutcome(accepted=True, value=fn(*args, **kwargs))
    except RiskError as exc:
        return StepOutcome(accepted=False, rejection=exc.code)
