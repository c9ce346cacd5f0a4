"""
Exchange operations over records: lending, perps, swaps, funds and governance.

Every operation takes the records it reads and returns the records it wrote;
callers persist the returned records (``RecordStore.commit``) only on success.
"""

from .lending_engine import accrue, borrow, deposit, liquidate_lending, open_lending_position, repay, withdraw
from .perp_engine import close_position, liquidate_perp, mark_position, open_position, update_funding_rate
from .venues import Gateway, Instruction, SwapVenue, VenueRegistry, default_registry, execute_swap
from .fees import collect_fees
from .fund_engine import deposit_to_fund, initialize_fund, register_holding, update_fund_nav, withdraw_from_fund
from .governance import ExecutionContext, create_proposal, execute_proposal, expire_proposal, finalize_proposal

__all__ = [
    "accrue",
    "borrow",
    "deposit",
    "liquidate_lending",
    "open_lending_position",
    "repay",
    "withdraw",
    "close_position",
    "liquidate_perp",
    "mark_position",
    "open_position",
    "update_funding_rate",
    "Gateway",
    "Instruction",
    "SwapVenue",
    "VenueRegistry",
    "default_registry",
    "execute_swap",
    "collect_fees",
    "deposit_to_fund",
    "initialize_fund",
    "register_holding",
    "update_fund_nav",
    "withdraw_from_fund",
    "ExecutionContext",
    "create_proposal",
    "execute_proposal",
    "expire_proposal",
    "finalize_proposal",
]
