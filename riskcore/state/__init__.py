"""
Records, configuration, key derivation and the record store.
"""

from .schema import SCHEMA_VERSION
from .lending import LendingPool, LendingPosition
from .perps import PerpMarket, PerpPosition, Side
from .funds import Fund, FundHolding, FundStatus, HoldingType
from .proposals import ActionType, Proposal, ProposalStatus
from .accounts import FeeVault, UserAccount
from .keys import RecordType, derive_key
from .store import RecordStore

__all__ = [
    "SCHEMA_VERSION",
    "LendingPool",
    "LendingPosition",
    "PerpMarket",
    "PerpPosition",
    "Side",
    "Fund",
    "FundHolding",
    "FundStatus",
    "HoldingType",
    "ActionType",
    "Proposal",
    "ProposalStatus",
    "FeeVault",
    "UserAccount",
    "RecordType",
    "derive_key",
    "RecordStore",
]
