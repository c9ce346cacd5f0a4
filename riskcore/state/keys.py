"""
Content-addressed record keys.

A record key is ``"0x" + sha256(domain_sep ‖ canonical_json([type, owner, index]))``.
The domain separator pins the derivation version; the canonical JSON array is
unambiguous, so two distinct ``(type, owner, index)`` tuples never share a
preimage.
"""

from __future__ import annotations

from enum import Enum
from typing import Tuple, Union

from .canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex


KEY_DERIVATION_VERSION = 1


class RecordType(str, Enum):
    EXCHANGE = "exchange"
    USER_ACCOUNT = "user_account"
    FEE_VAULT = "fee_vault"
    PERP_MARKET = "perp_market"
    PERP_POSITION = "perp_position"
    LENDING_POOL = "lending_pool"
    LENDING_POSITION = "lending_position"
    FUND = "fund"
    FUND_HOLDING = "fund_holding"
    PROPOSAL = "proposal"


def derive_key(record_type: Union[RecordType, str], owner: Union[str, Tuple[str, ...]], index: int = 0) -> str:
    """Derive the store key for one record.

    ``owner`` is the parent key (user, market, pool, fund, mint), or a tuple of
    keys for records owned by a pair such as (user, market); ``index``
    distinguishes siblings under the same owner (market index, proposal index).
    """
    rt = RecordType(record_type).value
    if isinstance(owner, tuple):
        if not all(isinstance(part, str) for part in owner):
            raise TypeError("owner tuple must contain only str")
        owner_json: object = list(owner)
    elif isinstance(owner, str):
        owner_json = owner
    else:
        raise TypeError("owner must be a str or tuple of str")
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise ValueError(f"index must be a non-negative int: {index!r}")
    preimage = domain_sep_bytes("record_key", KEY_DERIVATION_VERSION) + canonical_json_bytes([rt, owner_json, index])
    return sha256_hex(preimage)


def perp_position_key(market_key: str, owner: str) -> str:
    # One isolated position per (market, owner).
    return derive_key(RecordType.PERP_POSITION, (owner, market_key))


def lending_position_key(pool_key: str, owner: str) -> str:
    return derive_key(RecordType.LENDING_POSITION, (owner, pool_key))


def lending_pool_key(pool) -> str:
    return derive_key(RecordType.LENDING_POOL, pool.mint, pool.pool_index)


def perp_market_key(market) -> str:
    return derive_key(RecordType.PERP_MARKET, market.base_mint, market.market_index)


def fund_key(fund) -> str:
    return derive_key(RecordType.FUND, fund.share_mint)


def proposal_key(fund_record_key: str, proposal_index: int) -> str:
    return derive_key(RecordType.PROPOSAL, fund_record_key, proposal_index)


def user_account_key(owner: str) -> str:
    return derive_key(RecordType.USER_ACCOUNT, owner)


def fee_vault_key(mint: str) -> str:
    return derive_key(RecordType.FEE_VAULT, mint)
