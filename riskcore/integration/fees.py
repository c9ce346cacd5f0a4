"""
Protocol fee withdrawal.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..core.errors import ErrorCode, require
from ..state.accounts import FeeVault
from ..state.config import ExchangeConfig


logger = logging.getLogger(__name__)


def collect_fees(config: ExchangeConfig, vault: FeeVault, caller: str, amount: int) -> FeeVault:
    """Withdraw ``amount`` of collected fees. Admin only."""
    require(bool(config.admin) and caller == config.admin, ErrorCode.UNAUTHORIZED, "not the exchange admin")
    require(amount > 0, ErrorCode.INVALID_AMOUNT)
    require(vault.collected_fees >= amount, ErrorCode.INSUFFICIENT_VAULT_BALANCE)
    vault = replace(vault, collected_fees=vault.collected_fees - amount)
    logger.info("fees collected mint=%s amount=%d remaining=%d", vault.mint, amount, vault.collected_fees)
    return vault
