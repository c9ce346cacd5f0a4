"""
Swap routing through external venues.

A ``VenueRegistry`` maps venue identifiers to ``SwapVenue`` strategy objects
that build the venue's instruction bytes. The registry is populated at
startup; resolving a venue that was never registered fails with
``UNSUPPORTED_PROTOCOL`` instead of falling through to a default.

The external call itself goes through a ``Gateway``. ``execute_swap`` invokes
it at most once per call; if the gateway raises, the swap aborts and no fee is
recorded.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional

from construct import Bytes, Const, Int64ul, Int8ul, Struct

from ..core.errors import ErrorCode, error_for, require
from ..core.fixed_point import bps_mul, to_u64
from ..state.accounts import FeeVault, UserAccount
from ..state.config import ExchangeConfig


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Instruction:
    """Opaque call into an external venue, signed by ``signer``."""

    venue: str
    data: bytes
    signer: str = ""


class SwapVenue(ABC):
    """Strategy object: knows how to encode an exact-in swap for one venue."""

    venue_id: str

    @abstractmethod
    def build_instruction(self, amount_in: int, minimum_amount_out: int) -> bytes:
        """Encode an exact-in swap of ``amount_in`` with a ``minimum_amount_out`` floor."""


_DISCRIMINATED_SWAP = Struct(
    "discriminator" / Bytes(8),
    "amount_in" / Int64ul,
    "minimum_amount_out" / Int64ul,
)

_MANIFEST_SWAP = Struct(
    "tag" / Const(4, Int8ul),
    "amount_in" / Int64ul,
    "minimum_amount_out" / Int64ul,
    "is_base_in" / Int8ul,
    "is_exact_in" / Int8ul,
)


class DiscriminatorSwapVenue(SwapVenue):
    """Venue whose swap instruction is an 8-byte discriminator followed by two u64s."""

    def __init__(self, venue_id: str, discriminator: bytes) -> None:
        if len(discriminator) != 8:
            raise ValueError("discriminator must be 8 bytes")
        self.venue_id = venue_id
        self.discriminator = bytes(discriminator)

    def build_instruction(self, amount_in: int, minimum_amount_out: int) -> bytes:
        return _DISCRIMINATED_SWAP.build(
            dict(discriminator=self.discriminator, amount_in=amount_in, minimum_amount_out=minimum_amount_out)
        )


class ManifestSwapVenue(SwapVenue):
    """Order-book venue: one-byte tag, two u64s, then base-in / exact-in flags."""

    def __init__(self, venue_id: str = "manifest", *, is_base_in: bool = False) -> None:
        self.venue_id = venue_id
        self.is_base_in = is_base_in

    def build_instruction(self, amount_in: int, minimum_amount_out: int) -> bytes:
        return _MANIFEST_SWAP.build(
            dict(
                amount_in=amount_in,
                minimum_amount_out=minimum_amount_out,
                is_base_in=1 if self.is_base_in else 0,
                is_exact_in=1,
            )
        )


class VenueRegistry:
    """venue_id -> SwapVenue."""

    def __init__(self, venues: Iterable[SwapVenue] = ()) -> None:
        self._venues: Dict[str, SwapVenue] = {}
        for venue in venues:
            self.register(venue)

    def register(self, venue: SwapVenue) -> None:
        if not isinstance(venue, SwapVenue):
            raise TypeError("venue must be a SwapVenue")
        if venue.venue_id in self._venues:
            raise ValueError(f"venue already registered: {venue.venue_id}")
        self._venues[venue.venue_id] = venue

    def resolve(self, venue_id: str) -> SwapVenue:
        venue = self._venues.get(venue_id)
        if venue is None:
            raise error_for(ErrorCode.UNSUPPORTED_PROTOCOL, venue_id)
        return venue

    def __contains__(self, venue_id: object) -> bool:
        return venue_id in self._venues

    def venue_ids(self) -> list[str]:
        return sorted(self._venues)


def default_registry() -> VenueRegistry:
    return VenueRegistry(
        [
            ManifestSwapVenue(),
            DiscriminatorSwapVenue("perena", bytes([0x30, 0x31, 0x36, 0x64, 0x62, 0x39, 0x61, 0x35])),
            DiscriminatorSwapVenue("heaven", bytes([0xE5, 0x17, 0xCB, 0x97, 0x7A, 0xE3, 0xAD, 0x2A])),
            DiscriminatorSwapVenue("aldrin", bytes([0x87, 0x6A, 0xDC, 0x47, 0x11, 0x4E, 0x79, 0xB1])),
            DiscriminatorSwapVenue("gamma", bytes([239, 82, 192, 187, 160, 26, 223, 223])),
            DiscriminatorSwapVenue("solfi", bytes([0xA3, 0xB2, 0xC1, 0xD0, 0xE4, 0xF5, 0x06, 0x17])),
            DiscriminatorSwapVenue("futarchy", bytes([0xB4, 0xC3, 0xD2, 0xE1, 0xF5, 0x06, 0x17, 0x28])),
        ]
    )


class Gateway(ABC):
    """Boundary to external venues."""

    @abstractmethod
    def execute_external(self, venue: str, instruction: Instruction) -> int:
        """Run ``instruction`` on ``venue`` and return the output amount received.

        Must either complete fully or raise; partial completion is never reported.
        """


@dataclass(frozen=True)
class SwapResult:
    amount_in: int
    fee: int
    amount_out: int
    fee_vault: Optional[FeeVault] = None
    user: Optional[UserAccount] = None


def execute_swap(
    config: ExchangeConfig,
    registry: VenueRegistry,
    gateway: Gateway,
    venue: str,
    amount_in: int,
    minimum_amount_out: int,
    fee_vault: Optional[FeeVault] = None,
    *,
    signer: str = "",
    user: Optional[UserAccount] = None,
    now: int = 0,
) -> SwapResult:
    """Charge the swap fee, route the remainder through ``venue`` and check the output."""
    require(not config.swap_paused, ErrorCode.EXCHANGE_PAUSED, "swaps paused")
    strategy = registry.resolve(venue)
    if user is not None and signer:
        require(user.owner == signer, ErrorCode.UNAUTHORIZED, "user account belongs to another signer")
    require(amount_in > 0, ErrorCode.INVALID_AMOUNT)
    to_u64(amount_in)
    to_u64(minimum_amount_out)

    fee = bps_mul(amount_in, config.swap_fee_bps)
    amount_after_fee = amount_in - fee
    instruction = Instruction(
        venue=venue,
        data=strategy.build_instruction(amount_after_fee, minimum_amount_out),
        signer=signer,
    )

    amount_out = gateway.execute_external(venue, instruction)
    if not isinstance(amount_out, int) or isinstance(amount_out, bool) or amount_out < 0:
        raise error_for(ErrorCode.INVALID_PARAMETER, f"gateway returned {amount_out!r}")
    require(amount_out > 0, ErrorCode.SWAP_OUTPUT_ZERO)
    require(
        amount_out >= minimum_amount_out,
        ErrorCode.SLIPPAGE_EXCEEDED,
        f"{amount_out} < {minimum_amount_out}",
    )

    if fee_vault is not None and fee > 0:
        fee_vault = replace(fee_vault, collected_fees=to_u64(fee_vault.collected_fees + fee))
    if user is not None:
        user = replace(
            user,
            total_trades=to_u64(user.total_trades + 1),
            total_volume=to_u64(user.total_volume + amount_in),
            total_fees_paid=to_u64(user.total_fees_paid + fee),
            last_activity=now,
        )
    logger.debug("swap venue=%s amount_in=%d fee=%d amount_out=%d", venue, amount_in, fee, amount_out)
    return SwapResult(amount_in=amount_in, fee=fee, amount_out=amount_out, fee_vault=fee_vault, user=user)
