from __future__ import annotations

import pytest

from riskcore.core.errors import DomainError, ErrorCode, StateError
from riskcore.integration.venues import (
    DiscriminatorSwapVenue,
    Gateway,
    Instruction,
    ManifestSwapVenue,
    VenueRegistry,
    default_registry,
    execute_swap,
)
from riskcore.state.accounts import FeeVault, UserAccount
from riskcore.state.config import ExchangeConfig


class FakeGateway(Gateway):
    def __init__(self, amount_out: int = 0, error: Exception | None = None) -> None:
        self.amount_out = amount_out
        self.error = error
        self.calls: list[tuple[str, Instruction]] = []

    def execute_external(self, venue: str, instruction: Instruction) -> int:
        self.calls.append((venue, instruction))
        if self.error is not None:
            raise self.error
        return self.amount_out


CONFIG = ExchangeConfig(swap_fee_bps=30)


def test_registry_resolves_known_venues() -> None:
    registry = default_registry()
    assert registry.venue_ids() == sorted(["aldrin", "futarchy", "gamma", "heaven", "manifest", "perena", "solfi"])
    assert "gamma" in registry


def test_unknown_venue_is_unsupported() -> None:
    with pytest.raises(StateError) as exc:
        default_registry().resolve("nope")
    assert exc.value.code is ErrorCode.UNSUPPORTED_PROTOCOL


def test_duplicate_registration_rejected() -> None:
    registry = VenueRegistry([ManifestSwapVenue()])
    with pytest.raises(ValueError):
        registry.register(ManifestSwapVenue())


def test_discriminator_layout() -> None:
    venue = DiscriminatorSwapVenue("x", b"\x01" * 8)
    data = venue.build_instruction(1_000, 900)
    assert data == b"\x01" * 8 + (1_000).to_bytes(8, "little") + (900).to_bytes(8, "little")


def test_discriminator_length_checked() -> None:
    with pytest.raises(ValueError):
        DiscriminatorSwapVenue("x", b"\x01" * 7)


def test_manifest_layout() -> None:
    data = ManifestSwapVenue().build_instruction(5, 4)
    assert data[0] == 4
    assert len(data) == 1 + 8 + 8 + 1 + 1
    assert data[-1] == 1  # exact-in


def test_swap_takes_fee_and_routes_remainder() -> None:
    gateway = FakeGateway(amount_out=990)
    res = execute_swap(
        CONFIG,
        default_registry(),
        gateway,
        "perena",
        100_000,
        900,
        FeeVault(mint="usdc"),
        signer="alice",
        user=UserAccount(owner="alice"),
        now=5,
    )
    assert res.fee == 300
    assert res.amount_out == 990
    assert res.fee_vault.collected_fees == 300
    assert res.user.total_trades == 1
    assert res.user.total_volume == 100_000
    assert res.user.total_fees_paid == 300
    assert len(gateway.calls) == 1
    venue, instruction = gateway.calls[0]
    assert venue == "perena"
    assert instruction.signer == "alice"
    assert instruction.data[8:16] == (99_700).to_bytes(8, "little")


def test_slippage_exceeded() -> None:
    with pytest.raises(DomainError) as exc:
        execute_swap(CONFIG, default_registry(), FakeGateway(amount_out=899), "gamma", 1_000, 900)
    assert exc.value.code is ErrorCode.SLIPPAGE_EXCEEDED


def test_zero_output() -> None:
    with pytest.raises(DomainError) as exc:
        execute_swap(CONFIG, default_registry(), FakeGateway(amount_out=0), "gamma", 1_000, 0)
    assert exc.value.code is ErrorCode.SWAP_OUTPUT_ZERO


def test_unknown_venue_never_calls_gateway() -> None:
    gateway = FakeGateway(amount_out=1)
    with pytest.raises(StateError):
        execute_swap(CONFIG, default_registry(), gateway, "nope", 1_000, 0)
    assert gateway.calls == []


def test_paused_swaps() -> None:
    cfg = ExchangeConfig(swap_paused=True)
    with pytest.raises(StateError) as exc:
        execute_swap(cfg, default_registry(), FakeGateway(amount_out=1), "gamma", 1_000, 0)
    assert exc.value.code is ErrorCode.EXCHANGE_PAUSED


def test_gateway_failure_propagates() -> None:
    gateway = FakeGateway(error=RuntimeError("venue down"))
    with pytest.raises(RuntimeError):
        execute_swap(CONFIG, default_registry(), gateway, "gamma", 1_000, 0, FeeVault(mint="usdc"))


def test_gateway_returning_garbage() -> None:
    with pytest.raises(StateError) as exc:
        execute_swap(CONFIG, default_registry(), FakeGateway(amount_out=-5), "gamma", 1_000, 0)
    assert exc.value.code is ErrorCode.INVALID_PARAMETER


def test_user_of_another_signer() -> None:
    with pytest.raises(StateError) as exc:
        execute_swap(
            CONFIG, default_registry(), FakeGateway(amount_out=1), "gamma", 1_000, 0,
            signer="alice", user=UserAccount(owner="bob"),
        )
    assert exc.value.code is ErrorCode.UNAUTHORIZED
