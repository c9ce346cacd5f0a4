"""Fixed-point arithmetic shared by every risk kernel.

Every function is stateless and operates on plain Python ints.

Python ints never overflow, so the "widened intermediate" is native; what this
module adds is the explicit narrowing step. Each result is range-checked
against the fixed-width type it is stored in and rejected with
``MATH_OVERFLOW`` / ``MATH_UNDERFLOW`` instead of wrapping.

Unsigned division is floor division. Signed division truncates toward zero
(``_div_trunc``), not Python's ``//`` (floor toward -inf), so negative PnL and
funding round the same way as a fixed-width integer machine.
"""

from __future__ import annotations

from .errors import ErrorCode, error_for

WAD: int = 10**18
BPS_DENOMINATOR: int = 10_000
PRICE_PRECISION: int = 1_000_000  # 6 decimals

U64_MAX: int = 2**64 - 1
U128_MAX: int = 2**128 - 1
I64_MIN: int = -(2**63)
I64_MAX: int = 2**63 - 1
I128_MIN: int = -(2**127)
I128_MAX: int = 2**127 - 1


# -- Basic helpers -----------------------------------------------------------

def _check_int(x: int, name: str = "value") -> int:
    if not isinstance(x, int) or isinstance(x, bool):
        raise TypeError(f"{name} must be an int, got {type(x).__name__}")
    return x


def _div_trunc(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


# -- Narrowing ---------------------------------------------------------------

def to_u64(x: int) -> int:
    _check_int(x)
    if x < 0:
        raise error_for(ErrorCode.MATH_UNDERFLOW, f"{x} < 0")
    if x > U64_MAX:
        raise error_for(ErrorCode.MATH_OVERFLOW, f"{x} exceeds u64")
    return x


def to_u128(x: int) -> int:
    _check_int(x)
    if x < 0:
        raise error_for(ErrorCode.MATH_UNDERFLOW, f"{x} < 0")
    if x > U128_MAX:
        raise error_for(ErrorCode.MATH_OVERFLOW, f"{x} exceeds u128")
    return x


def to_i64(x: int) -> int:
    _check_int(x)
    if not (I64_MIN <= x <= I64_MAX):
        raise error_for(ErrorCode.MATH_OVERFLOW, f"{x} exceeds i64")
    return x


def to_i128(x: int) -> int:
    _check_int(x)
    if not (I128_MIN <= x <= I128_MAX):
        raise error_for(ErrorCode.MATH_OVERFLOW, f"{x} exceeds i128")
    return x


# -- Checked primitives (u128 domain unless noted) ---------------------------

def checked_add(a: int, b: int, *, bound: int = U128_MAX) -> int:
    r = _check_int(a, "a") + _check_int(b, "b")
    if r > bound:
        raise error_for(ErrorCode.MATH_OVERFLOW)
    return r


def checked_sub(a: int, b: int) -> int:
    r = _check_int(a, "a") - _check_int(b, "b")
    if r < 0:
        raise error_for(ErrorCode.MATH_UNDERFLOW)
    return r


def checked_mul(a: int, b: int, *, bound: int = U128_MAX) -> int:
    r = _check_int(a, "a") * _check_int(b, "b")
    if r > bound:
        raise error_for(ErrorCode.MATH_OVERFLOW)
    return r


def checked_div(a: int, b: int) -> int:
    if _check_int(b, "b") == 0:
        raise error_for(ErrorCode.DIVISION_BY_ZERO)
    return _check_int(a, "a") // b


def saturating_sub(a: int, b: int) -> int:
    """``max(a - b, 0)``; never an error."""
    return max(_check_int(a, "a") - _check_int(b, "b"), 0)


# -- WAD / BPS ---------------------------------------------------------------

def wad_mul(a: int, b: int) -> int:
    """``a * b / WAD`` (u128)."""
    return checked_mul(to_u128(a), to_u128(b)) // WAD


def wad_div(a: int, b: int) -> int:
    """``a * WAD / b`` (u128)."""
    if _check_int(b, "b") == 0:
        raise error_for(ErrorCode.DIVISION_BY_ZERO)
    return checked_mul(to_u128(a), WAD) // to_u128(b)


def wad_mul_signed(a: int, b: int) -> int:
    """Signed ``a * b / WAD`` for funding math, truncating toward zero (i128)."""
    return _div_trunc(to_i128(_check_int(a, "a") * _check_int(b, "b")), WAD)


def to_wad(value: int) -> int:
    """Scale a u64 amount up to WAD precision."""
    return checked_mul(to_u64(value), WAD)


def from_wad(value: int) -> int:
    """Scale a WAD value back down to a u64 amount (floor)."""
    return to_u64(to_u128(value) // WAD)


def bps_mul(value: int, bps: int) -> int:
    """``value * bps / 10_000`` narrowed to u64."""
    return to_u64(checked_mul(to_u64(value), to_u64(bps)) // BPS_DENOMINATOR)
