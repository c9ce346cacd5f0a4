"""
Oracle normalizer kernel.

This module is intentionally small and pure:
- The functional core parses a raw price-feed buffer, validates it against the
  caller's clock and rescales it to ``PRICE_PRECISION`` (6 decimals).
- The imperative shell is responsible for fetching feed bytes and the clock.

Feed layout (little-endian), at least 112 bytes:
    price i64 @73, confidence u64 @81, exponent i32 @89, publish_time i64 @93
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from construct import ConstructError, Int32sl, Int64sl, Int64ul, Padding, Struct

from .errors import ErrorCode, error_for, require
from .fixed_point import U64_MAX

FEED_MIN_LEN = 112
PRICE_OFFSET = 73
TARGET_DECIMALS = 6
MAX_ORACLE_STALENESS = 60  # seconds
MAX_DECIMAL_SHIFT = 19  # 10**20 exceeds u64

PRICE_FEED_LAYOUT = Struct(
    Padding(PRICE_OFFSET),
    "price" / Int64sl,
    "confidence" / Int64ul,
    "exponent" / Int32sl,
    "publish_time" / Int64sl,
)
_LAYOUT_END = PRICE_OFFSET + 8 + 8 + 4 + 8


@dataclass(frozen=True)
class OraclePrice:
    """Normalized price in ``PRICE_PRECISION`` units."""

    price: int
    confidence: int
    timestamp: int

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive: {self.price}")
        if self.confidence < 0:
            raise ValueError(f"confidence must be non-negative: {self.confidence}")


def is_fresh(publish_time: int, current_timestamp: int, max_staleness_seconds: int = MAX_ORACLE_STALENESS) -> bool:
    """Return True if the publish time is within the max staleness window."""
    return (current_timestamp - publish_time) <= max_staleness_seconds


def normalize_price(raw: int, exponent: int) -> int:
    """Rescale ``raw * 10**exponent`` to ``TARGET_DECIMALS`` decimals.

    A non-negative shift multiplies (overflow-checked against u64); a negative
    shift floor-divides. The exponent comes from the feed, so the shift is
    bounded before any power of ten is built.
    """
    shift = TARGET_DECIMALS + exponent
    if shift > MAX_DECIMAL_SHIFT:
        raise error_for(ErrorCode.MATH_OVERFLOW, f"exponent {exponent} out of range")
    if -shift > MAX_DECIMAL_SHIFT:
        # Any u64 divided by 10**20 or more is 0.
        return 0
    if shift >= 0:
        scaled = raw * 10**shift
        if scaled > U64_MAX:
            raise error_for(ErrorCode.MATH_OVERFLOW, "normalized price exceeds u64")
        return scaled
    return raw // 10 ** (-shift)


def parse_price_feed(
    data: bytes,
    current_timestamp: int,
    max_staleness_seconds: int = MAX_ORACLE_STALENESS,
) -> OraclePrice:
    """Parse, validate and normalize a price-feed buffer.

    Raises:
        OracleError: ``ORACLE_PRICE_INVALID`` for short buffers or a
            non-positive price, ``ORACLE_PRICE_STALE`` when older than
            ``max_staleness_seconds``.
        MathError: when the rescaled price does not fit in u64.
    """
    require(len(data) >= FEED_MIN_LEN, ErrorCode.ORACLE_PRICE_INVALID, f"feed is {len(data)} bytes")
    try:
        raw = PRICE_FEED_LAYOUT.parse(bytes(data))
    except ConstructError as exc:
        raise error_for(ErrorCode.ORACLE_PRICE_INVALID, str(exc)) from exc

    require(raw.price > 0, ErrorCode.ORACLE_PRICE_INVALID, f"price {raw.price}")
    require(
        is_fresh(raw.publish_time, current_timestamp, max_staleness_seconds),
        ErrorCode.ORACLE_PRICE_STALE,
        f"age {current_timestamp - raw.publish_time}s",
    )

    price = normalize_price(raw.price, raw.exponent)
    # A feed can be positive at its own precision and still round to zero here.
    require(price > 0, ErrorCode.ORACLE_PRICE_INVALID, "price rounds to zero")
    return OraclePrice(
        price=price,
        confidence=normalize_price(raw.confidence, raw.exponent),
        timestamp=raw.publish_time,
    )


def encode_price_feed(
    price: int,
    exponent: int,
    publish_time: int,
    *,
    confidence: int = 0,
    length: int = FEED_MIN_LEN,
) -> bytes:
    """Build a feed buffer in the layout ``parse_price_feed`` reads."""
    if length < _LAYOUT_END:
        raise ValueError(f"length must be >= {_LAYOUT_END}: {length}")
    body = PRICE_FEED_LAYOUT.build(
        dict(price=price, confidence=confidence, exponent=exponent, publish_time=publish_time)
    )
    return body + bytes(length - len(body))


def price_for(oracle_key: str, feeds: Mapping[str, bytes], current_timestamp: int, max_staleness_seconds: int) -> OraclePrice:
    """Look up the feed registered for ``oracle_key`` and parse it.

    A record whose oracle has no supplied feed is an account mismatch.
    """
    data = feeds.get(oracle_key)
    require(data is not None, ErrorCode.ORACLE_ACCOUNT_MISMATCH, oracle_key)
    return parse_price_feed(data, current_timestamp, max_staleness_seconds)
