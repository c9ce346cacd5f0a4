"""
Record schema versioning and field validators.

Every persisted record carries ``version``; a record built with a version this
code does not know is rejected on construction instead of being read with the
wrong field meanings.
"""

from __future__ import annotations

from ..core.fixed_point import I64_MAX, I64_MIN, I128_MAX, I128_MIN, U64_MAX, U128_MAX

SCHEMA_VERSION = 1
SUPPORTED_SCHEMA_VERSIONS = frozenset({SCHEMA_VERSION})


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def check_version(version: object) -> None:
    if version not in SUPPORTED_SCHEMA_VERSIONS or not _is_int(version):
        raise ValueError(f"unsupported schema version: {version!r}")


def check_key(name: str, value: object) -> None:
    if not isinstance(value, str) or not value:
        raise TypeError(f"{name} must be a non-empty str")


def check_bool(name: str, value: object) -> None:
    if not isinstance(value, bool):
        raise TypeError(f"{name} must be a bool")


def _check_range(name: str, value: object, lo: int, hi: int) -> None:
    if not _is_int(value):
        raise TypeError(f"{name} must be an int")
    if not (lo <= value <= hi):
        raise ValueError(f"{name} out of range [{lo}, {hi}]: {value}")


def check_u64(name: str, value: object) -> None:
    _check_range(name, value, 0, U64_MAX)


def check_u128(name: str, value: object) -> None:
    _check_range(name, value, 0, U128_MAX)


def check_i64(name: str, value: object) -> None:
    _check_range(name, value, I64_MIN, I64_MAX)


def check_i128(name: str, value: object) -> None:
    _check_range(name, value, I128_MIN, I128_MAX)
