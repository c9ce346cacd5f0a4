"""
Record store keyed by derived record keys.

Operations in ``riskcore.integration`` are pure: they take records and return
new ones. The store is the caller-side table those records live in; ``commit``
writes a whole operation result at once so a failed operation (which raises
before returning) never leaves a partial write behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Type, TypeVar

from ..core.errors import ErrorCode, error_for


T = TypeVar("T")

_POSITION_TYPES = ("PerpPosition", "LendingPosition")


@dataclass
class RecordStore:
    """
    Mutable mapping: record_key -> frozen record.

    Values are immutable dataclasses, so reads can be handed to operations
    without copying.
    """

    _records: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Any | None:
        return self._records.get(key)

    def require(self, key: str, record_type: Type[T]) -> T:
        """Return the record at ``key``, which must exist and be a ``record_type``."""
        record = self._records.get(key)
        if record is None:
            code = ErrorCode.POSITION_NOT_FOUND if record_type.__name__ in _POSITION_TYPES else ErrorCode.INVALID_PARAMETER
            raise error_for(code, f"no {record_type.__name__} at {key}")
        if not isinstance(record, record_type):
            raise error_for(ErrorCode.INVALID_PARAMETER, f"{key} holds {type(record).__name__}, not {record_type.__name__}")
        return record

    def put(self, key: str, record: Any) -> None:
        if not isinstance(key, str) or not key:
            raise TypeError("key must be a non-empty str")
        self._records[key] = record

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def commit(self, writes: Mapping[str, Any | None]) -> None:
        """Apply a batch of writes; a value of None deletes the key."""
        for key in writes:
            if not isinstance(key, str) or not key:
                raise TypeError("key must be a non-empty str")
        for key, record in writes.items():
            if record is None:
                self._records.pop(key, None)
            else:
                self._records[key] = record

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get_all(self) -> Mapping[str, Any]:
        # Shallow copy to avoid accidental mutation during iteration.
        return dict(self._records)
