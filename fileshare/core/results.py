"""
Operation Result: the uniform outcome envelope of every store operation.

An OperationResult carries:
- an ordered list of human-readable success messages
- an ordered list of structured StoreErrors
- an optional typed payload (stream, bytes, bool, hash, StoredObject)

``success`` is derived from the error list, so the invariant
"success iff no errors" cannot be broken by construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from fileshare.core.errors import ErrorCode, StoreError

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Success/error/payload envelope returned by every store operation."""

    value: Optional[T] = None
    messages: list[str] = field(default_factory=list)
    errors: list[StoreError] = field(default_factory=list)

    @classmethod
    def ok(cls, value: Optional[T] = None, message: Optional[str] = None) -> OperationResult[T]:
        result: OperationResult[T] = cls(value=value)
        if message:
            result.add_success_message(message)
        return result

    @classmethod
    def failure(cls, error: StoreError, value: Optional[T] = None) -> OperationResult[T]:
        result: OperationResult[T] = cls(value=value)
        result.append_error(error)
        return result

    @property
    def success(self) -> bool:
        return not self.errors

    def add_success_message(self, message: str) -> None:
        self.messages.append(message)

    def append_error(self, error: StoreError) -> None:
        self.errors.append(error)

    def is_ok(self) -> bool:
        return self.success

    def is_err(self) -> bool:
        return not self.success

    def unwrap(self) -> T:
        """
        Extract the payload of a successful result.

        Raises:
            RuntimeError: If the result carries errors
        """
        if self.errors:
            raise RuntimeError(f"Called unwrap() on failed result: {self.errors[0]}")
        return self.value  # type: ignore[return-value]

    def has_error(self, code: ErrorCode) -> bool:
        return any(e.code is code for e in self.errors)

    @property
    def not_found(self) -> bool:
        return self.has_error(ErrorCode.STORE_NOT_FOUND)

    @property
    def cancelled(self) -> bool:
        return self.has_error(ErrorCode.STORE_CANCELLED)

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        """Serialize messages and errors; the payload is left to the caller."""
        return {
            "success": self.success,
            "messages": list(self.messages),
            "errors": [e.to_dict() for e in self.errors],
        }

    def __repr__(self) -> str:
        state = "ok" if self.success else f"errors={[e.code.name for e in self.errors]}"
        return f"OperationResult({state}, value={self.value!r})"
