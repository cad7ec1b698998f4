"""
Core Type Definitions for the File Share Content Store

Implements Result/Either monads for zero-exception control flow, plus the
value types every store operation is expressed in:

- ContentId / ContentName: the two key variants
- ContentPayload: readable stream paired with its declared length
- StoredObject: description of a materialized file
- ContentHash: SHA-256 digest value

Design Principles:
- Never use null for absence (use Optional or Result)
- Keys are immutable value types with structural equality
- A key is always a single path segment, never a path
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import (
    Any,
    BinaryIO,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)
from uuid import UUID, uuid4

from fileshare.core import constants as C

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries full error context for exhaustive handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision timestamp for error and log correlation.

    Stores nanoseconds since Unix epoch.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"


# =============================================================================
# CONTENT HASH
# =============================================================================
@dataclass(frozen=True, slots=True)
class ContentHash:
    """
    SHA-256 content digest.

    Memory: 32 bytes (SHA-256 digest)
    """

    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != 32:
            raise ValueError(f"SHA-256 digest must be 32 bytes, got {len(self.digest)}")

    def to_hex(self) -> str:
        """Lowercase hexadecimal representation."""
        return self.digest.hex()

    def __str__(self) -> str:
        return self.to_hex()



# =============================================================================
# KEY TYPES
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class ContentId:
    """
    System-generated opaque identifier.

    Carries no extension: the on-disk name is ``<id>.<inferred-extension>``,
    or just ``<id>`` when no signature matched.
    """

    value: UUID

    @classmethod
    def generate(cls) -> ContentId:
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, s: str) -> Result[ContentId, str]:
        """
        Parse ContentId from string representation.

        Returns:
            Ok[ContentId]: Valid parsed identifier
            Err[str]: Validation error message
        """
        try:
            return Ok(cls(value=UUID(s)))
        except (ValueError, TypeError, AttributeError) as e:
            return Err(f"Invalid ContentId format: {e}")

    def __str__(self) -> str:
        return str(self.value)


_FORBIDDEN_NAME_CHARS = frozenset("/\\\x00")


@dataclass(frozen=True, slots=True, order=True)
class ContentName:
    """
    Caller-supplied name, used verbatim as the file name.

    Invariant: a single path segment. Separators, NUL and the dot
    segments are rejected so a name can never escape the store directory.
    Names shaped like an in-flight write file (``.<name>.partial``) are
    reserved.
    """

    value: str

    def __post_init__(self) -> None:
        reason = _name_violation(self.value)
        if reason is not None:
            raise ValueError(f"Invalid ContentName {self.value!r}: {reason}")

    @classmethod
    def from_string(cls, s: str) -> Result[ContentName, str]:
        reason = _name_violation(s)
        if reason is not None:
            return Err(f"Invalid ContentName {s!r}: {reason}")
        return Ok(cls(value=s))

    def __str__(self) -> str:
        return self.value


def _name_violation(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return "must be a string"
    if not value:
        return "must not be empty"
    if value in (".", ".."):
        return "dot segments are not allowed"
    if any(ch in _FORBIDDEN_NAME_CHARS for ch in value):
        return "path separators and NUL are not allowed"
    if is_in_flight_name(value):
        return "names of the form .<name>.partial are reserved for in-flight writes"
    return None


def is_in_flight_name(name: str) -> bool:
    """True for the hidden name a write uses before it is published."""
    return (
        len(name) > len(C.TEMP_FILE_PREFIX) + len(C.TEMP_FILE_SUFFIX)
        and name.startswith(C.TEMP_FILE_PREFIX)
        and name.endswith(C.TEMP_FILE_SUFFIX)
    )


ContentKey = Union[ContentId, ContentName]


# =============================================================================
# PAYLOADS
# =============================================================================
@dataclass(slots=True)
class ContentPayload:
    """
    A readable byte stream paired with its declared length.

    Used both as the input of writes and as the output of ``get``.
    A negative length means "unknown"; it is reported as zero but never
    blocks a transfer.
    """

    stream: Optional[BinaryIO]
    length: int = -1

    @property
    def reported_length(self) -> int:
        return self.length if self.length > 0 else 0

    def close(self) -> None:
        if self.stream is not None:
            self.stream.close()

    def __enter__(self) -> ContentPayload:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Materialized file backing a key."""

    key: ContentKey
    file_name: str
    extension: str
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": str(self.key),
            "file_name": self.file_name,
            "extension": self.extension,
            "size_bytes": self.size_bytes,
        }
