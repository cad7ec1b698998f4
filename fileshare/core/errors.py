"""
Error Hierarchy for the File Share Content Store

Design Principles:
- Forbid exceptions for control flow (errors travel inside results)
- Enforce exhaustive pattern matching for all error variants
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with log records

Usage:
    result = await store.get(key)
    for error in result.errors:
        match error.code:
            case ErrorCode.STORE_NOT_FOUND:
                ...
            case ErrorCode.STORE_CANCELLED:
                ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from fileshare.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Content store errors
    - 9xxx: Internal/unknown errors
    """

    # Content store errors (1xxx)
    STORE_NOT_FOUND = 1001
    STORE_INVALID_INPUT = 1002
    STORE_IO_FAILURE = 1003
    STORE_CANCELLED = 1004

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class FileShareError(Exception):
    """
    Base class for all file share errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for logging/API responses.

        Note: Excludes the cause traceback to avoid leaking
        implementation details.
        """
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONTENT STORE ERRORS
# =============================================================================
@dataclass
class StoreError(FileShareError):
    """
    Errors from content store operations.

    Covers missing keys, invalid input, filesystem failures and
    caller-requested cancellation.
    """

    @classmethod
    def not_found(cls, key: Any) -> StoreError:
        """Key resolves to no file."""
        return cls(
            code=ErrorCode.STORE_NOT_FOUND,
            message=f"File {key} does not exist.",
            context={"key": str(key)},
        )

    @classmethod
    def invalid_input(cls, field_name: str, reason: str) -> StoreError:
        """Absent payload stream or unparsable key."""
        return cls(
            code=ErrorCode.STORE_INVALID_INPUT,
            message=f"Invalid {field_name}: {reason}",
            context={"field": field_name, "reason": reason},
        )

    @classmethod
    def io_failure(
        cls,
        operation: str,
        key: Any,
        cause: BaseException,
    ) -> StoreError:
        """Disk or permission error during I/O."""
        return cls(
            code=ErrorCode.STORE_IO_FAILURE,
            message=f"An error occurred: {cause}",
            cause=cause,
            context={
                "operation": operation,
                "key": str(key),
                "exception": type(cause).__name__,
            },
        )

    @classmethod
    def cancelled(cls, operation: str, key: Any, reason: str = "") -> StoreError:
        """Operation aborted by caller request."""
        suffix = f": {reason}" if reason else ""
        return cls(
            code=ErrorCode.STORE_CANCELLED,
            message=f"Operation '{operation}' on {key} was cancelled{suffix}",
            context={"operation": operation, "key": str(key), "reason": reason},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(FileShareError):
    """Invalid process configuration, raised only at bootstrap."""

    @classmethod
    def invalid(cls, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Configuration error: {reason}",
            context={"reason": reason},
        )
