"""
Core module: Type definitions, error hierarchy, results and configuration.

This module provides the foundational abstractions for the content store:
- Result/Either monads and the OperationResult envelope
- Key and payload value types
- Exhaustive error hierarchy with pattern matching support
- Cooperative cancellation tokens
- Configuration management with validation
"""

from fileshare.core.types import (
    Result,
    Ok,
    Err,
    ContentHash,
    ContentId,
    ContentName,
    ContentKey,
    ContentPayload,
    StoredObject,
)
from fileshare.core.errors import (
    ErrorCode,
    FileShareError,
    StoreError,
    ConfigurationError,
)
from fileshare.core.results import OperationResult
from fileshare.core.cancellation import CancellationToken
from fileshare.core.config import (
    FileShareConfig,
    StorageConfig,
    ApiConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "ContentHash",
    "ContentId",
    "ContentName",
    "ContentKey",
    "ContentPayload",
    "StoredObject",
    "ErrorCode",
    "FileShareError",
    "StoreError",
    "ConfigurationError",
    "OperationResult",
    "CancellationToken",
    "FileShareConfig",
    "StorageConfig",
    "ApiConfig",
    "ObservabilityConfig",
]
