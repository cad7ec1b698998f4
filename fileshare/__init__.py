"""
File Share Content Store

A filesystem-backed, key-addressed blob store:
- Name store: content addressed by a caller-supplied file name
- Id store: content addressed by a generated id, with the file extension
  inferred from the content's leading bytes
- Exclusive, atomic writes; streamed reads; SHA-256 hashing
- Cooperative cancellation of every operation

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
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
from fileshare.core.config import FileShareConfig, StorageConfig

from fileshare.storage import (
    ContentStore,
    ContentProvider,
    NameKeyResolver,
    IdKeyResolver,
    detect_extension,
)

__all__ = [
    # Version
    "__version__",
    # Types
    "Result",
    "Ok",
    "Err",
    "ContentHash",
    "ContentId",
    "ContentName",
    "ContentKey",
    "ContentPayload",
    "StoredObject",
    # Errors
    "ErrorCode",
    "FileShareError",
    "StoreError",
    "ConfigurationError",
    # Results
    "OperationResult",
    "CancellationToken",
    # Config
    "FileShareConfig",
    "StorageConfig",
    # Storage
    "ContentStore",
    "ContentProvider",
    "NameKeyResolver",
    "IdKeyResolver",
    "detect_extension",
]
