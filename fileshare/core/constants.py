"""
System-Wide Constants for the File Share Content Store

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

# =============================================================================
# TRANSFER
# =============================================================================
# Same buffer size as the classic stream CopyTo default (80 KiB)
DEFAULT_CHUNK_SIZE: Final[int] = 81920

# =============================================================================
# SIGNATURE DETECTION
# =============================================================================
SIGNATURE_WINDOW_BYTES: Final[int] = 256
SIGNATURE_MIN_BYTES: Final[int] = 8

# =============================================================================
# FILESYSTEM LAYOUT
# =============================================================================
DEFAULT_STORAGE_DIR: Final[str] = "./data/files"
TEMP_FILE_PREFIX: Final[str] = "."
TEMP_FILE_SUFFIX: Final[str] = ".partial"
# An in-flight file untouched for this long belongs to a dead writer
ABANDONED_WRITE_SECONDS: Final[float] = 900.0

# =============================================================================
# API
# =============================================================================
MAX_REQUEST_BODY_BYTES: Final[int] = 50 * MB
NAMES_PREFIX: Final[str] = "/files"
IDS_PREFIX: Final[str] = "/objects"

# Non-standard status used when the client aborted the request
STATUS_CLIENT_CLOSED_REQUEST: Final[int] = 499
