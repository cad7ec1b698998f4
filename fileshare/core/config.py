"""
Configuration Management for the File Share Content Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from fileshare.core.types import Result, Ok, Err
from fileshare.core import constants as C


_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class StorageConfig:
    """Backing directory and transfer configuration."""

    root_dir: Path = field(default_factory=lambda: Path(C.DEFAULT_STORAGE_DIR))
    chunk_size: int = C.DEFAULT_CHUNK_SIZE
    header_window_bytes: int = C.SIGNATURE_WINDOW_BYTES
    create_root: bool = True
    prune_stale_variants: bool = True
    abandoned_write_seconds: float = C.ABANDONED_WRITE_SECONDS


@dataclass(frozen=True)
class ApiConfig:
    """Request-routing layer configuration."""

    max_request_body_bytes: int = C.MAX_REQUEST_BODY_BYTES
    names_prefix: str = C.NAMES_PREFIX
    ids_prefix: str = C.IDS_PREFIX


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging and metrics configuration."""

    log_level: str = "INFO"
    log_json: bool = True
    metrics_enabled: bool = True


@dataclass(frozen=True)
class FileShareConfig:
    """Root configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[FileShareConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with FILESHARE_.
        Example: FILESHARE_STORAGE_DIR, FILESHARE_CHUNK_SIZE
        """
        try:
            storage = StorageConfig(
                root_dir=Path(os.getenv("FILESHARE_STORAGE_DIR", C.DEFAULT_STORAGE_DIR)),
                chunk_size=int(os.getenv("FILESHARE_CHUNK_SIZE", str(C.DEFAULT_CHUNK_SIZE))),
                prune_stale_variants=_parse_bool(os.getenv("FILESHARE_PRUNE_STALE", "true")),
                abandoned_write_seconds=float(
                    os.getenv("FILESHARE_ABANDONED_WRITE_SECONDS", str(C.ABANDONED_WRITE_SECONDS))
                ),
            )

            api = ApiConfig(
                max_request_body_bytes=int(
                    os.getenv("FILESHARE_MAX_REQUEST_BYTES", str(C.MAX_REQUEST_BODY_BYTES))
                ),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("FILESHARE_LOG_LEVEL", "INFO").upper(),
                log_json=_parse_bool(os.getenv("FILESHARE_LOG_JSON", "true")),
            )

            return Ok(cls(storage=storage, api=api, observability=observability))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def with_root(self, root_dir: Path) -> FileShareConfig:
        """Copy of this config pointed at another storage directory."""
        return replace(self, storage=replace(self.storage, root_dir=root_dir))

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.storage.chunk_size <= 0:
            return Err("Storage chunk_size must be > 0")
        if self.storage.header_window_bytes < C.SIGNATURE_MIN_BYTES:
            return Err(
                f"Storage header_window_bytes must be >= {C.SIGNATURE_MIN_BYTES}"
            )
        if self.storage.abandoned_write_seconds <= 0:
            return Err("Storage abandoned_write_seconds must be > 0")
        if self.api.max_request_body_bytes <= 0:
            return Err("API max_request_body_bytes must be > 0")
        if self.api.names_prefix == self.api.ids_prefix:
            return Err("API names_prefix and ids_prefix must differ")
        if self.observability.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return Err(f"Unknown log level: {self.observability.log_level}")
        return Ok(None)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")
