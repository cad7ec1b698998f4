"""
Content Store: key-addressed blob operations over one filesystem directory.

A single implementation serves both key variants; the KeyResolver strategy
decides how a key maps to files:

    names = ContentStore.for_names(config)      # ContentName -> root/name
    ids = ContentStore.for_ids(config)          # ContentId -> root/<id>.<ext>

Every operation:
- returns an OperationResult (never raises for not-found, invalid input,
  I/O failure or cancellation)
- checks its CancellationToken before touching the filesystem, and at every
  chunk boundary of a transfer

Writes are exclusive and never partially visible: content is copied into
``.<file-name>.partial`` opened with exclusive-create, then renamed over the
target. A second concurrent writer to the same target fails to create the
in-flight file and gets an I/O failure result.
An in-flight file left behind by a crashed writer is reclaimed by the next
writer once it is older than ``StorageConfig.abandoned_write_seconds``.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Generic, Iterator, Optional

from fileshare.core.cancellation import CancellationToken
from fileshare.core.config import StorageConfig
from fileshare.core.errors import ErrorCode, StoreError
from fileshare.core.results import OperationResult
from fileshare.core.types import (
    ContentId,
    ContentName,
    ContentPayload,
    Result,
    StoredObject,
)
from fileshare.observability.logging import StructuredLogger
from fileshare.observability.metrics import MetricsCollector
from fileshare.storage.hashing import hash_file
from fileshare.storage.resolvers import (
    IdKeyResolver,
    K,
    KeyResolver,
    NameKeyResolver,
    temp_path_for,
)
from fileshare.storage.signatures import sniff_stream
from fileshare.storage.transfer import (
    copy_stream,
    declared_length_mismatch,
    open_reader,
    read_file,
)

logger = logging.getLogger(__name__)

_OUTCOMES = {
    ErrorCode.STORE_NOT_FOUND: "not_found",
    ErrorCode.STORE_INVALID_INPUT: "invalid_input",
    ErrorCode.STORE_IO_FAILURE: "io_failure",
    ErrorCode.STORE_CANCELLED: "cancelled",
}


class ContentStore(Generic[K]):
    """
    Filesystem content store parameterized by a key-to-path strategy.

    Thread/task safety: no in-process locks. Operations on distinct keys are
    fully independent; operations on the same key race at the filesystem
    level, with exclusive creation of the in-flight file as the only guard.
    """

    __slots__ = (
        "_resolver",
        "_config",
        "_ops",
        "_latency",
        "_bytes",
        "_in_flight",
    )

    def __init__(
        self,
        resolver: KeyResolver[K],
        config: StorageConfig,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._resolver = resolver
        self._config = config

        if config.create_root:
            resolver.root.mkdir(parents=True, exist_ok=True)

        metrics = metrics or MetricsCollector.get_instance()
        self._ops = metrics.counter(
            "fileshare_operations_total",
            label_names=["operation", "outcome"],
            help_text="Content store operations by outcome",
        )
        self._latency = metrics.histogram(
            "fileshare_operation_duration_seconds",
            label_names=["operation"],
            help_text="Content store operation latency",
        )
        self._bytes = metrics.counter(
            "fileshare_bytes_total",
            label_names=["direction"],
            help_text="Bytes written to (in) and read from (out) the store",
        )
        self._in_flight = metrics.gauge(
            "fileshare_transfers_in_flight",
            help_text="Write transfers currently copying",
        )

    @classmethod
    def for_names(
        cls,
        config: StorageConfig,
        metrics: Optional[MetricsCollector] = None,
    ) -> ContentStore[ContentName]:
        """Store addressed by caller-supplied names."""
        return cls(NameKeyResolver(config.root_dir), config, metrics)

    @classmethod
    def for_ids(
        cls,
        config: StorageConfig,
        metrics: Optional[MetricsCollector] = None,
    ) -> ContentStore[ContentId]:
        """Store addressed by generated ids with inferred extensions."""
        return cls(IdKeyResolver(config.root_dir), config, metrics)

    @property
    def resolver(self) -> KeyResolver[K]:
        return self._resolver

    @property
    def root(self) -> Path:
        return self._resolver.root

    def parse_key(self, raw: str) -> Result[K, str]:
        return self._resolver.parse(raw)

    # -------------------------------------------------------------------------
    # WRITE OPERATIONS
    # -------------------------------------------------------------------------
    async def store(
        self,
        key: K,
        payload: Optional[ContentPayload],
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[StoredObject]:
        """
        Create or replace the content for ``key``.

        For id keys the payload's leading bytes choose the extension; for
        name keys the name is the file name.
        """
        token = cancel or CancellationToken.none()
        with self._operation("store", key):
            if token.cancelled:
                return self._finish("store", key, OperationResult.failure(
                    StoreError.cancelled("store", key, token.reason)
                ))

            invalid = _validate_payload(payload)
            if invalid is not None:
                return self._finish("store", key, OperationResult.failure(invalid))

            try:
                extension, prefix = "", b""
                if self._resolver.infers_extension:
                    extension, prefix = sniff_stream(
                        payload.stream, self._config.header_window_bytes
                    )
                target = self._resolver.target_for(key, extension)
            except (OSError, ValueError) as e:
                return self._finish("store", key, OperationResult.failure(
                    StoreError.io_failure("store", key, e)
                ))

            result = await self._write("store", key, target, payload, token, prefix)
            if result.success:
                if not self._resolver.infers_extension:
                    extension = self._resolver.extension_of(target, key)
                result.value = StoredObject(
                    key=key,
                    file_name=target.name,
                    extension=extension,
                    size_bytes=result.value.size_bytes,
                )
                result.add_success_message(f"File {key} stored successfully.")
                if self._resolver.infers_extension and self._config.prune_stale_variants:
                    self._prune_variants(key, keep=target)
            return self._finish("store", key, result)

    async def update(
        self,
        key: K,
        payload: Optional[ContentPayload],
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[StoredObject]:
        """
        Overwrite existing content in place.

        The key must already resolve. The resolved file keeps its name;
        signature detection is not re-run.
        """
        token = cancel or CancellationToken.none()
        with self._operation("update", key):
            if token.cancelled:
                return self._finish("update", key, OperationResult.failure(
                    StoreError.cancelled("update", key, token.reason)
                ))

            invalid = _validate_payload(payload)
            if invalid is not None:
                return self._finish("update", key, OperationResult.failure(invalid))

            try:
                target = self._resolver.resolve(key)
            except OSError as e:
                return self._finish("update", key, OperationResult.failure(
                    StoreError.io_failure("update", key, e)
                ))
            if target is None:
                return self._finish("update", key, OperationResult.failure(
                    StoreError.not_found(key)
                ))

            result = await self._write("update", key, target, payload, token)
            if result.success:
                result.value = StoredObject(
                    key=key,
                    file_name=target.name,
                    extension=self._resolver.extension_of(target, key),
                    size_bytes=result.value.size_bytes,
                )
                result.add_success_message(f"File {key} updated successfully.")
            return self._finish("update", key, result)

    async def delete(
        self,
        key: K,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[list[str]]:
        """
        Remove every file resolved for ``key``.

        Payload: names of the files removed. A file that cannot be removed
        adds an I/O error; the remaining files are still attempted.
        """
        token = cancel or CancellationToken.none()
        with self._operation("delete", key):
            if token.cancelled:
                return self._finish("delete", key, OperationResult.failure(
                    StoreError.cancelled("delete", key, token.reason)
                ))

            try:
                matches = self._resolver.resolve_all(key)
            except OSError as e:
                return self._finish("delete", key, OperationResult.failure(
                    StoreError.io_failure("delete", key, e)
                ))
            if not matches:
                return self._finish("delete", key, OperationResult.failure(
                    StoreError.not_found(key)
                ))

            result: OperationResult[list[str]] = OperationResult(value=[])
            for path in matches:
                try:
                    path.unlink()
                except OSError as e:
                    result.append_error(StoreError.io_failure("delete", key, e))
                    continue
                result.value.append(path.name)

            if result.value:
                result.add_success_message(f"File {key} deleted successfully.")
            return self._finish("delete", key, result)

    # -------------------------------------------------------------------------
    # READ OPERATIONS
    # -------------------------------------------------------------------------
    async def exists(
        self,
        key: K,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[bool]:
        """Report presence without opening the file."""
        token = cancel or CancellationToken.none()
        with self._operation("exists", key):
            if token.cancelled:
                return self._finish("exists", key, OperationResult.failure(
                    StoreError.cancelled("exists", key, token.reason), value=False
                ))

            try:
                path = self._resolver.resolve(key)
            except OSError as e:
                return self._finish("exists", key, OperationResult.failure(
                    StoreError.io_failure("exists", key, e), value=False
                ))
            if path is None:
                return self._finish("exists", key, OperationResult.failure(
                    StoreError.not_found(key), value=False
                ))
            return self._finish("exists", key, OperationResult.ok(
                True, f"File {key} exists."
            ))

    async def get(
        self,
        key: K,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[ContentPayload]:
        """
        Open the content for streaming.

        The caller owns the returned stream and must close it
        (ContentPayload is a context manager).
        """
        token = cancel or CancellationToken.none()
        with self._operation("get", key):
            if token.cancelled:
                return self._finish("get", key, OperationResult.failure(
                    StoreError.cancelled("get", key, token.reason)
                ))

            try:
                path = self._resolver.resolve(key)
                if path is None:
                    return self._finish("get", key, OperationResult.failure(
                        StoreError.not_found(key)
                    ))
                stream, length = await open_reader(path)
            except (OSError, ValueError) as e:
                return self._finish("get", key, OperationResult.failure(
                    StoreError.io_failure("get", key, e)
                ))

            return self._finish("get", key, OperationResult.ok(
                ContentPayload(stream=stream, length=length),
                f"File {key} retrieved successfully.",
            ))

    async def get_bytes(
        self,
        key: K,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[bytes]:
        """
        Read the whole content into memory.

        Intended for small files; the size ceiling belongs to the caller.
        """
        token = cancel or CancellationToken.none()
        with self._operation("get_bytes", key):
            if token.cancelled:
                return self._finish("get_bytes", key, OperationResult.failure(
                    StoreError.cancelled("get_bytes", key, token.reason)
                ))

            try:
                path = self._resolver.resolve(key)
                if path is None:
                    return self._finish("get_bytes", key, OperationResult.failure(
                        StoreError.not_found(key)
                    ))
                read = await read_file(
                    path, cancel=token, chunk_size=self._config.chunk_size
                )
            except (OSError, ValueError) as e:
                return self._finish("get_bytes", key, OperationResult.failure(
                    StoreError.io_failure("get_bytes", key, e)
                ))

            if read.is_err():
                return self._finish("get_bytes", key, OperationResult.failure(
                    StoreError.cancelled("get_bytes", key, read.error.reason)
                ))

            data = read.unwrap()
            self._bytes.inc(len(data), direction="out")
            return self._finish("get_bytes", key, OperationResult.ok(
                data, f"File {key} bytes retrieved successfully."
            ))

    async def get_hash(
        self,
        key: K,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[str]:
        """Lowercase hex SHA-256 of the stored content."""
        token = cancel or CancellationToken.none()
        with self._operation("get_hash", key):
            if token.cancelled:
                return self._finish("get_hash", key, OperationResult.failure(
                    StoreError.cancelled("get_hash", key, token.reason)
                ))

            try:
                path = self._resolver.resolve(key)
                if path is None:
                    return self._finish("get_hash", key, OperationResult.failure(
                        StoreError.not_found(key)
                    ))
                hashed = await hash_file(
                    path, cancel=token, chunk_size=self._config.chunk_size
                )
            except (OSError, ValueError) as e:
                return self._finish("get_hash", key, OperationResult.failure(
                    StoreError.io_failure("get_hash", key, e)
                ))

            if hashed.is_err():
                return self._finish("get_hash", key, OperationResult.failure(
                    StoreError.cancelled("get_hash", key, hashed.error.reason)
                ))

            return self._finish("get_hash", key, OperationResult.ok(
                hashed.unwrap().to_hex(), f"File {key} hash computed successfully."
            ))

    # -------------------------------------------------------------------------
    # INTERNALS
    # -------------------------------------------------------------------------
    async def _write(
        self,
        operation: str,
        key: K,
        target: Path,
        payload: ContentPayload,
        token: CancellationToken,
        prefix: bytes = b"",
    ) -> OperationResult[StoredObject]:
        """
        Exclusive temp-then-rename write of ``payload`` to ``target``.

        The in-flight file is opened before the first suspension point so
        that of two concurrent writers exactly one owns it.
        """
        temp = temp_path_for(target)
        try:
            handle = self._open_in_flight(temp)
        except OSError as e:
            return OperationResult.failure(StoreError.io_failure(operation, key, e))

        committed = False
        self._in_flight.inc()
        try:
            with handle:
                copied = await copy_stream(
                    payload.stream,
                    handle,
                    cancel=token,
                    chunk_size=self._config.chunk_size,
                    prefix=prefix,
                )
            if copied.is_err():
                cancelled = copied.error
                logger.info(
                    "Transfer cancelled after %d bytes",
                    cancelled.bytes_done,
                    extra={"bytes_done": cancelled.bytes_done},
                )
                return OperationResult.failure(
                    StoreError.cancelled(operation, key, cancelled.reason)
                )

            size = copied.unwrap()
            os.replace(temp, target)
            committed = True
        except (OSError, ValueError) as e:
            return OperationResult.failure(StoreError.io_failure(operation, key, e))
        finally:
            self._in_flight.dec()
            if not committed:
                _discard(temp)

        mismatch = declared_length_mismatch(payload.length, size)
        if mismatch is not None:
            logger.warning(
                "Payload length mismatch for %s: %s",
                key,
                mismatch,
                extra={"declared_length": payload.length, "actual_length": size},
            )

        self._bytes.inc(size, direction="in")
        return OperationResult(value=StoredObject(
            key=key,
            file_name=target.name,
            extension="",
            size_bytes=size,
        ))

    def _open_in_flight(self, temp: Path) -> BinaryIO:
        """
        Exclusively create the in-flight file of a write.

        An existing in-flight file untouched for ``abandoned_write_seconds``
        was left behind by a writer that died before cleaning up. It is
        removed and creation is retried once. A younger one belongs to a
        live concurrent writer, and FileExistsError propagates.
        """
        try:
            return open(temp, "xb")
        except FileExistsError:
            if not self._is_abandoned(temp):
                raise
        logger.warning(
            "Reclaiming abandoned in-flight file %s",
            temp.name,
            extra={"in_flight": temp.name},
        )
        _discard(temp)
        return open(temp, "xb")

    def _is_abandoned(self, temp: Path) -> bool:
        try:
            modified = temp.stat().st_mtime
        except FileNotFoundError:
            return True
        return time.time() - modified >= self._config.abandoned_write_seconds

    def _prune_variants(self, key: K, keep: Path) -> None:
        """Remove files of the same id left behind under other extensions."""
        try:
            stale = [p for p in self._resolver.resolve_all(key) if p != keep]
        except OSError as e:
            logger.warning("Could not scan for stale variants of %s: %s", key, e)
            return
        for path in stale:
            try:
                path.unlink()
                logger.info(
                    "Removed stale variant %s",
                    path.name,
                    extra={"removed": path.name, "kept": keep.name},
                )
            except OSError as e:
                logger.warning("Could not remove stale variant %s: %s", path.name, e)

    @contextmanager
    def _operation(self, operation: str, key: K) -> Iterator[None]:
        with StructuredLogger.context(operation=operation, key=str(key)):
            with self._latency.time(operation=operation):
                yield

    def _finish(
        self,
        operation: str,
        key: K,
        result: OperationResult,
    ) -> OperationResult:
        if result.success:
            outcome = "ok"
            logger.debug("%s %s succeeded", operation, key)
        else:
            outcome = _OUTCOMES.get(result.errors[0].code, "error")
            logger.warning(
                "%s %s failed: %s",
                operation,
                key,
                "; ".join(result.error_messages),
                extra={"outcome": outcome},
            )
        self._ops.inc(operation=operation, outcome=outcome)
        return result

    def __repr__(self) -> str:
        return f"ContentStore({type(self._resolver).__name__}, root={self.root})"


def _validate_payload(payload: Optional[ContentPayload]) -> Optional[StoreError]:
    if payload is None:
        return StoreError.invalid_input("payload", "content payload is required")
    if payload.stream is None:
        return StoreError.invalid_input("payload", "content stream is required")
    return None


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove in-flight file %s: %s", path.name, e)
