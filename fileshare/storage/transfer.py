"""
Streaming Transfer: chunked copy and read with cooperative cancellation.

Blocking file I/O runs one chunk at a time on the default executor, so
concurrent operations interleave on a single event loop and a long
transfer can be aborted between any two chunks.

The chunked helpers return Result values:
- Ok(...) on completion
- Err(TransferCancelled) when the token fired at a chunk boundary
OSError/ValueError from the underlying files propagate to the caller,
which owns the error-to-result mapping.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from fileshare.core.cancellation import CancellationToken
from fileshare.core.types import Err, Ok, Result


@dataclass(frozen=True, slots=True)
class TransferCancelled:
    """Cancellation observed after ``bytes_done`` bytes were transferred."""

    bytes_done: int
    reason: str = ""


async def copy_stream(
    source: BinaryIO,
    target: BinaryIO,
    *,
    cancel: CancellationToken,
    chunk_size: int,
    prefix: bytes = b"",
) -> Result[int, TransferCancelled]:
    """
    Copy ``prefix`` then the remainder of ``source`` into ``target``.

    Returns:
        Ok(total bytes written) or Err(TransferCancelled)
    """
    loop = asyncio.get_running_loop()
    written = 0

    if prefix:
        if cancel.cancelled:
            return Err(TransferCancelled(written, cancel.reason))
        await loop.run_in_executor(None, target.write, prefix)
        written += len(prefix)

    while True:
        if cancel.cancelled:
            return Err(TransferCancelled(written, cancel.reason))
        chunk = await loop.run_in_executor(None, source.read, chunk_size)
        if not chunk:
            break
        if cancel.cancelled:
            return Err(TransferCancelled(written, cancel.reason))
        await loop.run_in_executor(None, target.write, chunk)
        written += len(chunk)

    await loop.run_in_executor(None, target.flush)
    return Ok(written)


async def read_file(
    path: Path,
    *,
    cancel: CancellationToken,
    chunk_size: int,
) -> Result[bytes, TransferCancelled]:
    """Read a whole file into memory, chunk by chunk."""
    loop = asyncio.get_running_loop()
    buffer = bytearray()

    with open(path, "rb") as handle:
        while True:
            if cancel.cancelled:
                return Err(TransferCancelled(len(buffer), cancel.reason))
            chunk = await loop.run_in_executor(None, handle.read, chunk_size)
            if not chunk:
                break
            buffer.extend(chunk)

    return Ok(bytes(buffer))


async def open_reader(path: Path) -> tuple[BinaryIO, int]:
    """Open ``path`` for reading off the event loop. Returns (stream, size)."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _open_with_size, path)


def _open_with_size(path: Path) -> tuple[BinaryIO, int]:
    stream = open(path, "rb")
    try:
        return stream, os.fstat(stream.fileno()).st_size
    except OSError:
        stream.close()
        raise


def declared_length_mismatch(declared: int, actual: int) -> Optional[str]:
    """Describe a mismatch between a declared non-negative length and reality."""
    if declared < 0 or declared == actual:
        return None
    return f"declared {declared} bytes, transferred {actual}"
