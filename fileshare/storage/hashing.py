"""
Hasher: SHA-256 over a stored file in bounded-size chunks.

Memory use is O(chunk_size) regardless of file size, independent of
get_bytes which materializes the whole file.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

from fileshare.core.cancellation import CancellationToken
from fileshare.core.types import ContentHash, Err, Ok, Result
from fileshare.storage.transfer import TransferCancelled


async def hash_file(
    path: Path,
    *,
    cancel: CancellationToken,
    chunk_size: int,
) -> Result[ContentHash, TransferCancelled]:
    """
    Stream ``path`` through SHA-256.

    Returns:
        Ok(ContentHash) or Err(TransferCancelled) if the token fired
    """
    loop = asyncio.get_running_loop()
    digest = hashlib.sha256()
    hashed = 0

    with open(path, "rb") as handle:
        while True:
            if cancel.cancelled:
                return Err(TransferCancelled(hashed, cancel.reason))
            chunk = await loop.run_in_executor(None, handle.read, chunk_size)
            if not chunk:
                break
            digest.update(chunk)
            hashed += len(chunk)

    return Ok(ContentHash(digest=digest.digest()))
