"""Sample content and stream doubles shared by the tests."""

from __future__ import annotations

import io
from typing import Optional

from fileshare.core.cancellation import CancellationToken
from fileshare.core.types import ContentPayload

PDF_BYTES = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
TEXT_BYTES = b"hello world, this is a plain text document\n"


class NonSeekableStream:
    """Forward-only byte stream, like a socket or pipe."""

    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    def close(self) -> None:
        self._buffer.close()

    def __enter__(self) -> NonSeekableStream:
        return self

    def __exit__(self, *args) -> None:
        self.close()


class CancelAfterReads(NonSeekableStream):
    """Stream that fires ``token`` once more than ``reads`` reads were made."""

    def __init__(self, data: bytes, token: CancellationToken, reads: int = 1) -> None:
        super().__init__(data)
        self._token = token
        self._reads_left = reads

    def read(self, size: int = -1) -> bytes:
        if self._reads_left == 0:
            self._token.cancel("client went away")
        else:
            self._reads_left -= 1
        return super().read(size)


def payload(data: bytes, length: Optional[int] = None) -> ContentPayload:
    return ContentPayload(
        stream=io.BytesIO(data),
        length=len(data) if length is None else length,
    )
