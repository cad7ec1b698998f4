"""
Content provider protocol.

Structural interface shared by the name-addressed and id-addressed stores,
so handlers and the CLI can be written once against either variant.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from fileshare.core.cancellation import CancellationToken
from fileshare.core.results import OperationResult
from fileshare.core.types import ContentKey, ContentPayload, Result, StoredObject


@runtime_checkable
class ContentProvider(Protocol):
    """Key-addressed blob operations. Every method reports via OperationResult."""

    def parse_key(self, raw: str) -> Result[ContentKey, str]:
        ...

    async def store(
        self,
        key: ContentKey,
        payload: Optional[ContentPayload],
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[StoredObject]:
        ...

    async def exists(
        self,
        key: ContentKey,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[bool]:
        ...

    async def get(
        self,
        key: ContentKey,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[ContentPayload]:
        ...

    async def get_bytes(
        self,
        key: ContentKey,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[bytes]:
        ...

    async def update(
        self,
        key: ContentKey,
        payload: Optional[ContentPayload],
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[StoredObject]:
        ...

    async def delete(
        self,
        key: ContentKey,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[list[str]]:
        ...

    async def get_hash(
        self,
        key: ContentKey,
        cancel: Optional[CancellationToken] = None,
    ) -> OperationResult[str]:
        ...
