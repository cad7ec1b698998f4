"""
API Handlers: Request Processing Logic

Implements:
- ContentHandler: store/get/update/delete/exists/hash over one content store

Result-to-status mapping:
- not found -> 404
- cancelled -> 499
- invalid input or I/O failure -> 400
"""

from __future__ import annotations

import base64
import io
from typing import Any

from fileshare.api.router import FileShareRouter, Request, Response
from fileshare.core import constants as C
from fileshare.core.errors import ErrorCode
from fileshare.core.results import OperationResult
from fileshare.core.types import ContentId, ContentKey, ContentPayload
from fileshare.storage.protocols import ContentProvider


class ContentHandler:
    """
    Handler for content requests against one store.

    Endpoints (relative to the mount prefix):
    - POST /{key}: Store content
    - POST /: Store under a generated id (id stores only)
    - GET /{key}: Stream content
    - GET /{key}/bytes: Content as base64 JSON
    - GET /{key}/hash: SHA-256 of content
    - GET /{key}/exists: Presence check
    - PUT /{key}: Overwrite existing content
    - DELETE /{key}: Remove content
    """

    __slots__ = ("_store", "_generate_ids")

    def __init__(self, store: ContentProvider, generate_ids: bool = False) -> None:
        self._store = store
        self._generate_ids = generate_ids

    def register(self, router: FileShareRouter, prefix: str) -> None:
        """Mount every endpoint of this handler under ``prefix``."""
        if self._generate_ids:
            router.post(prefix)(self.create)
        router.post(prefix + "/{key}")(self.store)
        router.get(prefix + "/{key}")(self.get)
        router.get(prefix + "/{key}/bytes")(self.get_bytes)
        router.get(prefix + "/{key}/hash")(self.get_hash)
        router.get(prefix + "/{key}/exists")(self.exists)
        router.put(prefix + "/{key}")(self.update)
        router.delete(prefix + "/{key}")(self.delete)

    async def create(self, request: Request) -> Response:
        """Store a new object under a freshly generated id."""
        return await self._store_as(ContentId.generate(), request)

    async def store(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)
        return await self._store_as(key.unwrap(), request)

    async def get(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)

        result = await self._store.get(key.unwrap(), cancel=request.cancel)
        if not result.success:
            return _failure(key.unwrap(), result)
        return Response.stream(result.value)

    async def get_bytes(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)

        result = await self._store.get_bytes(key.unwrap(), cancel=request.cancel)
        if not result.success:
            return _failure(key.unwrap(), result)
        return Response.json({
            "key": str(key.unwrap()),
            "content": base64.b64encode(result.value).decode("ascii"),
        })

    async def get_hash(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)

        result = await self._store.get_hash(key.unwrap(), cancel=request.cancel)
        if not result.success:
            return _failure(key.unwrap(), result)
        return Response.json({"key": str(key.unwrap()), "sha256": result.value})

    async def exists(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)

        result = await self._store.exists(key.unwrap(), cancel=request.cancel)
        if not result.success:
            return _failure(key.unwrap(), result, exists=False)
        return Response.json({
            "key": str(key.unwrap()),
            "exists": True,
            "messages": result.messages,
        })

    async def update(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)

        result = await self._store.update(
            key.unwrap(), _payload_of(request), cancel=request.cancel
        )
        if not result.success:
            return _failure(key.unwrap(), result)
        return Response.json({**result.value.to_dict(), "messages": result.messages})

    async def delete(self, request: Request) -> Response:
        key = self._store.parse_key(request.path_params.get("key", ""))
        if key.is_err():
            return Response.error(key.error)

        result = await self._store.delete(key.unwrap(), cancel=request.cancel)
        if not result.success:
            return _failure(key.unwrap(), result)
        return Response.json({
            "key": str(key.unwrap()),
            "deleted": result.value,
            "messages": result.messages,
        })

    async def _store_as(self, key: ContentKey, request: Request) -> Response:
        result = await self._store.store(key, _payload_of(request), cancel=request.cancel)
        if not result.success:
            return _failure(key, result)
        return Response.json(
            {**result.value.to_dict(), "messages": result.messages},
            status=201,
        )


def _payload_of(request: Request) -> ContentPayload:
    declared = request.content_length
    return ContentPayload(
        stream=io.BytesIO(request.body),
        length=declared if declared is not None else len(request.body),
    )


def status_for(result: OperationResult) -> int:
    """HTTP status for a failed operation result."""
    if result.has_error(ErrorCode.STORE_NOT_FOUND):
        return 404
    if result.has_error(ErrorCode.STORE_CANCELLED):
        return C.STATUS_CLIENT_CLOSED_REQUEST
    return 400


def _failure(key: ContentKey, result: OperationResult, **extra: Any) -> Response:
    body: dict[str, Any] = {"key": str(key), **extra, **result.to_dict()}
    if result.errors:
        body["error"] = result.errors[0].message
    return Response.json(body, status=status_for(result))

