"""
Cooperative Cancellation Signal

A CancellationToken is passed to every store operation. The operation
checks it before touching the filesystem and again at every chunk boundary
of a long transfer. Firing a token is one-way and thread-safe, so it can be
triggered from another thread, a signal handler, or a request-abort hook.

Usage:
    token = CancellationToken()
    task = asyncio.create_task(store.store(key, payload, cancel=token))
    ...
    token.cancel("client disconnected")
    result = await task
    assert result.cancelled
"""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """One-way cancellation flag shared between a caller and an operation."""

    __slots__ = ("_event", "_reason", "_frozen")

    _NONE: Optional[CancellationToken] = None

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""
        self._frozen = False

    @classmethod
    def none(cls) -> CancellationToken:
        """Shared token that can never be cancelled."""
        if cls._NONE is None:
            token = cls()
            token._frozen = True
            cls._NONE = token
        return cls._NONE

    @classmethod
    def cancelled_token(cls, reason: str = "") -> CancellationToken:
        """Token that is already cancelled."""
        token = cls()
        token.cancel(reason)
        return token

    def cancel(self, reason: str = "") -> None:
        """Request cancellation. Later calls keep the first reason."""
        if self._frozen:
            raise RuntimeError("CancellationToken.none() cannot be cancelled")
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason!r}" if self.cancelled else "active"
        return f"CancellationToken({state})"
