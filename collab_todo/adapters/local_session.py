"""In-process session manager — implements SessionPort.

Holds the current identity and fans out changes to registered callbacks.
Used by the demo entry point and by tests; a real deployment plugs its
auth provider in behind the same port.
"""

from __future__ import annotations

import logging
from typing import Callable

from collab_todo.data.models import Identity
from collab_todo.ports.session_port import IdentityCallback

logger = logging.getLogger(__name__)


class LocalSessionManager:
    """SessionPort implementation driven by explicit sign_in/sign_out calls."""

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity
        self._callbacks: list[IdentityCallback] = []

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def on_identity_changed(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register *callback*; it fires right away with the current identity."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        callback(self._identity)
        return unsubscribe

    def sign_in(self, identity: Identity) -> None:
        if self._identity == identity:
            return
        logger.info("Signed in: %s <%s>", identity.id, identity.email)
        self._set(identity)

    async def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info("Signed out: %s", self._identity.id)
        self._set(None)

    def _set(self, identity: Identity | None) -> None:
        self._identity = identity
        for callback in list(self._callbacks):
            callback(identity)
