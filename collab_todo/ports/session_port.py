"""Session port — abstract interface for the authentication provider.

Core modules depend on this protocol, never on a specific auth backend.
"""

from __future__ import annotations

from typing import Callable, Protocol

from collab_todo.data.models import Identity

IdentityCallback = Callable[[Identity | None], None]


class SessionPort(Protocol):
    """Abstract session interface used by the app composition root.

    ``on_identity_changed`` fires once immediately with the resolved
    current state, then once per actual change.
    """

    def on_identity_changed(self, callback: IdentityCallback) -> Callable[[], None]: ...

    async def sign_out(self) -> None: ...
