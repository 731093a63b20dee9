"""Notice port — abstract interface for transient, dismissible user notices.

The presentation layer implements this to show invitation outcomes that
arrive outside of a direct call (e.g. after sign-in).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collab_todo.core.invitations import InvitationResponse


class NoticePort(Protocol):
    def show_notice(self, response: InvitationResponse) -> None: ...
