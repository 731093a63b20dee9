"""Mailer port — abstract interface for delivering invitation emails.

Core modules depend on this protocol, never on a specific email provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collab_todo.data.models import PendingInvitation


class MailerError(Exception):
    """Raised when an email provider fails to accept a message."""


class InvitationMailerPort(Protocol):
    async def send_invitation(
        self, invitation: PendingInvitation, invite_url: str
    ) -> None: ...
