"""EmailJS mailer adapter — implements InvitationMailerPort.

Sends invitation emails through the EmailJS REST endpoint. The email body
itself is rendered by the EmailJS template; this adapter only supplies
the template parameters.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from collab_todo.ports.mailer_port import MailerError

if TYPE_CHECKING:
    from collab_todo.data.models import PendingInvitation

logger = logging.getLogger(__name__)

_EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"
_TIMEOUT_SECONDS = 10


class EmailJSMailer:
    """EmailJS implementation of InvitationMailerPort."""

    def __init__(
        self,
        service_id: str,
        template_id: str,
        public_key: str,
        app_name: str = "Collab Todo",
    ) -> None:
        self._service_id = service_id
        self._template_id = template_id
        self._public_key = public_key
        self._app_name = app_name

    def _template_params(self, invitation: PendingInvitation, invite_url: str) -> dict:
        return {
            "to_email": invitation.email,
            "to_name": invitation.email.split("@")[0],
            "from_name": invitation.invited_by_name,
            "list_name": invitation.list_name,
            "role": invitation.role,
            "invite_url": invite_url,
            "app_name": self._app_name,
        }

    async def send_invitation(
        self, invitation: PendingInvitation, invite_url: str
    ) -> None:
        payload = {
            "service_id": self._service_id,
            "template_id": self._template_id,
            "user_id": self._public_key,
            "template_params": self._template_params(invitation, invite_url),
        }
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.post(_EMAILJS_SEND_URL, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("EmailJS send failed for %s: %s", invitation.email, exc)
            raise MailerError(f"Failed to send invitation email: {exc}") from exc

        logger.info(
            "Invitation email sent to %s for list '%s'",
            invitation.email, invitation.list_name,
        )
