"""Mailer adapter factory — creates the invitation mailer based on config."""

from __future__ import annotations

from collab_todo.config import settings
from collab_todo.ports.mailer_port import InvitationMailerPort


def create_mailer() -> InvitationMailerPort | None:
    """Return an EmailJS mailer, or None when EmailJS is not configured.

    Without a mailer, invitations are still recorded and can be shared as
    links built with ``build_invite_link``.
    """
    if not settings.emailjs_configured:
        return None

    from collab_todo.adapters.emailjs_mailer import EmailJSMailer

    return EmailJSMailer(
        service_id=settings.EMAILJS_SERVICE_ID,
        template_id=settings.EMAILJS_TEMPLATE_ID,
        public_key=settings.EMAILJS_PUBLIC_KEY,
        app_name=settings.APP_NAME,
    )
