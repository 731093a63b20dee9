"""
Collab Todo — Composition root.

Wires the session manager to the sync engine and the invitation
resolvers: every identity change re-scopes the engine, and every sign-in
refreshes the user profile, checks the current location for an
invitation link and consumes the remaining pending invitations for that
email.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from collab_todo.core.errors import CollabError, ErrorCode, UnauthenticatedError
from collab_todo.core.invitations import (
    InvitationLinkResolver,
    InvitationPromptResponse,
    InvitationResponse,
    ResponseKind,
    SignInInvitationResolver,
    SignInResolution,
)
from collab_todo.core.profiles import update_display_name, upsert_user_profile
from collab_todo.core.sync_engine import SyncEngine
from collab_todo.data.models import Identity, utc_now

if TYPE_CHECKING:
    from collab_todo.config import Settings
    from collab_todo.ports.document_store_port import DocumentStorePort
    from collab_todo.ports.mailer_port import InvitationMailerPort
    from collab_todo.ports.navigation_port import NavigationPort
    from collab_todo.ports.notice_port import NoticePort
    from collab_todo.ports.session_port import SessionPort

logger = logging.getLogger(__name__)


class CollabApp:
    """Owns one SyncEngine and drives it from a SessionPort."""

    def __init__(
        self,
        store: DocumentStorePort,
        session: SessionPort,
        navigation: NavigationPort | None = None,
        notices: NoticePort | None = None,
        mailer: InvitationMailerPort | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._session = session
        self._notices = notices
        self.engine = SyncEngine(store, mailer=mailer, settings=settings, clock=clock)
        self.sign_in_resolver = SignInInvitationResolver(store, clock=clock)
        self.link_resolver = (
            InvitationLinkResolver(store, navigation, clock=clock)
            if navigation is not None else None
        )
        self.pending_prompt: InvitationPromptResponse | None = None
        self.active_list_id: str | None = None
        self.last_resolution: SignInResolution | None = None
        self._tasks: set[asyncio.Task] = set()
        self._detach: Callable[[], None] | None = None

    def start(self) -> None:
        """Attach to the session. Must be called with a running event loop."""
        if self._detach is None:
            self._detach = self._session.on_identity_changed(self._on_identity_changed)

    def _on_identity_changed(self, identity: Identity | None) -> None:
        for task in list(self._tasks):
            task.cancel()
        self.pending_prompt = None
        self.engine.set_identity(identity)
        if identity is None:
            self.active_list_id = None
            return

        task = asyncio.get_running_loop().create_task(self.handle_sign_in(identity))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Sign-in processing failed: %s", exc)

    async def wait_idle(self) -> None:
        """Wait for background sign-in processing to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_sign_in(self, identity: Identity) -> InvitationResponse | None:
        try:
            await upsert_user_profile(self._store, identity)
        except CollabError as exc:
            logger.error("Could not upsert profile for %s: %s", identity.id, exc)

        # An invitation opened through a link is put to the user instead of
        # being consumed silently, so the link is checked first.
        response = None
        if self.link_resolver is not None:
            response = await self.link_resolver.resolve_from_navigation(identity)

        prompted = (
            [response.invitation.list_id]
            if isinstance(response, InvitationPromptResponse) and response.invitation
            else []
        )
        self.last_resolution = await self.sign_in_resolver.resolve(
            identity, exclude_list_ids=prompted,
        )
        if self.last_resolution.joined:
            logger.info(
                "%s joined %d list(s) from pending invitations",
                identity.id, len(self.last_resolution.joined),
            )

        if response is not None:
            self._deliver(response)
        return response

    async def check_invitation_link(self) -> InvitationResponse | None:
        """Re-check the current location, for links opened while signed in."""
        identity = self.engine.identity
        if identity is None or self.link_resolver is None:
            return None
        response = await self.link_resolver.resolve_from_navigation(identity)
        if response is not None:
            self._deliver(response)
        return response

    def _deliver(self, response: InvitationResponse) -> None:
        if isinstance(response, InvitationPromptResponse):
            self.pending_prompt = response
        if response.activate_list_id:
            self.active_list_id = response.activate_list_id
        if self._notices is not None:
            self._notices.show_notice(response)
        else:
            logger.info("Invitation notice [%s]: %s", response.kind.value, response.message)

    async def _respond(self, accept: bool) -> InvitationResponse:
        identity = self.engine.identity
        if identity is None:
            raise UnauthenticatedError("You must be signed in to do that")
        if self.link_resolver is None or self.pending_prompt is None:
            return InvitationResponse(
                kind=ResponseKind.NO_ACTION,
                message="There is no invitation to respond to.",
            )

        prompt = self.pending_prompt
        if accept:
            response = await self.link_resolver.accept(prompt, identity)
        else:
            response = await self.link_resolver.decline(prompt, identity)

        retryable = (
            response.kind is ResponseKind.ERROR
            and response.error_code not in (ErrorCode.NOT_FOUND, ErrorCode.EXPIRED)
        )
        if not retryable and response.kind is not ResponseKind.NO_ACTION:
            self.pending_prompt = None
        self._deliver(response)
        return response

    async def accept_invitation(self) -> InvitationResponse:
        return await self._respond(accept=True)

    async def decline_invitation(self) -> InvitationResponse:
        return await self._respond(accept=False)

    async def update_display_name(self, display_name: str) -> str:
        identity = self.engine.identity
        if identity is None:
            raise UnauthenticatedError("You must be signed in to do that")
        return await update_display_name(self._store, identity, display_name)

    async def sign_out(self) -> None:
        await self._session.sign_out()

    def close(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None
        for task in list(self._tasks):
            task.cancel()
        self.engine.close()
