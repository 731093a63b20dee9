"""
Collab Todo — Invitation Resolver.

Two independent flows turn a PendingInvitation into list membership:

- Sign-in time: every invitation addressed to the newly authenticated
  email is consumed automatically.
- Link based: ``?invite=<listId>&email=<addr>`` in the current location is
  validated step by step and then presented for explicit accept/decline.

Consumption grants membership and deletes the invitation (with a
must-exist precondition) in one batch, so an invitation is consumed at
most once even when two sessions race on it.

Like the other UI-facing services, the link resolver never talks to the
user directly: it returns response objects the presentation layer renders.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from collab_todo.core.errors import CollabError, ErrorCode, InvalidArgumentError
from collab_todo.core.side_effects import run_side_effects
from collab_todo.data.models import PendingInvitation, Role, TodoList, utc_now
from collab_todo.ports.document_store_port import SERVER_TIMESTAMP, ArrayUnion, Query, WriteOp

if TYPE_CHECKING:
    from collab_todo.data.models import Identity
    from collab_todo.ports.document_store_port import DocumentStorePort
    from collab_todo.ports.navigation_port import NavigationPort

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(email) and _EMAIL_RE.match(email) is not None


def build_invite_link(base_url: str, list_id: str, email: str) -> str:
    """Shareable link that the link-based resolver understands."""
    query = urlencode({"invite": list_id, "email": email})
    return f"{base_url.rstrip('/')}/?{query}"


# ---------------------------------------------------------------------------
# Shared write helpers
# ---------------------------------------------------------------------------


def _grant_ops(invitation: PendingInvitation, identity: Identity, role: Role) -> list[WriteOp]:
    """Additive membership grant + must-exist delete of the invitation."""
    return [
        WriteOp(
            "update",
            f"lists/{invitation.list_id}",
            {
                "memberIds": ArrayUnion(identity.id),
                f"roles.{identity.id}": role.value,
            },
        ),
        WriteOp("delete", f"pendingInvitations/{invitation.id}", must_exist=True),
    ]


def _notification_payload(
    user_id: str, title: str, message: str, list_id: str, kind: str,
) -> dict:
    return {
        "userId": user_id,
        "title": title,
        "message": message,
        "listId": list_id,
        "type": kind,
        "read": False,
        "createdAt": SERVER_TIMESTAMP,
    }


def _activity_payload(identity: Identity, action: str) -> dict:
    return {
        "action": action,
        "userId": identity.id,
        "userName": identity.label,
        "userPhoto": identity.photo_url,
        "createdAt": SERVER_TIMESTAMP,
    }


async def _discard_invitation(store: DocumentStorePort, invitation_id: str) -> None:
    """Delete an invitation, tolerating it being gone already."""
    try:
        await store.delete(f"pendingInvitations/{invitation_id}")
    except CollabError as exc:
        if exc.code is ErrorCode.NOT_FOUND:
            logger.debug("Invitation %s already removed", invitation_id)
            return
        logger.warning("Could not delete invitation %s: %s", invitation_id, exc)


async def _load_list(store: DocumentStorePort, list_id: str) -> TodoList | None:
    doc = await store.get(f"lists/{list_id}")
    return TodoList.from_document(doc) if doc is not None else None


# ---------------------------------------------------------------------------
# (a) Sign-in-time resolution
# ---------------------------------------------------------------------------


@dataclass
class SignInResolution:
    """Outcome of one sign-in pass. ``failed`` maps invitation id → reason."""

    joined: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class SignInInvitationResolver:
    """Consumes every pending invitation addressed to a newly signed-in email."""

    def __init__(
        self,
        store: DocumentStorePort,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def resolve(
        self, identity: Identity, exclude_list_ids: Iterable[str] = (),
    ) -> SignInResolution:
        """Consume every invitation for the identity's email.

        Invitations for *exclude_list_ids* are left untouched (the link flow
        is asking the user about those explicitly).
        """
        result = SignInResolution()
        excluded = set(exclude_list_ids)
        email = (identity.email or "").strip().lower()
        if not email:
            return result

        try:
            docs = await self._store.query(
                Query("pendingInvitations").where("email", "==", email)
            )
        except CollabError as exc:
            logger.error("Could not load pending invitations for %s: %s", email, exc)
            result.failed["*"] = str(exc)
            return result

        if docs:
            logger.info("Found %d pending invitation(s) for %s", len(docs), email)

        for doc in docs:
            invitation = PendingInvitation.from_document(doc)
            if invitation.list_id in excluded:
                logger.debug("Leaving invitation %s to the link flow", invitation.id)
                continue
            try:
                joined = await self._consume(invitation, identity)
            except Exception as exc:
                logger.error(
                    "Failed to process invitation %s for %s: %s",
                    invitation.id, identity.id, exc,
                )
                result.failed[invitation.id] = str(exc)
                continue
            if joined:
                result.joined.append(invitation.list_id)
            else:
                result.skipped.append(invitation.id)
        return result

    async def _consume(self, invitation: PendingInvitation, identity: Identity) -> bool:
        """Grant membership for one invitation. Returns False when it was skipped."""
        if invitation.is_expired(self._clock()):
            logger.info("Invitation %s expired, discarding", invitation.id)
            await _discard_invitation(self._store, invitation.id)
            return False

        try:
            role = Role.parse(invitation.role)
        except InvalidArgumentError:
            logger.warning(
                "Invitation %s has invalid role %r, discarding",
                invitation.id, invitation.role,
            )
            await _discard_invitation(self._store, invitation.id)
            return False

        todo_list = await _load_list(self._store, invitation.list_id)
        if todo_list is None:
            logger.info("Invitation %s points at missing list %s", invitation.id, invitation.list_id)
            await _discard_invitation(self._store, invitation.id)
            return False

        if identity.id in todo_list.member_ids:
            logger.info("%s already in list %s, removing stale invitation", identity.id, todo_list.id)
            await _discard_invitation(self._store, invitation.id)
            return False

        ops = _grant_ops(invitation, identity, role)
        ops.append(WriteOp(
            "set",
            f"notifications/{identity.id}_{invitation.id}",
            _notification_payload(
                identity.id,
                "List Invitation Accepted",
                f'You\'ve been added to "{todo_list.name}" as {role.value}',
                todo_list.id,
                "welcome",
            ),
        ))
        try:
            await self._store.batch_write(ops)
        except CollabError as exc:
            if exc.code is ErrorCode.NOT_FOUND:
                # Consumed by another session, or the list was deleted meanwhile.
                logger.info("Invitation %s is no longer available", invitation.id)
                await _discard_invitation(self._store, invitation.id)
                return False
            raise

        logger.info("%s joined list %s as %s", identity.id, todo_list.id, role.value)
        await run_side_effects(
            f"sign-in invitation {invitation.id}",
            [(
                "activity",
                lambda: self._store.add(
                    f"lists/{todo_list.id}/activities",
                    _activity_payload(identity, f"joined the list as {role.value}"),
                ),
            )],
        )
        return True


# ---------------------------------------------------------------------------
# (b) Link-based resolution
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    PROMPT = "prompt"
    NO_ACTION = "no_action"


@dataclass
class InvitationResponse:
    kind: ResponseKind
    message: str
    error_code: ErrorCode | None = None
    activate_list_id: str | None = None


@dataclass
class InvitationPromptResponse(InvitationResponse):
    """Ask the user to accept or decline ``invitation``."""

    invitation: PendingInvitation | None = None
    list_description: str | None = None


def _error(message: str, code: ErrorCode) -> InvitationResponse:
    return InvitationResponse(kind=ResponseKind.ERROR, message=message, error_code=code)


class InvitationLinkResolver:
    """Validates an invitation link and runs the accept/decline flow."""

    def __init__(
        self,
        store: DocumentStorePort,
        navigation: NavigationPort,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._navigation = navigation
        self._clock = clock
        self._in_flight: set[str] = set()
        self._settled: set[str] = set()

    async def resolve_from_navigation(self, identity: Identity) -> InvitationResponse | None:
        """Check the current location for an invitation link.

        Returns None when there is no link. Every returned response has
        already cleared the link parameters.
        """
        list_id = self._navigation.get_param("invite")
        email = self._navigation.get_param("email")
        if not list_id or not email:
            return None

        try:
            return await self._resolve(identity, list_id, email)
        except CollabError as exc:
            logger.error("Error processing invitation link for %s: %s", list_id, exc)
            if exc.code is ErrorCode.PERMISSION_DENIED:
                return _error(
                    "Unable to access invitation. Please try signing out and back in.",
                    exc.code,
                )
            return _error("Failed to process invitation.", exc.code)
        finally:
            self._navigation.clear_params()

    async def _resolve(self, identity: Identity, list_id: str, email: str) -> InvitationResponse:
        email = email.strip().lower()
        if (identity.email or "").lower() != email:
            return _error(
                f"This invitation is for {email}. Please sign in with the correct email address.",
                ErrorCode.PERMISSION_DENIED,
            )

        docs = await self._store.query(
            Query("pendingInvitations")
            .where("listId", "==", list_id)
            .where("email", "==", email)
        )
        if not docs:
            todo_list = await _load_list(self._store, list_id)
            if todo_list is not None and identity.id in todo_list.member_ids:
                return InvitationResponse(
                    kind=ResponseKind.INFO,
                    message="You are already a member of this list.",
                    activate_list_id=list_id,
                )
            return _error("Invitation not found or has expired.", ErrorCode.NOT_FOUND)
        invitation = PendingInvitation.from_document(docs[0])

        if invitation.is_expired(self._clock()):
            await _discard_invitation(self._store, invitation.id)
            return _error("This invitation has expired.", ErrorCode.EXPIRED)

        todo_list = await _load_list(self._store, list_id)
        if todo_list is None:
            await _discard_invitation(self._store, invitation.id)
            return _error("The list you were invited to no longer exists.", ErrorCode.NOT_FOUND)

        if identity.id in todo_list.member_ids:
            await _discard_invitation(self._store, invitation.id)
            return InvitationResponse(
                kind=ResponseKind.INFO,
                message="You are already a member of this list.",
                activate_list_id=list_id,
            )

        return InvitationPromptResponse(
            kind=ResponseKind.PROMPT,
            message=f'{invitation.invited_by_name} invited you to collaborate on "{todo_list.name}".',
            invitation=invitation,
            list_description=todo_list.description,
        )

    def _claim(self, invitation_id: str) -> bool:
        if invitation_id in self._in_flight or invitation_id in self._settled:
            return False
        self._in_flight.add(invitation_id)
        return True

    async def accept(
        self, prompt: InvitationPromptResponse, identity: Identity,
    ) -> InvitationResponse:
        invitation = prompt.invitation
        if invitation is None:
            return _error("No invitation to accept.", ErrorCode.INVALID_ARGUMENT)
        if not self._claim(invitation.id):
            return InvitationResponse(
                kind=ResponseKind.NO_ACTION, message="This invitation is already being handled.",
            )

        settled = False
        try:
            response, settled = await self._accept(invitation, identity)
            return response
        finally:
            self._in_flight.discard(invitation.id)
            if settled:
                self._settled.add(invitation.id)

    async def _accept(
        self, invitation: PendingInvitation, identity: Identity,
    ) -> tuple[InvitationResponse, bool]:
        """Returns (response, settled). Unsettled failures leave the invitation retryable."""
        try:
            if invitation.is_expired(self._clock()):
                await _discard_invitation(self._store, invitation.id)
                return _error("This invitation has expired.", ErrorCode.EXPIRED), True

            try:
                role = Role.parse(invitation.role)
            except InvalidArgumentError as exc:
                return _error(f"This invitation is invalid: {exc.message}", exc.code), False

            todo_list = await _load_list(self._store, invitation.list_id)
            if todo_list is None:
                await _discard_invitation(self._store, invitation.id)
                return _error(
                    "The list you were invited to no longer exists.", ErrorCode.NOT_FOUND,
                ), True

            if identity.id in todo_list.member_ids:
                await _discard_invitation(self._store, invitation.id)
                return InvitationResponse(
                    kind=ResponseKind.INFO,
                    message="You are already a member of this list.",
                    activate_list_id=todo_list.id,
                ), True

            await self._store.batch_write(_grant_ops(invitation, identity, role))
        except CollabError as exc:
            logger.error("Error accepting invitation %s: %s", invitation.id, exc)
            if exc.code is ErrorCode.PERMISSION_DENIED:
                return _error(
                    "Permission denied while joining the list.", exc.code,
                ), False
            if exc.code is ErrorCode.NOT_FOUND:
                # The list or the invitation vanished under the batch.
                await _discard_invitation(self._store, invitation.id)
                return _error(
                    "This invitation is no longer available.", exc.code,
                ), True
            return _error("Failed to accept invitation.", exc.code), False

        # Joined. Nothing below may turn this into a failure.
        logger.info("%s accepted invitation %s to list %s", identity.id, invitation.id, todo_list.id)
        effects = [
            (
                "welcome notification",
                lambda: self._store.add("notifications", _notification_payload(
                    identity.id,
                    "Welcome to the team!",
                    f'You\'ve joined "{todo_list.name}" as {role.value}',
                    todo_list.id,
                    "welcome",
                )),
            ),
            (
                "activity",
                lambda: self._store.add(
                    f"lists/{todo_list.id}/activities",
                    _activity_payload(identity, f"joined the list as {role.value}"),
                ),
            ),
        ]
        if invitation.invited_by and invitation.invited_by != identity.id:
            effects.append((
                "inviter notification",
                lambda: self._store.add("notifications", _notification_payload(
                    invitation.invited_by,
                    "Invitation Accepted",
                    f'{identity.label} joined "{todo_list.name}"',
                    todo_list.id,
                    "invitation_accepted",
                )),
            ))
        await run_side_effects(f"accept invitation {invitation.id}", effects)

        return InvitationResponse(
            kind=ResponseKind.SUCCESS,
            message=f'Welcome to "{todo_list.name}"!',
            activate_list_id=todo_list.id,
        ), True

    async def decline(
        self, prompt: InvitationPromptResponse, identity: Identity,
    ) -> InvitationResponse:
        invitation = prompt.invitation
        if invitation is None:
            return _error("No invitation to decline.", ErrorCode.INVALID_ARGUMENT)
        if not self._claim(invitation.id):
            return InvitationResponse(
                kind=ResponseKind.NO_ACTION, message="This invitation is already being handled.",
            )

        settled = False
        try:
            try:
                await self._store.delete(f"pendingInvitations/{invitation.id}")
            except CollabError as exc:
                if exc.code is not ErrorCode.NOT_FOUND:
                    logger.error("Error declining invitation %s: %s", invitation.id, exc)
                    return _error("Failed to decline invitation.", exc.code)
            settled = True

            if invitation.invited_by and invitation.invited_by != identity.id:
                await run_side_effects(
                    f"decline invitation {invitation.id}",
                    [(
                        "inviter notification",
                        lambda: self._store.add("notifications", _notification_payload(
                            invitation.invited_by,
                            "Invitation Declined",
                            f'{identity.label} declined the invitation to "{invitation.list_name}"',
                            invitation.list_id,
                            "invitation_declined",
                        )),
                    )],
                )
            logger.info("%s declined invitation %s", identity.id, invitation.id)
            return InvitationResponse(kind=ResponseKind.INFO, message="Invitation declined.")
        finally:
            self._in_flight.discard(invitation.id)
            if settled:
                self._settled.add(invitation.id)
