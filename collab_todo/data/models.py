"""
Collab Todo — Data Models.

Local, typed mirrors of the documents kept in the shared store.
Wire field names are camelCase; attributes here are snake_case and every
model converts through ``from_document``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from collab_todo.core.errors import InvalidArgumentError

if TYPE_CHECKING:
    from collab_todo.ports.document_store_port import Document

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_datetime(value: Any) -> datetime | None:
    """Coerce a stored timestamp (datetime or ISO string) to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Unparseable timestamp %r ignored", value)
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------------


class Role(Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: Role | str) -> Role:
        """Return the Role for *value* or raise InvalidArgumentError."""
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(f"Invalid role: {value!r}") from None


class Priority(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def parse(cls, value: Priority | str) -> Priority:
        if isinstance(value, Priority):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(f"Invalid priority: {value!r}") from None


class TaskStatus(Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, value: TaskStatus | str) -> TaskStatus:
        if isinstance(value, TaskStatus):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgumentError(f"Invalid task status: {value!r}") from None


# ---------------------------------------------------------------------------
# Identity & profiles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Identity:
    """The signed-in user as reported by the session manager."""

    id: str
    email: str
    display_name: str = ""
    photo_url: str | None = None

    @property
    def label(self) -> str:
        """Name shown to other members: display name, falling back to email."""
        return self.display_name or self.email


@dataclass
class UserProfile:
    """Persisted mirror of an Identity in the ``users`` collection."""

    id: str
    email: str
    display_name: str = ""
    photo_url: str | None = None
    created_at: datetime | None = None
    last_login_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document) -> UserProfile:
        data = doc.data
        return cls(
            id=doc.id,
            email=data.get("email", ""),
            display_name=data.get("displayName") or "",
            photo_url=data.get("photoURL") or None,
            created_at=as_datetime(data.get("createdAt")),
            last_login_at=as_datetime(data.get("lastLoginAt")),
            updated_at=as_datetime(data.get("updatedAt")),
        )


# ---------------------------------------------------------------------------
# Lists, tasks and their audit trail
# ---------------------------------------------------------------------------


@dataclass
class TodoList:
    """A shared list. ``roles`` is the single source of truth for access."""

    id: str
    name: str
    owner_id: str
    member_ids: list[str] = field(default_factory=list)
    roles: dict[str, Role] = field(default_factory=dict)
    description: str | None = None
    due_date: str | None = None       # ISO date YYYY-MM-DD
    created_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document) -> TodoList:
        data = doc.data
        roles: dict[str, Role] = {}
        for uid, raw_role in (data.get("roles") or {}).items():
            try:
                roles[uid] = Role.parse(raw_role)
            except InvalidArgumentError:
                # Treated as no role at all: the member keeps view access only.
                logger.warning(
                    "List %s: dropping invalid role %r for member %s",
                    doc.id, raw_role, uid,
                )
        return cls(
            id=doc.id,
            name=data.get("name", ""),
            owner_id=data.get("ownerId", ""),
            member_ids=list(data.get("memberIds") or []),
            roles=roles,
            description=data.get("description") or None,
            due_date=data.get("dueDate") or None,
            created_at=as_datetime(data.get("createdAt")),
        )


@dataclass
class Task:
    """A task inside a list. ``done`` always mirrors ``status == Completed``."""

    id: str
    list_id: str
    title: str
    created_by: str
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    done: bool = False
    description: str | None = None
    deadline: datetime | None = None
    assigned_to_uid: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    order: int = 0

    @classmethod
    def from_document(cls, doc: Document, list_id: str) -> Task:
        data = doc.data
        try:
            priority = Priority.parse(data.get("priority", Priority.MEDIUM.value))
        except InvalidArgumentError:
            priority = Priority.MEDIUM
        try:
            status = TaskStatus.parse(data.get("status", TaskStatus.PENDING.value))
        except InvalidArgumentError:
            status = TaskStatus.COMPLETED if data.get("done") else TaskStatus.PENDING
        return cls(
            id=doc.id,
            list_id=list_id,
            title=data.get("title", ""),
            created_by=data.get("createdBy", ""),
            priority=priority,
            status=status,
            done=bool(data.get("done", status is TaskStatus.COMPLETED)),
            description=data.get("description") or None,
            deadline=as_datetime(data.get("deadline")),
            assigned_to_uid=data.get("assignedToUid") or None,
            created_at=as_datetime(data.get("createdAt")),
            updated_at=as_datetime(data.get("updatedAt")),
            order=int(data.get("order") or 0),
        )


@dataclass
class Activity:
    """Append-only audit entry scoped to a list."""

    id: str
    list_id: str
    action: str
    user_id: str
    user_name: str
    user_photo: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document, list_id: str) -> Activity:
        data = doc.data
        return cls(
            id=doc.id,
            list_id=list_id,
            action=data.get("action", ""),
            user_id=data.get("userId", ""),
            user_name=data.get("userName", ""),
            user_photo=data.get("userPhoto") or None,
            created_at=as_datetime(data.get("createdAt")),
        )


@dataclass
class Comment:
    """A note left on a task by a list editor."""

    id: str
    list_id: str
    task_id: str
    text: str
    author_id: str
    author_name: str
    author_photo: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document, list_id: str, task_id: str) -> Comment:
        data = doc.data
        return cls(
            id=doc.id,
            list_id=list_id,
            task_id=task_id,
            text=data.get("text", ""),
            author_id=data.get("authorId", ""),
            author_name=data.get("authorName", ""),
            author_photo=data.get("authorPhoto") or None,
            created_at=as_datetime(data.get("createdAt")),
        )


@dataclass
class Notification:
    """A per-user message. Only ``read`` ever changes after creation."""

    id: str
    user_id: str
    title: str
    message: str
    list_id: str | None = None
    type: str | None = None
    read: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document) -> Notification:
        data = doc.data
        return cls(
            id=doc.id,
            user_id=data.get("userId", ""),
            title=data.get("title", ""),
            message=data.get("message", ""),
            list_id=data.get("listId") or None,
            type=data.get("type") or None,
            read=bool(data.get("read", False)),
            created_at=as_datetime(data.get("createdAt")),
        )


@dataclass
class PendingInvitation:
    """An offer of membership addressed to an email address.

    ``role`` is kept as the raw stored string: it is re-validated with
    ``Role.parse`` whenever the invitation is consumed.
    """

    id: str
    list_id: str
    list_name: str
    email: str
    role: str
    invited_by: str
    invited_by_name: str = ""
    created_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Inclusive boundary: an invitation expiring exactly now is expired."""
        return self.expires_at is not None and self.expires_at <= now

    @classmethod
    def from_document(cls, doc: Document) -> PendingInvitation:
        data = doc.data
        return cls(
            id=doc.id,
            list_id=data.get("listId", ""),
            list_name=data.get("listName", ""),
            email=(data.get("email") or "").lower(),
            role=data.get("role", ""),
            invited_by=data.get("invitedBy", ""),
            invited_by_name=data.get("invitedByName", ""),
            created_at=as_datetime(data.get("createdAt")),
            expires_at=as_datetime(data.get("expiresAt")),
        )
