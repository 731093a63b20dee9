"""
Collab Todo — Sync Engine.

Keeps live, in-memory projections of everything the signed-in user can
see (lists, tasks and activities per list, notifications, users) and
exposes the mutation operations the presentation layer calls.

Each mutation is two-phase: local checks, then the awaited primary write
(failures propagate), then best-effort side effects (activity entry,
notifications, email) that are logged and suppressed on failure.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from collab_todo.core.errors import (
    AlreadyExistsError,
    CollabError,
    ErrorCode,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from collab_todo.core.invitations import build_invite_link, is_valid_email
from collab_todo.core.permissions import (
    can_edit,
    can_view,
    integrity_problems,
    require_edit,
    require_invite,
    role_of,
)
from collab_todo.core.side_effects import SideEffect, run_side_effects
from collab_todo.core.subscriptions import GuardedSubscription, SubscriptionTree
from collab_todo.data.models import (
    Activity,
    Comment,
    Identity,
    Notification,
    PendingInvitation,
    Priority,
    Role,
    Task,
    TaskStatus,
    TodoList,
    UserProfile,
    utc_now,
)
from collab_todo.ports.document_store_port import SERVER_TIMESTAMP, Query, WriteOp

if TYPE_CHECKING:
    from collab_todo.config import Settings
    from collab_todo.core.errors import StoreError
    from collab_todo.ports.document_store_port import Document, DocumentStorePort
    from collab_todo.ports.mailer_port import InvitationMailerPort

logger = logging.getLogger(__name__)

_TASK_FIELDS = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "status": "status",
    "done": "done",
    "deadline": "deadline",
    "assigned_to_uid": "assignedToUid",
}


@dataclass
class SyncError:
    """Last subscription failure, as shown to the presentation layer."""

    code: str
    message: str
    source: str     # "lists" | "notifications" | "users" | "tasks:<id>" | "activities:<id>"


def _iso_date(value: date | str | None) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid date: {value!r}") from None


class SyncEngine:
    """Live projections + mutation operations for one signed-in identity."""

    def __init__(
        self,
        store: DocumentStorePort,
        mailer: InvitationMailerPort | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if settings is None:
            from collab_todo.config import settings as default_settings
            settings = default_settings

        self._store = store
        self._mailer = mailer
        self._settings = settings
        self._clock = clock

        self._identity: Identity | None = None
        self._lists: list[TodoList] = []
        self._tasks: dict[str, list[Task]] = {}
        self._activities: dict[str, list[Activity]] = {}
        self._notifications: list[Notification] = []
        self._users: list[UserProfile] = []
        self._loading = False
        self._error: SyncError | None = None

        self._root_subs: list[GuardedSubscription] = []
        self._tree = SubscriptionTree(self._open_list_children, self._drop_list)
        self._listeners: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def lists(self) -> list[TodoList]:
        return list(self._lists)

    @property
    def tasks_by_list_id(self) -> dict[str, list[Task]]:
        return {lid: list(tasks) for lid, tasks in self._tasks.items()}

    @property
    def activities_by_list_id(self) -> dict[str, list[Activity]]:
        return {lid: list(acts) for lid, acts in self._activities.items()}

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    @property
    def users(self) -> list[UserProfile]:
        return list(self._users)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> SyncError | None:
        return self._error

    @property
    def subscribed_list_ids(self) -> set[str]:
        return self._tree.list_ids

    def add_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call *callback* after every projection change. Returns an unsubscribe."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _changed(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("Projection listener raised")

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------

    def set_identity(self, identity: Identity | None) -> None:
        """Tear down everything for the old identity and subscribe for the new one."""
        if identity is not None and identity == self._identity and self._root_subs:
            return

        self._teardown()
        self._identity = identity
        self._error = None

        if identity is None:
            self._loading = False
            self._changed()
            return

        logger.info("Opening subscriptions for %s", identity.id)
        self._loading = True
        self._changed()

        self._root_subs.append(GuardedSubscription(
            self._store,
            Query("lists")
            .where("memberIds", "array-contains", identity.id)
            .order_by("createdAt", descending=True),
            self._on_lists,
            lambda err: self._on_error("lists", err),
        ))
        self._root_subs.append(GuardedSubscription(
            self._store,
            Query("notifications")
            .where("userId", "==", identity.id)
            .order_by("createdAt", descending=True),
            self._on_notifications,
            lambda err: self._on_error("notifications", err),
        ))
        self._root_subs.append(GuardedSubscription(
            self._store,
            Query("users"),
            self._on_users,
            lambda err: self._on_error("users", err),
        ))

    def close(self) -> None:
        self.set_identity(None)

    def _teardown(self) -> None:
        if self._root_subs or self._tree.list_ids:
            logger.info("Cancelling subscriptions")
        for sub in self._root_subs:
            sub.cancel()
        self._root_subs = []
        self._tree.close_all()
        self._lists = []
        self._tasks = {}
        self._activities = {}
        self._notifications = []
        self._users = []

    # ------------------------------------------------------------------
    # Snapshot handlers
    # ------------------------------------------------------------------

    def _on_lists(self, docs: list[Document]) -> None:
        lists = [TodoList.from_document(d) for d in docs]
        for todo_list in lists:
            problems = integrity_problems(todo_list)
            if problems:
                logger.warning("List %s integrity: %s", todo_list.id, "; ".join(problems))

        self._lists = lists
        self._loading = False
        self._clear_error("lists")
        self._tree.reconcile(todo_list.id for todo_list in lists)
        logger.debug("Lists snapshot: %d lists", len(lists))
        self._changed()

    def _on_notifications(self, docs: list[Document]) -> None:
        self._notifications = [Notification.from_document(d) for d in docs]
        self._clear_error("notifications")
        self._changed()

    def _on_users(self, docs: list[Document]) -> None:
        self._users = [UserProfile.from_document(d) for d in docs]
        self._clear_error("users")
        self._changed()

    def _open_list_children(self, list_id: str) -> list[GuardedSubscription]:
        tasks = GuardedSubscription(
            self._store,
            Query(f"lists/{list_id}/tasks").order_by("createdAt", descending=True),
            lambda docs: self._on_tasks(list_id, docs),
            lambda err: self._on_error(f"tasks:{list_id}", err),
        )
        activities = GuardedSubscription(
            self._store,
            Query(f"lists/{list_id}/activities").order_by("createdAt", descending=True),
            lambda docs: self._on_activities(list_id, docs),
            lambda err: self._on_error(f"activities:{list_id}", err),
        )
        return [tasks, activities]

    def _on_tasks(self, list_id: str, docs: list[Document]) -> None:
        self._tasks[list_id] = [Task.from_document(d, list_id) for d in docs]
        self._clear_error(f"tasks:{list_id}")
        self._changed()

    def _on_activities(self, list_id: str, docs: list[Document]) -> None:
        self._activities[list_id] = [Activity.from_document(d, list_id) for d in docs]
        self._clear_error(f"activities:{list_id}")
        self._changed()

    def _drop_list(self, list_id: str) -> None:
        self._tasks.pop(list_id, None)
        self._activities.pop(list_id, None)
        if self._error and self._error.source.endswith(f":{list_id}"):
            self._error = None

    def _on_error(self, source: str, error: StoreError) -> None:
        code = error.code.value if isinstance(error, CollabError) else ErrorCode.UNKNOWN.value
        message = getattr(error, "message", None) or str(error)
        logger.error("Subscription %s failed: [%s] %s", source, code, message)
        self._error = SyncError(code=code, message=message, source=source)
        if source == "lists":
            self._loading = False
        self._changed()

    def _clear_error(self, source: str) -> None:
        if self._error is not None and self._error.source == source:
            self._error = None

    # ------------------------------------------------------------------
    # Permission helpers (pure reads over the projection)
    # ------------------------------------------------------------------

    def _find_list(self, list_id: str) -> TodoList | None:
        for todo_list in self._lists:
            if todo_list.id == list_id:
                return todo_list
        return None

    def get_user_role(self, list_id: str) -> Role | None:
        uid = self._identity.id if self._identity else None
        return role_of(self._find_list(list_id), uid)

    def can_user_edit(self, list_id: str) -> bool:
        uid = self._identity.id if self._identity else None
        return can_edit(self._find_list(list_id), uid)

    def can_user_view(self, list_id: str) -> bool:
        uid = self._identity.id if self._identity else None
        return can_view(self._find_list(list_id), uid)

    # ------------------------------------------------------------------
    # Shared mutation plumbing
    # ------------------------------------------------------------------

    def _require_identity(self) -> Identity:
        if self._identity is None:
            raise UnauthenticatedError("You must be signed in to do that")
        return self._identity

    def _require_list(self, list_id: str) -> TodoList:
        todo_list = self._find_list(list_id)
        if todo_list is None:
            raise NotFoundError("List not found")
        return todo_list

    def _activity_effect(self, me: Identity, list_id: str, action: str) -> SideEffect:
        payload = {
            "action": action,
            "userId": me.id,
            "userName": me.label,
            "userPhoto": me.photo_url,
            "createdAt": SERVER_TIMESTAMP,
        }
        return ("activity", lambda: self._store.add(f"lists/{list_id}/activities", payload))

    def _notification_effect(
        self,
        user_id: str,
        title: str,
        message: str,
        list_id: str | None = None,
        kind: str | None = None,
    ) -> SideEffect:
        payload = {
            "userId": user_id,
            "title": title,
            "message": message,
            "listId": list_id,
            "type": kind,
            "read": False,
            "createdAt": SERVER_TIMESTAMP,
        }
        return (
            f"notification to {user_id}",
            lambda: self._store.add("notifications", payload),
        )

    def _notify_others(
        self,
        me: Identity,
        recipients: list[str],
        title: str,
        message: str,
        list_id: str | None = None,
        kind: str | None = None,
    ) -> list[SideEffect]:
        """Notification effects for *recipients*, never including the actor."""
        targets = [uid for uid in dict.fromkeys(recipients) if uid and uid != me.id]
        return [
            self._notification_effect(uid, title, message, list_id, kind)
            for uid in targets
        ]

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def create_list(
        self,
        name: str,
        description: str | None = None,
        due_date: date | str | None = None,
    ) -> str:
        """Create a list with the caller as its sole member and owner."""
        me = self._require_identity()
        name = (name or "").strip()
        if not name:
            raise InvalidArgumentError("List name is required")

        payload = {
            "name": name,
            "description": (description or "").strip() or None,
            "dueDate": _iso_date(due_date),
            "ownerId": me.id,
            "memberIds": [me.id],
            "roles": {me.id: Role.OWNER.value},
            "createdAt": SERVER_TIMESTAMP,
        }
        try:
            list_id = await self._store.add("lists", payload)
        except CollabError as exc:
            logger.error("Error creating list '%s': %s", name, exc)
            raise

        logger.info("List created: %s '%s' by %s", list_id, name, me.id)
        await run_side_effects(
            f"create_list {list_id}",
            [self._activity_effect(me, list_id, f'created list "{name}"')],
        )
        return list_id

    async def update_list(
        self,
        list_id: str,
        name: str | None = None,
        description: str | None = None,
        due_date: date | str | None = None,
    ) -> None:
        """Edit name/description/due date. Pass "" to clear description or due date."""
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        updates: dict[str, Any] = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise InvalidArgumentError("List name is required")
            updates["name"] = name
        if description is not None:
            updates["description"] = description.strip() or None
        if due_date is not None:
            updates["dueDate"] = _iso_date(due_date)
        if not updates:
            return
        updates["updatedAt"] = SERVER_TIMESTAMP

        try:
            await self._store.update(f"lists/{list_id}", updates)
        except CollabError as exc:
            logger.error("Error updating list %s: %s", list_id, exc)
            raise

        await run_side_effects(
            f"update_list {list_id}",
            [self._activity_effect(me, list_id, f'updated list "{updates.get("name", todo_list.name)}"')],
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _find_task(self, list_id: str, task_id: str) -> Task | None:
        for task in self._tasks.get(list_id, []):
            if task.id == task_id:
                return task
        return None

    async def _load_task(self, list_id: str, task_id: str) -> Task:
        task = self._find_task(list_id, task_id)
        if task is not None:
            return task
        doc = await self._store.get(f"lists/{list_id}/tasks/{task_id}")
        if doc is None:
            raise NotFoundError("Task not found")
        return Task.from_document(doc, list_id)

    def _check_assignee(self, todo_list: TodoList, uid: str | None) -> None:
        if uid and uid not in todo_list.member_ids:
            raise InvalidArgumentError("Tasks can only be assigned to list members")

    async def create_task(
        self,
        list_id: str,
        title: str,
        description: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
        status: TaskStatus | str = TaskStatus.PENDING,
        deadline: datetime | None = None,
        assigned_to_uid: str | None = None,
    ) -> str:
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        title = (title or "").strip()
        if not title:
            raise InvalidArgumentError("Task title is required")
        priority = Priority.parse(priority)
        status = TaskStatus.parse(status)
        self._check_assignee(todo_list, assigned_to_uid)

        existing = self._tasks.get(list_id, [])
        payload = {
            "title": title,
            "description": (description or "").strip() or None,
            "priority": priority.value,
            "status": status.value,
            "done": status is TaskStatus.COMPLETED,
            "deadline": deadline,
            "assignedToUid": assigned_to_uid or None,
            "createdBy": me.id,
            "createdAt": SERVER_TIMESTAMP,
            "order": max((t.order for t in existing), default=-1) + 1,
        }
        try:
            task_id = await self._store.add(f"lists/{list_id}/tasks", payload)
        except CollabError as exc:
            logger.error("Error creating task in %s: %s", list_id, exc)
            raise

        effects = [self._activity_effect(me, list_id, f'created task "{title}"')]
        if assigned_to_uid:
            effects += self._notify_others(
                me, [assigned_to_uid], "Task Assignment",
                f'You were assigned to "{title}"', list_id, "assignment",
            )
        await run_side_effects(f"create_task {task_id}", effects)
        return task_id

    async def update_task(self, list_id: str, task_id: str, **changes: Any) -> None:
        """Apply *changes* (snake_case task fields). Keeps done/status consistent.

        When both ``status`` and ``done`` are given and disagree, ``status`` wins.
        """
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        unknown = set(changes) - set(_TASK_FIELDS)
        if unknown:
            raise InvalidArgumentError(f"Unknown task fields: {sorted(unknown)}")

        previous = await self._load_task(list_id, task_id)
        updates: dict[str, Any] = {}
        after = previous

        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise InvalidArgumentError("Task title is required")
            updates["title"] = title
            after = dataclasses.replace(after, title=title)
        if "description" in changes:
            updates["description"] = (changes["description"] or "").strip() or None
        if "priority" in changes:
            updates["priority"] = Priority.parse(changes["priority"]).value
        if "deadline" in changes:
            updates["deadline"] = changes["deadline"]
        if "assigned_to_uid" in changes:
            self._check_assignee(todo_list, changes["assigned_to_uid"])
            updates["assignedToUid"] = changes["assigned_to_uid"] or None
            after = dataclasses.replace(after, assigned_to_uid=changes["assigned_to_uid"] or None)

        if "status" in changes:
            status = TaskStatus.parse(changes["status"])
            done = status is TaskStatus.COMPLETED
            if "done" in changes and bool(changes["done"]) != done:
                logger.warning(
                    "Task %s: done=%s contradicts status=%s, using status",
                    task_id, changes["done"], status.value,
                )
        elif "done" in changes:
            done = bool(changes["done"])
            if done:
                status = TaskStatus.COMPLETED
            elif previous.status is TaskStatus.COMPLETED:
                status = TaskStatus.PENDING
            else:
                status = previous.status
        else:
            status, done = previous.status, previous.done

        if "status" in changes or "done" in changes:
            updates["status"] = status.value
            updates["done"] = done
        after = dataclasses.replace(after, status=status, done=done)

        await self._write_task_update(
            me, todo_list, previous, after, updates, f'updated task "{after.title}"',
        )

    async def toggle_task_done(self, list_id: str, task_id: str) -> bool:
        """Flip a task between Pending and Completed. Returns the new ``done``."""
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        previous = await self._load_task(list_id, task_id)
        done = not previous.done
        status = TaskStatus.COMPLETED if done else TaskStatus.PENDING
        after = dataclasses.replace(previous, done=done, status=status)
        verb = "completed" if done else "reopened"
        await self._write_task_update(
            me, todo_list, previous, after,
            {"done": done, "status": status.value}, f'{verb} task "{previous.title}"',
        )
        return done

    async def _write_task_update(
        self,
        me: Identity,
        todo_list: TodoList,
        previous: Task,
        after: Task,
        updates: dict[str, Any],
        action: str,
    ) -> None:
        updates = {**updates, "updatedAt": SERVER_TIMESTAMP}
        path = f"lists/{todo_list.id}/tasks/{previous.id}"
        try:
            await self._store.update(path, updates)
        except CollabError as exc:
            logger.error("Error updating task %s: %s", previous.id, exc)
            raise

        effects = [self._activity_effect(me, todo_list.id, action)]
        if after.done and not previous.done:
            effects += self._notify_others(
                me,
                self._completion_recipients(todo_list, after),
                "Task Completed",
                f'{me.label} completed "{after.title}"',
                todo_list.id,
                "completion",
            )
        await run_side_effects(f"update_task {previous.id}", effects)

    def _completion_recipients(self, todo_list: TodoList, task: Task) -> list[str]:
        policy = self._settings.COMPLETION_NOTIFY_POLICY
        if policy == "assignee":
            return [task.assigned_to_uid] if task.assigned_to_uid else []
        if policy == "creator":
            return [task.created_by] if task.created_by else []
        if policy == "all_members":
            return list(todo_list.member_ids)
        return []

    async def delete_task(
        self, list_id: str, task_id: str, title: str | None = None,
    ) -> None:
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        if title is None:
            known = self._find_task(list_id, task_id)
            title = known.title if known else task_id

        try:
            await self._store.delete(f"lists/{list_id}/tasks/{task_id}")
        except CollabError as exc:
            logger.error("Error deleting task %s: %s", task_id, exc)
            raise

        await run_side_effects(
            f"delete_task {task_id}",
            [self._activity_effect(me, list_id, f'deleted task "{title}"')],
        )

    async def reorder_tasks(self, list_id: str, ordered_task_ids: list[str]) -> None:
        """Persist a manual ordering: task i gets ``order = i`` in one batch."""
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        if len(set(ordered_task_ids)) != len(ordered_task_ids):
            raise InvalidArgumentError("Duplicate task ids in reorder")
        known = {t.id for t in self._tasks.get(list_id, [])}
        if known and set(ordered_task_ids) != known:
            raise InvalidArgumentError("Reorder must include every task in the list exactly once")

        ops = [
            WriteOp("update", f"lists/{list_id}/tasks/{task_id}", {"order": index})
            for index, task_id in enumerate(ordered_task_ids)
        ]
        try:
            await self._store.batch_write(ops)
        except CollabError as exc:
            logger.error("Error reordering tasks in %s: %s", list_id, exc)
            raise

        await run_side_effects(
            f"reorder_tasks {list_id}",
            [self._activity_effect(me, list_id, "reordered tasks")],
        )

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def add_comment(self, list_id: str, task_id: str, text: str) -> str:
        """Post a comment on a task. Returns the comment id."""
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        require_edit(todo_list, me.id)

        text = (text or "").strip()
        if not text:
            raise InvalidArgumentError("Comment text is required")
        task = await self._load_task(list_id, task_id)

        payload = {
            "text": text,
            "authorId": me.id,
            "authorName": me.label,
            "authorPhoto": me.photo_url,
            "createdAt": SERVER_TIMESTAMP,
        }
        try:
            comment_id = await self._store.add(
                f"lists/{list_id}/tasks/{task.id}/comments", payload,
            )
        except CollabError as exc:
            logger.error("Error adding comment to task %s: %s", task.id, exc)
            raise

        await run_side_effects(
            f"add_comment {comment_id}",
            [self._activity_effect(me, list_id, "commented on task")],
        )
        return comment_id

    async def get_comments(self, list_id: str, task_id: str) -> list[Comment]:
        """Comments on a task, oldest first. Any list member may read them."""
        self._require_identity()
        self._require_list(list_id)
        docs = await self._store.query(
            Query(f"lists/{list_id}/tasks/{task_id}/comments").order_by("createdAt")
        )
        return [Comment.from_document(d, list_id, task_id) for d in docs]

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def _is_member_email(self, todo_list: TodoList, email: str) -> bool:
        if self._identity and self._identity.email.lower() == email:
            return self._identity.id in todo_list.member_ids
        for profile in self._users:
            if profile.email.lower() == email and profile.id in todo_list.member_ids:
                return True
        return False

    async def invite_member(self, list_id: str, email: str, role: Role | str) -> str:
        """Queue a PendingInvitation for *email*. Returns the invitation id."""
        me = self._require_identity()
        todo_list = self._require_list(list_id)
        target_role = Role.parse(role)
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise InvalidArgumentError("Please enter a valid email address")
        require_invite(todo_list, me.id, target_role)
        if self._is_member_email(todo_list, email):
            raise AlreadyExistsError("User is already a member of this list")

        now = self._clock()
        outstanding = await self._store.query(
            Query("pendingInvitations")
            .where("listId", "==", list_id)
            .where("email", "==", email)
        )
        if any(not PendingInvitation.from_document(d).is_expired(now) for d in outstanding):
            raise AlreadyExistsError("An invitation for this email is already pending")

        expires_at = now + timedelta(days=self._settings.INVITATION_TTL_DAYS)
        payload = {
            "listId": list_id,
            "listName": todo_list.name,
            "email": email,
            "role": target_role.value,
            "invitedBy": me.id,
            "invitedByName": me.label,
            "createdAt": SERVER_TIMESTAMP,
            "expiresAt": expires_at,
        }
        try:
            invitation_id = await self._store.add("pendingInvitations", payload)
        except CollabError as exc:
            logger.error("Error inviting %s to %s: %s", email, list_id, exc)
            raise

        logger.info("Invitation %s queued: %s as %s for list %s", invitation_id, email, target_role.value, list_id)
        invitation = PendingInvitation(
            id=invitation_id,
            list_id=list_id,
            list_name=todo_list.name,
            email=email,
            role=target_role.value,
            invited_by=me.id,
            invited_by_name=me.label,
            created_at=now,
            expires_at=expires_at,
        )

        effects = [
            self._activity_effect(me, list_id, f"invited {email} as {target_role.value}"),
            # Receipt for the inviter: the one notification addressed to the actor.
            self._notification_effect(
                me.id, "Invitation Sent",
                f'Invitation sent to {email} for "{todo_list.name}"',
                list_id, "invitation",
            ),
        ]
        if self._mailer is not None:
            link = build_invite_link(self._settings.APP_BASE_URL, list_id, email)
            effects.append(
                ("invitation email", lambda: self._mailer.send_invitation(invitation, link))
            )
        await run_side_effects(f"invite_member {invitation_id}", effects)
        return invitation_id

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def update_notification(self, notification_id: str, updates: dict[str, Any]) -> None:
        """Update a notification of the caller. Only ``read`` may change."""
        me = self._require_identity()
        if set(updates) - {"read"} or "read" not in updates:
            raise InvalidArgumentError("Only the read flag of a notification can change")
        known = next((n for n in self._notifications if n.id == notification_id), None)
        if known is None:
            doc = await self._store.get(f"notifications/{notification_id}")
            if doc is None:
                raise NotFoundError("Notification not found")
            known = Notification.from_document(doc)
        if known.user_id != me.id:
            raise PermissionDeniedError("Cannot modify another user's notification")

        try:
            await self._store.update(
                f"notifications/{notification_id}",
                {"read": bool(updates["read"]), "updatedAt": SERVER_TIMESTAMP},
            )
        except CollabError as exc:
            logger.error("Error updating notification %s: %s", notification_id, exc)
            raise

    async def mark_all_notifications_read(self) -> int:
        """Mark every unread notification read in one batch. Returns how many."""
        self._require_identity()
        unread = [n for n in self._notifications if not n.read]
        if not unread:
            return 0
        ops = [
            WriteOp("update", f"notifications/{n.id}", {"read": True, "updatedAt": SERVER_TIMESTAMP})
            for n in unread
        ]
        try:
            await self._store.batch_write(ops)
        except CollabError as exc:
            logger.error("Error marking notifications read: %s", exc)
            raise
        return len(unread)
