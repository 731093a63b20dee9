"""
Collab Todo — Permission Evaluator.

Pure, synchronous checks over a list's role map. No I/O.

The role map is the single source of truth: a member present in
``member_ids`` but missing from ``roles`` gets view access and nothing more.
"""

from __future__ import annotations

from collab_todo.core.errors import PermissionDeniedError
from collab_todo.data.models import Role, TodoList

EDIT_ROLES = frozenset({Role.OWNER, Role.EDITOR})


def role_of(todo_list: TodoList | None, uid: str | None) -> Role | None:
    """Return *uid*'s role on the list, or None if absent (or no list/uid)."""
    if todo_list is None or not uid:
        return None
    return todo_list.roles.get(uid)


def can_edit(todo_list: TodoList | None, uid: str | None) -> bool:
    return role_of(todo_list, uid) in EDIT_ROLES


def can_view(todo_list: TodoList | None, uid: str | None) -> bool:
    if todo_list is None or not uid:
        return False
    return uid in todo_list.member_ids


def can_invite(inviter_role: Role | None, target_role: Role) -> bool:
    """Owners and editors invite; only owners may invite another owner."""
    if inviter_role not in EDIT_ROLES:
        return False
    if target_role is Role.OWNER:
        return inviter_role is Role.OWNER
    return True


def require_edit(todo_list: TodoList, uid: str) -> Role:
    role = role_of(todo_list, uid)
    if role not in EDIT_ROLES:
        raise PermissionDeniedError(
            f"Only owners and editors can modify \"{todo_list.name}\""
        )
    return role


def require_invite(todo_list: TodoList, uid: str, target_role: Role) -> None:
    role = role_of(todo_list, uid)
    if role not in EDIT_ROLES:
        raise PermissionDeniedError("Only owners and editors can invite members")
    if not can_invite(role, target_role):
        raise PermissionDeniedError("Only list owners can invite other owners")


def integrity_problems(todo_list: TodoList) -> list[str]:
    """List every way *todo_list* breaks the membership invariants."""
    problems: list[str] = []
    if todo_list.owner_id not in todo_list.member_ids:
        problems.append(f"owner {todo_list.owner_id} is not a member")
    if todo_list.roles.get(todo_list.owner_id) is not Role.OWNER:
        problems.append(f"owner {todo_list.owner_id} lacks the owner role")
    for uid in todo_list.member_ids:
        if uid not in todo_list.roles:
            problems.append(f"member {uid} has no role")
    if Role.OWNER not in todo_list.roles.values():
        problems.append("list has no owner")
    return problems
