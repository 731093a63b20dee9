"""Tests for collab_todo.core.permissions — role checks over a list."""

import pytest

from collab_todo.core.errors import PermissionDeniedError
from collab_todo.core.permissions import (
    can_edit,
    can_invite,
    can_view,
    integrity_problems,
    require_edit,
    require_invite,
    role_of,
)
from collab_todo.data.models import Role, TodoList


def _list(**overrides):
    defaults = dict(
        id="L1",
        name="Groceries",
        owner_id="owner",
        member_ids=["owner", "editor", "viewer", "norole"],
        roles={"owner": Role.OWNER, "editor": Role.EDITOR, "viewer": Role.VIEWER},
    )
    defaults.update(overrides)
    return TodoList(**defaults)


class TestRoleChecks:
    def test_role_of(self):
        todo_list = _list()
        assert role_of(todo_list, "owner") is Role.OWNER
        assert role_of(todo_list, "norole") is None
        assert role_of(todo_list, "stranger") is None
        assert role_of(None, "owner") is None
        assert role_of(todo_list, None) is None

    def test_can_edit(self):
        todo_list = _list()
        assert can_edit(todo_list, "owner")
        assert can_edit(todo_list, "editor")
        assert not can_edit(todo_list, "viewer")
        assert not can_edit(todo_list, "stranger")

    def test_member_without_role_can_view_only(self):
        todo_list = _list()
        assert can_view(todo_list, "norole")
        assert not can_edit(todo_list, "norole")

    def test_can_view_requires_membership(self):
        assert not can_view(_list(), "stranger")
        assert not can_view(None, "owner")


class TestInvite:
    @pytest.mark.parametrize("inviter,target,expected", [
        (Role.OWNER, Role.OWNER, True),
        (Role.OWNER, Role.VIEWER, True),
        (Role.EDITOR, Role.EDITOR, True),
        (Role.EDITOR, Role.OWNER, False),
        (Role.VIEWER, Role.VIEWER, False),
        (None, Role.VIEWER, False),
    ])
    def test_can_invite_matrix(self, inviter, target, expected):
        assert can_invite(inviter, target) is expected

    def test_require_invite_messages(self):
        todo_list = _list()
        with pytest.raises(PermissionDeniedError, match="Only owners and editors"):
            require_invite(todo_list, "viewer", Role.VIEWER)
        with pytest.raises(PermissionDeniedError, match="Only list owners"):
            require_invite(todo_list, "editor", Role.OWNER)
        require_invite(todo_list, "owner", Role.OWNER)

    def test_require_edit_returns_role(self):
        assert require_edit(_list(), "editor") is Role.EDITOR
        with pytest.raises(PermissionDeniedError):
            require_edit(_list(), "viewer")


class TestIntegrity:
    def test_healthy_list(self):
        todo_list = _list(member_ids=["owner", "editor"])
        assert integrity_problems(todo_list) == []

    def test_reports_member_without_role(self):
        problems = integrity_problems(_list())
        assert any("norole" in p for p in problems)

    def test_reports_missing_owner(self):
        todo_list = _list(owner_id="ghost", roles={"editor": Role.EDITOR}, member_ids=["editor"])
        problems = integrity_problems(todo_list)
        assert "list has no owner" in problems
        assert any("ghost is not a member" in p for p in problems)
