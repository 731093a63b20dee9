"""Tests for profile upsert and best-effort side effects."""

import pytest
from unittest.mock import AsyncMock

from collab_todo.core.errors import ErrorCode, InvalidArgumentError, StoreError
from collab_todo.core.profiles import update_display_name, upsert_user_profile
from collab_todo.core.side_effects import run_side_effects


class TestUpsertUserProfile:
    @pytest.mark.asyncio
    async def test_creates_then_refreshes(self, store, clock, alice):
        assert await upsert_user_profile(store, alice) is True
        created = (await store.get(f"users/{alice.id}")).data
        assert created["email"] == alice.email
        assert created["displayName"] == "Alice"
        assert created["createdAt"] == clock.now

        clock.advance(days=1)
        assert await upsert_user_profile(store, alice) is False
        refreshed = (await store.get(f"users/{alice.id}")).data
        assert refreshed["lastLoginAt"] == clock.now
        assert refreshed["createdAt"] == created["createdAt"]


class TestUpdateDisplayName:
    @pytest.mark.asyncio
    async def test_renames_and_stamps(self, store, clock, alice):
        await upsert_user_profile(store, alice)
        clock.advance(hours=2)

        assert await update_display_name(store, alice, "  Alice Liddell ") == "Alice Liddell"
        data = (await store.get(f"users/{alice.id}")).data
        assert data["displayName"] == "Alice Liddell"
        assert data["updatedAt"] == clock.now
        assert data["email"] == alice.email

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, store, alice):
        await upsert_user_profile(store, alice)
        with pytest.raises(InvalidArgumentError):
            await update_display_name(store, alice, "   ")
        assert (await store.get(f"users/{alice.id}")).data["displayName"] == "Alice"

    @pytest.mark.asyncio
    async def test_missing_profile_propagates(self, store, alice):
        with pytest.raises(StoreError) as exc_info:
            await update_display_name(store, alice, "Alice Liddell")
        assert exc_info.value.code is ErrorCode.NOT_FOUND


class TestRunSideEffects:
    @pytest.mark.asyncio
    async def test_failures_are_isolated(self):
        ok = AsyncMock()
        after = AsyncMock()
        failed = await run_side_effects("ctx", [
            ("first", ok),
            ("broken", AsyncMock(side_effect=RuntimeError("boom"))),
            ("last", after),
        ])
        assert failed == ["broken"]
        ok.assert_awaited_once()
        after.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await run_side_effects("ctx", []) == []
