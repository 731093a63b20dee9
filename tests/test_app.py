"""Tests for collab_todo.app — session-driven wiring of engine and resolvers."""

import pytest
from unittest.mock import MagicMock

from collab_todo.adapters.local_session import LocalSessionManager
from collab_todo.adapters.url_navigation import UrlNavigation
from collab_todo.app import CollabApp
from collab_todo.core.errors import UnauthenticatedError
from collab_todo.core.invitations import InvitationPromptResponse, ResponseKind, build_invite_link


@pytest.fixture
def make_app(store, clock, make_settings):
    apps = []

    def _make(navigation=None, notices=None, **settings_overrides):
        session = LocalSessionManager()
        app = CollabApp(
            store, session, navigation=navigation, notices=notices,
            settings=make_settings(**settings_overrides), clock=clock,
        )
        apps.append(app)
        return app, session

    yield _make
    for app in apps:
        app.close()


async def _signed_in(make_app, identity, **kwargs):
    app, session = make_app(**kwargs)
    app.start()
    session.sign_in(identity)
    await app.wait_idle()
    return app, session


async def _list_with_invite(make_app, alice, email, role="editor"):
    app, _ = await _signed_in(make_app, alice)
    list_id = await app.engine.create_list("Groceries")
    await app.engine.invite_member(list_id, email, role)
    return app, list_id


class TestSignIn:
    @pytest.mark.asyncio
    async def test_profile_created_on_sign_in(self, make_app, store, alice):
        app, _ = await _signed_in(make_app, alice)
        assert app.engine.identity == alice
        assert (await store.get(f"users/{alice.id}")).data["email"] == alice.email

    @pytest.mark.asyncio
    async def test_pending_invitations_consumed(self, make_app, alice, bob):
        _, list_id = await _list_with_invite(make_app, alice, bob.email)

        bob_app, _ = await _signed_in(make_app, bob)

        assert bob_app.last_resolution.joined == [list_id]
        assert [l.id for l in bob_app.engine.lists] == [list_id]
        assert bob_app.engine.can_user_edit(list_id)
        titles = [n.title for n in bob_app.engine.notifications]
        assert "List Invitation Accepted" in titles

    @pytest.mark.asyncio
    async def test_update_display_name(self, make_app, store, alice):
        app, _ = await _signed_in(make_app, alice)
        assert await app.update_display_name("Alice L.") == "Alice L."
        assert (await store.get(f"users/{alice.id}")).data["displayName"] == "Alice L."

    @pytest.mark.asyncio
    async def test_update_display_name_requires_identity(self, make_app):
        app, _ = make_app()
        with pytest.raises(UnauthenticatedError):
            await app.update_display_name("Nobody")

    @pytest.mark.asyncio
    async def test_sign_out_clears_projections(self, make_app, alice):
        app, _ = await _signed_in(make_app, alice)
        await app.engine.create_list("Groceries")
        await app.sign_out()
        assert app.engine.identity is None
        assert app.engine.lists == []


class TestInvitationLink:
    @pytest.mark.asyncio
    async def test_link_prompts_instead_of_auto_join(self, make_app, store, alice, bob):
        _, list_id = await _list_with_invite(make_app, alice, bob.email)
        notices = MagicMock()
        nav = UrlNavigation(build_invite_link("http://localhost:3000", list_id, bob.email))

        bob_app, _ = await _signed_in(make_app, bob, navigation=nav, notices=notices)

        response = notices.show_notice.call_args.args[0]
        assert isinstance(response, InvitationPromptResponse)
        assert bob_app.pending_prompt is response
        assert bob_app.engine.lists == []
        assert nav.url == "http://localhost:3000/"

        accepted = await bob_app.accept_invitation()
        assert accepted.kind is ResponseKind.SUCCESS
        assert bob_app.pending_prompt is None
        assert bob_app.active_list_id == list_id
        assert [l.id for l in bob_app.engine.lists] == [list_id]

    @pytest.mark.asyncio
    async def test_other_invitations_still_auto_join(self, make_app, alice, bob):
        alice_app, first = await _list_with_invite(make_app, alice, bob.email)
        second = await alice_app.engine.create_list("Chores")
        await alice_app.engine.invite_member(second, bob.email, "viewer")
        nav = UrlNavigation(build_invite_link("http://localhost:3000", first, bob.email))

        bob_app, _ = await _signed_in(make_app, bob, navigation=nav)

        assert bob_app.last_resolution.joined == [second]
        assert bob_app.pending_prompt is not None

    @pytest.mark.asyncio
    async def test_decline(self, make_app, store, alice, bob):
        _, list_id = await _list_with_invite(make_app, alice, bob.email)
        nav = UrlNavigation(build_invite_link("http://localhost:3000", list_id, bob.email))
        bob_app, _ = await _signed_in(make_app, bob, navigation=nav)

        declined = await bob_app.decline_invitation()

        assert declined.kind is ResponseKind.INFO
        assert bob_app.pending_prompt is None
        assert bob_app.engine.lists == []
        again = await bob_app.accept_invitation()
        assert again.kind is ResponseKind.NO_ACTION

    @pytest.mark.asyncio
    async def test_wrong_account_gets_mismatch_notice(self, make_app, alice, bob, carol):
        _, list_id = await _list_with_invite(make_app, alice, bob.email)
        notices = MagicMock()
        nav = UrlNavigation(build_invite_link("http://localhost:3000", list_id, bob.email))

        carol_app, _ = await _signed_in(make_app, carol, navigation=nav, notices=notices)

        response = notices.show_notice.call_args.args[0]
        assert response.kind is ResponseKind.ERROR
        assert bob.email in response.message
        assert carol_app.engine.lists == []

    @pytest.mark.asyncio
    async def test_link_for_list_already_joined(self, make_app, alice, bob):
        _, list_id = await _list_with_invite(make_app, alice, bob.email)
        await _signed_in(make_app, bob)

        nav = UrlNavigation(build_invite_link("http://localhost:3000", list_id, bob.email))
        linked_app, _ = await _signed_in(make_app, bob, navigation=nav)
        response = await linked_app.check_invitation_link()
        assert response is None
        assert linked_app.active_list_id == list_id

    @pytest.mark.asyncio
    async def test_accept_without_prompt(self, make_app, alice):
        app, _ = await _signed_in(make_app, alice, navigation=UrlNavigation("http://localhost:3000/"))
        response = await app.accept_invitation()
        assert response.kind is ResponseKind.NO_ACTION

    @pytest.mark.asyncio
    async def test_accept_requires_identity(self, make_app):
        app, _ = make_app(navigation=UrlNavigation("http://localhost:3000/"))
        with pytest.raises(UnauthenticatedError):
            await app.accept_invitation()
