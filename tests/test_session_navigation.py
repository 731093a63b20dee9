"""Tests for the local session manager and the URL navigation adapter."""

import pytest
from unittest.mock import MagicMock

from collab_todo.adapters.local_session import LocalSessionManager
from collab_todo.adapters.url_navigation import UrlNavigation


class TestLocalSessionManager:
    def test_callback_fires_immediately(self, alice):
        session = LocalSessionManager(alice)
        callback = MagicMock()
        session.on_identity_changed(callback)
        callback.assert_called_once_with(alice)

    def test_sign_in_fires_only_on_change(self, alice):
        session = LocalSessionManager()
        callback = MagicMock()
        session.on_identity_changed(callback)
        session.sign_in(alice)
        session.sign_in(alice)
        assert [c.args[0] for c in callback.call_args_list] == [None, alice]

    @pytest.mark.asyncio
    async def test_sign_out(self, alice):
        session = LocalSessionManager(alice)
        callback = MagicMock()
        session.on_identity_changed(callback)
        await session.sign_out()
        await session.sign_out()
        assert session.identity is None
        assert [c.args[0] for c in callback.call_args_list] == [alice, None]

    def test_unsubscribe(self, alice):
        session = LocalSessionManager()
        callback = MagicMock()
        unsubscribe = session.on_identity_changed(callback)
        unsubscribe()
        session.sign_in(alice)
        callback.assert_called_once_with(None)


class TestUrlNavigation:
    def test_get_param(self):
        nav = UrlNavigation("https://todo.example.com/?invite=L1&email=b%40example.com")
        assert nav.get_param("invite") == "L1"
        assert nav.get_param("email") == "b@example.com"
        assert nav.get_param("missing") is None

    def test_clear_params_keeps_path(self):
        nav = UrlNavigation("https://todo.example.com/app?invite=L1#top")
        nav.clear_params()
        assert nav.url == "https://todo.example.com/app"
