"""Tests for collab_todo.config — Settings validation."""

import pytest
from pydantic import ValidationError

from collab_todo.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.INVITATION_TTL_DAYS == 7
        assert s.COMPLETION_NOTIFY_POLICY == "assignee"
        assert s.emailjs_configured is False

    def test_ttl_parsed_from_string(self):
        assert Settings(INVITATION_TTL_DAYS="14").INVITATION_TTL_DAYS == 14

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(INVITATION_TTL_DAYS="0")

    def test_policy_normalized(self):
        assert Settings(COMPLETION_NOTIFY_POLICY=" Creator ").COMPLETION_NOTIFY_POLICY == "creator"

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            Settings(COMPLETION_NOTIFY_POLICY="everyone")

    def test_base_url_trailing_slash_stripped(self):
        assert Settings(APP_BASE_URL="https://todo.example.com/").APP_BASE_URL == "https://todo.example.com"

    def test_emailjs_configured_needs_all_three(self):
        assert not Settings(EMAILJS_SERVICE_ID="svc", EMAILJS_TEMPLATE_ID="tpl").emailjs_configured
        assert Settings(
            EMAILJS_SERVICE_ID="svc", EMAILJS_TEMPLATE_ID="tpl", EMAILJS_PUBLIC_KEY="pub",
        ).emailjs_configured
