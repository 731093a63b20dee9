"""
Collab Todo — Centralized configuration.

Loads all settings from .env and validates them.
Every adapter and the sync engine read their defaults from here.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from collab_todo/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

COMPLETION_POLICIES = ("assignee", "creator", "all_members", "none")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Document store (SQLite adapter)
    DATABASE_PATH: str = "data/collab_todo.db"

    # Invitations
    INVITATION_TTL_DAYS: int = 7
    APP_BASE_URL: str = "http://localhost:3000"
    APP_NAME: str = "Collab Todo"

    # Who hears about completed tasks: "assignee" | "creator" | "all_members" | "none"
    COMPLETION_NOTIFY_POLICY: str = "assignee"

    # EmailJS (optional: invitation emails are skipped when unset)
    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_TEMPLATE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""

    LOG_LEVEL: str = "INFO"

    @field_validator("INVITATION_TTL_DAYS", mode="before")
    @classmethod
    def parse_ttl(cls, v: str | int) -> int:
        days = int(v)
        if days <= 0:
            raise ValueError("INVITATION_TTL_DAYS must be positive")
        return days

    @field_validator("COMPLETION_NOTIFY_POLICY", mode="before")
    @classmethod
    def parse_policy(cls, v: str) -> str:
        policy = (v or "assignee").strip().lower()
        if policy not in COMPLETION_POLICIES:
            raise ValueError(
                f"COMPLETION_NOTIFY_POLICY must be one of {COMPLETION_POLICIES}, got {v!r}"
            )
        return policy

    @field_validator("APP_BASE_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").rstrip("/")

    @property
    def emailjs_configured(self) -> bool:
        return bool(
            self.EMAILJS_SERVICE_ID
            and self.EMAILJS_TEMPLATE_ID
            and self.EMAILJS_PUBLIC_KEY
        )


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/collab_todo.db"),
        INVITATION_TTL_DAYS=os.getenv("INVITATION_TTL_DAYS", "7"),
        APP_BASE_URL=os.getenv("APP_BASE_URL", "http://localhost:3000"),
        APP_NAME=os.getenv("APP_NAME", "Collab Todo"),
        COMPLETION_NOTIFY_POLICY=os.getenv("COMPLETION_NOTIFY_POLICY", "assignee"),
        EMAILJS_SERVICE_ID=os.getenv("EMAILJS_SERVICE_ID", ""),
        EMAILJS_TEMPLATE_ID=os.getenv("EMAILJS_TEMPLATE_ID", ""),
        EMAILJS_PUBLIC_KEY=os.getenv("EMAILJS_PUBLIC_KEY", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by other modules as:
#   from collab_todo.config import settings
settings = _load_settings()
