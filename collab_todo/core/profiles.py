"""User profile upsert, run on every successful sign-in, and profile edits."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from collab_todo.core.errors import CollabError, InvalidArgumentError
from collab_todo.ports.document_store_port import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from collab_todo.data.models import Identity
    from collab_todo.ports.document_store_port import DocumentStorePort

logger = logging.getLogger(__name__)


async def upsert_user_profile(store: DocumentStorePort, identity: Identity) -> bool:
    """Create the ``users/{uid}`` profile or refresh its login time.

    Returns True when a new profile was created.
    """
    path = f"users/{identity.id}"
    existing = await store.get(path)
    profile = {
        "uid": identity.id,
        "email": identity.email,
        "displayName": identity.display_name,
        "photoURL": identity.photo_url,
        "lastLoginAt": SERVER_TIMESTAMP,
        "updatedAt": SERVER_TIMESTAMP,
    }

    if existing is None:
        await store.set(path, {**profile, "createdAt": SERVER_TIMESTAMP})
        logger.info("Profile created for %s <%s>", identity.id, identity.email)
        return True

    await store.set(path, profile, merge=True)
    logger.debug("Profile refreshed for %s", identity.id)
    return False


async def update_display_name(
    store: DocumentStorePort, identity: Identity, display_name: str,
) -> str:
    """Rename the signed-in user's profile. Returns the stored name."""
    display_name = (display_name or "").strip()
    if not display_name:
        raise InvalidArgumentError("Display name is required")

    try:
        await store.update(
            f"users/{identity.id}",
            {"displayName": display_name, "updatedAt": SERVER_TIMESTAMP},
        )
    except CollabError as exc:
        logger.error("Error updating profile for %s: %s", identity.id, exc)
        raise

    logger.info("Display name updated for %s", identity.id)
    return display_name
