"""
Collab Todo — Entry Point.

`python main.py` runs a two-user walkthrough against the SQLite document
store configured by DATABASE_PATH: Alice creates a list and invites Bob,
Bob signs in and joins, and both sessions see each other's changes live.
"""

import asyncio
import logging

from collab_todo.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from collab_todo.adapters.local_session import LocalSessionManager
from collab_todo.adapters.mailer_factory import create_mailer
from collab_todo.adapters.sqlite_store import SQLiteDocumentStore
from collab_todo.adapters.url_navigation import UrlNavigation
from collab_todo.app import CollabApp
from collab_todo.core.task_views import compute_stats
from collab_todo.data.models import Identity, Role

logger = logging.getLogger("collab_todo.demo")


async def run_demo() -> None:
    store = SQLiteDocumentStore()
    mailer = create_mailer()

    alice_session = LocalSessionManager()
    alice = CollabApp(store, alice_session, mailer=mailer)
    alice.start()
    alice_session.sign_in(Identity("alice", "alice@example.com", "Alice"))
    await alice.wait_idle()

    list_id = await alice.engine.create_list("Groceries", "Weekend shopping")
    await alice.engine.create_task(list_id, "Buy milk", priority="High")
    await alice.engine.invite_member(list_id, "bob@example.com", Role.EDITOR)

    bob_session = LocalSessionManager()
    bob = CollabApp(store, bob_session, navigation=UrlNavigation(settings.APP_BASE_URL))
    bob.start()
    bob_session.sign_in(Identity("bob", "bob@example.com", "Bob"))
    await bob.wait_idle()

    bob_tasks = bob.engine.tasks_by_list_id.get(list_id, [])
    logger.info("Bob sees %d task(s) in Groceries", len(bob_tasks))
    if bob_tasks:
        await bob.engine.toggle_task_done(list_id, bob_tasks[0].id)

    stats = compute_stats(alice.engine.tasks_by_list_id)
    logger.info(
        "Alice's dashboard: %d total, %d completed, %d unread notification(s)",
        stats.total, stats.completed,
        sum(1 for n in alice.engine.notifications if not n.read),
    )

    await bob.sign_out()
    await alice.sign_out()
    bob.close()
    alice.close()
    store.close()


def main() -> None:
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
