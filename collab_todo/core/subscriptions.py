"""Live-subscription bookkeeping for the sync engine.

``GuardedSubscription`` drops deliveries that arrive after cancellation.
``SubscriptionTree`` keeps one set of child subscriptions per list id and
diffs desired vs. active on every ``reconcile`` call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collab_todo.core.errors import StoreError
    from collab_todo.ports.document_store_port import Document, DocumentStorePort, Query

logger = logging.getLogger(__name__)


class GuardedSubscription:
    """A store subscription whose callbacks go quiet once cancelled."""

    def __init__(
        self,
        store: DocumentStorePort,
        query: Query,
        on_snapshot: Callable[[list[Document]], None],
        on_error: Callable[[StoreError], None],
    ) -> None:
        self.query = query
        self.active = True
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._unsubscribe: Callable[[], None] | None = None

        unsubscribe = store.subscribe(query, self._snapshot, self._error)
        if self.active:
            self._unsubscribe = unsubscribe
        else:
            # Cancelled from inside the first delivery.
            unsubscribe()

    def _snapshot(self, docs: list[Document]) -> None:
        if not self.active:
            logger.debug("Discarding late snapshot for %s", self.query.collection)
            return
        self._on_snapshot(docs)

    def _error(self, error: StoreError) -> None:
        if not self.active:
            return
        self._on_error(error)

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class SubscriptionTree:
    """Per-list child subscriptions keyed by list id.

    ``open_children(list_id)`` opens the subscriptions for one list;
    ``on_close(list_id)`` runs after a list's children are cancelled so the
    owner can drop that list's projections.
    """

    def __init__(
        self,
        open_children: Callable[[str], list[GuardedSubscription]],
        on_close: Callable[[str], None],
    ) -> None:
        self._open_children = open_children
        self._on_close = on_close
        self._children: dict[str, list[GuardedSubscription]] = {}

    @property
    def list_ids(self) -> set[str]:
        return set(self._children)

    def reconcile(self, list_ids: Iterable[str]) -> tuple[list[str], list[str]]:
        """Open subscriptions for new lists, close the ones no longer wanted.

        Idempotent: calling twice with the same ids changes nothing.
        Returns (opened, closed) list ids.
        """
        desired = list(dict.fromkeys(list_ids))
        desired_set = set(desired)

        closed = [lid for lid in self._children if lid not in desired_set]
        for list_id in closed:
            self._close(list_id)

        opened: list[str] = []
        for list_id in desired:
            if list_id in self._children:
                continue
            self._children[list_id] = []
            self._children[list_id] = self._open_children(list_id)
            opened.append(list_id)

        if opened or closed:
            logger.debug("Subscription tree: opened %s, closed %s", opened, closed)
        return opened, closed

    def close_all(self) -> None:
        for list_id in list(self._children):
            self._close(list_id)

    def _close(self, list_id: str) -> None:
        for sub in self._children.pop(list_id, []):
            sub.cancel()
        self._on_close(list_id)
