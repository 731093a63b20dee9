"""
Collab Todo — SQLite document store adapter.

Implements DocumentStorePort on top of a single SQLite table of JSON
documents. Writes run in a worker thread via asyncio.to_thread, one
transaction per call (so a batch is all-or-nothing), and live queries are
re-evaluated and pushed to subscribers on the event loop right after the
write that touched their collection.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

from collab_todo.core.errors import ErrorCode, StoreError
from collab_todo.data.models import utc_now
from collab_todo.ports.document_store_port import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    Document,
    ErrorCallback,
    Query,
    SnapshotCallback,
    Unsubscribe,
    WriteOp,
    collection_of,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON encoding (datetimes survive a round trip)
# ---------------------------------------------------------------------------


def _encode_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$datetime": value.isoformat()}
    if isinstance(value, date):
        return {"$date": value.isoformat()}
    if isinstance(value, (set, tuple)):
        return list(value)
    raise TypeError(f"Unsupported value in document: {value!r}")


def _decode_hook(obj: dict) -> Any:
    if len(obj) == 1:
        if "$datetime" in obj:
            return datetime.fromisoformat(obj["$datetime"])
        if "$date" in obj:
            return date.fromisoformat(obj["$date"])
    return obj


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, default=_encode_default, sort_keys=True)


def _loads(raw: str) -> dict[str, Any]:
    return json.loads(raw, object_hook=_decode_hook)


# ---------------------------------------------------------------------------
# Field-path helpers
# ---------------------------------------------------------------------------


def _get_field(data: dict[str, Any], field_path: str) -> Any:
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _set_field(data: dict[str, Any], field_path: str, value: Any) -> None:
    parts = field_path.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def _resolve(value: Any, existing: Any, now: datetime) -> Any:
    """Replace write sentinels with concrete values."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, ArrayUnion):
        result = list(existing) if isinstance(existing, list) else []
        for item in value.values:
            if item not in result:
                result.append(item)
        return result
    if isinstance(value, ArrayRemove):
        base = list(existing) if isinstance(existing, list) else []
        return [item for item in base if item not in value.values]
    if isinstance(value, dict):
        prior = existing if isinstance(existing, dict) else {}
        return {k: _resolve(v, prior.get(k), now) for k, v in value.items()}
    return value


def _merge(target: dict[str, Any], incoming: dict[str, Any], now: datetime) -> None:
    """Deep-merge *incoming* into *target* (set with merge=True)."""
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value, now)
        else:
            target[key] = _resolve(value, target.get(key), now)


def _matches(data: dict[str, Any], query: Query) -> bool:
    for flt in query.filters:
        value = _get_field(data, flt.field)
        if flt.op == "==":
            if value != flt.value:
                return False
        elif flt.op == "array-contains":
            if not isinstance(value, list) or flt.value not in value:
                return False
    return True


@dataclass
class _Subscription:
    query: Query
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    last_fingerprint: list[tuple[str, str]] | None = None
    active: bool = True


class SQLiteDocumentStore:
    """SQLite-backed DocumentStorePort with in-process live queries."""

    def __init__(
        self,
        db_path: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if db_path is None:
            from collab_todo.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._clock = clock
        self._lock = threading.Lock()
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(
                ":memory:", check_same_thread=False, isolation_level=None,
            )
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._subscriptions: dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._memory_conn is not None:
            yield self._memory_conn
            return
        conn = sqlite3.connect(self._db_path, timeout=5, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    path        TEXT PRIMARY KEY,
                    collection  TEXT NOT NULL,
                    doc_id      TEXT NOT NULL,
                    data_json   TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection "
                "ON documents (collection)"
            )
        logger.debug("Document store initialized at %s", self._db_path)

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None

    # ------------------------------------------------------------------
    # Synchronous primitives (run under the lock, usually in a thread)
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_document(row: tuple[str, str, str]) -> Document:
        path, doc_id, data_json = row
        return Document(id=doc_id, path=path, data=_loads(data_json))

    def _get_sync(self, path: str) -> Document | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT path, doc_id, data_json FROM documents WHERE path = ?",
                (path,),
            ).fetchone()
        return self._row_to_document(row) if row else None

    def _query_sync(self, query: Query) -> list[Document]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT path, doc_id, data_json FROM documents "
                "WHERE collection = ? ORDER BY rowid",
                (query.collection,),
            ).fetchall()

        docs = [self._row_to_document(r) for r in rows]
        docs = [d for d in docs if _matches(d.data, query)]
        if query.order_field:
            field_name = query.order_field
            present = [d for d in docs if _get_field(d.data, field_name) is not None]
            missing = [d for d in docs if _get_field(d.data, field_name) is None]
            present.sort(
                key=lambda d: _get_field(d.data, field_name),
                reverse=query.descending,
            )
            docs = present + missing
        return docs

    def _write_sync(self, ops: list[WriteOp]) -> set[str]:
        """Apply *ops* in one transaction. Returns the collections touched."""
        now = self._clock()
        changed: set[str] = set()
        with self._lock, self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for op in ops:
                    self._apply_op(conn, op, now)
                    changed.add(collection_of(op.path))
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return changed

    def _apply_op(self, conn: sqlite3.Connection, op: WriteOp, now: datetime) -> None:
        row = conn.execute(
            "SELECT data_json FROM documents WHERE path = ?", (op.path,),
        ).fetchone()
        existing = _loads(row[0]) if row else None

        if op.kind == "delete":
            if existing is None:
                if op.must_exist:
                    raise StoreError(
                        f"No document to delete at {op.path}", ErrorCode.NOT_FOUND,
                    )
                return
            conn.execute("DELETE FROM documents WHERE path = ?", (op.path,))
            return

        if op.kind == "update":
            if existing is None:
                raise StoreError(
                    f"No document to update at {op.path}", ErrorCode.NOT_FOUND,
                )
            data = copy.deepcopy(existing)
            for field_path, value in op.data.items():
                _set_field(
                    data, field_path, _resolve(value, _get_field(data, field_path), now),
                )
        elif op.kind == "set":
            if op.merge and existing is not None:
                data = copy.deepcopy(existing)
                _merge(data, op.data, now)
            else:
                data = _resolve(op.data, None, now)
        else:
            raise StoreError(f"Unknown write kind: {op.kind!r}", ErrorCode.INVALID_ARGUMENT)

        conn.execute(
            """
            INSERT INTO documents (path, collection, doc_id, data_json)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET data_json = excluded.data_json
            """,
            (op.path, collection_of(op.path), op.path.rsplit("/", 1)[-1], _dumps(data)),
        )

    # ------------------------------------------------------------------
    # DocumentStorePort
    # ------------------------------------------------------------------

    async def get(self, path: str) -> Document | None:
        try:
            return await asyncio.to_thread(self._get_sync, path)
        except sqlite3.Error as exc:
            raise StoreError(f"Read failed for {path}: {exc}", ErrorCode.UNAVAILABLE) from exc

    async def query(self, query: Query) -> list[Document]:
        try:
            return await asyncio.to_thread(self._query_sync, query)
        except sqlite3.Error as exc:
            raise StoreError(
                f"Query failed on {query.collection}: {exc}", ErrorCode.UNAVAILABLE,
            ) from exc

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await self._write([WriteOp("set", f"{collection}/{doc_id}", data)])
        return doc_id

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self._write([WriteOp("set", path, data, merge=merge)])

    async def update(self, path: str, data: dict[str, Any]) -> None:
        await self._write([WriteOp("update", path, data)])

    async def delete(self, path: str) -> None:
        await self._write([WriteOp("delete", path)])

    async def batch_write(self, ops: list[WriteOp]) -> None:
        if ops:
            await self._write(list(ops))

    async def _write(self, ops: list[WriteOp]) -> None:
        try:
            changed = await asyncio.to_thread(self._write_sync, ops)
        except StoreError:
            raise
        except (sqlite3.Error, TypeError) as exc:
            raise StoreError(f"Write failed: {exc}", ErrorCode.UNAVAILABLE) from exc
        self._publish(changed)

    # ------------------------------------------------------------------
    # Live queries
    # ------------------------------------------------------------------

    def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Register a live query. The first snapshot is delivered before returning."""
        sub_id = next(self._ids)
        sub = _Subscription(query=query, on_snapshot=on_snapshot, on_error=on_error)
        self._subscriptions[sub_id] = sub

        def unsubscribe() -> None:
            sub.active = False
            self._subscriptions.pop(sub_id, None)

        self._deliver(sub)
        return unsubscribe

    def _publish(self, changed: set[str]) -> None:
        for sub in list(self._subscriptions.values()):
            if sub.active and sub.query.collection in changed:
                self._deliver(sub)

    def _deliver(self, sub: _Subscription) -> None:
        try:
            docs = self._query_sync(sub.query)
        except sqlite3.Error as exc:
            logger.error("Live query on %s failed: %s", sub.query.collection, exc)
            sub.on_error(StoreError(str(exc), ErrorCode.UNAVAILABLE))
            return

        fingerprint = [(d.id, _dumps(d.data)) for d in docs]
        if fingerprint == sub.last_fingerprint:
            return
        sub.last_fingerprint = fingerprint
        try:
            sub.on_snapshot(docs)
        except Exception:
            logger.exception("Snapshot listener for %s raised", sub.query.collection)
