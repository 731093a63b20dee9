"""Document store port — abstract interface for the shared remote store.

Core modules depend on this protocol, never on a specific database.
Paths are slash-separated: ``lists/{id}``, ``lists/{id}/tasks/{taskId}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from collab_todo.core.errors import StoreError

__all__ = [
    "ArrayRemove",
    "ArrayUnion",
    "Document",
    "DocumentStorePort",
    "Filter",
    "Query",
    "SERVER_TIMESTAMP",
    "StoreError",
    "WriteOp",
    "collection_of",
]


# ---------------------------------------------------------------------------
# Write sentinels, resolved by the store at write time
# ---------------------------------------------------------------------------


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True, init=False)
class ArrayUnion:
    """Add values to an array field, skipping ones already present."""

    values: tuple

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True, init=False)
class ArrayRemove:
    """Remove every occurrence of the values from an array field."""

    values: tuple

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


# ---------------------------------------------------------------------------
# Documents and queries
# ---------------------------------------------------------------------------


@dataclass
class Document:
    id: str
    path: str
    data: dict[str, Any]


def collection_of(path: str) -> str:
    """Return the collection path that holds the document at *path*."""
    return path.rsplit("/", 1)[0]


@dataclass(frozen=True)
class Filter:
    field: str
    op: str      # "==" | "array-contains"
    value: Any


@dataclass(frozen=True)
class Query:
    """A live-queryable selection over one collection.

    Built fluently: ``Query("lists").where("memberIds", "array-contains", uid)
    .order_by("createdAt", descending=True)``.
    """

    collection: str
    filters: tuple[Filter, ...] = ()
    order_field: str | None = None
    descending: bool = False

    def where(self, field_name: str, op: str, value: Any) -> Query:
        if op not in ("==", "array-contains"):
            raise ValueError(f"Unsupported query operator: {op!r}")
        return Query(
            self.collection,
            self.filters + (Filter(field_name, op, value),),
            self.order_field,
            self.descending,
        )

    def order_by(self, field_name: str, descending: bool = False) -> Query:
        return Query(self.collection, self.filters, field_name, descending)


@dataclass
class WriteOp:
    """One operation inside ``batch_write``.

    kind: "set" | "update" | "delete". ``must_exist`` makes a delete fail
    the whole batch when the document is already gone.
    """

    kind: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)
    merge: bool = False
    must_exist: bool = False


SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[StoreError], None]
Unsubscribe = Callable[[], None]


class DocumentStorePort(Protocol):
    """Abstract document store used by the sync engine and resolvers."""

    def subscribe(
        self,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe: ...

    async def get(self, path: str) -> Document | None: ...

    async def query(self, query: Query) -> list[Document]: ...

    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def set(
        self, path: str, data: dict[str, Any], merge: bool = False
    ) -> None: ...

    async def update(self, path: str, data: dict[str, Any]) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def batch_write(self, ops: list[WriteOp]) -> None: ...
