"""Record store — the document store behind both ledger projections.

The core only depends on the ``RecordStore`` protocol: read a collection,
run an ordered/limited query, watch a query for changes, patch fields on
one document, and atomically replace one partition of a collection.

Two adapters ship with the package:
- InMemoryRecordStore: process-local, watchers notified synchronously.
- JsonFileRecordStore: same semantics, state persisted to a JSON file
  on every mutation (write-then-apply, so a failed write changes nothing).

Watch semantics: every delivery is the full current result set of the
query, never a delta. Watchers are notified after the store lock is
released, in registration order. A callback that raises is logged and
handed to that watch's error callback; the write that triggered it has
already succeeded and returns normally.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class StoreError(Exception):
    """Base class for record store failures."""


class DocumentNotFound(StoreError):
    """Raised when an update targets a document that does not exist."""


class PreconditionFailed(StoreError):
    """Raised when a conditional update finds unexpected field values."""


@dataclass(frozen=True)
class StoreQuery:
    """A query over one collection.

    ``where`` holds equality filters as (field, value) pairs.
    Documents missing the ``order_by`` field sort after all others.
    Values of different types are grouped by type name before comparing.
    """
    collection: str
    where: tuple[tuple[str, Any], ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def apply(self, documents: list[Document]) -> list[Document]:
        rows = [
            d for d in documents
            if all(d.get(f) == v for f, v in self.where)
        ]
        if self.order_by is not None:
            key = self.order_by
            present = [d for d in rows if d.get(key) is not None]
            missing = [d for d in rows if d.get(key) is None]
            present.sort(
                key=lambda d: (type(d[key]).__name__, d[key]),
                reverse=self.descending,
            )
            rows = present + missing
        if self.limit is not None:
            rows = rows[: self.limit]
        return rows


class RecordStore(Protocol):
    """Capabilities the ledger and moderation queue consume."""

    def get_all(self, collection: str) -> list[Document]: ...

    def query(self, query: StoreQuery) -> list[Document]: ...

    def watch(
        self,
        query: StoreQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe: ...

    def update_fields(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expected: Optional[Document] = None,
    ) -> None: ...

    def replace_partition(
        self,
        collection: str,
        key_field: str,
        key: Any,
        documents: list[Document],
    ) -> None: ...


@dataclass
class _Watch:
    query: StoreQuery
    on_snapshot: SnapshotCallback
    on_error: Optional[ErrorCallback]
    active: bool = True


class InMemoryRecordStore:
    """Thread-safe in-process record store.

    Usage:
        store = InMemoryRecordStore()
        store.put("submissions", "id-1", {"id": "id-1", "status": "PENDING"})
        unsubscribe = store.watch(StoreQuery("submissions"), print)
        store.update_fields("submissions", "id-1", {"status": "APPROVED"})
        unsubscribe()
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, Document]] = {}
        self._watches: list[_Watch] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self, collection: str) -> list[Document]:
        with self._lock:
            return copy.deepcopy(list(self._collections.get(collection, {}).values()))

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def query(self, query: StoreQuery) -> list[Document]:
        return query.apply(self.get_all(query.collection))

    # ------------------------------------------------------------------
    # Watches
    # ------------------------------------------------------------------

    def watch(
        self,
        query: StoreQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """Deliver the current result set now and after every change."""
        entry = _Watch(query=query, on_snapshot=on_snapshot, on_error=on_error)
        with self._lock:
            self._watches.append(entry)
        self._deliver(entry)

        def unsubscribe() -> None:
            with self._lock:
                entry.active = False
                if entry in self._watches:
                    self._watches.remove(entry)

        return unsubscribe

    @property
    def watch_count(self) -> int:
        with self._lock:
            return len(self._watches)

    def _deliver(self, entry: _Watch) -> None:
        """Run one watch. Callback failures never reach the writer."""
        if not entry.active:
            return
        try:
            snapshot = self.query(entry.query)
        except StoreError as e:
            logger.warning("Watch on %s failed: %s", entry.query.collection, e)
            self._report(entry, e)
            return
        try:
            entry.on_snapshot(snapshot)
        except Exception as e:
            logger.exception("Watch callback on %s failed", entry.query.collection)
            self._report(entry, e)

    def _report(self, entry: _Watch, error: Exception) -> None:
        if entry.on_error is None:
            return
        try:
            entry.on_error(error)
        except Exception:
            logger.exception("Watch error handler on %s failed", entry.query.collection)

    def _notify(self, collection: str) -> None:
        with self._lock:
            targets = [w for w in self._watches if w.query.collection == collection]
        for entry in targets:
            self._deliver(entry)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, collection: str, doc_id: str, document: Document) -> None:
        """Create or overwrite a single document."""
        with self._lock:
            docs = dict(self._collections.get(collection, {}))
            docs[doc_id] = copy.deepcopy(document)
            self._commit(collection, docs)
        self._notify(collection)

    def update_fields(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expected: Optional[Document] = None,
    ) -> None:
        """Patch fields on one document.

        If ``expected`` is given, the patch is applied only when every
        expected field currently holds the expected value, or one of the
        values when a set or frozenset is given. A missing field compares
        equal to None.

        Raises:
            DocumentNotFound: No document with this id.
            PreconditionFailed: An expected value did not match.
        """
        with self._lock:
            docs = dict(self._collections.get(collection, {}))
            current = docs.get(doc_id)
            if current is None:
                raise DocumentNotFound(f"No document {collection}/{doc_id}")
            for name, value in (expected or {}).items():
                allowed = value if isinstance(value, (set, frozenset)) else {value}
                if current.get(name) not in allowed:
                    raise PreconditionFailed(
                        f"{collection}/{doc_id}: expected {name}={value!r}, "
                        f"found {current.get(name)!r}"
                    )
            updated = copy.deepcopy(current)
            updated.update(copy.deepcopy(fields))
            docs[doc_id] = updated
            self._commit(collection, docs)
        self._notify(collection)

    def replace_partition(
        self,
        collection: str,
        key_field: str,
        key: Any,
        documents: list[Document],
    ) -> None:
        """Atomically replace every document whose ``key_field`` equals ``key``.

        Raises ValueError if a document lacks an id or belongs to
        another partition.
        """
        for doc in documents:
            if not doc.get("id"):
                raise ValueError(f"Document in {collection} partition {key!r} has no id")
            if doc.get(key_field) != key:
                raise ValueError(
                    f"Document {doc['id']} has {key_field}={doc.get(key_field)!r}, "
                    f"expected {key!r}"
                )
        with self._lock:
            docs = {
                doc_id: doc
                for doc_id, doc in self._collections.get(collection, {}).items()
                if doc.get(key_field) != key
            }
            for doc in documents:
                docs[doc["id"]] = copy.deepcopy(doc)
            self._commit(collection, docs)
        self._notify(collection)

    def _commit(self, collection: str, docs: dict[str, Document]) -> None:
        """Install a new version of one collection. Called under the lock."""
        self._collections[collection] = docs


class JsonFileRecordStore(InMemoryRecordStore):
    """Record store persisted to a single JSON file.

    Each mutation writes the full state to disk before it becomes
    visible in memory. An OSError during the write surfaces as
    StoreError and leaves both disk and memory unchanged.
    """

    def __init__(self, storage_path: Path) -> None:
        super().__init__()
        self._path = storage_path
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Malformed record store file: {self._path}")
        self._collections = {name: dict(docs) for name, docs in data.items()}

    def _commit(self, collection: str, docs: dict[str, Document]) -> None:
        state = dict(self._collections)
        state[collection] = docs
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(state, f, indent=2, sort_keys=True, ensure_ascii=False)
            tmp.replace(self._path)
        except OSError as e:
            raise StoreError(f"Failed to persist {self._path}: {e}") from e
        self._collections = state
