"""
In-process document store.

Backs the ``memory`` store backend and the test-suite. Behaves like the hosted
store where the services can observe it: ids are assigned by the store,
every mutation pushes the full current result set of each affected live query
onto the event loop, listeners only fire when their result set changed, and
deliveries for one listener keep their order.
"""

from __future__ import annotations

import asyncio
import copy
import secrets
import string
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

import structlog

from clientdesk.core.exceptions import NotFoundError
from clientdesk.core.models import utc_now
from clientdesk.data.document_store import (
    Document,
    ErrorCallback,
    Query,
    SnapshotCallback,
    collection_path,
    document_path,
    parent_path,
    sort_documents,
)

logger = structlog.get_logger(__name__)

_ID_ALPHABET = string.ascii_letters + string.digits


def auto_id() -> str:
    """20-character random document id, the same shape the hosted store uses."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(20))


class MemoryListener:
    """Live query registered on an ``InMemoryDocumentStore``."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        loop: asyncio.AbstractEventLoop,
    ):
        self.query = query
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._loop = loop
        self._removed = False
        self._failed = False
        self._fingerprint: Optional[Tuple[Tuple[str, Any], ...]] = None

    @property
    def active(self) -> bool:
        return not (self._removed or self._failed)

    def remove(self) -> None:
        if self._removed:
            return
        self._removed = True
        self._store._detach(self)

    def push(self, documents: List[Document]) -> None:
        """Queue a snapshot if the result set differs from the last one queued."""
        if not self.active:
            return
        fingerprint = tuple((d.path, d.update_time) for d in documents)
        if fingerprint == self._fingerprint:
            return
        self._fingerprint = fingerprint
        self._loop.call_soon(self._deliver, documents)

    def fail(self, error: Exception) -> None:
        if not self.active:
            return
        self._failed = True
        self._store._detach(self)
        self._loop.call_soon(self._deliver_error, error)

    def _deliver(self, documents: List[Document]) -> None:
        if not self._removed:
            self._on_snapshot(documents)

    def _deliver_error(self, error: Exception) -> None:
        if not self._removed:
            self._on_error(error)


class InMemoryDocumentStore:
    """Process-local implementation of the ``DocumentStore`` protocol."""

    def __init__(self):
        self._documents: Dict[str, Document] = {}
        self._listeners: Set[MemoryListener] = set()
        self._last_write = None

    def _next_update_time(self):
        now = utc_now()
        if self._last_write is not None and now <= self._last_write:
            now = self._last_write + timedelta(microseconds=1)
        self._last_write = now
        return now

    def _write(self, path: str, data: Dict[str, Any]) -> Document:
        segments = path.split("/")
        document = Document(
            id=segments[-1],
            path=path,
            data=copy.deepcopy(data),
            update_time=self._next_update_time(),
        )
        self._documents[path] = document
        self._notify(parent_path(path))
        return self._copy(document)

    @staticmethod
    def _copy(document: Document) -> Document:
        return Document(
            id=document.id,
            path=document.path,
            data=copy.deepcopy(document.data),
            update_time=document.update_time,
        )

    def _run(self, query: Query) -> List[Document]:
        matching = [self._copy(d) for d in self._documents.values() if query.matches(d)]
        return sort_documents(matching, query.order_by, query.descending)

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            if listener.query.collection_path == collection:
                listener.push(self._run(listener.query))

    def _detach(self, listener: MemoryListener) -> None:
        self._listeners.discard(listener)

    async def add(self, collection: str, data: Dict[str, Any]) -> Document:
        collection = collection_path(collection)
        path = f"{collection}/{auto_id()}"
        while path in self._documents:
            path = f"{collection}/{auto_id()}"
        document = self._write(path, data)
        logger.debug("Document added", path=path)
        return document

    async def get(self, path: str) -> Optional[Document]:
        document = self._documents.get(document_path(path))
        return self._copy(document) if document else None

    async def set(self, path: str, data: Dict[str, Any]) -> Document:
        return self._write(document_path(path), data)

    async def update(self, path: str, data: Dict[str, Any]) -> Document:
        path = document_path(path)
        existing = self._documents.get(path)
        if existing is None:
            raise NotFoundError(f"No document to update at {path}", details={"path": path})
        return self._write(path, {**existing.data, **data})

    async def delete(self, path: str) -> None:
        path = document_path(path)
        if self._documents.pop(path, None) is not None:
            self._notify(parent_path(path))
            logger.debug("Document deleted", path=path)

    async def query(self, query: Query) -> List[Document]:
        collection_path(query.collection_path)
        return self._run(query)

    async def listen(
        self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> MemoryListener:
        collection_path(query.collection_path)
        listener = MemoryListener(self, query, on_snapshot, on_error, asyncio.get_running_loop())
        self._listeners.add(listener)
        listener.push(self._run(query))
        logger.debug("Listener attached", collection=query.collection_path)
        return listener

    def fail_listeners(self, error: Exception, collection: Optional[str] = None) -> int:
        """Terminate live queries with ``error``, as a dropped connection would."""
        failed = 0
        for listener in list(self._listeners):
            if collection is None or listener.query.collection_path == collection:
                listener.fail(error)
                failed += 1
        return failed

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def close(self) -> None:
        for listener in list(self._listeners):
            listener.remove()
