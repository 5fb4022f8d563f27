"""
Document store port.

The services depend on this protocol instead of a concrete backend, so the
hosted Firestore REST client and the in-process store are interchangeable.
Paths are slash-separated and relative to the database root, e.g.
``users/u1/contacts`` (a collection) or ``users/u1/contacts/abc`` (a document).
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from clientdesk.core.exceptions import InvalidArgumentError

SnapshotCallback = Callable[[List["Document"]], None]
ErrorCallback = Callable[[Exception], None]

# Comparison operators a filter may use
FILTER_OPERATORS = {"==": operator.eq, ">=": operator.ge, "<=": operator.le}


@dataclass(frozen=True)
class Document:
    """One stored document as returned by the store."""

    id: str
    path: str
    data: Dict[str, Any]
    update_time: Optional[datetime] = None

    def to_record_data(self) -> Dict[str, Any]:
        """Document fields merged with the store-assigned id."""
        return {**self.data, "id": self.id}


@dataclass(frozen=True)
class FieldFilter:
    """Predicate on one top-level field: equality or an inclusive bound."""

    field: str
    value: Any
    op: str = "=="

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise InvalidArgumentError(f"Unsupported filter operator: {self.op!r}")

    def matches(self, data: Dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        if self.op == "==":
            return actual == self.value
        # Range filters never match null or values of another type
        if actual is None or _type_rank(actual) != _type_rank(self.value):
            return False
        return FILTER_OPERATORS[self.op](actual, self.value)


@dataclass(frozen=True)
class Query:
    """Filtered query over one collection, optionally ordered by one field."""

    collection_path: str
    filters: Tuple[FieldFilter, ...] = field(default_factory=tuple)
    order_by: Optional[str] = None
    descending: bool = False

    def where(self, field_name: str, value: Any, op: str = "==") -> "Query":
        return Query(
            self.collection_path,
            self.filters + (FieldFilter(field_name, value, op),),
            self.order_by,
            self.descending,
        )

    def ordered(self, field_name: str, descending: bool = False) -> "Query":
        return Query(self.collection_path, self.filters, field_name, descending)

    def matches(self, document: Document) -> bool:
        return parent_path(document.path) == self.collection_path and all(
            f.matches(document.data) for f in self.filters
        )


class ListenerRegistration(Protocol):
    """Handle returned by ``DocumentStore.listen``; ``remove`` is idempotent."""

    def remove(self) -> None: ...


class DocumentStore(Protocol):
    """Asynchronous document database with live queries."""

    async def add(self, collection: str, data: Dict[str, Any]) -> Document: ...

    async def get(self, path: str) -> Optional[Document]: ...

    async def set(self, path: str, data: Dict[str, Any]) -> Document: ...

    async def update(self, path: str, data: Dict[str, Any]) -> Document: ...

    async def delete(self, path: str) -> None: ...

    async def query(self, query: Query) -> List[Document]: ...

    async def listen(
        self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> ListenerRegistration: ...

    async def close(self) -> None: ...


def split_path(path: str) -> List[str]:
    """Split and validate a store path."""
    segments = (path or "").strip("/").split("/")
    if not segments or any(not s for s in segments):
        raise InvalidArgumentError(f"Invalid store path: {path!r}")
    return segments


def collection_path(path: str) -> str:
    """Validate a collection path (odd number of segments)."""
    segments = split_path(path)
    if len(segments) % 2 != 1:
        raise InvalidArgumentError(f"Not a collection path: {path!r}")
    return "/".join(segments)


def document_path(path: str) -> str:
    """Validate a document path (even number of segments)."""
    segments = split_path(path)
    if len(segments) % 2 != 0:
        raise InvalidArgumentError(f"Not a document path: {path!r}")
    return "/".join(segments)


def parent_path(path: str) -> str:
    """Collection that contains the given document."""
    return "/".join(split_path(path)[:-1])


def sort_documents(documents: List[Document], order_by: Optional[str], descending: bool) -> List[Document]:
    """
    Order documents by one field the way the hosted store does.

    Documents missing the field are excluded, as an ordered live query would
    not return them either. Explicit nulls are kept and sort first.
    """
    if not order_by:
        return list(documents)
    present = [d for d in documents if order_by in d.data]
    return sorted(present, key=lambda d: _sort_key(d.data[order_by]), reverse=descending)


def _type_rank(value: Any) -> int:
    # null < boolean < number < timestamp < string < everything else
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    return 5


def _sort_key(value: Any):
    rank = _type_rank(value)
    if rank == 0:
        return (rank, 0)
    if rank in (1, 2):
        return (rank, float(value))
    if rank == 3:
        return (rank, value.timestamp())
    return (rank, str(value))
