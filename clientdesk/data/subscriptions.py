"""
Live snapshot subscriptions.

A subscription wraps one store live query scoped to an owner. Every change of
the result set delivers the full, typed result set to ``on_update``; callers
replace whatever they held before. Deliveries for one subscription keep their
order. A failure is delivered once through ``on_error`` and ends the
subscription; there is no automatic re-subscription at this layer.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Generic, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel

from clientdesk.core.exceptions import InvalidArgumentError, MalformedRecordError
from clientdesk.data.document_store import Document, DocumentStore, ListenerRegistration, Query
from clientdesk.data.mapping import SnapshotPolicy, map_snapshot

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

UpdateCallback = Callable[[List[RecordT]], None]
FailureCallback = Callable[[Exception], None]


def require_owner(owner_id: Optional[str]) -> str:
    """Reject a missing or blank owner id before any store call is made."""
    if not isinstance(owner_id, str) or not owner_id.strip():
        raise InvalidArgumentError("Owner id is required", details={"owner_id": owner_id})
    return owner_id


class Subscription(Generic[RecordT]):
    """
    Cancellation handle for one live snapshot subscription.

    ``cancel()`` may be called any number of times. Once it returned, neither
    callback runs again, including for deliveries the store already queued.
    """

    def __init__(
        self,
        query: Query,
        model: Type[RecordT],
        on_update: UpdateCallback,
        on_error: FailureCallback,
        policy: SnapshotPolicy = SnapshotPolicy.SKIP,
        notifier=None,
    ):
        self.query = query
        self.model = model
        self._on_update = on_update
        self._on_error = on_error
        self._policy = policy
        self._notifier = notifier
        self._registration: Optional[ListenerRegistration] = None
        self._cancelled = False
        self._error: Optional[Exception] = None
        self._delivered = 0

    @property
    def active(self) -> bool:
        return not self._cancelled and self._error is None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def terminated(self) -> bool:
        """True once the subscription ended with an error."""
        return self._error is not None

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def snapshots_delivered(self) -> int:
        return self._delivered

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._release()
        logger.debug("Subscription cancelled", collection=self.query.collection_path)

    def __call__(self) -> None:
        self.cancel()

    def _attach(self, registration: ListenerRegistration) -> None:
        if self.active:
            self._registration = registration
        else:
            registration.remove()

    def _release(self) -> None:
        if self._registration is not None:
            self._registration.remove()
            self._registration = None

    def _handle_snapshot(self, documents: List[Document]) -> None:
        if not self.active:
            return
        try:
            records = map_snapshot(documents, self.model, self._policy)
        except MalformedRecordError as e:
            self._terminate(e)
            return
        self._delivered += 1
        self._on_update(records)

    def _handle_error(self, error: Exception) -> None:
        if not self.active:
            return
        self._terminate(error)

    def _terminate(self, error: Exception) -> None:
        self._error = error
        self._release()
        logger.error(
            "Subscription terminated",
            collection=self.query.collection_path,
            model=self.model.__name__,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._notifier is not None:
            self._notifier.show(
                "Live update stopped", f"{self.model.__name__} updates failed: {error}", level="error"
            )
        self._on_error(error)


async def open_subscription(
    store: DocumentStore,
    query: Query,
    model: Type[RecordT],
    owner_id: str,
    on_update: UpdateCallback,
    on_error: FailureCallback,
    policy: SnapshotPolicy = SnapshotPolicy.SKIP,
    notifier=None,
) -> Subscription[RecordT]:
    """
    Open a live subscription on ``query`` for ``owner_id``.

    Args:
        store: Document store to listen on
        query: Owner-scoped query built by the caller
        model: Record model every delivered document is mapped to
        owner_id: Authenticated principal the query is scoped to
        on_update: Receives each full snapshot as a list of records
        on_error: Receives the terminal error, at most once
        policy: Handling of malformed documents
        notifier: Optional notifier told about terminal errors

    Returns:
        Subscription handle

    Raises:
        InvalidArgumentError: If ``owner_id`` is empty (no query is issued)
    """
    require_owner(owner_id)
    subscription = Subscription(query, model, on_update, on_error, policy, notifier)
    registration = await store.listen(query, subscription._handle_snapshot, subscription._handle_error)
    subscription._attach(registration)
    logger.debug(
        "Subscription opened",
        collection=query.collection_path,
        model=model.__name__,
        filters=len(query.filters),
    )
    return subscription


class SnapshotStream(Generic[RecordT]):
    """
    Async iterable of full snapshots.

    Each ``async for`` opens its own subscription, so the stream can be
    iterated again after the consumer stopped. Iteration never ends on its
    own; a terminal error is raised from the iterator.
    """

    def __init__(
        self,
        store: DocumentStore,
        query: Query,
        model: Type[RecordT],
        owner_id: str,
        policy: SnapshotPolicy = SnapshotPolicy.SKIP,
        notifier=None,
    ):
        self.owner_id = require_owner(owner_id)
        self.query = query
        self.model = model
        self._store = store
        self._policy = policy
        self._notifier = notifier

    def __aiter__(self) -> AsyncIterator[List[RecordT]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[List[RecordT]]:
        queue: asyncio.Queue = asyncio.Queue()
        subscription = await open_subscription(
            self._store,
            self.query,
            self.model,
            self.owner_id,
            on_update=lambda records: queue.put_nowait((True, records)),
            on_error=lambda error: queue.put_nowait((False, error)),
            policy=self._policy,
            notifier=self._notifier,
        )
        try:
            while True:
                ok, payload = await queue.get()
                if not ok:
                    raise payload
                yield payload
        finally:
            subscription.cancel()


def snapshot_stream(
    store: DocumentStore,
    query: Query,
    model: Type[RecordT],
    owner_id: str,
    policy: SnapshotPolicy = SnapshotPolicy.SKIP,
    notifier=None,
) -> SnapshotStream[RecordT]:
    """Lazy, restartable stream of snapshots; validates ``owner_id`` immediately."""
    return SnapshotStream(store, query, model, owner_id, policy, notifier)


SubscribeFn = Callable[[UpdateCallback, FailureCallback], Awaitable[Subscription]]


class SnapshotCache(Generic[RecordT]):
    """
    Latest snapshot of one subscription, replaced wholesale on every delivery.

    Usage:
        async with service.cache(owner_id) as contacts:
            await contacts.wait_ready()
            print(len(contacts.records))
    """

    def __init__(self, subscribe: SubscribeFn, on_change: Optional[Callable[["SnapshotCache"], None]] = None):
        self._subscribe = subscribe
        self._on_change = on_change
        self._subscription: Optional[Subscription] = None
        self._changed = asyncio.Event()
        self.records: List[RecordT] = []
        self.version = 0
        self.error: Optional[Exception] = None

    @property
    def ready(self) -> bool:
        return self.version > 0

    @property
    def open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def start(self) -> "SnapshotCache[RecordT]":
        if self._subscription is None:
            self._subscription = await self._subscribe(self._replace, self._fail)
        return self

    def _replace(self, records: List[RecordT]) -> None:
        self.records = list(records)
        self.version += 1
        self._changed.set()
        if self._on_change is not None:
            self._on_change(self)

    def _fail(self, error: Exception) -> None:
        self.error = error
        self._changed.set()

    async def wait_for(
        self, predicate: Callable[["SnapshotCache[RecordT]"], bool], timeout: Optional[float] = None
    ) -> "SnapshotCache[RecordT]":
        """Wait until ``predicate(cache)`` holds; raises the terminal error if one arrives."""

        async def _wait():
            while not predicate(self):
                if self.error is not None:
                    raise self.error
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self

    async def wait_ready(self, timeout: Optional[float] = None) -> "SnapshotCache[RecordT]":
        return await self.wait_for(lambda cache: cache.ready, timeout)

    def close(self) -> None:
        """Release the subscription; the last snapshot stays readable."""
        if self._subscription is not None:
            self._subscription.cancel()

    async def __aenter__(self) -> "SnapshotCache[RecordT]":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
