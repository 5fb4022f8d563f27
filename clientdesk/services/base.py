"""Shared plumbing for owner-scoped entity services."""

from contextlib import asynccontextmanager
from typing import Generic, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel

from clientdesk.data.document_store import DocumentStore, Query
from clientdesk.data.mapping import SnapshotPolicy, map_snapshot
from clientdesk.data.subscriptions import (
    FailureCallback,
    SnapshotCache,
    SnapshotStream,
    Subscription,
    UpdateCallback,
    open_subscription,
    require_owner,
)
from clientdesk.services.notifications import NullNotifier

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

OWNER_FIELD = "userId"


def user_collection(owner_id: str, name: str) -> str:
    """Per-user subcollection path, e.g. ``users/u1/contacts``."""
    return f"users/{require_owner(owner_id)}/{name}"


class NotifyingService:
    """Service whose store mutations are reported through a notifier."""

    entity_label: str = "Record"

    def __init__(
        self,
        store: DocumentStore,
        notifier=None,
        policy: SnapshotPolicy = SnapshotPolicy.SKIP,
    ):
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.policy = SnapshotPolicy(policy)

    @asynccontextmanager
    async def mutation(self, action: str, notify: bool = True, **log_fields):
        """
        Wrap a store mutation: notify on success, notify and re-raise on failure.

        Args:
            action: Past-tense description, e.g. "created"
            notify: Report the outcome to the user; internal writes pass False
        """
        try:
            yield
        except Exception as e:
            logger.error(
                f"{self.entity_label} mutation failed",
                action=action,
                error=str(e),
                error_type=type(e).__name__,
                **log_fields,
            )
            if notify:
                self.notifier.notify(
                    f"{self.entity_label} could not be {action}", str(e), level="error"
                )
            raise
        else:
            logger.info(f"{self.entity_label} {action}", **log_fields)
            if notify:
                self.notifier.notify(f"{self.entity_label} {action}", level="success")


class OwnedCollectionService(NotifyingService, Generic[RecordT]):
    """
    Base class for services over one owner-scoped collection.

    Subclasses set ``model`` and ``collection_name``. With ``top_level`` the
    collection is shared by all users and every query filters on the owner
    field; otherwise it lives under ``users/{owner_id}/``.
    """

    model: Type[RecordT]
    collection_name: str
    top_level: bool = False
    order_by: Optional[str] = None
    descending: bool = True

    def collection(self, owner_id: str) -> str:
        if self.top_level:
            require_owner(owner_id)
            return self.collection_name
        return user_collection(owner_id, self.collection_name)

    def document(self, owner_id: str, record_id: str) -> str:
        return f"{self.collection(owner_id)}/{record_id}"

    def query(self, owner_id: str) -> Query:
        query = Query(self.collection(owner_id))
        if self.top_level:
            query = query.where(OWNER_FIELD, owner_id)
        if self.order_by:
            query = query.ordered(self.order_by, descending=self.descending)
        return query

    async def _open(
        self, query: Query, owner_id: str, on_update: UpdateCallback, on_error: FailureCallback
    ) -> Subscription[RecordT]:
        return await open_subscription(
            self.store,
            query,
            self.model,
            owner_id,
            on_update,
            on_error,
            policy=self.policy,
            notifier=self.notifier,
        )

    async def subscribe(
        self, owner_id: str, on_update: UpdateCallback, on_error: FailureCallback
    ) -> Subscription[RecordT]:
        """Live full snapshots of the owner's records."""
        return await self._open(self.query(owner_id), owner_id, on_update, on_error)

    def snapshots(self, owner_id: str) -> SnapshotStream[RecordT]:
        return SnapshotStream(
            self.store, self.query(owner_id), self.model, owner_id, self.policy, self.notifier
        )

    def cache(self, owner_id: str, on_change=None) -> SnapshotCache[RecordT]:
        query = self.query(owner_id)

        async def subscribe(on_update, on_error):
            return await self._open(query, owner_id, on_update, on_error)

        return SnapshotCache(subscribe, on_change=on_change)

    async def list(self, owner_id: str) -> List[RecordT]:
        """One-shot read of the owner's records."""
        documents = await self.store.query(self.query(owner_id))
        return map_snapshot(documents, self.model, self.policy)
