"""Activities under ``users/{uid}/activities``."""

from typing import List, Optional

import structlog

from clientdesk.core.exceptions import InvalidArgumentError
from clientdesk.core.models import (
    Activity,
    ActivityDraft,
    ActivityFilters,
    ActivityType,
    ActivityUpdate,
    to_datetime,
    utc_now,
)
from clientdesk.data.document_store import Query
from clientdesk.data.mapping import map_snapshot
from clientdesk.data.subscriptions import FailureCallback, Subscription, UpdateCallback, require_owner
from clientdesk.services.base import OWNER_FIELD, OwnedCollectionService

logger = structlog.get_logger(__name__)


class ActivityService(OwnedCollectionService[Activity]):
    """Logged activities, most recent activity date first."""

    model = Activity
    collection_name = "activities"
    entity_label = "Activity"
    order_by = "activityDate"

    def query(self, owner_id: str, filters: Optional[ActivityFilters] = None) -> Query:
        query = super().query(owner_id)
        if filters is None:
            return query
        if filters.contact_id:
            query = query.where("contactId", filters.contact_id)
        if filters.deal_id:
            query = query.where("dealId", filters.deal_id)
        if filters.activity_type:
            query = query.where("type", filters.activity_type.value)
        # Range bounds stay on the ordering field
        if filters.start_date:
            query = query.where("activityDate", to_datetime(filters.start_date), op=">=")
        if filters.end_date:
            end = to_datetime(filters.end_date).replace(hour=23, minute=59, second=59, microsecond=999999)
            query = query.where("activityDate", end, op="<=")
        return query

    async def subscribe(
        self,
        owner_id: str,
        on_update: UpdateCallback,
        on_error: FailureCallback,
        filters: Optional[ActivityFilters] = None,
    ) -> Subscription[Activity]:
        return await self._open(self.query(owner_id, filters), owner_id, on_update, on_error)

    async def list(self, owner_id: str, filters: Optional[ActivityFilters] = None) -> List[Activity]:
        documents = await self.store.query(self.query(owner_id, filters))
        return map_snapshot(documents, Activity, self.policy)

    async def add(self, owner_id: str, draft: ActivityDraft, notify: bool = True) -> str:
        require_owner(owner_id)
        now = utc_now()
        data = {
            "type": draft.type.value,
            "title": draft.title,
            "activityDate": to_datetime(draft.activity_date),
            OWNER_FIELD: owner_id,
            "createdAt": now,
            "updatedAt": now,
        }
        for key, value in (
            ("description", draft.description),
            ("notes", draft.notes),
            ("contactId", draft.contact_id),
            ("dealId", draft.deal_id),
        ):
            if value:
                data[key] = value

        # Completion only applies to tasks
        if draft.type == ActivityType.TASK:
            data["isCompleted"] = draft.is_completed
            if draft.is_completed:
                data["completedAt"] = now

        async with self.mutation("created", notify=notify, owner_id=owner_id, type=draft.type.value):
            document = await self.store.add(self.collection(owner_id), data)
        return document.id

    async def update(self, owner_id: str, activity_id: str, changes: ActivityUpdate) -> bool:
        """
        Write the passed fields of an activity.

        Completion is written for tasks only. Changing the type to anything
        other than ``Task`` clears it.

        Returns:
            False when there was nothing to write
        """
        require_owner(owner_id)
        if not activity_id:
            raise InvalidArgumentError("Activity id is required")

        data = changes.to_store_data()
        if changes.type is not None and changes.type != ActivityType.TASK:
            data.update(isCompleted=None, completedAt=None)
        elif changes.is_completed is not None:
            data["isCompleted"] = changes.is_completed
            data["completedAt"] = utc_now() if changes.is_completed else None

        if not data:
            logger.debug("No activity fields to update", activity_id=activity_id)
            return False

        data["updatedAt"] = utc_now()
        async with self.mutation("updated", owner_id=owner_id, activity_id=activity_id):
            await self.store.update(self.document(owner_id, activity_id), data)
        return True

    async def delete(self, owner_id: str, activity_id: str) -> None:
        require_owner(owner_id)
        if not activity_id:
            raise InvalidArgumentError("Activity id is required")
        async with self.mutation("deleted", owner_id=owner_id, activity_id=activity_id):
            await self.store.delete(self.document(owner_id, activity_id))
