"""Tasks under ``users/{uid}/tasks``."""

from typing import List, Optional

import structlog

from clientdesk.core.exceptions import InvalidArgumentError
from clientdesk.core.models import Task, TaskDraft, TaskStatus, TaskUpdate, utc_now
from clientdesk.data.document_store import Query
from clientdesk.data.mapping import map_snapshot
from clientdesk.data.subscriptions import FailureCallback, Subscription, UpdateCallback, require_owner
from clientdesk.services.base import OWNER_FIELD, OwnedCollectionService

logger = structlog.get_logger(__name__)


class TaskService(OwnedCollectionService[Task]):
    """
    A user's tasks, earliest due date first.

    Tasks without a due date are stored with an explicit null and sort
    before dated ones. Tasks flagged ``template`` serve as reusable blueprints.
    """

    model = Task
    collection_name = "tasks"
    entity_label = "Task"
    order_by = "dueDate"
    descending = False

    def query(
        self,
        owner_id: str,
        status: Optional[TaskStatus] = None,
        template: Optional[bool] = None,
    ) -> Query:
        query = super().query(owner_id)
        if status is not None:
            query = query.where("status", TaskStatus(status).value)
        if template is not None:
            query = query.where("template", template)
        return query

    async def subscribe(
        self,
        owner_id: str,
        on_update: UpdateCallback,
        on_error: FailureCallback,
        status: Optional[TaskStatus] = None,
        template: Optional[bool] = None,
    ) -> Subscription[Task]:
        return await self._open(self.query(owner_id, status, template), owner_id, on_update, on_error)

    async def list(
        self,
        owner_id: str,
        status: Optional[TaskStatus] = None,
        template: Optional[bool] = None,
    ) -> List[Task]:
        documents = await self.store.query(self.query(owner_id, status, template))
        return map_snapshot(documents, Task, self.policy)

    async def templates(self, owner_id: str) -> List[Task]:
        """Template tasks in title order."""
        query = Query(self.collection(owner_id)).where("template", True).ordered("title")
        return map_snapshot(await self.store.query(query), Task, self.policy)

    async def add(self, owner_id: str, draft: TaskDraft) -> str:
        require_owner(owner_id)
        now = utc_now()
        data = {**draft.to_store_data(), OWNER_FIELD: owner_id, "createdAt": now, "updatedAt": now}
        async with self.mutation("created", owner_id=owner_id, title=draft.title):
            document = await self.store.add(self.collection(owner_id), data)
        return document.id

    async def update(self, owner_id: str, task_id: str, changes: TaskUpdate) -> None:
        require_owner(owner_id)
        if not task_id:
            raise InvalidArgumentError("Task id is required")
        data = {**changes.to_store_data(), "updatedAt": utc_now()}
        async with self.mutation("updated", owner_id=owner_id, task_id=task_id):
            await self.store.update(self.document(owner_id, task_id), data)

    async def delete(self, owner_id: str, task_id: str) -> None:
        require_owner(owner_id)
        if not task_id:
            raise InvalidArgumentError("Task id is required")
        async with self.mutation("deleted", owner_id=owner_id, task_id=task_id):
            await self.store.delete(self.document(owner_id, task_id))
