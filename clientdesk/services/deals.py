"""Deals under ``users/{uid}/deals``."""

from typing import Dict, List, Optional, Sequence

import structlog

from clientdesk.core.exceptions import InvalidArgumentError
from clientdesk.core.models import (
    Deal,
    DealDraft,
    DealStatus,
    DealUpdate,
    PipelineStage,
    to_datetime,
    utc_now,
)
from clientdesk.data.document_store import Query
from clientdesk.data.mapping import map_snapshot
from clientdesk.data.subscriptions import require_owner
from clientdesk.services.base import OWNER_FIELD, OwnedCollectionService

logger = structlog.get_logger(__name__)

WON_STAGE_ID = "won"
WON_STAGE_NAME = "gewonnen"


def stage_name(stage_id: str, stages: Optional[Sequence[PipelineStage]] = None) -> str:
    """Display name of a stage; falls back to the id when it is unknown."""
    for stage in stages or ():
        if stage.id == stage_id:
            return stage.name
    return stage_id


def stage_fields(stage_id: str, stages: Optional[Sequence[PipelineStage]] = None) -> Dict[str, object]:
    """Fields written when a deal enters a stage; the won stage closes the deal."""
    name = stage_name(stage_id, stages)
    data: Dict[str, object] = {"stageId": stage_id, "stage": name}
    if name.lower() == WON_STAGE_NAME or stage_id == WON_STAGE_ID:
        data.update(status=DealStatus.WON.value, closedAt=utc_now())
    else:
        data.update(status=DealStatus.ACTIVE.value, closedAt=None)
    return data


class DealService(OwnedCollectionService[Deal]):
    """Pipeline deals, newest first."""

    model = Deal
    collection_name = "deals"
    entity_label = "Deal"
    order_by = "createdAt"

    async def add(
        self, owner_id: str, draft: DealDraft, stages: Optional[Sequence[PipelineStage]] = None
    ) -> str:
        """
        Store a new deal. New deals are always ``active``.

        Args:
            owner_id: Owning user
            draft: Form input
            stages: Pipeline stages used to resolve the stage name

        Returns:
            Id assigned by the store
        """
        require_owner(owner_id)
        now = utc_now()
        data = {
            "title": draft.title,
            "company": draft.company_name,
            "value": draft.value,
            "probability": draft.probability,
            "stageId": draft.stage_id,
            "stage": stage_name(draft.stage_id, stages) if draft.stage_id else "",
            "status": DealStatus.ACTIVE.value,
            OWNER_FIELD: owner_id,
            "createdAt": now,
            "updatedAt": now,
        }
        optional = {
            "contactId": draft.contact_id,
            "assignedUserId": draft.assigned_to,
            "notes": draft.notes,
            "description": draft.description,
            "tags": draft.tags,
            "expectedCloseDate": to_datetime(draft.expected_close_date),
        }
        data.update({key: value for key, value in optional.items() if value})

        async with self.mutation("created", owner_id=owner_id, title=draft.title):
            document = await self.store.add(self.collection(owner_id), data)
        return document.id

    async def update_stage(
        self,
        owner_id: str,
        deal_id: str,
        stage_id: str,
        stages: Optional[Sequence[PipelineStage]] = None,
    ) -> None:
        """Move a deal to another stage; the won stage closes it."""
        require_owner(owner_id)
        if not deal_id or not stage_id:
            raise InvalidArgumentError("Deal id and stage id are required")

        data = {**stage_fields(stage_id, stages), "updatedAt": utc_now()}
        async with self.mutation("moved", owner_id=owner_id, deal_id=deal_id, stage=data["stage"]):
            await self.store.update(self.document(owner_id, deal_id), data)

    async def update_details(
        self,
        owner_id: str,
        deal_id: str,
        changes: DealUpdate,
        stages: Optional[Sequence[PipelineStage]] = None,
    ) -> bool:
        """
        Write the passed detail fields of a deal.

        A changed stage goes through the same won/reopen rules as
        ``update_stage``.

        Returns:
            False when there was nothing to write
        """
        require_owner(owner_id)
        if not deal_id:
            raise InvalidArgumentError("Deal id is required")

        data = changes.to_store_data()
        if "stageId" in data:
            data.update(stage_fields(data["stageId"], stages))
        if not data:
            logger.debug("No deal fields to update", deal_id=deal_id)
            return False

        data["updatedAt"] = utc_now()
        async with self.mutation("updated", owner_id=owner_id, deal_id=deal_id, fields=sorted(data)):
            await self.store.update(self.document(owner_id, deal_id), data)
        return True

    async def delete(self, owner_id: str, deal_id: str) -> None:
        require_owner(owner_id)
        if not deal_id:
            raise InvalidArgumentError("Deal id is required")
        async with self.mutation("deleted", owner_id=owner_id, deal_id=deal_id):
            await self.store.delete(self.document(owner_id, deal_id))

    async def list_by_contact(self, owner_id: str, contact_id: str) -> List[Deal]:
        query = (
            Query(self.collection(owner_id))
            .where("contactId", contact_id)
            .ordered("createdAt", descending=True)
        )
        return map_snapshot(await self.store.query(query), Deal, self.policy)
