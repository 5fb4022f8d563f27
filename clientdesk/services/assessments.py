"""Assessment results under ``users/{uid}/assessments``."""

from typing import Optional

import structlog

from clientdesk.core.models import (
    ActivityDraft,
    ActivityType,
    AssessmentDraft,
    AssessmentResult,
    ContactDraft,
    ContactStatus,
    LeadSource,
    Priority,
    utc_now,
)
from clientdesk.data.document_store import Query
from clientdesk.data.subscriptions import (
    FailureCallback,
    Subscription,
    UpdateCallback,
    require_owner,
)
from clientdesk.services.activities import ActivityService
from clientdesk.services.base import OWNER_FIELD, OwnedCollectionService
from clientdesk.services.contacts import ContactService

logger = structlog.get_logger(__name__)

ASSESSMENT_LEAD_TAG = "assessment-lead"


class InertSubscription:
    """Handle returned when there is nothing to subscribe to."""

    active = False
    cancelled = False
    terminated = False
    error = None
    snapshots_delivered = 0

    def cancel(self) -> None:
        self.cancelled = True

    def __call__(self) -> None:
        self.cancel()


class AssessmentService(OwnedCollectionService[AssessmentResult]):
    """Assessment results, most recently completed first."""

    model = AssessmentResult
    collection_name = "assessments"
    entity_label = "Assessment"
    order_by = "completedAt"

    def __init__(
        self,
        store,
        contacts: ContactService,
        activities: ActivityService,
        notifier=None,
        policy="skip",
    ):
        super().__init__(store, notifier=notifier, policy=policy)
        self.contacts = contacts
        self.activities = activities

    async def _resolve_contact(self, owner_id: str, draft: AssessmentDraft) -> str:
        existing = await self.contacts.find_by_email(owner_id, draft.contact_email)
        if existing is not None:
            logger.debug("Assessment contact found", contact_id=existing.id)
            return existing.id

        lead = ContactDraft(
            name=draft.contact_email,
            email=draft.contact_email,
            status=ContactStatus.LEAD,
            lead_source=LeadSource.OTHER,
            priority=Priority.MEDIUM,
            tags=[ASSESSMENT_LEAD_TAG],
            notes=f"Lead generated by {draft.tool_name.value} assessment.",
        )
        contact_id = await self.contacts.create(owner_id, lead, notify=False)
        logger.info("Assessment lead contact created", contact_id=contact_id)
        return contact_id

    async def add(self, owner_id: str, draft: AssessmentDraft) -> str:
        """
        Record an assessment result.

        The contact is looked up by e-mail and created as a lead when missing.
        An ``Assessment`` activity is logged afterwards; failing to log it does
        not fail the operation.

        Returns:
            Id of the stored result
        """
        require_owner(owner_id)
        completed_at = draft.assessment_date or utc_now()

        async with self.mutation("saved", owner_id=owner_id, tool=draft.tool_name.value):
            contact_id = await self._resolve_contact(owner_id, draft)
            result = {
                OWNER_FIELD: owner_id,
                "contactId": contact_id,
                "type": draft.tool_name.value,
                "score": draft.score,
                "recommendations": [r.model_dump() for r in draft.recommendation_items()],
                "completedAt": completed_at,
                "assessedEmail": draft.contact_email,
            }
            document = await self.store.add(self.collection(owner_id), result)

        await self._log_activity(owner_id, draft, contact_id, completed_at)
        return document.id

    async def _log_activity(self, owner_id, draft: AssessmentDraft, contact_id: str, completed_at) -> None:
        summary = draft.recommendations[:100]
        activity = ActivityDraft(
            type=ActivityType.ASSESSMENT,
            title=f'Assessment "{draft.tool_name.value}" completed',
            contact_id=contact_id,
            notes=f"Score: {draft.score:g}. Recommendations: {summary}...",
            activity_date=completed_at.date(),
            is_completed=True,
        )
        try:
            await self.activities.add(owner_id, activity, notify=False)
        except Exception as e:
            logger.warning(
                "Assessment activity could not be logged",
                contact_id=contact_id,
                error=str(e),
            )

    async def subscribe_for_user(
        self, owner_id: str, on_update: UpdateCallback, on_error: FailureCallback
    ) -> Subscription[AssessmentResult]:
        return await self.subscribe(owner_id, on_update, on_error)

    async def subscribe_for_contact(
        self,
        owner_id: str,
        contact_id: Optional[str],
        on_update: UpdateCallback,
        on_error: FailureCallback,
    ):
        """Results of one contact; without a contact id nothing is subscribed."""
        require_owner(owner_id)
        if not contact_id:
            return InertSubscription()
        query = (
            Query(self.collection(owner_id))
            .where("contactId", contact_id)
            .ordered("completedAt", descending=True)
        )
        return await self._open(query, owner_id, on_update, on_error)
