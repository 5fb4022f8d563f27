"""Recurring task templates, shared top-level collection filtered by owner."""

import structlog

from clientdesk.core.exceptions import InvalidArgumentError, PermissionDeniedError
from clientdesk.core.models import RecurringTaskTemplate, TemplateDraft
from clientdesk.data.subscriptions import require_owner
from clientdesk.services.base import OWNER_FIELD, OwnedCollectionService

logger = structlog.get_logger(__name__)

TEMPLATES_COLLECTION = "recurringTaskTemplates"


class RecurringTaskTemplateService(OwnedCollectionService[RecurringTaskTemplate]):
    """
    Add, delete and watch recurring task templates.

    Templates are never edited in place; to change one, delete it and add a
    new one.
    """

    model = RecurringTaskTemplate
    collection_name = TEMPLATES_COLLECTION
    entity_label = "Template"
    top_level = True

    async def add(self, owner_id: str, draft: TemplateDraft) -> str:
        """
        Store a new template for ``owner_id``.

        Returns:
            Id assigned by the store
        """
        require_owner(owner_id)
        data = {
            "title": draft.title,
            "interval": draft.interval.stored_value,
            OWNER_FIELD: owner_id,
        }
        if draft.description:
            data["description"] = draft.description

        async with self.mutation("created", owner_id=owner_id, title=draft.title):
            document = await self.store.add(self.collection(owner_id), data)
        return document.id

    async def delete(self, owner_id: str, template_id: str) -> None:
        """
        Delete a template. Deleting an id that does not exist succeeds.

        Raises:
            PermissionDeniedError: If the template belongs to another user
        """
        require_owner(owner_id)
        if not template_id:
            raise InvalidArgumentError("Template id is required")

        path = self.document(owner_id, template_id)
        async with self.mutation("deleted", owner_id=owner_id, template_id=template_id):
            existing = await self.store.get(path)
            if existing is None:
                logger.debug("Template already absent", template_id=template_id)
                return
            if existing.data.get(OWNER_FIELD) != owner_id:
                raise PermissionDeniedError(
                    f"Template {template_id} belongs to another user",
                    details={"template_id": template_id},
                )
            await self.store.delete(path)
