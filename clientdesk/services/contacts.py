"""Contacts under ``users/{uid}/contacts``."""

from typing import Optional

import structlog

from clientdesk.core.exceptions import InvalidArgumentError
from clientdesk.core.models import Contact, ContactDraft, utc_now
from clientdesk.data.document_store import Query
from clientdesk.data.mapping import map_document
from clientdesk.data.subscriptions import require_owner
from clientdesk.services.base import OWNER_FIELD, OwnedCollectionService

logger = structlog.get_logger(__name__)


class ContactService(OwnedCollectionService[Contact]):
    """Create, update, delete and watch a user's contacts, newest first."""

    model = Contact
    collection_name = "contacts"
    entity_label = "Contact"
    order_by = "createdAt"

    async def create(self, owner_id: str, draft: ContactDraft, notify: bool = True) -> str:
        """Store a new contact and return its id."""
        require_owner(owner_id)
        now = utc_now()
        data = {
            **draft.to_store_data(),
            "createdAt": now,
            "updatedAt": now,
            OWNER_FIELD: owner_id,
        }
        async with self.mutation("created", notify=notify, owner_id=owner_id, name=draft.name):
            document = await self.store.add(self.collection(owner_id), data)
        return document.id

    async def update(self, owner_id: str, contact_id: str, draft: ContactDraft) -> None:
        """Write every form field of an existing contact; creation data is kept."""
        require_owner(owner_id)
        if not contact_id:
            raise InvalidArgumentError("Contact id is required")
        data = {**draft.to_store_data(), "updatedAt": utc_now()}
        async with self.mutation("updated", owner_id=owner_id, contact_id=contact_id):
            await self.store.update(self.document(owner_id, contact_id), data)

    async def delete(self, owner_id: str, contact_id: str) -> None:
        require_owner(owner_id)
        if not contact_id:
            raise InvalidArgumentError("Contact id is required")
        async with self.mutation("deleted", owner_id=owner_id, contact_id=contact_id):
            await self.store.delete(self.document(owner_id, contact_id))

    async def get(self, owner_id: str, contact_id: str) -> Optional[Contact]:
        document = await self.store.get(self.document(owner_id, contact_id))
        return map_document(document, Contact) if document else None

    async def find_by_email(self, owner_id: str, email: str) -> Optional[Contact]:
        """First contact with exactly this e-mail address, if any."""
        email = (email or "").strip()
        if not email:
            return None
        documents = await self.store.query(Query(self.collection(owner_id)).where("email", email))
        return map_document(documents[0], Contact) if documents else None
