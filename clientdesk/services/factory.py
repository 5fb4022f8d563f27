"""Composition root: builds the store and services from settings."""

from dataclasses import dataclass
from typing import Optional

import structlog
from rich.prompt import Confirm

from clientdesk.core.config import Settings, get_settings
from clientdesk.core.exceptions import ConfigurationError
from clientdesk.data.document_store import DocumentStore
from clientdesk.data.firestore_client import FirestoreRestStore
from clientdesk.data.mapping import SnapshotPolicy
from clientdesk.data.memory_store import InMemoryDocumentStore
from clientdesk.services.activities import ActivityService
from clientdesk.services.assessments import AssessmentService
from clientdesk.services.contacts import ContactService
from clientdesk.services.data_retention import DataRetentionService
from clientdesk.services.deals import DealService
from clientdesk.services.notifications import ConsoleNotifier, Permission
from clientdesk.services.pipeline import PipelineService
from clientdesk.services.recurring_tasks import RecurringTaskTemplateService
from clientdesk.services.tasks import TaskService

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    store: DocumentStore
    notifier: object
    templates: RecurringTaskTemplateService
    retention: DataRetentionService
    contacts: ContactService
    deals: DealService
    activities: ActivityService
    assessments: AssessmentService
    tasks: TaskService
    pipeline: PipelineService

    async def close(self) -> None:
        await self.store.close()


def build_store(settings: Settings) -> DocumentStore:
    """Create the document store selected by ``STORE_BACKEND``."""
    if settings.store.backend == "firestore":
        if not (settings.store.api_key or settings.store.id_token):
            raise ConfigurationError(
                "FIRESTORE_API_KEY or FIRESTORE_ID_TOKEN is required for the firestore backend"
            )
        return FirestoreRestStore(settings.store)
    return InMemoryDocumentStore()


def build_notifier(settings: Settings, interactive: bool = False) -> ConsoleNotifier:
    ask = (lambda: Confirm.ask("Show notifications?", default=True)) if interactive else None
    return ConsoleNotifier(Permission(settings.notifications.permission), ask=ask)


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    notifier=None,
) -> Services:
    """
    Wire every service onto one store.

    Args:
        settings: Settings to use (the global instance when omitted)
        store: Existing store to reuse instead of building one
        notifier: Notifier shared by all services

    Returns:
        Services container
    """
    settings = settings or get_settings()
    store = store if store is not None else build_store(settings)
    notifier = notifier if notifier is not None else build_notifier(settings)
    policy = SnapshotPolicy(settings.snapshot_policy)

    contacts = ContactService(store, notifier=notifier, policy=policy)
    activities = ActivityService(store, notifier=notifier, policy=policy)
    services = Services(
        store=store,
        notifier=notifier,
        templates=RecurringTaskTemplateService(store, notifier=notifier, policy=policy),
        retention=DataRetentionService(store, notifier=notifier),
        contacts=contacts,
        deals=DealService(store, notifier=notifier, policy=policy),
        activities=activities,
        assessments=AssessmentService(
            store, contacts, activities, notifier=notifier, policy=policy
        ),
        tasks=TaskService(store, notifier=notifier, policy=policy),
        pipeline=PipelineService(store, notifier=notifier, policy=policy),
    )
    logger.debug(
        "Services built", backend=settings.store.backend, snapshot_policy=policy.value
    )
    return services
