"""Per-user data retention settings (one document per user)."""

from datetime import datetime, timedelta
from typing import Dict, Optional

import structlog

from clientdesk.core.exceptions import InvalidArgumentError
from clientdesk.core.models import DataRetentionSettings, utc_now
from clientdesk.data.document_store import DocumentStore
from clientdesk.data.mapping import map_document, to_store_data
from clientdesk.data.subscriptions import require_owner
from clientdesk.services.base import user_collection
from clientdesk.services.notifications import NullNotifier

logger = structlog.get_logger(__name__)

SETTINGS_COLLECTION = "settings"
RETENTION_DOCUMENT = "dataRetention"


class DataRetentionService:
    """Save and read the retention period of a user."""

    def __init__(self, store: DocumentStore, notifier=None):
        self.store = store
        self.notifier = notifier or NullNotifier()
        self._last_stamp: Dict[str, datetime] = {}

    @staticmethod
    def path(owner_id: str) -> str:
        return f"{user_collection(owner_id, SETTINGS_COLLECTION)}/{RETENTION_DOCUMENT}"

    def _stamp(self, owner_id: str) -> datetime:
        # Strictly increasing per owner even when the clock does not advance
        now = utc_now()
        previous = self._last_stamp.get(owner_id)
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        self._last_stamp[owner_id] = now
        return now

    async def save(self, owner_id: str, retention_days: int) -> DataRetentionSettings:
        """
        Replace the user's retention settings.

        The whole document is overwritten; ``lastUpdated`` is stamped here.

        Args:
            owner_id: User the settings belong to
            retention_days: Positive number of days to keep data

        Returns:
            The settings as written

        Raises:
            InvalidArgumentError: On an empty owner or a non-positive period
        """
        require_owner(owner_id)
        if isinstance(retention_days, bool) or not isinstance(retention_days, int) or retention_days <= 0:
            raise InvalidArgumentError(
                "retentionDays must be a positive integer",
                details={"retention_days": retention_days},
            )

        settings = DataRetentionSettings(
            retention_days=retention_days, last_updated=self._stamp(owner_id)
        )
        try:
            await self.store.set(self.path(owner_id), to_store_data(settings))
        except Exception as e:
            logger.error(
                "Saving data retention settings failed", owner_id=owner_id, error=str(e)
            )
            self.notifier.notify("Data retention settings could not be saved", str(e), level="error")
            raise

        logger.info("Data retention settings saved", owner_id=owner_id, retention_days=retention_days)
        self.notifier.notify("Data retention settings saved", level="success")
        return settings

    async def get(self, owner_id: str) -> Optional[DataRetentionSettings]:
        """Current settings, or ``None`` when the user never saved any."""
        require_owner(owner_id)
        try:
            document = await self.store.get(self.path(owner_id))
        except Exception as e:
            logger.error(
                "Reading data retention settings failed", owner_id=owner_id, error=str(e)
            )
            self.notifier.notify("Data retention settings could not be loaded", str(e), level="error")
            raise

        if document is None:
            return None
        return map_document(document, DataRetentionSettings)


def cutoff(settings: DataRetentionSettings, now: Optional[datetime] = None) -> datetime:
    """Oldest timestamp still inside the retention period."""
    return (now or utc_now()) - timedelta(days=settings.retention_days)
