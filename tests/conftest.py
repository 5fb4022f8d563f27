"""Configure pytest fixtures and environment for ClientDesk tests."""

import asyncio
from unittest.mock import Mock

import pytest

from clientdesk.core.config import reset_settings
from clientdesk.core.logging import clear_log_context
from clientdesk.data.memory_store import InMemoryDocumentStore
from clientdesk.services.notifications import ConsoleNotifier

CLIENTDESK_ENV = (
    "STORE_BACKEND",
    "FIRESTORE_PROJECT_ID",
    "FIRESTORE_DATABASE",
    "FIRESTORE_API_KEY",
    "FIRESTORE_ID_TOKEN",
    "FIRESTORE_BASE_URL",
    "LISTEN_POLL_INTERVAL",
    "REQUEST_TIMEOUT",
    "NOTIFICATIONS_PERMISSION",
    "ENVIRONMENT",
    "DEBUG",
    "CLIENTDESK_USER_ID",
    "SNAPSHOT_POLICY",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Run every test without ambient configuration or a stray .env file."""
    for name in CLIENTDESK_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    clear_log_context()
    yield
    reset_settings()
    clear_log_context()


class SnapshotRecorder:
    """Collects subscription callbacks and lets a test wait for them."""

    def __init__(self):
        self.snapshots = []
        self.errors = []
        self._changed = asyncio.Event()

    def on_update(self, records):
        self.snapshots.append(list(records))
        self._changed.set()

    def on_error(self, error):
        self.errors.append(error)
        self._changed.set()

    @property
    def latest(self):
        return self.snapshots[-1] if self.snapshots else None

    async def wait(self, snapshots: int = 1, errors: int = 0, timeout: float = 1.0):
        async def _wait():
            while len(self.snapshots) < snapshots or len(self.errors) < errors:
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self


async def _settle(rounds: int = 5):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def notifier():
    return Mock(spec=ConsoleNotifier)


@pytest.fixture
def recorder():
    return SnapshotRecorder()


@pytest.fixture
def make_recorder():
    return SnapshotRecorder


@pytest.fixture
def settle():
    """Let queued event-loop callbacks run."""
    return _settle
