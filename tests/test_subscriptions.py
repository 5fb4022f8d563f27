"""
Test suite for live snapshot subscriptions.

Covers owner validation, full-replace delivery, ordering, cancellation and
terminal error handling.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from clientdesk.core.exceptions import (
    InvalidArgumentError,
    MalformedRecordError,
    PermissionDeniedError,
    UnavailableError,
)
from clientdesk.core.models import RecurringTaskTemplate
from clientdesk.data.document_store import Document, Query
from clientdesk.data.mapping import SnapshotPolicy
from clientdesk.data.subscriptions import (
    SnapshotCache,
    open_subscription,
    require_owner,
    snapshot_stream,
)

TEMPLATES = "recurringTaskTemplates"


def owner_query(owner_id):
    return Query(TEMPLATES).where("userId", owner_id)


def template_data(owner_id="u1", title="Follow up"):
    return {"title": title, "interval": "wöchentlich", "userId": owner_id}


class CapturingStore:
    """Store double that hands the listen callbacks to the test."""

    def __init__(self):
        self.on_snapshot = None
        self.on_error = None
        self.registration = Mock()

    async def listen(self, query, on_snapshot, on_error):
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        return self.registration


def doc(doc_id, **data):
    return Document(id=doc_id, path=f"{TEMPLATES}/{doc_id}", data={**template_data(), **data})


class TestOwnerValidation:
    """Test fail-fast owner checks."""

    @pytest.mark.parametrize("owner_id", ["", "   ", None])
    def test_require_owner_rejects_blank(self, owner_id):
        with pytest.raises(InvalidArgumentError):
            require_owner(owner_id)

    @pytest.mark.asyncio
    async def test_empty_owner_issues_no_query(self, recorder):
        store = Mock()
        store.listen = AsyncMock()
        with pytest.raises(InvalidArgumentError):
            await open_subscription(
                store, owner_query(""), RecurringTaskTemplate, "", recorder.on_update, recorder.on_error
            )
        store.listen.assert_not_called()

    def test_stream_validates_immediately(self, store):
        with pytest.raises(InvalidArgumentError):
            snapshot_stream(store, owner_query(""), RecurringTaskTemplate, "")


class TestDelivery:
    """Test snapshot delivery against the in-process store."""

    @pytest.mark.asyncio
    async def test_full_replace_snapshots_in_order(self, store, recorder):
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        first = await store.add(TEMPLATES, template_data(title="One"))
        await store.add(TEMPLATES, template_data(title="Two"))
        await store.delete(first.path)

        await recorder.wait(snapshots=4)
        assert [sorted(t.title for t in s) for s in recorder.snapshots] == [
            [],
            ["One"],
            ["One", "Two"],
            ["Two"],
        ]
        assert subscription.snapshots_delivered == 4
        assert all(isinstance(t, RecurringTaskTemplate) for t in recorder.latest)
        subscription.cancel()

    @pytest.mark.asyncio
    async def test_owners_are_isolated(self, store, make_recorder):
        u1, u2 = make_recorder(), make_recorder()
        sub1 = await open_subscription(store, owner_query("u1"), RecurringTaskTemplate, "u1", u1.on_update, u1.on_error)
        sub2 = await open_subscription(store, owner_query("u2"), RecurringTaskTemplate, "u2", u2.on_update, u2.on_error)

        await store.add(TEMPLATES, template_data("u1", "Mine"))
        await store.add(TEMPLATES, template_data("u2", "Theirs"))
        await u1.wait(snapshots=2)
        await u2.wait(snapshots=2)

        assert {t.owner_id for s in u1.snapshots for t in s} == {"u1"}
        assert {t.owner_id for s in u2.snapshots for t in s} == {"u2"}
        sub1.cancel()
        sub2.cancel()

    @pytest.mark.asyncio
    async def test_skip_policy_drops_malformed(self, store, recorder):
        await store.add(TEMPLATES, template_data(title="Good"))
        await store.add(TEMPLATES, {"userId": "u1", "interval": "never"})
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        await recorder.wait()
        assert [t.title for t in recorder.latest] == ["Good"]
        assert subscription.active

    @pytest.mark.asyncio
    async def test_abort_policy_terminates(self, store, recorder, settle):
        await store.add(TEMPLATES, {"userId": "u1", "interval": "never"})
        subscription = await open_subscription(
            store,
            owner_query("u1"),
            RecurringTaskTemplate,
            "u1",
            recorder.on_update,
            recorder.on_error,
            policy=SnapshotPolicy.ABORT,
        )
        await recorder.wait(snapshots=0, errors=1)
        assert isinstance(recorder.errors[0], MalformedRecordError)
        assert subscription.terminated
        assert store.listener_count == 0

        await store.add(TEMPLATES, template_data())
        await settle()
        assert recorder.snapshots == []
        assert len(recorder.errors) == 1


class TestCancellation:
    """Test cancellation guarantees."""

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, store, recorder):
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        subscription.cancel()
        subscription.cancel()
        subscription()
        assert subscription.cancelled
        assert not subscription.active
        assert store.listener_count == 0

    @pytest.mark.asyncio
    async def test_queued_delivery_dropped_after_cancel(self, store, recorder, settle):
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        await recorder.wait()
        await store.add(TEMPLATES, template_data())
        subscription.cancel()
        await settle()
        assert len(recorder.snapshots) == 1

    @pytest.mark.asyncio
    async def test_late_store_callbacks_are_ignored(self, recorder):
        store = CapturingStore()
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        subscription.cancel()
        store.registration.remove.assert_called_once()

        store.on_snapshot([doc("a")])
        store.on_error(UnavailableError("late"))
        assert recorder.snapshots == []
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_callback_before_attach_then_cancel(self, recorder):
        """A registration that arrives after termination is released at once."""

        class FailingStore(CapturingStore):
            async def listen(self, query, on_snapshot, on_error):
                on_error(PermissionDeniedError("denied"))
                return self.registration

        store = FailingStore()
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        assert subscription.terminated
        store.registration.remove.assert_called_once()


class TestErrors:
    """Test terminal error handling."""

    @pytest.mark.asyncio
    async def test_error_delivered_exactly_once(self, recorder, notifier):
        store = CapturingStore()
        subscription = await open_subscription(
            store,
            owner_query("u1"),
            RecurringTaskTemplate,
            "u1",
            recorder.on_update,
            recorder.on_error,
            notifier=notifier,
        )
        error = PermissionDeniedError("rules rejected", status_code=403)
        store.on_error(error)
        store.on_error(UnavailableError("second"))
        store.on_snapshot([doc("a")])

        assert recorder.errors == [error]
        assert recorder.snapshots == []
        assert subscription.terminated
        assert subscription.error is error
        store.registration.remove.assert_called_once()
        notifier.show.assert_called_once()

    @pytest.mark.asyncio
    async def test_transport_failure_from_store(self, store, recorder):
        subscription = await open_subscription(
            store, owner_query("u1"), RecurringTaskTemplate, "u1", recorder.on_update, recorder.on_error
        )
        await recorder.wait()
        store.fail_listeners(UnavailableError("offline"))
        await recorder.wait(snapshots=1, errors=1)
        assert isinstance(recorder.errors[0], UnavailableError)
        assert not subscription.active


class TestSnapshotStream:
    """Test the async iterator form."""

    @pytest.mark.asyncio
    async def test_yields_snapshots_and_releases_listener(self, store):
        stream = snapshot_stream(store, owner_query("u1"), RecurringTaskTemplate, "u1")
        iterator = stream.__aiter__()

        assert await iterator.__anext__() == []
        await store.add(TEMPLATES, template_data())
        snapshot = await asyncio.wait_for(iterator.__anext__(), 1.0)
        assert [t.title for t in snapshot] == ["Follow up"]

        await iterator.aclose()
        assert store.listener_count == 0

    @pytest.mark.asyncio
    async def test_stream_is_restartable(self, store):
        await store.add(TEMPLATES, template_data())
        stream = snapshot_stream(store, owner_query("u1"), RecurringTaskTemplate, "u1")

        for _ in range(2):
            iterator = stream.__aiter__()
            assert len(await asyncio.wait_for(iterator.__anext__(), 1.0)) == 1
            await iterator.aclose()

    @pytest.mark.asyncio
    async def test_terminal_error_raised(self, store):
        stream = snapshot_stream(store, owner_query("u1"), RecurringTaskTemplate, "u1")
        iterator = stream.__aiter__()
        await iterator.__anext__()

        store.fail_listeners(UnavailableError("offline"))
        with pytest.raises(UnavailableError):
            await asyncio.wait_for(iterator.__anext__(), 1.0)


class TestSnapshotCache:
    """Test the latest-snapshot holder."""

    @pytest.mark.asyncio
    async def test_replaced_wholesale(self, store):
        async def subscribe(on_update, on_error):
            return await open_subscription(
                store, owner_query("u1"), RecurringTaskTemplate, "u1", on_update, on_error
            )

        async with SnapshotCache(subscribe) as cache:
            await cache.wait_ready()
            assert cache.records == []
            assert cache.version == 1

            await store.add(TEMPLATES, template_data())
            await cache.wait_for(lambda c: c.version == 2, timeout=1.0)
            assert [t.title for t in cache.records] == ["Follow up"]

        assert not cache.open
        assert store.listener_count == 0
        assert len(cache.records) == 1

    @pytest.mark.asyncio
    async def test_error_surfaces_to_waiters(self, store):
        changes = []

        async def subscribe(on_update, on_error):
            return await open_subscription(
                store, owner_query("u1"), RecurringTaskTemplate, "u1", on_update, on_error
            )

        cache = await SnapshotCache(subscribe, on_change=changes.append).start()
        await cache.wait_ready()
        store.fail_listeners(UnavailableError("offline"))

        with pytest.raises(UnavailableError):
            await cache.wait_for(lambda c: c.version > 1, timeout=1.0)
        assert isinstance(cache.error, UnavailableError)
        assert changes == [cache]
        cache.close()
