"""
Test suite for the Firestore REST client.

Requests go through ``httpx.MockTransport`` to an in-test fake of the
documents API.
"""

import asyncio
import itertools
import json
from datetime import datetime, timezone
from urllib.parse import unquote

import httpx
import pytest

from clientdesk.core.config import StoreConfig
from clientdesk.core.exceptions import (
    ConfigurationError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UnavailableError,
)
from clientdesk.data.document_store import Query
from clientdesk.data.firestore_client import (
    FirestoreRestStore,
    PollingListener,
    decode_fields,
    decode_value,
    encode_query,
    encode_value,
)

ROOT = "/v1/projects/demo/databases/(default)/documents"
NAME_PREFIX = "projects/demo/databases/(default)/documents/"


class FakeFirestore:
    """Minimal documents API: CRUD plus single-collection runQuery."""

    def __init__(self):
        self.documents = {}
        self.requests = []
        self.fail_with = None
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def _stamp(self):
        return f"2024-01-01T00:00:00.{next(self._clock):06d}Z"

    def _payload(self, path):
        fields, update_time = self.documents[path]
        return {"name": NAME_PREFIX + path, "fields": fields, "updateTime": update_time}

    def _not_found(self, path):
        return httpx.Response(404, json={"error": {"code": 404, "message": f"No document: {path}"}})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return self.fail_with

        path = unquote(request.url.path)
        assert path.startswith(ROOT)
        path = path[len(ROOT):].lstrip("/")
        body = json.loads(request.content) if request.content else None

        if path.endswith(":runQuery"):
            return self._run_query(path[: -len(":runQuery")], body["structuredQuery"])
        if request.method == "POST":
            doc_path = f"{path}/doc{next(self._ids)}"
            self.documents[doc_path] = (body["fields"], self._stamp())
            return httpx.Response(200, json=self._payload(doc_path))
        if request.method == "GET":
            if path == "":
                page = [self._payload(p) for p in sorted(self.documents)]
                page_size = int(request.url.params.get("pageSize", len(page) or 1))
                return httpx.Response(200, json={"documents": page[:page_size]} if page else {})
            if path not in self.documents:
                return self._not_found(path)
            return httpx.Response(200, json=self._payload(path))
        if request.method == "PATCH":
            mask = request.url.params.get_list("updateMask.fieldPaths")
            must_exist = request.url.params.get("currentDocument.exists") == "true"
            if must_exist and path not in self.documents:
                return self._not_found(path)
            fields = dict(self.documents[path][0]) if mask else {}
            fields.update(body["fields"])
            self.documents[path] = (fields, self._stamp())
            return httpx.Response(200, json=self._payload(path))
        if request.method == "DELETE":
            self.documents.pop(path, None)
            return httpx.Response(200, json={})
        return httpx.Response(405)

    def _run_query(self, parent, structured):
        collection = structured["from"][0]["collectionId"]
        collection_path = f"{parent}/{collection}" if parent else collection
        where = structured.get("where")
        if where is None:
            filters = []
        elif "compositeFilter" in where:
            filters = [f["fieldFilter"] for f in where["compositeFilter"]["filters"]]
        else:
            filters = [where["fieldFilter"]]

        rows = []
        for path in sorted(self.documents):
            if path.rsplit("/", 1)[0] != collection_path:
                continue
            fields = self.documents[path][0]
            if all(fields.get(f["field"]["fieldPath"]) == f["value"] for f in filters):
                rows.append({"document": self._payload(path), "readTime": self._stamp()})
        return httpx.Response(200, json=rows or [{"readTime": self._stamp()}])


@pytest.fixture
def fake():
    return FakeFirestore()


def make_config(**overrides):
    values = {
        "FIRESTORE_PROJECT_ID": "demo",
        "FIRESTORE_API_KEY": "test-key",
        "LISTEN_POLL_INTERVAL": 0.01,
    }
    values.update(overrides)
    return StoreConfig(**values)


@pytest.fixture
def firestore(fake):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return FirestoreRestStore(make_config(), client=client)


class TestValueCodec:
    """Test typed value encoding."""

    def test_scalars(self):
        assert encode_value(None) == {"nullValue": None}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(42) == {"integerValue": "42"}
        assert encode_value(1.5) == {"doubleValue": 1.5}
        assert encode_value("wöchentlich") == {"stringValue": "wöchentlich"}

    def test_timestamp(self):
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert encode_value(stamp) == {"timestampValue": "2024-05-01T12:00:00Z"}
        assert decode_value({"timestampValue": "2024-05-01T12:00:00.000000001Z"}) == stamp

    def test_nested_values(self):
        data = {"tags": ["a", "b"], "meta": {"score": 3}}
        assert decode_fields(
            {
                "tags": encode_value(data["tags"]),
                "meta": encode_value(data["meta"]),
            }
        ) == data

    def test_empty_containers_decode(self):
        assert decode_value({"arrayValue": {}}) == []
        assert decode_value({"mapValue": {}}) == {}

    def test_unsupported_type(self):
        with pytest.raises(InvalidArgumentError):
            encode_value(object())


class TestEncodeQuery:
    """Test structured query generation."""

    def test_top_level_owner_filter(self):
        parent, body = encode_query(Query("recurringTaskTemplates").where("userId", "u1"))
        assert parent == ""
        assert body == {
            "structuredQuery": {
                "from": [{"collectionId": "recurringTaskTemplates"}],
                "where": {
                    "fieldFilter": {
                        "field": {"fieldPath": "userId"},
                        "op": "EQUAL",
                        "value": {"stringValue": "u1"},
                    }
                },
            }
        }

    def test_subcollection_with_order_and_composite_filter(self):
        query = Query("users/u1/assessments").where("contactId", "c1").where("type", "x").ordered(
            "completedAt", descending=True
        )
        parent, body = encode_query(query, limit=5)
        structured = body["structuredQuery"]
        assert parent == "users/u1"
        assert structured["where"]["compositeFilter"]["op"] == "AND"
        assert len(structured["where"]["compositeFilter"]["filters"]) == 2
        assert structured["orderBy"] == [{"field": {"fieldPath": "completedAt"}, "direction": "DESCENDING"}]
        assert structured["limit"] == 5

    def test_range_filters(self):
        start = datetime(2024, 5, 1, tzinfo=timezone.utc)
        query = (
            Query("users/u1/activities")
            .where("activityDate", start, op=">=")
            .where("activityDate", start, op="<=")
            .ordered("activityDate", descending=True)
        )
        _, body = encode_query(query)
        ops = [f["fieldFilter"]["op"] for f in body["structuredQuery"]["where"]["compositeFilter"]["filters"]]
        assert ops == ["GREATER_THAN_OR_EQUAL", "LESS_THAN_OR_EQUAL"]

    def test_unknown_operator_rejected(self):
        with pytest.raises(InvalidArgumentError):
            Query("users/u1/activities").where("activityDate", 1, op="!=")


class TestFirestoreCrud:
    """Test document operations over HTTP."""

    def test_requires_project(self):
        with pytest.raises(ConfigurationError):
            FirestoreRestStore(StoreConfig())

    @pytest.mark.asyncio
    async def test_add_and_get(self, firestore, fake):
        created = await firestore.add("users/u1/contacts", {"name": "Ada", "dealValue": 10.0})
        assert created.path == "users/u1/contacts/doc1"
        assert created.id == "doc1"
        assert created.update_time is not None

        fetched = await firestore.get(created.path)
        assert fetched.data == {"name": "Ada", "dealValue": 10.0}
        assert fake.requests[0].url.params["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, firestore):
        assert await firestore.get("users/u1/contacts/missing") is None

    @pytest.mark.asyncio
    async def test_update_sends_mask_and_precondition(self, firestore, fake):
        created = await firestore.add("users/u1/deals", {"title": "Deal", "value": 1})
        await firestore.update(created.path, {"value": 2})

        request = fake.requests[-1]
        assert request.method == "PATCH"
        assert request.url.params.get_list("updateMask.fieldPaths") == ["value"]
        assert request.url.params["currentDocument.exists"] == "true"
        assert (await firestore.get(created.path)).data == {"title": "Deal", "value": 2}

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, firestore):
        with pytest.raises(NotFoundError):
            await firestore.update("users/u1/deals/missing", {"value": 2})

    @pytest.mark.asyncio
    async def test_set_replaces_document(self, firestore):
        await firestore.set("users/u1/settings/dataRetention", {"retentionDays": 30, "old": True})
        await firestore.set("users/u1/settings/dataRetention", {"retentionDays": 60})
        document = await firestore.get("users/u1/settings/dataRetention")
        assert document.data == {"retentionDays": 60}

    @pytest.mark.asyncio
    async def test_delete(self, firestore):
        created = await firestore.add("users/u1/deals", {"title": "Deal"})
        await firestore.delete(created.path)
        assert await firestore.get(created.path) is None

    @pytest.mark.asyncio
    async def test_query_filters_by_owner(self, firestore):
        await firestore.add("recurringTaskTemplates", {"title": "A", "userId": "u1"})
        await firestore.add("recurringTaskTemplates", {"title": "B", "userId": "u2"})

        documents = await firestore.query(Query("recurringTaskTemplates").where("userId", "u1"))
        assert [d.data["title"] for d in documents] == ["A"]
        assert await firestore.query(Query("recurringTaskTemplates").where("userId", "nobody")) == []

    @pytest.mark.asyncio
    async def test_bearer_token(self, fake):
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        store = FirestoreRestStore(make_config(FIRESTORE_ID_TOKEN="token-1"), client=client)
        await store.get("users/u1/contacts/x")
        assert fake.requests[-1].headers["Authorization"] == "Bearer token-1"


class TestErrorMapping:
    """Test HTTP and transport failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, error_type",
        [
            (400, InvalidArgumentError),
            (401, PermissionDeniedError),
            (403, PermissionDeniedError),
            (404, NotFoundError),
            (500, UnavailableError),
            (503, UnavailableError),
        ],
    )
    async def test_status_codes(self, firestore, fake, status_code, error_type):
        fake.fail_with = httpx.Response(status_code, json={"error": {"message": "nope"}})
        with pytest.raises(error_type):
            await firestore.delete("users/u1/deals/d1")

    @pytest.mark.asyncio
    async def test_permission_denied_keeps_status(self, firestore, fake):
        fake.fail_with = httpx.Response(403, json=[{"error": {"message": "Missing or insufficient permissions."}}])
        with pytest.raises(PermissionDeniedError) as exc_info:
            await firestore.query(Query("recurringTaskTemplates").where("userId", "u1"))
        assert exc_info.value.status_code == 403
        assert "insufficient permissions" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = FirestoreRestStore(make_config(), client=client)
        with pytest.raises(UnavailableError):
            await store.get("users/u1/contacts/x")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = FirestoreRestStore(make_config(), client=client)
        with pytest.raises(UnavailableError):
            await store.add("users/u1/contacts", {"name": "Ada"})


class TestPollingListener:
    """Test live queries emulated by polling."""

    @pytest.mark.asyncio
    async def test_delivers_initial_and_changed_results(self, firestore, recorder):
        registration = await firestore.listen(
            Query("recurringTaskTemplates").where("userId", "u1"), recorder.on_update, recorder.on_error
        )
        await recorder.wait()
        assert recorder.latest == []

        await firestore.add("recurringTaskTemplates", {"title": "A", "userId": "u1"})
        await recorder.wait(snapshots=2)
        assert [d.data["title"] for d in recorder.latest] == ["A"]

        registration.remove()
        registration.remove()
        await firestore.close()

    @pytest.mark.asyncio
    async def test_unchanged_results_not_redelivered(self, firestore, recorder):
        registration = await firestore.listen(Query("users/u1/contacts"), recorder.on_update, recorder.on_error)
        await recorder.wait()
        await asyncio.sleep(0.05)
        assert len(recorder.snapshots) == 1
        registration.remove()

    @pytest.mark.asyncio
    async def test_error_terminates_listener(self, firestore, fake, recorder, settle):
        fake.fail_with = httpx.Response(403, json={"error": {"message": "denied"}})
        await firestore.listen(Query("users/u1/contacts"), recorder.on_update, recorder.on_error)
        await recorder.wait(snapshots=0, errors=1)

        assert isinstance(recorder.errors[0], PermissionDeniedError)
        await asyncio.sleep(0.05)
        assert len(recorder.errors) == 1
        assert recorder.snapshots == []

    @pytest.mark.asyncio
    async def test_remove_during_start_releases_start(self, recorder, settle):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(200, json=[{"readTime": "2024-01-01T00:00:00Z"}])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = FirestoreRestStore(make_config(), client=client)
        listener = PollingListener(
            store, Query("users/u1/contacts"), recorder.on_update, recorder.on_error, interval=0.01
        )
        starting = asyncio.ensure_future(listener.start())
        await settle()
        assert not starting.done()

        listener.remove()
        await asyncio.wait_for(starting, timeout=1.0)
        assert not listener.active
        await settle()
        assert recorder.snapshots == []
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_close_during_listen_returns(self, recorder, settle):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(200, json=[{"readTime": "2024-01-01T00:00:00Z"}])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = FirestoreRestStore(make_config(), client=client)
        listening = asyncio.ensure_future(
            store.listen(Query("users/u1/contacts"), recorder.on_update, recorder.on_error)
        )
        await settle()

        await store.close()
        registration = await asyncio.wait_for(listening, timeout=1.0)
        assert not registration.active
        await client.aclose()


class TestHealthCheck:
    """Test the connectivity check."""

    @pytest.mark.asyncio
    async def test_healthy(self, firestore):
        assert (await firestore.health_check())["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_lists_database_root_without_querying_a_collection(self, firestore, fake):
        await firestore.add("users/u1/contacts", {"name": "Ada"})
        await firestore.add("users/u1/contacts", {"name": "Grace"})
        fake.requests.clear()

        assert (await firestore.health_check())["status"] == "healthy"
        request = fake.requests[-1]
        assert request.method == "GET"
        assert unquote(request.url.path) == ROOT
        assert request.url.params["pageSize"] == "1"
        assert not any(r.url.path.endswith(":runQuery") for r in fake.requests)

    @pytest.mark.asyncio
    async def test_unhealthy(self, firestore, fake):
        fake.fail_with = httpx.Response(401, json={"error": {"message": "API key not valid"}})
        health = await firestore.health_check()
        assert health["status"] == "unhealthy"
        assert health["error_type"] == "PermissionDeniedError"
