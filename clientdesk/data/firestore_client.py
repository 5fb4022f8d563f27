"""
Firestore REST client.

Implements the ``DocumentStore`` port against the Firestore REST API v1 with
``httpx``. Calls are never retried here: HTTP and transport failures are mapped
onto the ClientDesk error taxonomy and surface to the caller as-is.

Live queries are implemented by polling: the structured query is re-run every
``listen_poll_interval`` seconds and the full result set is delivered whenever
its ids or update times change.
"""

import asyncio
import base64
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx
import structlog

from clientdesk.core.config import StoreConfig
from clientdesk.core.exceptions import (
    ClientDeskError,
    ConfigurationError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UnavailableError,
)
from clientdesk.core.models import to_datetime
from clientdesk.data.document_store import (
    Document,
    ErrorCallback,
    Query,
    SnapshotCallback,
    collection_path,
    document_path,
    split_path,
)

logger = structlog.get_logger(__name__)


# Value codec


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, Enum):
        return encode_value(value.value)
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (datetime, date)):
        stamp = to_datetime(value).isoformat().replace("+00:00", "Z")
        return {"timestampValue": stamp}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise InvalidArgumentError(f"Cannot store value of type {type(value).__name__}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k): encode_value(v) for k, v in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return to_datetime(value["timestampValue"])
    if "arrayValue" in value:
        return [decode_value(v) for v in (value["arrayValue"] or {}).get("values", [])]
    if "mapValue" in value:
        return decode_fields((value["mapValue"] or {}).get("fields", {}))
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    raise ValueError(f"Unknown Firestore value: {sorted(value)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: decode_value(v) for k, v in (fields or {}).items()}


_FILTER_OPS = {"==": "EQUAL", ">=": "GREATER_THAN_OR_EQUAL", "<=": "LESS_THAN_OR_EQUAL"}


def encode_query(query: Query, limit: Optional[int] = None) -> Tuple[str, Dict[str, Any]]:
    """
    Build the ``runQuery`` parent path and structured query for ``query``.

    Returns:
        (parent document path or "", structuredQuery body)
    """
    segments = split_path(collection_path(query.collection_path))
    parent = "/".join(segments[:-1])
    structured: Dict[str, Any] = {"from": [{"collectionId": segments[-1]}]}

    field_filters = [
        {
            "fieldFilter": {
                "field": {"fieldPath": f.field},
                "op": _FILTER_OPS[f.op],
                "value": encode_value(f.value),
            }
        }
        for f in query.filters
    ]
    if len(field_filters) == 1:
        structured["where"] = field_filters[0]
    elif field_filters:
        structured["where"] = {"compositeFilter": {"op": "AND", "filters": field_filters}}

    if query.order_by:
        structured["orderBy"] = [
            {
                "field": {"fieldPath": query.order_by},
                "direction": "DESCENDING" if query.descending else "ASCENDING",
            }
        ]
    if limit:
        structured["limit"] = limit

    return parent, {"structuredQuery": structured}


def error_for_response(response: httpx.Response, path: str) -> ClientDeskError:
    """Map a failed Firestore response onto the error taxonomy."""
    status_code = response.status_code
    message = response.text[:500]
    try:
        body = response.json()
        if isinstance(body, list) and body:
            body = body[0]
        message = body.get("error", {}).get("message", message)
    except (ValueError, AttributeError):
        pass

    details = {"status_code": status_code, "path": path}
    if status_code == 400:
        return InvalidArgumentError(f"Firestore rejected request: {message}", details=details)
    if status_code in (401, 403):
        return PermissionDeniedError(
            f"Firestore denied access: {message}", status_code=status_code, details=details
        )
    if status_code == 404:
        return NotFoundError(f"Firestore document not found: {path}", details=details)
    return UnavailableError(
        f"Firestore error {status_code}: {message}", status_code=status_code, details=details
    )


class PollingListener:
    """Live query emulated by re-running a structured query on an interval."""

    def __init__(
        self,
        store: "FirestoreRestStore",
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        interval: float,
    ):
        self.query = query
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._interval = interval
        self._removed = False
        self._fingerprint: Optional[Tuple[Tuple[str, Any], ...]] = None
        self._established = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def active(self) -> bool:
        return not self._removed and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Run the first query; returns once the store answered (or failed)."""
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())
        await self._established.wait()

    async def _run(self) -> None:
        while not self._removed:
            try:
                documents = await self._store.query(self.query)
            except ClientDeskError as e:
                self._fail(e)
                return
            except Exception as e:
                self._fail(UnavailableError(f"Live query failed: {e}"))
                return

            self._established.set()
            fingerprint = tuple((d.path, d.update_time) for d in documents)
            if fingerprint != self._fingerprint:
                self._fingerprint = fingerprint
                self._loop.call_soon(self._deliver, documents)

            await asyncio.sleep(self._interval)

    def _deliver(self, documents: List[Document]) -> None:
        if not self._removed:
            self._on_snapshot(documents)

    def _deliver_error(self, error: Exception) -> None:
        if not self._removed:
            self._on_error(error)

    def _fail(self, error: Exception) -> None:
        self._established.set()
        self._store._listeners.discard(self)
        logger.warning(
            "Live query terminated",
            collection=self.query.collection_path,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._loop.call_soon(self._deliver_error, error)

    def remove(self) -> None:
        if self._removed:
            return
        self._removed = True
        self._store._listeners.discard(self)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        # A start() still waiting for the first answer returns now
        self._established.set()


class FirestoreRestStore:
    """
    Firestore REST client implementing the ``DocumentStore`` protocol.
    """

    def __init__(self, config: StoreConfig, client: Optional[httpx.AsyncClient] = None):
        if not config.project_id:
            raise ConfigurationError("FIRESTORE_PROJECT_ID is required for the firestore backend")

        self.config = config
        self._root = f"{config.base_url.rstrip('/')}/{config.documents_root}"
        self._name_prefix = f"{config.documents_root}/"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout), follow_redirects=True
        )
        self._listeners: Set[PollingListener] = set()

        logger.info(
            "Firestore client initialized",
            project=config.project_id,
            database=config.database,
            has_api_key=bool(config.api_key),
            has_id_token=bool(config.id_token),
        )

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for Firestore requests."""
        headers = {"Content-Type": "application/json"}
        if self.config.id_token:
            headers["Authorization"] = f"Bearer {self.config.id_token}"
        return headers

    def _get_params(self, extra: Optional[List[Tuple[str, str]]] = None) -> List[Tuple[str, str]]:
        params = list(extra or [])
        if self.config.api_key:
            params.append(("key", self.config.api_key))
        return params

    async def _make_request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[List[Tuple[str, str]]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Make an authenticated request to the Firestore REST API.

        Args:
            method: HTTP method
            path: Path below the documents root ("" for the root itself)
            json_data: JSON payload
            params: Extra query parameters
            allow_not_found: Return None on 404 instead of raising

        Returns:
            Response JSON data

        Raises:
            DataAccessError subclass matching the failure
        """
        url = f"{self._root}/{path}" if path and not path.startswith(":") else f"{self._root}{path}"

        try:
            logger.debug("Firestore request", method=method, path=path, has_data=bool(json_data))
            response = await self.client.request(
                method,
                url,
                json=json_data,
                params=self._get_params(params),
                headers=self._get_headers(),
            )
        except httpx.TimeoutException as e:
            logger.error("Firestore timeout", path=path, error=str(e))
            raise UnavailableError(f"Firestore timeout: {e}", details={"path": path})
        except httpx.RequestError as e:
            logger.error("Firestore transport error", path=path, error=str(e))
            raise UnavailableError(f"Firestore unreachable: {e}", details={"path": path})

        if response.status_code == 404 and allow_not_found:
            return None

        if response.is_error:
            error = error_for_response(response, path)
            logger.error(
                "Firestore HTTP error",
                status_code=response.status_code,
                path=path,
                error_type=type(error).__name__,
            )
            raise error

        if not response.content:
            return {}
        return response.json()

    def _to_document(self, payload: Dict[str, Any]) -> Document:
        name = payload.get("name", "")
        path = name[len(self._name_prefix):] if name.startswith(self._name_prefix) else name
        return Document(
            id=path.rsplit("/", 1)[-1],
            path=path,
            data=decode_fields(payload.get("fields", {})),
            update_time=to_datetime(payload.get("updateTime")),
        )

    async def add(self, collection: str, data: Dict[str, Any]) -> Document:
        collection = collection_path(collection)
        payload = await self._make_request("POST", collection, json_data={"fields": encode_fields(data)})
        document = self._to_document(payload)
        logger.debug("Document added", path=document.path)
        return document

    async def get(self, path: str) -> Optional[Document]:
        payload = await self._make_request("GET", document_path(path), allow_not_found=True)
        return self._to_document(payload) if payload else None

    async def set(self, path: str, data: Dict[str, Any]) -> Document:
        # PATCH without an update mask replaces every field of the document
        payload = await self._make_request(
            "PATCH", document_path(path), json_data={"fields": encode_fields(data)}
        )
        return self._to_document(payload)

    async def update(self, path: str, data: Dict[str, Any]) -> Document:
        params = [("updateMask.fieldPaths", key) for key in data]
        params.append(("currentDocument.exists", "true"))
        payload = await self._make_request(
            "PATCH", document_path(path), json_data={"fields": encode_fields(data)}, params=params
        )
        return self._to_document(payload)

    async def delete(self, path: str) -> None:
        await self._make_request("DELETE", document_path(path))
        logger.debug("Document deleted", path=path)

    async def query(self, query: Query, limit: Optional[int] = None) -> List[Document]:
        parent, body = encode_query(query, limit=limit)
        rows = await self._make_request("POST", f"{parent}:runQuery" if parent else ":runQuery", json_data=body)
        return [self._to_document(row["document"]) for row in rows or [] if row.get("document")]

    async def listen(
        self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> PollingListener:
        listener = PollingListener(
            self, query, on_snapshot, on_error, interval=self.config.listen_poll_interval
        )
        self._listeners.add(listener)
        await listener.start()
        return listener

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the Firestore API.

        Lists at most one document below the database root, which needs read
        access but touches no application collection.

        Returns:
            Health status information
        """
        try:
            await self._make_request("GET", "", params=[("pageSize", "1")])
            return {"status": "healthy", "project": self.config.project_id}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e), "error_type": type(e).__name__}

    async def close(self) -> None:
        for listener in list(self._listeners):
            listener.remove()
        if self._owns_client:
            await self.client.aclose()
