"""
Record mapping between stored documents and typed records.
"""

from enum import Enum
from typing import Any, Dict, List, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from clientdesk.core.exceptions import MalformedRecordError
from clientdesk.core.models import to_datetime
from clientdesk.data.document_store import Document

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

__all__ = [
    "SnapshotPolicy",
    "map_document",
    "map_snapshot",
    "to_datetime",
    "to_store_data",
]


class SnapshotPolicy(str, Enum):
    """What to do with a malformed document inside a live snapshot."""

    SKIP = "skip"  # drop the record, log it, deliver the rest
    ABORT = "abort"  # fail the whole snapshot


def _failed_fields(error: ValidationError) -> List[str]:
    return [".".join(str(p) for p in item["loc"]) or "<root>" for item in error.errors()]


def map_document(document: Document, model: Type[RecordT]) -> RecordT:
    """
    Map one stored document to a typed record.

    Args:
        document: Document returned by the store
        model: Record model to validate against

    Returns:
        Validated record

    Raises:
        MalformedRecordError: If a required field is missing or has the wrong shape
    """
    try:
        return model.model_validate(document.to_record_data())
    except ValidationError as e:
        fields = _failed_fields(e)
        raise MalformedRecordError(
            f"Document {document.path} does not match {model.__name__}: {', '.join(fields)}",
            document_id=document.id,
            details={"path": document.path, "model": model.__name__, "fields": fields},
        ) from e


def map_snapshot(
    documents: List[Document],
    model: Type[RecordT],
    policy: SnapshotPolicy = SnapshotPolicy.SKIP,
) -> List[RecordT]:
    """Map a full snapshot, keeping the store's order."""
    records = []
    for document in documents:
        try:
            records.append(map_document(document, model))
        except MalformedRecordError as e:
            if policy == SnapshotPolicy.ABORT:
                raise
            logger.warning(
                "Skipping malformed record",
                document_id=e.document_id,
                model=model.__name__,
                fields=e.details.get("fields"),
            )
    return records


def to_store_data(record: BaseModel) -> Dict[str, Any]:
    """Wire dict for a record: stored field names, absent fields omitted, no id."""
    data = record.model_dump(by_alias=True, exclude_none=True, mode="python")
    data.pop("id", None)
    return data
