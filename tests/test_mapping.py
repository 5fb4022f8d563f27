"""
Test suite for record mapping.
"""

from datetime import datetime, timezone

import pytest

from clientdesk.core.exceptions import MalformedRecordError
from clientdesk.core.models import Contact, DataRetentionSettings, RecurringTaskTemplate
from clientdesk.data.document_store import Document
from clientdesk.data.mapping import SnapshotPolicy, map_document, map_snapshot, to_store_data


def template_doc(doc_id, **fields):
    data = {"title": "Follow up", "interval": "wöchentlich", "userId": "u1"}
    data.update(fields)
    return Document(id=doc_id, path=f"recurringTaskTemplates/{doc_id}", data=data)


class TestMapDocument:
    """Test single document mapping."""

    def test_id_comes_from_document(self):
        template = map_document(template_doc("abc"), RecurringTaskTemplate)
        assert template.id == "abc"
        assert template.owner_id == "u1"

    def test_absent_optional_stays_absent(self):
        template = map_document(template_doc("abc"), RecurringTaskTemplate)
        assert template.description is None

    def test_declared_defaults_apply(self):
        document = Document(id="c1", path="users/u1/contacts/c1", data={"name": "Ada"})
        contact = map_document(document, Contact)
        assert contact.tags == []
        assert contact.deal_value == 0.0
        assert contact.created_at is None

    def test_timestamps_normalized(self):
        document = Document(
            id="c1",
            path="users/u1/contacts/c1",
            data={"name": "Ada", "createdAt": {"seconds": 0, "nanoseconds": 0}},
        )
        assert map_document(document, Contact).created_at == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_missing_required_field(self):
        document = template_doc("bad")
        del document.data["title"]
        with pytest.raises(MalformedRecordError) as exc_info:
            map_document(document, RecurringTaskTemplate)
        assert exc_info.value.document_id == "bad"
        assert "title" in exc_info.value.details["fields"]

    def test_wrong_shape(self):
        with pytest.raises(MalformedRecordError):
            map_document(template_doc("bad", interval="yearly"), RecurringTaskTemplate)


class TestMapSnapshot:
    """Test snapshot mapping policies."""

    def test_skip_drops_only_bad_records(self):
        documents = [template_doc("a"), template_doc("b", title=""), template_doc("c")]
        records = map_snapshot(documents, RecurringTaskTemplate, SnapshotPolicy.SKIP)
        assert [r.id for r in records] == ["a", "c"]

    def test_abort_raises_for_whole_snapshot(self):
        documents = [template_doc("a"), template_doc("b", title="")]
        with pytest.raises(MalformedRecordError):
            map_snapshot(documents, RecurringTaskTemplate, SnapshotPolicy.ABORT)

    def test_keeps_store_order(self):
        documents = [template_doc("z"), template_doc("a"), template_doc("m")]
        assert [r.id for r in map_snapshot(documents, RecurringTaskTemplate)] == ["z", "a", "m"]


class TestToStoreData:
    """Test wire dict generation."""

    def test_aliases_and_no_id(self):
        settings = DataRetentionSettings(
            retention_days=30, last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        assert to_store_data(settings) == {
            "retentionDays": 30,
            "lastUpdated": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }

    def test_none_fields_omitted(self):
        template = RecurringTaskTemplate(id="t", title="Call", interval="daily", userId="u1")
        assert to_store_data(template) == {"title": "Call", "interval": "täglich", "userId": "u1"}
