"""Unit tests for the session registry and chunk ledger."""

from unittest.mock import patch

import pytest
from django.core.exceptions import ValidationError
from django.db import OperationalError

from uploads.exceptions import ConflictIgnored, NotFound, StorageError
from uploads.models import ChunkRecord, UploadSession
from uploads.services.sessions import (
    all_chunks,
    clear_chunks,
    count_received,
    create_upload_session,
    delete_upload_session,
    get_upload_session,
    is_complete,
    missing_chunks,
    record_chunk,
    sanitize_file_name,
    set_session_status,
)


class TestSanitizeFileName:
    """Tests for sanitize_file_name()."""

    def test_replaces_whitespace_runs(self):
        assert sanitize_file_name("my  annual\treport.pdf") == "my_annual_report.pdf"

    def test_empty_falls_back(self):
        assert sanitize_file_name("   ") == "file"


@pytest.mark.django_db
class TestSessionRegistry:
    """Tests for create/get/delete of upload sessions."""

    def test_create_and_get(self, make_session):
        make_session(file_name="my report.pdf")
        session = get_upload_session("file-123")
        assert session.file_name == "my_report.pdf"
        assert session.total_chunks == 3

    def test_duplicate_create_raises_conflict(self, make_session):
        make_session()
        with pytest.raises(ConflictIgnored):
            create_upload_session("file-123", "other.pdf", "application/pdf", 5, 1)
        assert UploadSession.objects.get(pk="file-123").file_name == "report.pdf"

    def test_empty_type_defaults_to_octet_stream(self, db):
        session = create_upload_session("f", "blob", "", 3, 1)
        assert session.file_type == "application/octet-stream"

    def test_get_unknown_raises_not_found(self, db):
        with pytest.raises(NotFound):
            get_upload_session("missing")

    def test_delete(self, make_session):
        make_session()
        assert delete_upload_session("file-123") is True
        assert delete_upload_session("file-123") is False

    def test_conditional_status_change(self, make_session):
        make_session()
        assert not set_session_status(
            "file-123",
            UploadSession.Status.FINALIZING,
            from_statuses=[UploadSession.Status.READY],
        )
        assert set_session_status(
            "file-123", UploadSession.Status.FAILED, error="boom"
        )
        session = get_upload_session("file-123")
        assert session.status == UploadSession.Status.FAILED
        assert session.error_message == "boom"


@pytest.mark.django_db
class TestChunkLedger:
    """Tests for chunk recording and completeness queries."""

    def test_record_moves_session_to_receiving(self, make_session):
        session = make_session()
        record_chunk(session, 1, 4)
        session.refresh_from_db()
        assert session.status == UploadSession.Status.RECEIVING

    def test_duplicate_index_not_double_counted(self, make_session):
        session = make_session()
        record_chunk(session, 0, 4)
        with pytest.raises(ConflictIgnored):
            record_chunk(session, 0, 4)
        assert count_received("file-123") == 1

    def test_index_out_of_range(self, make_session):
        session = make_session()
        with pytest.raises(ValidationError) as exc_info:
            record_chunk(session, 3, 4)
        assert exc_info.value.code == "chunk_index_out_of_range"

    def test_completeness_is_order_independent(self, make_session):
        session = make_session()
        for chunk_index in (2, 0, 1):
            assert not is_complete(session)
            record_chunk(session, chunk_index, 4)
        assert is_complete(session)
        assert all_chunks("file-123") == [0, 1, 2]

    def test_missing_chunks(self, make_session):
        session = make_session(total_chunks=5)
        record_chunk(session, 0, 4)
        record_chunk(session, 3, 4)
        assert missing_chunks(session) == [1, 2, 4]

    def test_clear_chunks_removes_records_and_bytes(self, make_session, relay, store):
        session = make_session()
        for chunk_index in range(3):
            relay.store_chunk("file-123", chunk_index, b"data")
            record_chunk(session, chunk_index, 4)

        assert clear_chunks("file-123", relay) == 3
        assert ChunkRecord.objects.count() == 0
        assert store.objects == {}

    def test_clear_chunks_removes_unrecorded_bytes(self, make_session, relay, store):
        session = make_session()
        relay.store_chunk("file-123", 0, b"data")
        record_chunk(session, 0, 4)
        relay.store_chunk("file-123", 2, b"data")

        assert clear_chunks("file-123", relay, session.total_chunks) == 1
        assert store.objects == {}

    def test_database_failure_becomes_storage_error(self, make_session):
        session = make_session()
        with patch.object(
            ChunkRecord.objects, "create", side_effect=OperationalError("disk I/O error")
        ):
            with pytest.raises(StorageError, match="disk I/O error"):
                record_chunk(session, 0, 4)
        assert count_received("file-123") == 0
