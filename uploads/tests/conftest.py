"""Shared fixtures for uploads app tests."""

import time

import pytest

from uploads.exceptions import StorageError
from uploads.storage import InMemoryObjectStore


class RecordingChannel:
    """Push channel that keeps every published event in memory."""

    def __init__(self):
        self.events = []

    def publish(self, channel_key, event_name, payload):
        self.events.append((channel_key, event_name, payload))

    def names(self):
        return [name for _, name, _ in self.events]


class RecordingObjectStore(InMemoryObjectStore):
    """In-memory store that logs calls and can fail on demand.

    Args:
        fail_parts: Part numbers whose upload_part raises StorageError.
        fail_puts: Keys (or "*") whose put raises StorageError.
        part_delay: Seconds every successful upload_part takes.
    """

    def __init__(self, fail_parts=(), fail_puts=(), part_delay=0):
        super().__init__()
        self.calls = []
        self.fail_parts = set(fail_parts)
        self.fail_puts = set(fail_puts)
        self.part_delay = part_delay

    def put(self, key, data, content_type):
        self.calls.append(("put", key))
        if "*" in self.fail_puts or key in self.fail_puts:
            raise StorageError(f"Simulated put failure for {key}.")
        super().put(key, data, content_type)

    def delete(self, key):
        self.calls.append(("delete", key))
        super().delete(key)

    def create_multipart(self, key, content_type):
        self.calls.append(("create_multipart", key))
        return super().create_multipart(key, content_type)

    def upload_part(self, key, upload_id, part_number, data):
        self.calls.append(("upload_part", part_number))
        if part_number in self.fail_parts:
            raise StorageError(f"Simulated failure on part {part_number}.")
        time.sleep(self.part_delay)
        etag = super().upload_part(key, upload_id, part_number, data)
        self.calls.append(("upload_part_done", part_number))
        return etag

    def complete_multipart(self, key, upload_id, parts):
        self.calls.append(("complete_multipart", [p["PartNumber"] for p in parts]))
        super().complete_multipart(key, upload_id, parts)

    def abort_multipart(self, key, upload_id):
        self.calls.append(("abort_multipart", key))
        super().abort_multipart(key, upload_id)

    def call_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def notifier(channel):
    from uploads.services.progress import ProgressNotifier

    return ProgressNotifier(channel=channel)


@pytest.fixture
def store():
    return RecordingObjectStore()


@pytest.fixture
def relay(store):
    from uploads.services.relay import BlobRelay

    return BlobRelay(store=store)


@pytest.fixture
def make_session(db):
    """Factory fixture to create UploadSession instances."""

    def _make(
        file_id="file-123",
        file_name="report.pdf",
        file_type="application/pdf",
        file_size=12,
        total_chunks=3,
    ):
        from uploads.services.sessions import create_upload_session

        return create_upload_session(
            file_id, file_name, file_type, file_size, total_chunks
        )

    return _make


@pytest.fixture
def submit(relay, notifier):
    """Submit one chunk through the coordinator with the test relay/notifier."""
    from uploads.services.uploads import submit_chunk

    def _submit(
        chunk_index,
        data,
        file_id="file-123",
        total_chunks=3,
        file_name="report.pdf",
        file_type="application/pdf",
        file_size=12,
    ):
        return submit_chunk(
            file_id,
            chunk_index,
            total_chunks,
            file_name,
            file_type,
            file_size,
            data,
            relay=relay,
            notifier=notifier,
        )

    return _submit


@pytest.fixture
def make_store():
    """Factory fixture for RecordingObjectStore with injected failures."""
    return RecordingObjectStore
