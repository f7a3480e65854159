"""Exceptions raised by the upload services.

Input problems are reported with Django's ``ValidationError`` before any
storage or database work happens; everything below covers what can go
wrong afterwards. ``status_code`` is the HTTP status the API layer maps
each error to.
"""


class UploadError(Exception):
    """Base class for upload coordinator errors."""

    status_code = 500


class ConflictIgnored(UploadError):
    """A duplicate session or chunk was written.

    Raised by the registry and the ledger on unique-constraint conflicts.
    The coordinator treats it as a successful no-op; it never reaches a
    client.
    """

    status_code = 200


class NotFound(UploadError):
    """Unknown (or already cleaned up) upload session."""

    status_code = 404

    def __init__(self, file_id):
        self.file_id = file_id
        super().__init__(f"Upload session {file_id} not found or expired.")


class IncompleteUpload(UploadError):
    """Finalize was requested before every chunk was recorded."""

    status_code = 400

    def __init__(self, file_id, received, total, missing):
        self.file_id = file_id
        self.received = received
        self.total = total
        self.missing = list(missing)
        super().__init__(
            f"Not all chunks received for {file_id}: "
            f"{received}/{total} chunks uploaded, "
            f"{total - received} missing."
        )


class SizeMismatch(UploadError):
    """Reassembled bytes do not match the declared file size."""

    status_code = 422

    def __init__(self, file_id, expected, actual):
        self.file_id = file_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"File size mismatch for {file_id}. Expected {expected}, got {actual}."
        )


class FinalizeInProgress(UploadError):
    """Another worker is already finalizing (or has finalized) this session."""

    status_code = 409


class StorageError(UploadError):
    """Object storage or database I/O failed."""

    status_code = 502


class ObjectNotFound(StorageError):
    """A key that should exist is missing from object storage."""

    status_code = 502


class FinalizeTimeout(StorageError):
    """Finalize ran past UPLOAD_FINALIZE_TIMEOUT_SECONDS."""

    status_code = 504


class IdGenerationExhausted(UploadError):
    """Every bounded attempt at a unique slug/id collided."""

    status_code = 500
