"""Session registry and chunk ledger for chunked uploads.

Both live in the relational database so that any worker can accept any
chunk: uniqueness on ``UploadSession.file_id`` and on
``(ChunkRecord.session, chunk_index)`` is what makes concurrent creates
and duplicate chunk submissions idempotent.
"""

import logging
import re

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from uploads.exceptions import ConflictIgnored, NotFound, StorageError
from uploads.models import ChunkRecord, UploadSession

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_file_name(file_name):
    """Replace whitespace runs with underscores ("my file.pdf" → "my_file.pdf")."""
    return _WHITESPACE_RE.sub("_", (file_name or "").strip()) or "file"


def create_upload_session(file_id, file_name, file_type, file_size, total_chunks):
    """Register a new chunked upload session.

    Args:
        file_id: Client-supplied identifier, unique per upload attempt.
        file_name: Original file name (whitespace is replaced by "_").
        file_type: MIME type; empty falls back to application/octet-stream.
        file_size: Declared total size in bytes.
        total_chunks: Number of chunks the client will send.

    Returns:
        The new UploadSession instance.

    Raises:
        ConflictIgnored: A session with this file_id already exists.
            Expected when several first chunks race; callers swallow it.
        StorageError: The database write failed.
    """
    try:
        with transaction.atomic():
            session = UploadSession.objects.create(
                file_id=file_id,
                file_name=sanitize_file_name(file_name),
                file_type=file_type or "application/octet-stream",
                file_size=file_size,
                total_chunks=total_chunks,
            )
    except IntegrityError as exc:
        raise ConflictIgnored(f"Upload session {file_id} already exists.") from exc
    except DatabaseError as exc:
        raise StorageError(f"Could not register upload session {file_id}: {exc}") from exc

    logger.info(
        "Upload session created: file_id=%s name=%s size=%d chunks=%d",
        file_id,
        session.file_name,
        file_size,
        total_chunks,
    )
    return session


def get_upload_session(file_id):
    """Return the UploadSession for ``file_id`` or raise NotFound."""
    try:
        return UploadSession.objects.get(pk=file_id)
    except UploadSession.DoesNotExist:
        raise NotFound(file_id) from None


def delete_upload_session(file_id):
    """Delete the session row (chunk records cascade). Returns True if it existed."""
    deleted, _ = UploadSession.objects.filter(pk=file_id).delete()
    if deleted:
        logger.info("Upload session deleted: file_id=%s", file_id)
    return deleted > 0


def set_session_status(file_id, status, from_statuses=None, error=""):
    """Move a session to ``status`` with a single conditional UPDATE.

    Args:
        file_id: Session to update.
        status: Target UploadSession.Status.
        from_statuses: If given, only sessions currently in one of these
            statuses are updated.
        error: Stored as error_message (cleared when empty).

    Returns:
        True if a row was updated.
    """
    qs = UploadSession.objects.filter(pk=file_id)
    if from_statuses is not None:
        qs = qs.filter(status__in=from_statuses)
    updated = qs.update(status=status, error_message=error, updated_at=timezone.now())
    return updated > 0


def record_chunk(session, chunk_index, size_bytes):
    """Mark chunk ``chunk_index`` of ``session`` as durably stored.

    Only call this after the chunk bytes are in object storage.

    Returns:
        The new ChunkRecord.

    Raises:
        ValidationError: chunk_index is outside [0, total_chunks).
        ConflictIgnored: The chunk was already recorded.
        StorageError: The database write failed.
    """
    if not 0 <= chunk_index < session.total_chunks:
        raise ValidationError(
            f"Chunk index {chunk_index} is out of range for "
            f"{session.total_chunks} chunks.",
            code="chunk_index_out_of_range",
        )

    try:
        with transaction.atomic():
            record = ChunkRecord.objects.create(
                session=session,
                chunk_index=chunk_index,
                size_bytes=size_bytes,
            )
    except IntegrityError as exc:
        raise ConflictIgnored(
            f"Chunk {chunk_index} of {session.pk} already recorded."
        ) from exc
    except DatabaseError as exc:
        raise StorageError(
            f"Could not record chunk {chunk_index} of {session.pk}: {exc}"
        ) from exc

    set_session_status(
        session.pk,
        UploadSession.Status.RECEIVING,
        from_statuses=[UploadSession.Status.CREATED, UploadSession.Status.RECEIVING],
    )
    logger.info(
        "Chunk recorded: file_id=%s index=%d size=%d",
        session.pk,
        chunk_index,
        size_bytes,
    )
    return record


def is_chunk_recorded(file_id, chunk_index):
    return ChunkRecord.objects.filter(
        session_id=file_id, chunk_index=chunk_index
    ).exists()


def count_received(file_id):
    """Number of distinct chunk indices recorded for ``file_id``."""
    return ChunkRecord.objects.filter(session_id=file_id).count()


def is_complete(session):
    return count_received(session.pk) == session.total_chunks


def all_chunks(file_id):
    """Recorded chunk indices in ascending order."""
    return list(
        ChunkRecord.objects.filter(session_id=file_id)
        .order_by("chunk_index")
        .values_list("chunk_index", flat=True)
    )


def missing_chunks(session):
    """Indices in [0, total_chunks) that have not been recorded yet."""
    received = set(all_chunks(session.pk))
    return [i for i in range(session.total_chunks) if i not in received]


def clear_chunks(file_id, relay, total_chunks=None):
    """Delete every chunk record of ``file_id`` and its stored bytes.

    With ``total_chunks`` every index in [0, total_chunks) is deleted from
    storage, including bytes that were stored but never recorded. Byte
    deletion is best-effort (see BlobRelay.delete_chunk); the ledger rows
    are removed regardless.

    Returns:
        Number of chunk records removed.
    """
    indices = set(all_chunks(file_id))
    if total_chunks is not None:
        indices.update(range(total_chunks))
    for chunk_index in sorted(indices):
        relay.delete_chunk(file_id, chunk_index)

    deleted, _ = ChunkRecord.objects.filter(session_id=file_id).delete()
    logger.info("Chunks cleared: file_id=%s records=%d", file_id, deleted)
    return deleted
