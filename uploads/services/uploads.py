"""Upload coordinator: chunk intake, finalization, simple uploads, sweeping."""

import logging
import mimetypes
import os
import time
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from common.utils import generate_slug, generate_snowflake_id, safe_dispatch
from uploads.exceptions import (
    ConflictIgnored,
    FinalizeInProgress,
    FinalizeTimeout,
    IdGenerationExhausted,
    IncompleteUpload,
    NotFound,
    SizeMismatch,
    StorageError,
)
from uploads.models import Upload, UploadProgress, UploadSession
from uploads.services.progress import ProgressNotifier
from uploads.services.relay import BlobRelay
from uploads.services.sessions import (
    clear_chunks,
    count_received,
    create_upload_session,
    delete_upload_session,
    get_upload_session,
    is_chunk_recorded,
    missing_chunks,
    record_chunk,
    sanitize_file_name,
    set_session_status,
)

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 500

EXPIRY_CHOICES = {
    "1h": timedelta(hours=1),
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

FINALIZABLE_STATUSES = [
    UploadSession.Status.CREATED,
    UploadSession.Status.RECEIVING,
    UploadSession.Status.READY,
    UploadSession.Status.FAILED,
]


def compute_progress(received, total):
    """Whole-number percentage, rounding halves up (1 of 8 → 13)."""
    if total <= 0:
        return 0
    return min(100, (received * 200 + total) // (2 * total))


def compute_expires_at(expires, now):
    """Expiry timestamp for an expiry choice ("1h", "1d", "7d", "30d").

    Unknown choices fall back to settings.UPLOAD_DEFAULT_EXPIRY.
    """
    delta = EXPIRY_CHOICES.get(expires) or EXPIRY_CHOICES[settings.UPLOAD_DEFAULT_EXPIRY]
    return now + delta


def resolve_domain(submitted_domain="", host=""):
    """Pick the public domain: submitted, then request host, then the default."""
    allowed = list(settings.UPLOAD_ALLOWED_DOMAINS)
    for candidate in (submitted_domain, host):
        if candidate and candidate in allowed:
            return candidate
    return allowed[0]


def build_public_url(slug, domain):
    return f"https://{domain}/{slug}"


def validate_upload_metadata(file_name, content_type, size_bytes, max_size=None):
    """Validate a file's declared name, MIME type and size.

    Args:
        file_name: Original file name (used for the extension fallback).
        content_type: Declared MIME type; guessed from the name if empty.
        size_bytes: Declared size in bytes.
        max_size: Maximum size in bytes. Defaults to
            ``settings.UPLOAD_MAX_FILE_SIZE`` (500 MB).

    Returns:
        The effective content type.

    Raises:
        ValidationError: Empty, oversized, or disallowed file type.
    """
    max_size = max_size or settings.UPLOAD_MAX_FILE_SIZE

    if size_bytes is None or size_bytes <= 0:
        raise ValidationError("File is empty.", code="file_empty")

    if size_bytes > max_size:
        raise ValidationError(
            f"File size {size_bytes} bytes exceeds maximum of {max_size} bytes.",
            code="file_too_large",
        )

    if not content_type:
        content_type, _ = mimetypes.guess_type(file_name or "")
    content_type = content_type or "application/octet-stream"

    allowed_types = settings.UPLOAD_ALLOWED_TYPES
    if allowed_types is not None:
        extension = os.path.splitext(file_name or "")[1].lower()
        allowed_extensions = settings.UPLOAD_ALLOWED_EXTENSIONS or []
        if content_type not in allowed_types and extension not in allowed_extensions:
            raise ValidationError(
                f"File type '{content_type}' is not allowed.",
                code="file_type_not_allowed",
            )

    return content_type


def validate_file(file, max_size=None):
    """Validate an uploaded file for the simple (non-chunked) path.

    Args:
        file: A Django UploadedFile instance.
        max_size: Maximum file size in bytes.

    Returns:
        A tuple of (content_type, size_bytes).

    Raises:
        ValidationError: The file fails metadata validation or is large
            enough that it has to go through the chunked path.
    """
    content_type = validate_upload_metadata(
        file.name, getattr(file, "content_type", None), file.size, max_size
    )
    if file.size > settings.UPLOAD_CHUNKING_THRESHOLD:
        raise ValidationError(
            f"Files over {settings.UPLOAD_CHUNKING_THRESHOLD} bytes must be "
            "uploaded in chunks.",
            code="file_requires_chunking",
        )
    return content_type, file.size


def _validate_chunk_request(file_id, chunk_index, total_chunks, file_name, file_size, data):
    if not file_id or not file_name:
        raise ValidationError("Missing required parameters.", code="missing_fields")
    if total_chunks is None or total_chunks < 1:
        raise ValidationError("totalChunks must be at least 1.", code="invalid_total_chunks")
    if chunk_index is None or not 0 <= chunk_index < total_chunks:
        raise ValidationError(
            f"Chunk index {chunk_index} is out of range for {total_chunks} chunks.",
            code="chunk_index_out_of_range",
        )
    if not data:
        raise ValidationError("Chunk is empty.", code="chunk_empty")
    if len(data) > file_size:
        raise ValidationError(
            "Chunk is larger than the declared file size.", code="chunk_too_large"
        )


def ensure_upload_session(file_id, file_name, file_type, file_size, total_chunks):
    """Return the session for ``file_id``, creating it if needed.

    Safe under concurrent first chunks: the loser of the create race gets
    ConflictIgnored and simply loads the winner's row.
    """
    try:
        return get_upload_session(file_id)
    except NotFound:
        pass
    try:
        return create_upload_session(file_id, file_name, file_type, file_size, total_chunks)
    except ConflictIgnored:
        return get_upload_session(file_id)


def submit_chunk(
    file_id,
    chunk_index,
    total_chunks,
    file_name,
    file_type,
    file_size,
    data,
    *,
    relay=None,
    notifier=None,
):
    """Accept one chunk of a chunked upload.

    The chunk bytes are stored before the ledger entry is written, so a
    recorded chunk is always readable. Resubmitting an already recorded
    index only reports progress again, and so does any chunk sent to a
    session that has already been finalized.

    Args:
        file_id: Session identifier supplied by the client.
        chunk_index: 0-based chunk index.
        total_chunks: Expected number of chunks.
        file_name: Original file name.
        file_type: MIME type of the whole file.
        file_size: Declared size of the whole file in bytes.
        data: Chunk bytes.
        relay: Optional BlobRelay (defaults to the configured store).
        notifier: Optional ProgressNotifier.

    Returns:
        dict: {"chunk_index", "received_chunks", "total_chunks",
        "is_complete", "progress"}

    Raises:
        ValidationError: Bad or missing fields, disallowed type, too large.
        StorageError: The chunk could not be stored; it stays unrecorded
            and the client may resend it.
    """
    _validate_chunk_request(file_id, chunk_index, total_chunks, file_name, file_size, data)
    file_type = validate_upload_metadata(file_name, file_type, file_size)

    session = ensure_upload_session(file_id, file_name, file_type, file_size, total_chunks)
    if chunk_index >= session.total_chunks:
        raise ValidationError(
            f"Chunk index {chunk_index} is out of range for "
            f"{session.total_chunks} chunks.",
            code="chunk_index_out_of_range",
        )

    if session.status == UploadSession.Status.COMPLETED:
        logger.info(
            "Chunk for finalized upload ignored: file_id=%s index=%d", file_id, chunk_index
        )
        return {
            "chunk_index": chunk_index,
            "received_chunks": session.total_chunks,
            "total_chunks": session.total_chunks,
            "is_complete": True,
            "progress": 100,
        }

    if is_chunk_recorded(file_id, chunk_index):
        logger.info("Duplicate chunk ignored: file_id=%s index=%d", file_id, chunk_index)
    else:
        relay = relay or BlobRelay()
        relay.store_chunk(file_id, chunk_index, data)
        try:
            record_chunk(session, chunk_index, len(data))
        except ConflictIgnored:
            logger.info(
                "Concurrent duplicate chunk ignored: file_id=%s index=%d",
                file_id,
                chunk_index,
            )

    received = count_received(file_id)
    total = session.total_chunks
    is_complete = received == total
    if is_complete:
        set_session_status(
            file_id,
            UploadSession.Status.READY,
            from_statuses=[UploadSession.Status.CREATED, UploadSession.Status.RECEIVING],
        )

    progress = compute_progress(received, total)
    notifier = notifier or ProgressNotifier()
    with safe_dispatch("report chunk progress", logger):
        notifier.publish_progress(
            file_id, progress, received_chunks=received, total_chunks=total
        )

    return {
        "chunk_index": chunk_index,
        "received_chunks": received,
        "total_chunks": total,
        "is_complete": is_complete,
        "progress": progress,
    }


def generate_unique_slug(max_attempts=None):
    """Generate a slug that no Upload uses yet.

    Raises:
        IdGenerationExhausted: Every attempt collided.
    """
    max_attempts = max_attempts or settings.UPLOAD_ID_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        slug = generate_slug(settings.UPLOAD_SLUG_LENGTH)
        if not Upload.objects.filter(slug=slug).exists():
            return slug
        logger.info("Slug collision, retrying: attempt=%d slug=%s", attempt, slug)
    raise IdGenerationExhausted(
        f"Could not generate a unique slug after {max_attempts} attempts."
    )


def create_upload_record(filename, content_type, size_bytes, domain, uploaded_at, expires_at):
    """Insert a placeholder Upload row (empty storage_key).

    Both the slug and the id are collision-checked: the slug up front,
    and both again by the unique constraints on insert, with at most
    UPLOAD_ID_MAX_ATTEMPTS tries.

    Raises:
        IdGenerationExhausted: No attempt produced a unique slug/id.
        StorageError: The database write failed.
    """
    max_attempts = settings.UPLOAD_ID_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        slug = generate_unique_slug()
        upload_id = generate_snowflake_id()
        try:
            with transaction.atomic():
                return Upload.objects.create(
                    id=upload_id,
                    slug=slug,
                    filename=filename,
                    content_type=content_type,
                    size_bytes=size_bytes,
                    domain=domain,
                    storage_key="",
                    uploaded_at=uploaded_at,
                    expires_at=expires_at,
                )
        except IntegrityError:
            logger.info(
                "Upload id/slug collision, retrying: attempt=%d id=%s slug=%s",
                attempt,
                upload_id,
                slug,
            )
        except DatabaseError as exc:
            raise StorageError(f"Could not create upload record: {exc}") from exc
    raise IdGenerationExhausted(
        f"Failed to create upload record after {max_attempts} attempts."
    )


def commit_upload(upload, data, relay, on_progress=None, deadline=None):
    """Write ``data`` for a placeholder Upload and publish its storage key.

    On failure the placeholder row is deleted so nothing half-written is
    ever resolvable, and the error propagates.

    Returns:
        The refreshed Upload instance.
    """
    key = f"{upload.pk}/{upload.filename}"
    try:
        relay.commit_final(
            key, data, upload.content_type, on_progress=on_progress, deadline=deadline
        )
    except Exception:
        Upload.objects.filter(pk=upload.pk, storage_key="").delete()
        raise

    Upload.objects.filter(pk=upload.pk).update(storage_key=key, domain=upload.domain)
    upload.refresh_from_db()
    logger.info(
        "Upload committed: id=%s slug=%s key=%s domain=%s",
        upload.pk,
        upload.slug,
        key,
        upload.domain,
    )
    return upload


def build_upload_result(upload):
    return {
        "id": upload.pk,
        "slug": upload.slug,
        "filename": upload.filename,
        "size": upload.size_bytes,
        "type": upload.content_type,
        "url": f"/{upload.slug}",
        "publicUrl": build_public_url(upload.slug, upload.domain),
        "expiresAt": upload.expires_at.isoformat(),
        "completed": True,
    }


def _report_failure(notifier, session_id, exc):
    with safe_dispatch("report upload failure", logger):
        notifier.publish_error(session_id, str(exc))


def require_complete_session(file_id):
    """Return the session for ``file_id`` if every chunk is recorded.

    A completed session is returned as is; its chunks are already gone.

    Raises:
        NotFound: Unknown or expired session.
        IncompleteUpload: Chunks are missing (with the exact deficit).
    """
    session = get_upload_session(file_id)
    if session.status == UploadSession.Status.COMPLETED:
        return session
    missing = missing_chunks(session)
    if missing:
        raise IncompleteUpload(
            file_id,
            session.total_chunks - len(missing),
            session.total_chunks,
            missing,
        )
    return session


def finalize_upload(file_id, expires=None, submitted_domain="", *, relay=None, notifier=None):
    """Assemble a fully received chunked upload and publish it.

    Steps: check every chunk is recorded, read chunks in index order,
    verify the exact declared size, create the placeholder Upload row,
    commit the bytes (single put or multipart), store the key, clear the
    chunks, publish the result. The session row stays behind as
    ``completed`` until the sweep removes it, so finalizing it again
    returns the published result instead of creating a second Upload.

    Args:
        file_id: Session identifier.
        expires: Expiry choice ("1h", "1d", "7d", "30d").
        submitted_domain: Requested public domain (allow-listed).
        relay: Optional BlobRelay.
        notifier: Optional ProgressNotifier.

    Returns:
        dict: {"id", "slug", "filename", "size", "type", "url",
        "publicUrl", "expiresAt", "completed"}

    Raises:
        NotFound: Unknown or expired session.
        IncompleteUpload: Chunks are missing; nothing is changed.
        FinalizeInProgress: Another finalize holds the session.
            Also raised for a completed session whose result has expired.
        SizeMismatch: Assembled size differs from the declared size.
        StorageError: Reading chunks or writing the object failed.
        IdGenerationExhausted: No unique slug/id could be generated.
    """
    session = require_complete_session(file_id)
    relay = relay or BlobRelay()
    notifier = notifier or ProgressNotifier()

    if session.status == UploadSession.Status.COMPLETED:
        result = notifier.last_result(file_id)
        if result is None:
            raise FinalizeInProgress(f"Upload session {file_id} is already finalized.")
        logger.info("Upload already finalized: file_id=%s", file_id)
        return result

    if not set_session_status(
        file_id, UploadSession.Status.FINALIZING, from_statuses=FINALIZABLE_STATUSES
    ):
        raise FinalizeInProgress(f"Upload session {file_id} is already being finalized.")

    deadline = time.monotonic() + settings.UPLOAD_FINALIZE_TIMEOUT_SECONDS
    logger.info(
        "Finalizing upload: file_id=%s chunks=%d size=%d",
        file_id,
        session.total_chunks,
        session.file_size,
    )

    try:
        data = relay.read_all(file_id, range(session.total_chunks))
        if len(data) != session.file_size:
            raise SizeMismatch(file_id, session.file_size, len(data))
        if time.monotonic() > deadline:
            raise FinalizeTimeout(f"Finalize of {file_id} exceeded the timeout.")

        now = timezone.now()
        upload = create_upload_record(
            filename=session.file_name,
            content_type=session.file_type,
            size_bytes=len(data),
            domain=resolve_domain(submitted_domain),
            uploaded_at=now,
            expires_at=compute_expires_at(expires, now),
        )
        upload = commit_upload(upload, data, relay, deadline=deadline)
    except Exception as exc:
        logger.error("Finalize failed: file_id=%s error=%s", file_id, exc)
        set_session_status(file_id, UploadSession.Status.FAILED, error=str(exc))
        _report_failure(notifier, file_id, exc)
        raise

    set_session_status(file_id, UploadSession.Status.COMPLETED)
    with safe_dispatch(f"clear chunks of {file_id}", logger):
        clear_chunks(file_id, relay, session.total_chunks)

    result = build_upload_result(upload)
    with safe_dispatch("publish upload result", logger):
        notifier.publish_result(file_id, result)
    logger.info("Chunked upload finalized: file_id=%s slug=%s", file_id, upload.slug)
    return result


def upload_file(
    file,
    expires=None,
    submitted_domain="",
    host="",
    session_id=None,
    *,
    relay=None,
    notifier=None,
):
    """Upload a small file in one request (no chunk ledger).

    Uses the same size-driven commit as finalize_upload. Progress is
    reported under ``session_id`` when given, otherwise under the new
    upload's id: 5 once the record exists, 10 when the write starts,
    then per multipart part up to 100.

    Args:
        file: A Django UploadedFile instance.
        expires: Expiry choice ("1h", "1d", "7d", "30d").
        submitted_domain: Requested public domain.
        host: Request host, used when the submitted domain is not allowed.
        session_id: Optional client-chosen progress key.

    Returns:
        Upload result dict (see build_upload_result) plus "uploadId".
    """
    content_type, size_bytes = validate_file(file)
    relay = relay or BlobRelay()
    notifier = notifier or ProgressNotifier()

    file.seek(0)
    data = file.read()
    if len(data) != size_bytes:
        raise SizeMismatch(session_id or file.name, size_bytes, len(data))

    progress_key = session_id

    def _report(percent):
        with safe_dispatch("report upload progress", logger):
            notifier.publish_progress(progress_key, percent)

    def _on_progress(done, total):
        _report(10 + compute_progress(done, total) * 90 // 100)

    try:
        now = timezone.now()
        upload = create_upload_record(
            filename=sanitize_file_name(file.name),
            content_type=content_type,
            size_bytes=size_bytes,
            domain=resolve_domain(submitted_domain, host),
            uploaded_at=now,
            expires_at=compute_expires_at(expires, now),
        )
        progress_key = progress_key or upload.pk
        _report(5)
        deadline = time.monotonic() + settings.UPLOAD_FINALIZE_TIMEOUT_SECONDS
        _report(10)
        upload = commit_upload(upload, data, relay, on_progress=_on_progress, deadline=deadline)
    except Exception as exc:
        logger.error("Simple upload failed: file=%s error=%s", file.name, exc)
        if progress_key:
            _report_failure(notifier, progress_key, exc)
        raise

    result = build_upload_result(upload)
    result["uploadId"] = upload.pk
    with safe_dispatch("publish upload result", logger):
        notifier.publish_result(progress_key, result)
    logger.info(
        "Upload completed: file=%s slug=%s size=%d", file.name, upload.slug, size_bytes
    )
    return result


def get_upload_progress(session_id, notifier=None):
    """Side-effect free progress lookup for polling clients.

    Combines the live session (if it still exists) with the persisted
    progress record, which outlives the session once it is swept.

    Returns:
        dict: {"progress", "received_chunks", "total_chunks",
        "is_complete", "has_result", "result", "error"}

    Raises:
        NotFound: Neither a session nor a progress record exists.
    """
    notifier = notifier or ProgressNotifier()
    session = UploadSession.objects.filter(pk=session_id).first()
    state = notifier.get_state(session_id)
    if session is None and state is None:
        raise NotFound(session_id)

    if session is not None:
        total = session.total_chunks
        if session.status == UploadSession.Status.COMPLETED:
            received = total
        else:
            received = count_received(session_id)
    else:
        received = state.received_chunks
        total = state.total_chunks

    result = state.result if state else None
    if state is not None:
        progress = state.progress
    else:
        progress = compute_progress(received, total)

    return {
        "progress": progress,
        "received_chunks": received,
        "total_chunks": total,
        "is_complete": result is not None
        or (total is not None and received is not None and received >= total),
        "has_result": result is not None,
        "result": result,
        "error": state.error_message if state and state.is_failed else "",
    }


def sweep_expired_sessions(ttl_hours=None, batch_size=SWEEP_BATCH_SIZE, dry_run=False, relay=None):
    """Remove sessions idle for longer than ``ttl_hours``.

    Covers abandoned sessions and finalized ones kept as ``completed``.
    For each: delete stored chunk bytes (best-effort),
    chunk records and the session row. Processes at most ``batch_size``
    sessions per call; the rest is reported as remaining.

    Args:
        ttl_hours: Inactivity window. Defaults to
            settings.UPLOAD_SESSION_TTL_HOURS.
        batch_size: Maximum sessions removed per call.
        dry_run: Count only, change nothing.

    Returns:
        dict: {"deleted": int, "remaining": int}
    """
    if ttl_hours is None:
        ttl_hours = settings.UPLOAD_SESSION_TTL_HOURS

    cutoff = timezone.now() - timedelta(hours=ttl_hours)
    expired_qs = UploadSession.objects.filter(updated_at__lt=cutoff)
    total_expired = expired_qs.count()

    if total_expired == 0 or dry_run:
        return {"deleted": 0, "remaining": total_expired}

    expired = list(expired_qs.order_by("pk").values_list("pk", "total_chunks")[:batch_size])
    relay = relay or BlobRelay()

    deleted = 0
    for file_id, total_chunks in expired:
        try:
            clear_chunks(file_id, relay, total_chunks)
            delete_upload_session(file_id)
            deleted += 1
        except DatabaseError as exc:
            logger.error("Failed to sweep upload session %s: %s", file_id, exc)

    remaining = max(0, total_expired - deleted)
    logger.info(
        "Swept %d expired upload sessions, %d remaining.", deleted, remaining
    )
    return {"deleted": deleted, "remaining": remaining}


def purge_expired_progress(ttl_seconds=None):
    """Delete progress records not updated within ``ttl_seconds``.

    Returns:
        Number of records deleted.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.UPLOAD_PROGRESS_TTL_SECONDS
    cutoff = timezone.now() - timedelta(seconds=ttl_seconds)
    deleted, _ = UploadProgress.objects.filter(updated_at__lt=cutoff).delete()
    if deleted:
        logger.info("Purged %d expired progress records.", deleted)
    return deleted
