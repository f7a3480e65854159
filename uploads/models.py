"""Upload data models: chunked sessions, chunk ledger, public uploads, progress."""

from common.models import TimeStampedModel
from common.utils import uuid7
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class UploadSession(TimeStampedModel):
    """Bookkeeping for one in-progress chunked upload, keyed by fileId.

    ``updated_at`` doubles as the last-activity timestamp: every accepted
    chunk bumps it, and the sweep removes sessions idle for longer than
    UPLOAD_SESSION_TTL_HOURS.

    Status lifecycle:
        created → receiving → ready → finalizing → completed
        (any) → failed, failed → finalizing (client retry)
    """

    class Status(models.TextChoices):
        CREATED = "created", "Created"
        RECEIVING = "receiving", "Receiving"
        READY = "ready", "Ready to finalize"
        FINALIZING = "finalizing", "Finalizing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    file_id = models.CharField(max_length=128, primary_key=True)
    file_name = models.CharField(max_length=255)
    file_type = models.CharField(max_length=255)
    file_size = models.PositiveBigIntegerField(help_text="Expected total size in bytes")
    total_chunks = models.PositiveIntegerField()
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.CREATED,
    )
    error_message = models.TextField(blank=True)

    class Meta:
        db_table = "upload_session"
        verbose_name = "upload session"
        verbose_name_plural = "upload sessions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["updated_at"], name="upload_sess_updated_5c1e2a_idx"),
            models.Index(fields=["status"], name="upload_sess_status_9b7d41_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_chunks__gte=1),
                name="upload_session_total_chunks_positive",
            ),
        ]

    def __str__(self):
        return f"{self.file_name} ({self.get_status_display()})"


class ChunkRecord(models.Model):
    """Ledger entry: chunk ``chunk_index`` of a session is durably stored.

    The bytes themselves live in object storage under
    ``chunks/<file_id>/<chunk_index>``.
    """

    id = models.UUIDField(primary_key=True, default=uuid7, editable=False)
    session = models.ForeignKey(
        UploadSession,
        on_delete=models.CASCADE,
        related_name="chunks",
    )
    chunk_index = models.PositiveIntegerField()
    size_bytes = models.PositiveBigIntegerField()
    created_at = models.DateTimeField(auto_now_add=True, verbose_name="created at")

    class Meta:
        db_table = "upload_chunk"
        verbose_name = "chunk record"
        verbose_name_plural = "chunk records"
        ordering = ["session", "chunk_index"]
        constraints = [
            models.UniqueConstraint(
                fields=["session", "chunk_index"],
                name="unique_session_chunk_index",
            ),
        ]

    def __str__(self):
        return f"{self.session_id}#{self.chunk_index}"


class UploadQuerySet(models.QuerySet):
    def resolvable(self):
        """Uploads whose bytes are committed to storage."""
        return self.exclude(storage_key="")


class Upload(models.Model):
    """Completed, publicly addressable upload.

    The row is inserted with an empty ``storage_key`` before the bytes are
    written, and updated with the real key once the write commits. Rows
    with an empty key are never served by the public lookup.
    """

    id = models.CharField(max_length=32, primary_key=True)
    slug = models.CharField(max_length=32, unique=True)
    filename = models.CharField(max_length=255)
    content_type = models.CharField(max_length=255)
    size_bytes = models.PositiveBigIntegerField()
    domain = models.CharField(max_length=255)
    storage_key = models.CharField(max_length=1024, blank=True, default="")
    uploaded_at = models.DateTimeField()
    expires_at = models.DateTimeField()

    objects = UploadQuerySet.as_manager()

    class Meta:
        db_table = "upload"
        verbose_name = "upload"
        verbose_name_plural = "uploads"
        ordering = ["-uploaded_at"]
        indexes = [
            models.Index(fields=["expires_at"], name="upload_expires_3e8f0c_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(expires_at__gte=models.F("uploaded_at")),
                name="upload_expires_after_upload",
            ),
        ]

    def __str__(self):
        return f"{self.filename} ({self.slug})"

    @property
    def is_committed(self):
        return bool(self.storage_key)


class UploadProgress(models.Model):
    """Last known progress/result for an upload session.

    This row is what a poll reads; push events only mirror it. It
    outlives the UploadSession so a client can still fetch the final
    result after cleanup, and is swept after UPLOAD_PROGRESS_TTL_SECONDS.
    """

    FAILED = -1

    session_id = models.CharField(max_length=128, primary_key=True)
    progress = models.SmallIntegerField(default=0)
    received_chunks = models.PositiveIntegerField(null=True, blank=True)
    total_chunks = models.PositiveIntegerField(null=True, blank=True)
    result = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    error_message = models.TextField(blank=True)
    updated_at = models.DateTimeField(verbose_name="updated at")

    class Meta:
        db_table = "upload_progress"
        verbose_name = "upload progress"
        verbose_name_plural = "upload progress"
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["updated_at"], name="upload_prog_updated_7a2b9d_idx"),
        ]

    def __str__(self):
        return f"{self.session_id}: {self.progress}"

    @property
    def is_failed(self):
        return self.progress == self.FAILED
