"""Celery tasks for the uploads app."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    name="uploads.tasks.cleanup_expired_upload_sessions_task",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def cleanup_expired_upload_sessions_task(self):
    """Delete upload sessions idle for longer than UPLOAD_SESSION_TTL_HOURS.

    Processes at most SWEEP_BATCH_SIZE (500) sessions per run to stay
    within CELERY_TASK_TIME_LIMIT (300s), then purges progress records
    older than UPLOAD_PROGRESS_TTL_SECONDS.

    Returns:
        dict: {"deleted": int, "remaining": int, "progress_deleted": int}
    """
    from uploads.services.uploads import purge_expired_progress, sweep_expired_sessions

    result = sweep_expired_sessions()
    result["progress_deleted"] = purge_expired_progress()

    if result["deleted"] == 0 and result["progress_deleted"] == 0:
        logger.info("No expired upload sessions to clean up.")
    return result


@shared_task(
    name="uploads.tasks.finalize_upload_task",
    bind=True,
    max_retries=0,
)
def finalize_upload_task(self, file_id, expires=None, domain=""):
    """Finalize a chunked upload in the background.

    The outcome (result or error) is published through the progress
    notifier, which is what clients poll. Failures are logged rather
    than re-raised: the session is already marked failed and the client
    may retry finalize.

    Returns:
        dict: The upload result, or {"error": str} on failure.
    """
    from uploads.exceptions import UploadError
    from uploads.services.uploads import finalize_upload

    try:
        return finalize_upload(file_id, expires=expires, submitted_domain=domain)
    except UploadError as exc:
        logger.warning("Background finalize failed: file_id=%s error=%s", file_id, exc)
        return {"error": str(exc)}
