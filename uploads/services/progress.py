"""Progress notifier: persisted progress/result/error plus push events.

Every publish first writes the UploadProgress row, which is what the
progress endpoint reads, and then hands an event to the configured push
channel (``settings.UPLOAD_EVENT_CHANNEL``). Push delivery is best-effort:
a client that misses every event can still poll the row.
"""

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Value
from django.db.models.functions import Coalesce, Greatest
from django.utils import timezone
from django.utils.module_loading import import_string

from common.utils import safe_dispatch
from uploads.models import UploadProgress

logger = logging.getLogger(__name__)


def channel_key(session_id):
    return f"upload-{session_id}"


def get_event_channel():
    return import_string(settings.UPLOAD_EVENT_CHANNEL)()


class ProgressNotifier:
    """Reports upload progress, results and errors for a session.

    Progress is monotonic: a report lower than the stored value is
    dropped, and once a session has failed no further progress is
    accepted. A result always wins, so a successful client retry after a
    failure is still visible.

    Args:
        channel: Object with ``publish(channel_key, event_name, payload)``.
            Defaults to an instance of settings.UPLOAD_EVENT_CHANNEL.
    """

    def __init__(self, channel=None):
        self.channel = channel or get_event_channel()

    def publish_progress(self, session_id, percent, received_chunks=None, total_chunks=None):
        """Record and push a progress percentage.

        Returns:
            True if the report was accepted, False if it was stale or the
            session already failed.
        """
        percent = max(0, min(100, int(percent)))
        now = timezone.now()
        fields = {"progress": percent, "updated_at": now}
        if total_chunks is not None:
            fields["total_chunks"] = total_chunks

        update_fields = dict(fields)
        if received_chunks is not None:
            update_fields["received_chunks"] = Greatest(
                Coalesce(F("received_chunks"), Value(0)), Value(received_chunks)
            )

        accepting = UploadProgress.objects.filter(
            session_id=session_id,
            progress__gte=0,
            progress__lte=percent,
        )
        if not accepting.update(**update_fields):
            try:
                with transaction.atomic():
                    UploadProgress.objects.create(
                        session_id=session_id,
                        received_chunks=received_chunks,
                        **fields,
                    )
            except IntegrityError:
                # Row exists: either it is ahead of us, failed, or a
                # concurrent first report just created it.
                if not accepting.update(**update_fields):
                    return False

        self._push(
            session_id,
            "progress",
            {"progress": percent, "timestamp": int(now.timestamp() * 1000)},
        )
        return True

    def publish_result(self, session_id, payload):
        """Record the final result (progress 100) and push it."""
        UploadProgress.objects.update_or_create(
            session_id=session_id,
            defaults={
                "progress": 100,
                "result": payload,
                "error_message": "",
                "updated_at": timezone.now(),
            },
        )
        self._push(session_id, "result", payload)

    def publish_error(self, session_id, message):
        """Record the failure sentinel with ``message`` and push it."""
        UploadProgress.objects.update_or_create(
            session_id=session_id,
            defaults={
                "progress": UploadProgress.FAILED,
                "error_message": message,
                "updated_at": timezone.now(),
            },
        )
        self._push(session_id, "error", {"error": message})
        logger.warning("Upload failed: session=%s error=%s", session_id, message)

    def get_state(self, session_id):
        return UploadProgress.objects.filter(session_id=session_id).first()

    def last_progress(self, session_id):
        """Last stored percentage (-1 when failed), or None if never reported."""
        state = self.get_state(session_id)
        return state.progress if state else None

    def last_result(self, session_id):
        state = self.get_state(session_id)
        return state.result if state else None

    def _push(self, session_id, event_name, payload):
        with safe_dispatch(f"publish upload {event_name}", logger):
            self.channel.publish(channel_key(session_id), event_name, payload)
