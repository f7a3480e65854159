"""
Celery application configuration for Linkdrop.

Integrates Celery with django-configurations for class-based settings.
Must call configurations.setup() before creating the Celery app.

Tasks:
    uploads.tasks.cleanup_expired_upload_sessions_task (beat)
    uploads.tasks.finalize_upload_task (queued by the reassemble endpoint)
    common.tasks.deliver_channel_event_task (queued on commit by WebhookChannel)
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "boot.settings")
os.environ.setdefault("DJANGO_CONFIGURATION", "Dev")

import configurations

configurations.setup()

from celery import Celery  # noqa: E402

app = Celery("linkdrop")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
