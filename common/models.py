"""Shared abstract base models used across all apps."""

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from common.utils import uuid7


class TimeStampedModel(models.Model):
    """Abstract base providing consistent created_at/updated_at timestamps."""

    created_at = models.DateTimeField(auto_now_add=True, verbose_name="created at")
    updated_at = models.DateTimeField(auto_now=True, verbose_name="updated at")

    class Meta:
        abstract = True


class WebhookEndpoint(TimeStampedModel):
    """Configured webhook destination for upload channel events.

    Channel events (``progress``, ``result``, ``error``) are pushed via
    HTTP POST to active endpoints whose event_types match the event name.
    An empty event_types list matches all events (catch-all).
    """

    id = models.UUIDField(primary_key=True, default=uuid7, editable=False)
    url = models.URLField(max_length=2048, help_text="Target URL to POST events to")
    secret = models.CharField(
        max_length=255,
        help_text="Shared secret for HMAC-SHA256 request signing",
    )
    event_types = models.JSONField(
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text=(
            'JSON list of event names to subscribe to (e.g., ["result"]). '
            "Empty list matches all events."
        ),
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Enable or disable delivery to this endpoint",
    )

    class Meta:
        db_table = "webhook_endpoint"
        verbose_name = "webhook endpoint"
        verbose_name_plural = "webhook endpoints"
        ordering = ["-created_at"]

    def __str__(self):
        status = "active" if self.is_active else "inactive"
        return f"{self.url} ({status})"

    def accepts(self, event_name):
        return not self.event_types or event_name in self.event_types
