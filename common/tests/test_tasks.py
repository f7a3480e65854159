"""Unit tests for common app Celery tasks."""

from unittest.mock import patch

import pytest

from common.tasks import deliver_channel_event_task


@pytest.mark.django_db
class TestDeliverChannelEventTask:
    """Tests for deliver_channel_event_task."""

    def test_noop_without_endpoints(self):
        result = deliver_channel_event_task("upload-abc", "progress", {"progress": 10})
        assert result == {"endpoints": 0, "delivered": 0, "failed": 0}

    def test_returns_delivery_counts(self, make_webhook_endpoint):
        make_webhook_endpoint()
        with patch(
            "common.services.webhook.deliver_to_endpoint",
            return_value={"ok": False, "status_code": 500, "error": "HTTP 500"},
        ):
            result = deliver_channel_event_task("upload-abc", "result", {"slug": "x"})
        assert result == {"endpoints": 1, "delivered": 0, "failed": 1}

    def test_not_retried(self):
        assert deliver_channel_event_task.max_retries == 0
