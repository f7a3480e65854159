"""Unit tests for the progress notifier."""

import pytest

from uploads.models import UploadProgress
from uploads.services.progress import ProgressNotifier, channel_key


@pytest.mark.django_db
class TestPublishProgress:
    """Tests for ProgressNotifier.publish_progress()."""

    def test_first_report_creates_record(self, notifier, channel):
        assert notifier.publish_progress("s1", 33, received_chunks=1, total_chunks=3)

        state = notifier.get_state("s1")
        assert (state.progress, state.received_chunks, state.total_chunks) == (33, 1, 3)
        key, name, payload = channel.events[0]
        assert (key, name, payload["progress"]) == ("upload-s1", "progress", 33)
        assert isinstance(payload["timestamp"], int)

    def test_monotonic(self, notifier, channel):
        notifier.publish_progress("s1", 50)
        assert notifier.publish_progress("s1", 20) is False
        assert notifier.last_progress("s1") == 50
        assert channel.names() == ["progress"]

    def test_equal_report_accepted(self, notifier):
        notifier.publish_progress("s1", 50)
        assert notifier.publish_progress("s1", 50) is True

    def test_received_chunks_never_decrease(self, notifier):
        notifier.publish_progress("s1", 66, received_chunks=2, total_chunks=3)
        notifier.publish_progress("s1", 66, received_chunks=1, total_chunks=3)
        assert notifier.get_state("s1").received_chunks == 2

    def test_clamped_to_range(self, notifier):
        notifier.publish_progress("s1", 150)
        assert notifier.last_progress("s1") == 100

    def test_failure_is_terminal(self, notifier, channel):
        notifier.publish_progress("s1", 40)
        notifier.publish_error("s1", "disk full")

        assert notifier.publish_progress("s1", 90) is False
        assert notifier.last_progress("s1") == UploadProgress.FAILED
        assert channel.names() == ["progress", "error"]
        assert channel.events[-1][2] == {"error": "disk full"}

    def test_unknown_session(self, notifier):
        assert notifier.last_progress("nope") is None
        assert notifier.last_result("nope") is None


@pytest.mark.django_db
class TestPublishResult:
    """Tests for ProgressNotifier.publish_result()."""

    def test_result_sets_progress_to_100(self, notifier, channel):
        notifier.publish_progress("s1", 80)
        notifier.publish_result("s1", {"slug": "k3x9qa"})

        assert notifier.last_progress("s1") == 100
        assert notifier.last_result("s1") == {"slug": "k3x9qa"}
        assert channel.events[-1] == ("upload-s1", "result", {"slug": "k3x9qa"})

    def test_result_supersedes_failure(self, notifier):
        notifier.publish_error("s1", "timeout")
        notifier.publish_result("s1", {"slug": "k3x9qa"})

        state = notifier.get_state("s1")
        assert state.progress == 100
        assert state.error_message == ""


@pytest.mark.django_db
class TestPushIsBestEffort:
    """Push failures never affect the persisted state."""

    def test_channel_failure_swallowed(self):
        class BrokenChannel:
            def publish(self, channel_key, event_name, payload):
                raise ConnectionError("push service down")

        notifier = ProgressNotifier(channel=BrokenChannel())
        assert notifier.publish_progress("s1", 10) is True
        assert notifier.last_progress("s1") == 10

    def test_default_channel_from_settings(self, settings):
        from common.services.webhook import WebhookChannel

        settings.UPLOAD_EVENT_CHANNEL = "common.services.webhook.WebhookChannel"
        assert isinstance(ProgressNotifier().channel, WebhookChannel)

    def test_channel_key(self):
        assert channel_key("abc") == "upload-abc"
