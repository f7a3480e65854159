"""Unit tests for the webhook push channel."""

import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from common.services.webhook import (
    WebhookChannel,
    compute_signature,
    deliver_channel_event,
    deliver_to_endpoint,
)


class TestComputeSignature:
    """Tests for compute_signature() function."""

    def test_known_hmac(self):
        payload = b'{"key": "value"}'
        secret = "test-secret"
        expected = hmac.new(
            secret.encode("utf-8"), payload, hashlib.sha256
        ).hexdigest()
        assert compute_signature(payload, secret) == expected

    def test_different_secret_different_signature(self):
        payload = b'{"key": "value"}'
        sig1 = compute_signature(payload, "secret-1")
        sig2 = compute_signature(payload, "secret-2")
        assert sig1 != sig2


@pytest.mark.django_db
class TestDeliverToEndpoint:
    """Tests for deliver_to_endpoint() function."""

    def test_successful_delivery(self, make_webhook_endpoint, ok_response):
        endpoint = make_webhook_endpoint()
        client = MagicMock(spec=httpx.Client)
        client.post.return_value = ok_response

        result = deliver_to_endpoint(
            client, endpoint, "upload-abc", "progress", {"progress": 40}
        )

        assert result == {"ok": True, "status_code": 200, "error": ""}

    def test_http_error_response(self, make_webhook_endpoint):
        endpoint = make_webhook_endpoint()
        mock_response = MagicMock()
        mock_response.status_code = 500
        mock_response.text = "Internal Server Error"
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Server Error", request=MagicMock(), response=mock_response
        )
        client = MagicMock(spec=httpx.Client)
        client.post.return_value = mock_response

        result = deliver_to_endpoint(client, endpoint, "upload-abc", "error", {})

        assert result["ok"] is False
        assert result["status_code"] == 500
        assert "HTTP 500" in result["error"]

    def test_network_error(self, make_webhook_endpoint):
        endpoint = make_webhook_endpoint()
        client = MagicMock(spec=httpx.Client)
        client.post.side_effect = httpx.ConnectError("Connection refused")

        result = deliver_to_endpoint(client, endpoint, "upload-abc", "result", {})

        assert result["ok"] is False
        assert result["status_code"] is None
        assert "ConnectError" in result["error"]

    def test_body_and_headers(self, make_webhook_endpoint, ok_response):
        endpoint = make_webhook_endpoint()
        client = MagicMock(spec=httpx.Client)
        client.post.return_value = ok_response

        deliver_to_endpoint(client, endpoint, "upload-abc", "result", {"slug": "k3x9qa"})

        kwargs = client.post.call_args.kwargs
        headers = kwargs["headers"]
        assert json.loads(kwargs["content"]) == {
            "channel": "upload-abc",
            "event": "result",
            "data": {"slug": "k3x9qa"},
        }
        assert headers["X-Webhook-Event"] == "result"
        assert headers["X-Webhook-Channel"] == "upload-abc"
        assert headers["X-Webhook-Signature"] == compute_signature(
            kwargs["content"], endpoint.secret
        )


@pytest.mark.django_db
class TestDeliverChannelEvent:
    """Tests for deliver_channel_event() function."""

    def test_skips_inactive_and_unsubscribed_endpoints(self, make_webhook_endpoint):
        make_webhook_endpoint(url="https://a.example.com/hook")
        make_webhook_endpoint(url="https://b.example.com/hook", is_active=False)
        make_webhook_endpoint(url="https://c.example.com/hook", event_types=["result"])

        with patch(
            "common.services.webhook.deliver_to_endpoint",
            return_value={"ok": True, "status_code": 200, "error": ""},
        ) as mock_deliver:
            result = deliver_channel_event("upload-abc", "progress", {"progress": 5})

        assert result == {"endpoints": 1, "delivered": 1, "failed": 0}
        endpoint = mock_deliver.call_args.args[1]
        assert endpoint.url == "https://a.example.com/hook"

    def test_each_endpoint_attempted_once(self, make_webhook_endpoint):
        make_webhook_endpoint(url="https://a.example.com/hook")
        make_webhook_endpoint(url="https://b.example.com/hook")

        with patch(
            "common.services.webhook.deliver_to_endpoint",
            side_effect=[
                {"ok": False, "status_code": None, "error": "ConnectError"},
                {"ok": True, "status_code": 200, "error": ""},
            ],
        ) as mock_deliver:
            result = deliver_channel_event("upload-abc", "error", {"error": "x"})

        assert mock_deliver.call_count == 2
        assert result == {"endpoints": 2, "delivered": 1, "failed": 1}


@pytest.mark.django_db
class TestWebhookChannel:
    """Tests for WebhookChannel.publish()."""

    def test_dispatches_after_commit(self, django_capture_on_commit_callbacks):
        with patch("common.tasks.deliver_channel_event_task.delay") as mock_delay:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                WebhookChannel().publish("upload-abc", "progress", {"progress": 50})
                mock_delay.assert_not_called()

        assert len(callbacks) == 1
        mock_delay.assert_called_once_with("upload-abc", "progress", {"progress": 50})

    def test_broker_failure_is_swallowed(self, django_capture_on_commit_callbacks):
        with patch(
            "common.tasks.deliver_channel_event_task.delay",
            side_effect=ConnectionError("broker down"),
        ):
            with django_capture_on_commit_callbacks(execute=True):
                WebhookChannel().publish("upload-abc", "result", {})
