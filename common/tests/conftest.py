"""Shared fixtures for common app tests."""

import pytest


@pytest.fixture
def make_webhook_endpoint(db):
    """Factory fixture to create WebhookEndpoint instances."""

    def _make(
        url="https://example.com/webhook",
        secret="test-secret",
        event_types=None,
        is_active=True,
    ):
        from common.models import WebhookEndpoint

        return WebhookEndpoint.objects.create(
            url=url,
            secret=secret,
            event_types=event_types or [],
            is_active=is_active,
        )

    return _make


@pytest.fixture
def ok_response():
    """A MagicMock standing in for a successful httpx.Response."""
    from unittest.mock import MagicMock

    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    return response
