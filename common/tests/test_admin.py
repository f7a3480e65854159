"""Tests for common app admin actions."""

from unittest.mock import MagicMock

import pytest
from django.contrib.admin.sites import AdminSite

from common.admin import WebhookEndpointAdmin
from common.models import WebhookEndpoint


@pytest.mark.django_db
class TestDeactivateEndpointsAction:
    """Tests for the deactivate_endpoints admin action."""

    def test_deactivates_only_active_endpoints(self, make_webhook_endpoint):
        active = make_webhook_endpoint(url="https://a.example.com/hook")
        inactive = make_webhook_endpoint(
            url="https://b.example.com/hook", is_active=False
        )
        model_admin = WebhookEndpointAdmin(WebhookEndpoint, AdminSite())
        model_admin.message_user = MagicMock()

        model_admin.deactivate_endpoints(
            MagicMock(), WebhookEndpoint.objects.filter(pk__in=[active.pk, inactive.pk])
        )

        active.refresh_from_db()
        assert active.is_active is False
        model_admin.message_user.assert_called_once()
        assert "1 endpoint(s)" in model_admin.message_user.call_args.args[1]
