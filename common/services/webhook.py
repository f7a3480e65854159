"""Webhook push channel for upload events."""

import hashlib
import hmac
import json
import logging

import httpx
from django.db import transaction

from common.utils import safe_dispatch

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


def compute_signature(payload_bytes, secret):
    """Compute HMAC-SHA256 signature for webhook payload.

    Args:
        payload_bytes: The raw bytes of the JSON payload.
        secret: The shared secret string.

    Returns:
        Hex-encoded HMAC-SHA256 signature string.
    """
    return hmac.new(
        secret.encode("utf-8"), payload_bytes, hashlib.sha256
    ).hexdigest()


def deliver_to_endpoint(client, endpoint, channel_key, event_name, payload):
    """Deliver a single channel event to a single webhook endpoint.

    Posts ``{"channel": ..., "event": ..., "data": ...}`` as JSON with an
    HMAC signature and metadata headers. Never raises for HTTP or
    transport failures; the outcome is returned instead.

    Args:
        client: An httpx.Client instance (for connection pooling).
        endpoint: A WebhookEndpoint instance.
        channel_key: Channel the event belongs to (e.g., "upload-<fileId>").
        event_name: "progress", "result" or "error".
        payload: JSON-serializable event data.

    Returns:
        dict: {"ok": bool, "status_code": int|None, "error": str}
    """
    body = {"channel": channel_key, "event": event_name, "data": payload}
    payload_bytes = json.dumps(body, default=str).encode("utf-8")
    signature = compute_signature(payload_bytes, endpoint.secret)

    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": signature,
        "X-Webhook-Event": event_name,
        "X-Webhook-Channel": channel_key,
    }

    try:
        response = client.post(
            str(endpoint.url), content=payload_bytes, headers=headers
        )
        response.raise_for_status()
        logger.info(
            "Webhook delivered: channel=%s event=%s endpoint=%s status=%d",
            channel_key,
            event_name,
            endpoint.url,
            response.status_code,
        )
        return {"ok": True, "status_code": response.status_code, "error": ""}
    except httpx.HTTPStatusError as exc:
        error = f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
        logger.warning(
            "Webhook HTTP error: channel=%s endpoint=%s error=%s",
            channel_key,
            endpoint.url,
            error,
        )
        return {"ok": False, "status_code": exc.response.status_code, "error": error}
    except httpx.RequestError as exc:
        error = f"{type(exc).__name__}: {exc}"
        logger.warning(
            "Webhook request error: channel=%s endpoint=%s error=%s",
            channel_key,
            endpoint.url,
            error,
        )
        return {"ok": False, "status_code": None, "error": error}


def deliver_channel_event(channel_key, event_name, payload):
    """POST a channel event to every active endpoint subscribed to it.

    Each endpoint gets exactly one attempt. Failures are logged and
    counted, never retried.

    Returns:
        dict: {"endpoints": int, "delivered": int, "failed": int}
    """
    from common.models import WebhookEndpoint

    endpoints = [
        ep
        for ep in WebhookEndpoint.objects.filter(is_active=True)
        if ep.accepts(event_name)
    ]
    if not endpoints:
        return {"endpoints": 0, "delivered": 0, "failed": 0}

    delivered = 0
    with httpx.Client(timeout=WEBHOOK_TIMEOUT) as client:
        for ep in endpoints:
            result = deliver_to_endpoint(client, ep, channel_key, event_name, payload)
            if result["ok"]:
                delivered += 1

    return {
        "endpoints": len(endpoints),
        "delivered": delivered,
        "failed": len(endpoints) - delivered,
    }


class WebhookChannel:
    """Fire-and-forget push channel backed by webhook endpoints.

    ``publish`` schedules delivery once the surrounding transaction
    commits, so listeners never hear about state that was rolled back.
    Delivery happens at most once; a listener that misses an event has
    to poll for the persisted state.
    """

    def publish(self, channel_key, event_name, payload):
        def _dispatch():
            with safe_dispatch("dispatch channel event", logger):
                from common.tasks import deliver_channel_event_task

                deliver_channel_event_task.delay(channel_key, event_name, payload)

        transaction.on_commit(_dispatch)
