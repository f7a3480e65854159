"""Celery tasks for the common app."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    name="common.tasks.deliver_channel_event_task",
    ignore_result=True,
    max_retries=0,
)
def deliver_channel_event_task(channel_key, event_name, payload):
    """Push one channel event to the subscribed webhook endpoints.

    Dispatched via transaction.on_commit() by WebhookChannel.publish.
    Never retried: push delivery is best-effort and clients fall back to
    polling the persisted progress record.

    Returns:
        dict: {"endpoints": int, "delivered": int, "failed": int}
    """
    from common.services.webhook import deliver_channel_event

    result = deliver_channel_event(channel_key, event_name, payload)
    if result["failed"] > 0:
        logger.warning(
            "Channel event %s/%s: %d of %d endpoint deliveries failed.",
            channel_key,
            event_name,
            result["failed"],
            result["endpoints"],
        )
    return result
