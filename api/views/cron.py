"""Cleanup endpoint for an external scheduler."""

import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET

from api.decorators import cron_secret_required
from uploads.services.uploads import purge_expired_progress, sweep_expired_sessions

logger = logging.getLogger(__name__)


@require_GET
@cron_secret_required
def cleanup_view(request):
    """Sweep expired upload sessions and stale progress records."""
    result = sweep_expired_sessions()
    progress_deleted = purge_expired_progress()
    return JsonResponse(
        {
            "success": True,
            "cleanedCount": result["deleted"],
            "remaining": result["remaining"],
            "progressDeleted": progress_deleted,
            "message": f"Cleaned up {result['deleted']} expired sessions",
        }
    )
