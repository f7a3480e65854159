"""
API view decorators for error mapping and cron authorization.
"""

import hmac
import logging
from functools import wraps

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.http import JsonResponse

from uploads.exceptions import IncompleteUpload, StorageError, UploadError

logger = logging.getLogger(__name__)


def error_payload(exc):
    """JSON body for an UploadError or ValidationError."""
    if isinstance(exc, ValidationError):
        return {"error": "; ".join(exc.messages), "code": getattr(exc, "code", None)}

    payload = {"error": str(exc)}
    if isinstance(exc, IncompleteUpload):
        payload.update(
            receivedChunks=exc.received,
            totalChunks=exc.total,
            missingChunks=exc.missing,
        )
    return payload


def json_errors(view_func):
    """
    Turn upload errors into JSON responses.

    ValidationError maps to 400 and every UploadError to its status_code.
    A DatabaseError that escaped the services is answered like a
    StorageError. Anything else propagates to Django's normal 500 handling.
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ValidationError as exc:
            return JsonResponse(error_payload(exc), status=400)
        except UploadError as exc:
            if exc.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.path, exc)
            return JsonResponse(error_payload(exc), status=exc.status_code)
        except DatabaseError as exc:
            logger.exception("%s %s failed: %s", request.method, request.path, exc)
            return JsonResponse(
                {"error": "Storage is unavailable."}, status=StorageError.status_code
            )

    return wrapper


def cron_secret_required(view_func):
    """
    Reject requests without ``Authorization: Bearer <CRON_SECRET>``.

    An empty CRON_SECRET disables the endpoint entirely.
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        secret = settings.CRON_SECRET
        header = request.headers.get("Authorization", "")
        expected = f"Bearer {secret}"
        if not secret or not hmac.compare_digest(header.encode(), expected.encode()):
            logger.warning("Unauthorized cron request from %s", request.META.get("REMOTE_ADDR"))
            return JsonResponse({"error": "Unauthorized"}, status=401)
        return view_func(request, *args, **kwargs)

    return wrapper
