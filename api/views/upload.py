"""Upload endpoints: simple upload, chunk intake, reassembly, progress polling."""

import json
import logging

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from api.decorators import json_errors
from uploads.services.uploads import (
    finalize_upload,
    get_upload_progress,
    require_complete_session,
    submit_chunk,
    upload_file,
)

logger = logging.getLogger(__name__)


def _json_body(request):
    try:
        body = json.loads(request.body or b"{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Request body must be JSON.", code="invalid_json") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.", code="invalid_json")
    return body


def _int_field(data, name):
    value = data.get(name)
    if value in (None, ""):
        raise ValidationError(f"{name} is required.", code="missing_fields")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer.", code="invalid_integer") from None


def _truthy(value):
    return value in (True, "1", "true", "True", "yes")


@csrf_exempt
@require_POST
@json_errors
def upload_view(request):
    """Upload one small file in a single multipart/form-data request.

    Fields: ``file``, optional ``expiresField``, ``submittedDomain`` and
    ``sessionId`` (progress key chosen by the client).
    """
    file = request.FILES.get("file")
    if file is None:
        raise ValidationError("No file provided.", code="missing_fields")

    result = upload_file(
        file,
        expires=request.POST.get("expiresField"),
        submitted_domain=request.POST.get("submittedDomain", ""),
        host=request.get_host(),
        session_id=request.POST.get("sessionId") or None,
    )
    return JsonResponse(result)


@csrf_exempt
@require_POST
@json_errors
def chunk_view(request):
    """Accept one chunk (multipart/form-data).

    Fields: ``fileId``, ``chunkIndex``, ``totalChunks``, ``chunk`` (file),
    ``fileName``, ``fileType``, ``fileSize``.
    """
    chunk = request.FILES.get("chunk")
    if chunk is None:
        raise ValidationError("Missing required parameters.", code="missing_fields")

    result = submit_chunk(
        file_id=request.POST.get("fileId", ""),
        chunk_index=_int_field(request.POST, "chunkIndex"),
        total_chunks=_int_field(request.POST, "totalChunks"),
        file_name=request.POST.get("fileName", ""),
        file_type=request.POST.get("fileType", ""),
        file_size=_int_field(request.POST, "fileSize"),
        data=chunk.read(),
    )
    return JsonResponse(
        {
            "success": True,
            "chunkIndex": result["chunk_index"],
            "receivedChunks": result["received_chunks"],
            "totalChunks": result["total_chunks"],
            "isComplete": result["is_complete"],
            "progress": result["progress"],
        }
    )


@csrf_exempt
@require_POST
@json_errors
def reassemble_view(request):
    """Finalize a chunked upload.

    JSON body: ``{"fileId", "expiresField", "submittedDomain", "async"}``.
    With ``async`` the work is queued and the response is 202; the
    outcome is then read through the progress endpoint.
    """
    body = _json_body(request)
    file_id = body.get("fileId")
    if not file_id:
        raise ValidationError("File ID is required.", code="missing_fields")

    expires = body.get("expiresField")
    domain = body.get("submittedDomain") or ""

    if _truthy(body.get("async")):
        from uploads.tasks import finalize_upload_task

        require_complete_session(file_id)
        finalize_upload_task.delay(file_id, expires=expires, domain=domain)
        logger.info("Finalize queued: file_id=%s", file_id)
        return JsonResponse({"fileId": file_id, "status": "finalizing"}, status=202)

    result = finalize_upload(file_id, expires=expires, submitted_domain=domain)
    return JsonResponse(result)


@csrf_exempt
@require_POST
@json_errors
def progress_view(request):
    """Report progress for ``sessionId`` (or ``fileId``) without side effects."""
    body = _json_body(request)
    session_id = body.get("sessionId") or body.get("fileId")
    if not session_id:
        raise ValidationError("sessionId is required.", code="missing_fields")

    state = get_upload_progress(session_id)
    return JsonResponse(
        {
            "progress": state["progress"],
            "receivedChunks": state["received_chunks"],
            "totalChunks": state["total_chunks"],
            "isComplete": state["is_complete"],
            "hasResult": state["has_result"],
            "result": state["result"],
            "error": state["error"] or None,
        }
    )
