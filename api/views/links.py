"""Public short-link resolution."""

from django.conf import settings
from django.http import HttpResponseRedirect, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from uploads.models import Upload


@require_GET
def resolve_view(request, slug):
    """Resolve ``/<slug>/`` to the stored object.

    404 for unknown slugs and for uploads whose object was never
    committed, 410 once expired. Redirects to UPLOAD_PUBLIC_BASE_URL when
    one is configured, otherwise returns the upload's metadata.
    """
    upload = Upload.objects.resolvable().filter(slug=slug).first()
    if upload is None:
        return JsonResponse({"error": "File not found"}, status=404)

    if upload.expires_at < timezone.now():
        return JsonResponse({"error": "Link expired"}, status=410)

    public_base = settings.UPLOAD_PUBLIC_BASE_URL
    if public_base:
        return HttpResponseRedirect(f"{public_base.rstrip('/')}/{upload.storage_key}")

    return JsonResponse(
        {
            "filename": upload.filename,
            "type": upload.content_type,
            "size": upload.size_bytes,
            "url": f"/{upload.slug}",
            "expiresAt": upload.expires_at.isoformat(),
        }
    )
