"""
URL configuration for the api app.

Mounted at the site root in boot/urls.py. The slug route is a catch-all
for a single path segment, so it has to stay last.
"""

from django.urls import path

from api.views import cron, links, upload

app_name = "api"

urlpatterns = [
    path("api/upload/", upload.upload_view, name="upload"),
    path("api/upload/chunk/", upload.chunk_view, name="upload-chunk"),
    path("api/upload/reassemble/", upload.reassemble_view, name="upload-reassemble"),
    path("api/upload/progress/", upload.progress_view, name="upload-progress"),
    path("api/cron/cleanup/", cron.cleanup_view, name="cron-cleanup"),
    path("<str:slug>/", links.resolve_view, name="resolve"),
]
