"""Admin configuration for upload models."""

from django.contrib import admin

from uploads.models import ChunkRecord, Upload, UploadProgress, UploadSession


class ChunkRecordInline(admin.TabularInline):
    model = ChunkRecord
    extra = 0
    fields = ("chunk_index", "size_bytes", "created_at")
    readonly_fields = ("chunk_index", "size_bytes", "created_at")
    ordering = ("chunk_index",)
    can_delete = False


@admin.register(UploadSession)
class UploadSessionAdmin(admin.ModelAdmin):
    """Admin interface for chunked upload sessions."""

    list_display = (
        "pk",
        "file_name",
        "file_type",
        "file_size",
        "total_chunks",
        "status",
        "updated_at",
    )
    list_filter = ("status", "created_at")
    search_fields = ("pk", "file_name")
    readonly_fields = ("pk", "error_message", "created_at", "updated_at")
    date_hierarchy = "created_at"
    inlines = [ChunkRecordInline]


@admin.register(Upload)
class UploadAdmin(admin.ModelAdmin):
    """Admin interface for finished uploads."""

    list_display = (
        "slug",
        "filename",
        "content_type",
        "size_bytes",
        "domain",
        "uploaded_at",
        "expires_at",
    )
    list_filter = ("domain", "content_type", "uploaded_at")
    search_fields = ("pk", "slug", "filename", "storage_key")
    readonly_fields = ("pk", "slug", "storage_key", "size_bytes", "uploaded_at")
    date_hierarchy = "uploaded_at"


@admin.register(UploadProgress)
class UploadProgressAdmin(admin.ModelAdmin):
    """Admin interface for persisted upload progress."""

    list_display = (
        "session_id",
        "progress",
        "received_chunks",
        "total_chunks",
        "updated_at",
    )
    search_fields = ("session_id",)
    readonly_fields = ("session_id", "result", "error_message", "updated_at")
