"""Admin configuration for common app models."""

from django.contrib import admin

from common.models import WebhookEndpoint


@admin.register(WebhookEndpoint)
class WebhookEndpointAdmin(admin.ModelAdmin):
    """Admin interface for webhook endpoints."""

    list_display = ("url", "is_active", "event_types", "created_at")
    list_filter = ("is_active", "created_at")
    search_fields = ("url",)
    readonly_fields = ("pk", "created_at", "updated_at")
    actions = ["deactivate_endpoints"]

    @admin.action(description="Deactivate selected endpoints")
    def deactivate_endpoints(self, request, queryset):
        updated = queryset.filter(is_active=True).update(is_active=False)
        self.message_user(request, f"{updated} endpoint(s) deactivated.")
