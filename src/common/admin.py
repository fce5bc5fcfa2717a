import typing as t

from django.contrib import admin

from . import models


@admin.register(models.EmailLog)
class EmailLogAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["to", "subject", "sent_at"]
    search_fields = ["to", "subject"]
    readonly_fields = ["to", "subject", "sent_at", "body", "html"]
    exclude = ["compressed_body", "compressed_html"]
    date_hierarchy = "sent_at"


@admin.register(models.AuditLog)
class AuditLogAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    """Read-only view of privileged mutations."""

    list_display = ["created_at", "action", "entity_type", "entity_id", "actor", "organization"]
    list_filter = ["action", "entity_type"]
    search_fields = ["entity_id", "actor__email"]
    raw_id_fields = ["actor", "organization"]
    ordering = ["-created_at"]

    def has_add_permission(self, request: t.Any) -> bool:
        return False

    def has_change_permission(self, request: t.Any, obj: t.Any = None) -> bool:
        return False


@admin.register(models.ContactSubmission)
class ContactSubmissionAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "email", "user", "created_at"]
    search_fields = ["name", "email", "message"]
    raw_id_fields = ["user"]
