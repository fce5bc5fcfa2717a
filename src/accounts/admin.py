"""Admin for users and their participant profiles."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from accounts.models import FinishlineUser, Profile


class ProfileInline(admin.StackedInline):  # type: ignore[type-arg]
    model = Profile
    can_delete = False
    extra = 0


@admin.register(FinishlineUser)
class FinishlineUserAdmin(UserAdmin):  # type: ignore[type-arg]
    list_display = ["username", "email", "email_verified", "is_internal", "is_staff", "date_joined", "deleted_at"]
    list_filter = ["email_verified", "is_internal", "is_staff", "is_active"]
    search_fields = ["username", "email", "first_name", "last_name"]
    ordering = ["-date_joined"]
    inlines = [ProfileInline]
    fieldsets = (
        *UserAdmin.fieldsets,  # type: ignore[misc]
        ("Finishline", {"fields": ("email_verified", "is_internal", "language", "deleted_at")}),
    )
