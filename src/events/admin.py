"""Admin for organizations, editions and registrations."""

from django.contrib import admin

from events import models


@admin.register(models.Organization)
class OrganizationAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "slug", "owner", "deleted_at"]
    search_fields = ["name", "slug"]
    raw_id_fields = ["owner"]
    filter_horizontal = ["staff_members"]


@admin.register(models.EventSeries)
class EventSeriesAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "organization", "slug"]
    search_fields = ["name"]


class EventDistanceInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.EventDistance
    extra = 0
    fields = ["label", "distance_value", "distance_unit", "capacity", "capacity_scope", "sort_order"]


class GroupDiscountRuleInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.GroupDiscountRule
    extra = 0


@admin.register(models.EventEdition)
class EventEditionAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "__str__",
        "visibility",
        "registration_opens_at",
        "registration_closes_at",
        "is_registration_paused",
    ]
    list_filter = ["visibility", "is_registration_paused"]
    search_fields = ["series__name", "edition_label"]
    inlines = [EventDistanceInline, GroupDiscountRuleInline]


@admin.register(models.PricingTier)
class PricingTierAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["distance", "label", "price_cents", "starts_at", "ends_at", "sort_order"]
    list_filter = ["distance__edition"]


class AddOnOptionInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.AddOnOption
    extra = 0


@admin.register(models.AddOn)
class AddOnAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["title", "edition", "distance", "is_active"]
    inlines = [AddOnOptionInline]


class AddOnSelectionInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.AddOnSelection
    extra = 0
    readonly_fields = ["option", "quantity", "line_total_cents"]


@admin.register(models.Registration)
class RegistrationAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["id", "edition", "distance", "buyer_user", "status", "expires_at", "total_cents"]
    list_filter = ["status", "payment_responsibility", "edition"]
    search_fields = ["id", "buyer_user__email"]
    raw_id_fields = ["buyer_user", "registration_group"]
    inlines = [AddOnSelectionInline]


@admin.register(models.RegistrationGroup)
class RegistrationGroupAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "edition", "distance", "token_prefix", "max_members", "is_active"]
    readonly_fields = ["token_hash", "token_prefix"]
    raw_id_fields = ["created_by"]


class GroupRegistrationBatchRowInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.GroupRegistrationBatchRow
    extra = 0
    can_delete = False
    readonly_fields = ["row_index", "raw_json", "validation_errors", "matched_user", "created_registration"]


@admin.register(models.GroupRegistrationBatch)
class GroupRegistrationBatchAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["id", "edition", "status", "payment_responsibility", "processed_at", "error_code"]
    list_filter = ["status"]
    readonly_fields = ["status", "processed_at", "error_code"]
    inlines = [GroupRegistrationBatchRowInline]


@admin.register(models.RegistrationInvite)
class RegistrationInviteAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["email", "edition", "status", "is_current", "expires_at", "claimed_by"]
    list_filter = ["status", "is_current"]
    search_fields = ["email", "token_prefix"]
    readonly_fields = ["token_hash", "token_prefix", "supersedes", "claimed_by", "claimed_at"]
