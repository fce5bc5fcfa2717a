"""Admin for billing records.

Codes and emails are only stored as hashes, so promotions and pending grants
are created through the management commands rather than here.
"""

import typing as t

from django.contrib import admin

from billing import models


class ReadOnlyAdminMixin:
    def has_add_permission(self, request: t.Any) -> bool:
        return False

    def has_change_permission(self, request: t.Any, obj: t.Any = None) -> bool:
        return False


@admin.register(models.BillingSubscription)
class BillingSubscriptionAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["user", "status", "trial_ends_at", "current_period_ends_at", "cancel_at_period_end", "ended_at"]
    list_filter = ["status", "cancel_at_period_end"]
    search_fields = ["user__email"]
    raw_id_fields = ["user"]


@admin.register(models.BillingTrialUse)
class BillingTrialUseAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["user", "used_at", "source"]
    search_fields = ["user__email"]


class BillingPromotionRedemptionInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.BillingPromotionRedemption
    extra = 0
    can_delete = False
    raw_id_fields = ["user"]
    readonly_fields = ["user", "redeemed_at"]


@admin.register(models.BillingPromotion)
class BillingPromotionAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = [
        "code_prefix",
        "name",
        "is_active",
        "grant_duration_days",
        "grant_fixed_ends_at",
        "redemption_count",
        "max_redemptions",
        "valid_to",
    ]
    list_filter = ["is_active"]
    search_fields = ["code_prefix", "name"]
    readonly_fields = ["hash_version", "code_hash", "code_prefix", "redemption_count", "created_by"]
    inlines = [BillingPromotionRedemptionInline]

    def has_add_permission(self, request: t.Any) -> bool:
        return False


@admin.register(models.BillingPendingEntitlementGrant)
class BillingPendingEntitlementGrantAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["id", "is_active", "grant_duration_days", "grant_fixed_ends_at", "claimed_at", "claimed_by"]
    list_filter = ["is_active", "claim_source"]
    readonly_fields = ["hash_version", "email_hash", "claimed_at", "claimed_by", "claim_source", "created_by"]

    def has_add_permission(self, request: t.Any) -> bool:
        return False


@admin.register(models.BillingEntitlementOverride)
class BillingEntitlementOverrideAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["user", "source_type", "starts_at", "ends_at", "granted_by"]
    list_filter = ["source_type", "entitlement_key"]
    search_fields = ["user__email", "reason"]


@admin.register(models.BillingEvent)
class BillingEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["created_at", "type", "source", "user", "entity_type", "entity_id"]
    list_filter = ["type", "source", "entity_type"]
    search_fields = ["user__email", "entity_id", "external_event_id"]
    ordering = ["-created_at"]
