from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel

PRO_ENTITLEMENT_KEY = "pro"
PRO_PLAN_KEY = "pro_monthly"


class BillingSubscription(TimeStampedModel):
    """The single Pro subscription row of a user.

    A trial is a subscription in the ``trialing`` state. Paid periods use the
    ``current_period_*`` window.
    """

    class Status(models.TextChoices):
        TRIALING = "trialing"
        ACTIVE = "active"
        ENDED = "ended"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="billing_subscription"
    )
    plan_key = models.CharField(max_length=64, default=PRO_PLAN_KEY)
    status = models.CharField(max_length=16, choices=Status.choices, db_index=True)
    trial_starts_at = models.DateTimeField(null=True, blank=True)
    trial_ends_at = models.DateTimeField(null=True, blank=True)
    current_period_starts_at = models.DateTimeField(null=True, blank=True)
    current_period_ends_at = models.DateTimeField(null=True, blank=True)
    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)

    @property
    def window_ends_at(self) -> datetime | None:
        """End of the window the current status grants."""
        if self.status == self.Status.TRIALING:
            return self.trial_ends_at
        return self.current_period_ends_at

    def __str__(self) -> str:
        return f"{self.user_id} {self.status}"


class BillingTrialUse(TimeStampedModel):
    """Marks that a user has consumed their one trial."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="billing_trial_use")
    used_at = models.DateTimeField()
    source = models.CharField(max_length=32, default="user")


class BillingPromotion(TimeStampedModel):
    """A promo code granting Pro time.

    The plaintext code is never stored: only its HMAC digest and a short prefix
    for admin listings.
    """

    hash_version = models.PositiveSmallIntegerField()
    code_hash = models.CharField(max_length=64, unique=True)
    code_prefix = models.CharField(max_length=16)
    name = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    entitlement_key = models.CharField(max_length=32, default=PRO_ENTITLEMENT_KEY)
    grant_duration_days = models.PositiveIntegerField(null=True, blank=True)
    grant_fixed_ends_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_to = models.DateTimeField(null=True, blank=True)
    max_redemptions = models.PositiveIntegerField(null=True, blank=True)
    per_user_max_redemptions = models.PositiveSmallIntegerField(default=1)
    redemption_count = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(grant_duration_days__isnull=False, grant_fixed_ends_at__isnull=True)
                    | Q(grant_duration_days__isnull=True, grant_fixed_ends_at__isnull=False)
                ),
                name="promotion_grant_duration_xor_fixed_end",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code_prefix}… ({self.name or 'promotion'})"


class BillingPromotionRedemption(TimeStampedModel):
    promotion = models.ForeignKey(BillingPromotion, on_delete=models.CASCADE, related_name="redemptions")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="promotion_redemptions")
    redeemed_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["promotion", "user"], name="unique_promotion_redemption_per_user"),
        ]


class BillingPendingEntitlementGrant(TimeStampedModel):
    """Pro time reserved for an email address, claimed once its owner verifies it."""

    class ClaimSource(models.TextChoices):
        AUTO_ON_VERIFIED_SESSION = "auto_on_verified_session"
        MANUAL_CLAIM = "manual_claim"

    hash_version = models.PositiveSmallIntegerField()
    email_hash = models.CharField(max_length=64, db_index=True)
    entitlement_key = models.CharField(max_length=32, default=PRO_ENTITLEMENT_KEY)
    grant_duration_days = models.PositiveIntegerField(null=True, blank=True)
    grant_fixed_ends_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    claim_valid_from = models.DateTimeField(null=True, blank=True)
    claim_valid_to = models.DateTimeField(null=True, blank=True)
    claimed_at = models.DateTimeField(null=True, blank=True)
    claimed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="claimed_grants"
    )
    claim_source = models.CharField(max_length=32, choices=ClaimSource.choices, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(grant_duration_days__isnull=False, grant_fixed_ends_at__isnull=True)
                    | Q(grant_duration_days__isnull=True, grant_fixed_ends_at__isnull=False)
                ),
                name="pending_grant_duration_xor_fixed_end",
            ),
        ]


class BillingEntitlementOverride(TimeStampedModel):
    """A window of Pro access granted outside a subscription."""

    class SourceType(models.TextChoices):
        ADMIN = "admin"
        PROMOTION = "promotion"
        PENDING_GRANT = "pending_grant"
        SYSTEM = "system"
        MIGRATION = "migration"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="entitlement_overrides"
    )
    entitlement_key = models.CharField(max_length=32, default=PRO_ENTITLEMENT_KEY)
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField(db_index=True)
    source_type = models.CharField(max_length=16, choices=SourceType.choices)
    source_id = models.UUIDField(null=True, blank=True)
    reason = models.TextField(blank=True)
    granted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(ends_at__gt=models.F("starts_at")), name="override_ends_after_start"),
        ]
        indexes = [models.Index(fields=["user", "entitlement_key", "ends_at"])]

    def __str__(self) -> str:
        return f"{self.source_type} override for {self.user_id}"


class BillingEvent(TimeStampedModel):
    """Append-only ledger of billing state changes."""

    class Source(models.TextChoices):
        SYSTEM = "system"
        ADMIN = "admin"
        PROVIDER = "provider"

    class EntityType(models.TextChoices):
        SUBSCRIPTION = "subscription"
        OVERRIDE = "override"
        PROMOTION = "promotion"
        PENDING_GRANT = "pending_grant"
        TRIAL_USE = "trial_use"

    class Type(models.TextChoices):
        TRIAL_STARTED = "trial_started"
        TRIAL_EXPIRING_SOON_NOTIFIED = "trial_expiring_soon_notified"
        CANCEL_SCHEDULED = "cancel_scheduled"
        CANCEL_REVERTED = "cancel_reverted"
        SUBSCRIPTION_ENDED = "subscription_ended"
        OVERRIDE_GRANTED = "override_granted"
        OVERRIDE_EXTENDED = "override_extended"
        OVERRIDE_REVOKED = "override_revoked"
        PROMOTION_CREATED = "promotion_created"
        PROMOTION_ENABLED = "promotion_enabled"
        PROMOTION_DISABLED = "promotion_disabled"
        PROMOTION_REDEEMED = "promotion_redeemed"
        PENDING_GRANT_CREATED = "pending_grant_created"
        PENDING_GRANT_ENABLED = "pending_grant_enabled"
        PENDING_GRANT_DISABLED = "pending_grant_disabled"
        PENDING_GRANT_CLAIMED = "pending_grant_claimed"

    provider = models.CharField(max_length=32, null=True, blank=True)
    source = models.CharField(max_length=16, choices=Source.choices)
    type = models.CharField(max_length=64, choices=Type.choices, db_index=True)
    external_event_id = models.CharField(max_length=255, null=True, blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="billing_events"
    )
    entity_type = models.CharField(max_length=16, choices=EntityType.choices)
    entity_id = models.CharField(max_length=64, null=True, blank=True)
    payload = models.JSONField(default=dict, blank=True)
    request_id = models.CharField(max_length=128, null=True, blank=True)
    idempotency_key = models.CharField(max_length=128, null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "external_event_id"],
                condition=Q(provider__isnull=False, external_event_id__isnull=False),
                name="unique_billing_event_provider_external_id",
            ),
        ]
        indexes = [models.Index(fields=["entity_type", "entity_id", "type"])]

    def __str__(self) -> str:
        return f"{self.type} {self.entity_type}:{self.entity_id}"
