import typing as t
from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel

from .edition import AddOnOption, EventDistance, EventEdition
from .mixins import SoftDeleteMixin

HOLD_STATUSES = ("started", "submitted", "payment_pending")


def reserved_registrations_q(now: datetime) -> Q:
    """Predicate for registrations that currently hold a spot.

    Confirmed registrations always hold their spot. In-progress holds only do
    while their TTL has not lapsed. Soft-deleted rows never count.
    """
    return Q(deleted_at__isnull=True) & (Q(status="confirmed") | Q(status__in=HOLD_STATUSES, expires_at__gt=now))


class RegistrationQuerySet(models.QuerySet["Registration"]):
    def alive(self) -> t.Self:
        """Registrations that have not been soft-deleted."""
        return self.filter(deleted_at__isnull=True)

    def reserved(self, now: datetime) -> t.Self:
        """Registrations that currently hold a spot, evaluated at read time."""
        return self.filter(reserved_registrations_q(now))

    def for_owner(self, user_id: t.Any) -> t.Self:
        """Registrations bought by the given user."""
        return self.alive().filter(buyer_user_id=user_id)


class Registration(SoftDeleteMixin, TimeStampedModel):
    """One participant's claim on one distance of an edition."""

    class Status(models.TextChoices):
        STARTED = "started"
        SUBMITTED = "submitted"
        PAYMENT_PENDING = "payment_pending"
        CONFIRMED = "confirmed"
        CANCELLED = "cancelled"

    class PaymentResponsibility(models.TextChoices):
        SELF_PAY = "self_pay"
        CENTRAL_PAY = "central_pay"

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="registrations")
    distance = models.ForeignKey(EventDistance, on_delete=models.PROTECT, related_name="registrations")
    buyer_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="registrations",
        help_text="Empty until an invited participant claims the registration.",
    )
    registration_group = models.ForeignKey(
        "events.RegistrationGroup",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="registrations",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.STARTED, db_index=True)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    payment_responsibility = models.CharField(
        max_length=16, choices=PaymentResponsibility.choices, default=PaymentResponsibility.SELF_PAY
    )

    base_price_cents = models.PositiveIntegerField(default=0)
    fees_cents = models.PositiveIntegerField(default=0)
    tax_cents = models.PositiveIntegerField(default=0)
    discount_amount_cents = models.PositiveIntegerField(
        default=0, help_text="Amount taken off by a redeemed discount code."
    )
    group_discount_percent_off = models.PositiveSmallIntegerField(null=True, blank=True)
    group_discount_amount_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)

    objects = RegistrationQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["edition", "status", "expires_at"]),
            models.Index(fields=["distance", "status", "expires_at"]),
        ]

    def __str__(self) -> str:
        return f"Registration {self.id} ({self.status})"

    @property
    def add_ons_total_cents(self) -> int:
        """Sum of the add-on line totals attached to this registration."""
        total = self.add_on_selections.aggregate(total=models.Sum("line_total_cents"))["total"]
        return int(total or 0)


class Registrant(TimeStampedModel):
    """Snapshot of the participant's data taken when the registration was filled in."""

    registration = models.OneToOneField(Registration, on_delete=models.CASCADE, related_name="registrant")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="registrants"
    )
    profile_snapshot = models.JSONField(default=dict, blank=True)
    gender_identity = models.CharField(max_length=64, blank=True)

    def __str__(self) -> str:
        first = self.profile_snapshot.get("first_name", "")
        last = self.profile_snapshot.get("last_name", "")
        return f"{first} {last}".strip() or str(self.id)

    @property
    def email(self) -> str:
        """Email captured in the snapshot."""
        return str(self.profile_snapshot.get("email", ""))


class AddOnSelection(TimeStampedModel):
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="add_on_selections")
    option = models.ForeignKey(AddOnOption, on_delete=models.PROTECT, related_name="selections")
    quantity = models.PositiveIntegerField(default=1)
    line_total_cents = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["registration", "option"], name="unique_add_on_option_per_registration")
        ]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.option_id}"
