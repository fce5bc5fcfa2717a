from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from common.models import SoftDeleteQuerySet, TimeStampedModel

from .edition import EventDistance, EventEdition
from .mixins import SoftDeleteMixin
from .registration import Registration


class RegistrationGroup(SoftDeleteMixin, TimeStampedModel):
    """Shareable cohort of participants that qualifies for group discounts.

    Members join through a link; only the token digest is stored.
    """

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="registration_groups")
    distance = models.ForeignKey(EventDistance, on_delete=models.CASCADE, related_name="registration_groups")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_registration_groups",
    )
    name = models.CharField(max_length=128, blank=True)
    token_hash = models.CharField(max_length=64, unique=True)
    token_prefix = models.CharField(max_length=16)
    max_members = models.PositiveIntegerField(default=10)
    is_active = models.BooleanField(default=True)

    objects = SoftDeleteQuerySet.as_manager()

    def __str__(self) -> str:
        return self.name or f"Group {self.token_prefix}"


class RegistrationGroupMemberQuerySet(models.QuerySet["RegistrationGroupMember"]):
    def joined(self) -> "RegistrationGroupMemberQuerySet":
        """Members that have not left."""
        return self.filter(left_at__isnull=True)

    def eligible_for_discount(self) -> "RegistrationGroupMemberQuerySet":
        """Joined members whose account is verified and not deleted."""
        return self.joined().filter(user__email_verified=True, user__deleted_at__isnull=True)


class RegistrationGroupMember(TimeStampedModel):
    group = models.ForeignKey(RegistrationGroup, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="registration_group_memberships"
    )
    joined_at = models.DateTimeField()
    left_at = models.DateTimeField(null=True, blank=True)

    objects = RegistrationGroupMemberQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["group", "user"],
                condition=Q(left_at__isnull=True),
                name="unique_active_group_membership",
            )
        ]

    def __str__(self) -> str:
        return f"{self.user_id} in {self.group_id}"


class GroupDiscountRule(TimeStampedModel):
    """Step in the group discount schedule of an edition.

    The active rule with the highest ``min_participants`` that the group still
    satisfies wins.
    """

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="group_discount_rules")
    min_participants = models.PositiveIntegerField(validators=[MinValueValidator(2)])
    percent_off = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(100)])
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-min_participants"]
        constraints = [
            models.UniqueConstraint(
                fields=["edition", "min_participants"],
                condition=Q(is_active=True),
                name="unique_active_rule_per_threshold",
            )
        ]

    def __str__(self) -> str:
        return f"{self.percent_off}% off from {self.min_participants}"


class GroupRegistrationBatch(TimeStampedModel):
    """A bulk upload of participants for one edition, processed as a single unit."""

    class Status(models.TextChoices):
        UPLOADED = "uploaded"
        VALIDATED = "validated"
        PROCESSED = "processed"
        FAILED = "failed"

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="group_batches")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="group_batches"
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.UPLOADED, db_index=True)
    payment_responsibility = models.CharField(
        max_length=16,
        choices=Registration.PaymentResponsibility.choices,
        default=Registration.PaymentResponsibility.CENTRAL_PAY,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    error_code = models.CharField(max_length=64, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "Group registration batches"

    def __str__(self) -> str:
        return f"Batch {self.id} ({self.status})"


class GroupRegistrationBatchRow(TimeStampedModel):
    batch = models.ForeignKey(GroupRegistrationBatch, on_delete=models.CASCADE, related_name="rows")
    row_index = models.PositiveIntegerField()
    raw_json = models.JSONField(default=dict, blank=True)
    validation_errors = models.JSONField(default=list, blank=True)
    matched_user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_registration = models.OneToOneField(
        Registration, on_delete=models.SET_NULL, null=True, blank=True, related_name="batch_row"
    )

    class Meta:
        ordering = ["row_index"]
        constraints = [models.UniqueConstraint(fields=["batch", "row_index"], name="unique_row_index_per_batch")]

    def __str__(self) -> str:
        return f"Row {self.row_index} of {self.batch_id}"

    @property
    def has_errors(self) -> bool:
        """Whether validation flagged this row."""
        return bool(self.validation_errors)
