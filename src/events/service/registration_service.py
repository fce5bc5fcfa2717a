"""Registration lifecycle: start, submit, finalize and demo payment.

Every transition is a guarded ``update()`` whose WHERE clause repeats the
expected state, so two concurrent requests can never both move the same row.
"""

import typing as t
import uuid
from datetime import datetime

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from accounts.models import FinishlineUser, Profile
from common.audit import try_create_audit_log
from common.exceptions import InvariantViolationError
from common.results import Err, ErrorCode, Ok, err
from events.exceptions import CapacityExceededError, RegistrationOwnershipError
from events.models import EventDistance, EventEdition, Registrant, Registration
from events.service import pricing
from events.service.capacity_service import assert_capacity_for, lock_edition
from events.service.emails import send_registration_confirmed_email
from events.service.group_discount_service import sync_registration_group_discount_for_registration
from events.service.holds import compute_expires_at, is_expired_hold
from events.service.invite_service import get_current_invite_for_email

logger = structlog.get_logger(__name__)

Status = Registration.Status
IN_PROGRESS_STATUSES = (Status.STARTED, Status.SUBMITTED)

SNAPSHOT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "date_of_birth",
    "phone",
    "gender",
    "gender_identity",
    "city",
    "state",
    "country",
    "emergency_contact_name",
    "emergency_contact_phone",
)


def is_no_payment_mode() -> bool:
    """Whether registrations are confirmed without collecting payment."""
    return bool(getattr(settings, "EVENTS_NO_PAYMENT_MODE", False))


def is_demo_payments_enabled() -> bool:
    """Whether the demo payment shortcut may be used in this deployment."""
    if not getattr(settings, "EVENTS_DEMO_PAYMENTS_ENABLED", False):
        return False
    return bool(settings.DEBUG or getattr(settings, "EVENTS_DEMO_PAYMENTS_ALLOW_PRODUCTION", False))


def get_registration_for_owner_or_raise(registration_id: uuid.UUID, user: FinishlineUser) -> Registration:
    """Load a registration on behalf of its buyer.

    Raises:
        RegistrationOwnershipError: NOT_FOUND if missing or deleted, FORBIDDEN if owned by someone else.
    """
    registration = (
        Registration.objects.alive()
        .select_related("edition__series__organization", "distance", "buyer_user")
        .filter(pk=registration_id)
        .first()
    )
    if registration is None:
        raise RegistrationOwnershipError(ErrorCode.NOT_FOUND, "Registration not found.")
    if registration.buyer_user_id != user.id:
        raise RegistrationOwnershipError(ErrorCode.FORBIDDEN, "This registration belongs to another user.")
    return registration


def list_my_registrations(user: FinishlineUser) -> QuerySet[Registration]:
    """The user's registrations, newest first."""
    return (
        Registration.objects.for_owner(user.id)
        .select_related("edition__series", "distance")
        .order_by("-created_at")
    )


def _check_edition_open(edition: EventEdition, now: datetime) -> Err | None:
    if edition.visibility != EventEdition.Visibility.PUBLISHED or edition.is_deleted:
        return err(ErrorCode.NOT_PUBLISHED, "This event is not published.")
    if edition.is_registration_paused:
        return err(ErrorCode.REGISTRATION_PAUSED, "Registration is paused.")
    if edition.registration_opens_at and now < edition.registration_opens_at:
        return err(ErrorCode.REGISTRATION_NOT_OPEN, "Registration has not opened yet.")
    if edition.registration_closes_at and now >= edition.registration_closes_at:
        return err(ErrorCode.REGISTRATION_CLOSED, "Registration is closed.")
    return None


def start_registration_for_user(
    user: FinishlineUser, distance_id: uuid.UUID, now: datetime | None = None
) -> Ok[Registration] | Err:
    """Reserve a spot on a distance for ``user`` with a short hold.

    A user holds at most one live registration per edition. Starting again on
    the same distance while still started or submitted resumes that hold.
    """
    now = now or timezone.now()
    distance = (
        EventDistance.objects.alive().select_related("edition__series__organization").filter(pk=distance_id).first()
    )
    if distance is None:
        return err(ErrorCode.NOT_FOUND, "Distance not found.")
    edition = distance.edition
    if closed := _check_edition_open(edition, now):
        return closed

    base_price_cents = pricing.get_current_price_cents(distance, now)
    fees_cents = pricing.compute_fees_cents(base_price_cents)

    with transaction.atomic():
        lock_edition(edition.id)

        existing = Registration.objects.reserved(now).filter(edition=edition, buyer_user=user).first()
        if existing is not None:
            if existing.distance_id == distance.id and existing.status in IN_PROGRESS_STATUSES:
                logger.info("registration_resumed", registration_id=str(existing.id), user_id=str(user.id))
                return Ok(data=existing)
            return err(ErrorCode.ALREADY_REGISTERED, "You already have a registration for this event.")

        if user.email and get_current_invite_for_email(edition.id, user.normalized_email, now) is not None:
            return err(
                ErrorCode.HAS_ACTIVE_INVITE,
                "A spot has already been reserved for you. Claim your invite instead.",
            )

        try:
            assert_capacity_for(distance, 1, now)
        except CapacityExceededError:
            return err(ErrorCode.SOLD_OUT, "This distance is sold out.")

        registration = Registration.objects.create(
            edition=edition,
            distance=distance,
            buyer_user=user,
            status=Status.STARTED,
            expires_at=compute_expires_at(now, Status.STARTED),
            payment_responsibility=Registration.PaymentResponsibility.SELF_PAY,
            base_price_cents=base_price_cents,
            fees_cents=fees_cents,
            tax_cents=0,
            total_cents=pricing.compute_total_cents(base_price_cents=base_price_cents, fees_cents=fees_cents),
        )

    logger.info(
        "registration_started",
        registration_id=str(registration.id),
        distance_id=str(distance.id),
        user_id=str(user.id),
        total_cents=registration.total_cents,
    )
    return Ok(data=registration)


def build_registrant_snapshot(user: FinishlineUser, overrides: dict[str, t.Any]) -> dict[str, t.Any]:
    """Merge the user's profile with submitted values. Empty submitted values do not erase profile data."""
    snapshot: dict[str, t.Any] = {
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
    }
    profile = Profile.objects.filter(user=user).first()
    if profile is not None:
        for field in SNAPSHOT_FIELDS:
            if hasattr(profile, field):
                value = getattr(profile, field)
                snapshot[field] = value.isoformat() if hasattr(value, "isoformat") else value
    for key, value in overrides.items():
        if key in SNAPSHOT_FIELDS and value not in (None, ""):
            snapshot[key] = value.isoformat() if hasattr(value, "isoformat") else value
    return snapshot


def submit_registrant_info(
    user: FinishlineUser,
    registration_id: uuid.UUID,
    registrant_info: dict[str, t.Any],
    now: datetime | None = None,
) -> Ok[Registration] | Err:
    """Store the participant snapshot and move the registration to submitted.

    Re-submitting while still submitted replaces the snapshot and refreshes the hold.
    """
    now = now or timezone.now()
    try:
        registration = get_registration_for_owner_or_raise(registration_id, user)
    except RegistrationOwnershipError as e:
        return err(e.code, str(e))

    if registration.status not in IN_PROGRESS_STATUSES:
        if registration.status in (Status.PAYMENT_PENDING, Status.CONFIRMED):
            return err(ErrorCode.ALREADY_SUBMITTED, "This registration was already submitted.")
        return err(ErrorCode.INVALID_STATE, f"Cannot submit a {registration.status} registration.")
    if is_expired_hold(registration.status, registration.expires_at, now):
        return err(ErrorCode.REGISTRATION_EXPIRED, "This registration has expired. Please start again.")

    snapshot = build_registrant_snapshot(user, registrant_info)
    with transaction.atomic():
        updated = Registration.objects.filter(
            pk=registration.pk,
            status__in=IN_PROGRESS_STATUSES,
            expires_at__gt=now,
            deleted_at__isnull=True,
        ).update(status=Status.SUBMITTED, expires_at=compute_expires_at(now, Status.SUBMITTED), updated_at=now)
        if updated == 0:
            return err(ErrorCode.INVALID_STATE, "The registration changed while submitting. Please retry.")
        Registrant.objects.update_or_create(
            registration=registration,
            defaults={
                "user": user,
                "profile_snapshot": snapshot,
                "gender_identity": str(snapshot.get("gender_identity") or ""),
            },
        )

    if registration.registration_group_id:
        sync_registration_group_discount_for_registration(registration.id, now)
    registration.refresh_from_db()
    logger.info("registration_submitted", registration_id=str(registration.id))
    return Ok(data=registration)


def finalize_registration(
    user: FinishlineUser, registration_id: uuid.UUID, now: datetime | None = None
) -> Ok[Registration] | Err:
    """Move a filled-in registration to payment (or straight to confirmed).

    Registrations confirm immediately in no-payment mode and when an organizer
    pays centrally. Capacity is re-checked without counting the registration itself.
    """
    now = now or timezone.now()
    try:
        registration = get_registration_for_owner_or_raise(registration_id, user)
    except RegistrationOwnershipError as e:
        return err(e.code, str(e))

    if registration.status in (Status.PAYMENT_PENDING, Status.CONFIRMED) and not is_expired_hold(
        registration.status, registration.expires_at, now
    ):
        return Ok(data=registration)
    if registration.status not in IN_PROGRESS_STATUSES:
        return err(ErrorCode.INVALID_STATE, f"Cannot finalize a {registration.status} registration.")
    if is_expired_hold(registration.status, registration.expires_at, now):
        return err(ErrorCode.REGISTRATION_EXPIRED, "This registration has expired. Please start again.")
    if not Registrant.objects.filter(registration=registration).exists():
        return err(ErrorCode.MISSING_REGISTRANT, "Participant information is missing.")

    confirm_now = (
        is_no_payment_mode()
        or registration.payment_responsibility == Registration.PaymentResponsibility.CENTRAL_PAY
    )
    target_status = Status.CONFIRMED if confirm_now else Status.PAYMENT_PENDING
    target_expires_at = None if confirm_now else compute_expires_at(now, Status.PAYMENT_PENDING)

    with transaction.atomic():
        try:
            assert_capacity_for(registration.distance, 1, now, exclude_registration_id=registration.id)
        except CapacityExceededError:
            return err(ErrorCode.SOLD_OUT, "This distance sold out while you were registering.")
        updated = Registration.objects.filter(
            pk=registration.pk,
            status__in=IN_PROGRESS_STATUSES,
            expires_at__gt=now,
            deleted_at__isnull=True,
        ).update(status=target_status, expires_at=target_expires_at, updated_at=now)
        if updated == 0:
            return err(ErrorCode.INVALID_STATE, "The registration changed while finalizing. Please retry.")
        registration.refresh_from_db()
        if confirm_now:
            try_create_audit_log(
                action="registration.confirmed",
                entity_type="registration",
                entity_id=registration.id,
                organization=registration.edition.organization,
                actor=user,
                after={"status": registration.status, "total_cents": registration.total_cents},
            )
            send_registration_confirmed_email(registration)

    logger.info("registration_finalized", registration_id=str(registration.id), status=registration.status)
    return Ok(data=registration)


def demo_pay_registration(
    user: FinishlineUser, registration_id: uuid.UUID, now: datetime | None = None
) -> Ok[Registration] | Err:
    """Confirm a payment-pending registration without a payment processor.

    Paying an already confirmed registration is a no-op success.

    Raises:
        InvariantViolationError: If the guarded confirmation matches no row after
            every precondition passed.
    """
    now = now or timezone.now()
    if not is_demo_payments_enabled():
        return err(ErrorCode.DEMO_PAYMENTS_DISABLED, "Demo payments are disabled.")
    try:
        registration = get_registration_for_owner_or_raise(registration_id, user)
    except RegistrationOwnershipError as e:
        return err(e.code, str(e))

    if registration.status == Status.CONFIRMED:
        return Ok(data=registration)
    if registration.status != Status.PAYMENT_PENDING:
        return err(ErrorCode.INVALID_STATE, f"Cannot pay a {registration.status} registration.")
    if is_expired_hold(registration.status, registration.expires_at, now):
        return err(ErrorCode.REGISTRATION_EXPIRED, "The payment window for this registration has expired.")

    before = {"status": registration.status}
    with transaction.atomic():
        updated = Registration.objects.filter(
            pk=registration.pk, status=Status.PAYMENT_PENDING, deleted_at__isnull=True
        ).update(status=Status.CONFIRMED, expires_at=None, updated_at=now)
        if updated == 0:
            raise InvariantViolationError(f"Registration {registration.pk} left payment_pending during demo payment.")
        registration.refresh_from_db()
        try_create_audit_log(
            action="registration.demo_paid",
            entity_type="registration",
            entity_id=registration.id,
            organization=registration.edition.organization,
            actor=user,
            before=before,
            after={"status": registration.status, "total_cents": registration.total_cents},
        )
        send_registration_confirmed_email(registration)

    logger.info("registration_demo_paid", registration_id=str(registration.id), total_cents=registration.total_cents)
    return Ok(data=registration)
