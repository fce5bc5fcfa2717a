"""Group discounts and registration group membership."""

import uuid
from datetime import datetime

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from pydantic import BaseModel, ConfigDict

from accounts.models import FinishlineUser
from common.audit import try_create_audit_log
from common.results import Err, ErrorCode, Ok, err
from common.utils import generate_token, get_token_prefix, hash_token
from events.models import (
    EventDistance,
    GroupDiscountRule,
    Registration,
    RegistrationGroup,
    RegistrationGroupMember,
)
from events.service import pricing

logger = structlog.get_logger(__name__)

SYNCABLE_STATUSES = (Registration.Status.STARTED, Registration.Status.SUBMITTED)
MIN_GROUP_MEMBERS = 2


class GroupDiscount(BaseModel):
    percent_off: int
    rule_id: uuid.UUID
    joined_member_count: int


class GroupDiscountSnapshot(BaseModel):
    registration_id: uuid.UUID
    status: str
    group_discount_percent_off: int | None
    group_discount_amount_cents: int
    total_cents: int
    updated: bool


class CreatedRegistrationGroup(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    group: RegistrationGroup
    token: str


class GroupJoinResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    group: RegistrationGroup
    already_member: bool


def _select_rule(edition_id: uuid.UUID, participant_count: int) -> GroupDiscountRule | None:
    """The active rule with the highest threshold that ``participant_count`` satisfies."""
    if participant_count <= 0:
        return None
    return (
        GroupDiscountRule.objects.filter(
            edition_id=edition_id, is_active=True, min_participants__lte=participant_count
        )
        .order_by("-min_participants")
        .first()
    )


def count_eligible_members(group_id: uuid.UUID) -> int:
    """Joined members with a verified, non-deleted account."""
    return RegistrationGroupMember.objects.filter(group_id=group_id).eligible_for_discount().count()


def resolve_group_discount(
    group_id: uuid.UUID, edition_id: uuid.UUID, now: datetime | None = None
) -> GroupDiscount | None:
    """Discount a registration group currently qualifies for, if any.

    Only members that have not left and whose account is verified count.
    """
    group = RegistrationGroup.objects.alive().filter(pk=group_id, edition_id=edition_id, is_active=True).first()
    if group is None:
        return None
    joined = count_eligible_members(group.id)
    rule = _select_rule(edition_id, joined)
    if rule is None:
        return None
    return GroupDiscount(percent_off=rule.percent_off, rule_id=rule.id, joined_member_count=joined)


def resolve_batch_discount(edition_id: uuid.UUID, participant_count: int) -> GroupDiscount | None:
    """Discount an uploaded batch of ``participant_count`` rows qualifies for."""
    rule = _select_rule(edition_id, participant_count)
    if rule is None:
        return None
    return GroupDiscount(percent_off=rule.percent_off, rule_id=rule.id, joined_member_count=participant_count)


def _snapshot(registration: Registration, *, updated: bool) -> GroupDiscountSnapshot:
    return GroupDiscountSnapshot(
        registration_id=registration.id,
        status=registration.status,
        group_discount_percent_off=registration.group_discount_percent_off,
        group_discount_amount_cents=registration.group_discount_amount_cents,
        total_cents=registration.total_cents,
        updated=updated,
    )


def sync_registration_group_discount_for_registration(
    registration_id: uuid.UUID, now: datetime | None = None
) -> GroupDiscountSnapshot | None:
    """Apply the group discount the registration's group currently earns.

    Only started and submitted registrations are repriced, and only upwards:
    a group that shrinks never takes back a discount already granted.
    Registrations carrying a discount code keep their price. The row is locked
    for the whole read-resolve-write cycle, and the write itself only lands on
    a row whose discount is still lower.

    Returns:
        The pricing snapshot, or None when the registration does not exist.
    """
    now = now or timezone.now()
    with transaction.atomic():
        registration = Registration.objects.alive().select_for_update().filter(pk=registration_id).first()
        if registration is None:
            return None
        if registration.status not in SYNCABLE_STATUSES or registration.registration_group_id is None:
            return _snapshot(registration, updated=False)
        if registration.discount_amount_cents > 0:
            logger.debug("group_discount_skipped_discount_code", registration_id=str(registration.id))
            return _snapshot(registration, updated=False)

        discount = resolve_group_discount(registration.registration_group_id, registration.edition_id, now)
        if discount is None:
            return _snapshot(registration, updated=False)
        if discount.percent_off <= (registration.group_discount_percent_off or 0):
            return _snapshot(registration, updated=False)

        amount = pricing.compute_percent_amount(registration.base_price_cents, discount.percent_off)
        total = pricing.compute_total_cents(
            base_price_cents=registration.base_price_cents,
            fees_cents=registration.fees_cents,
            tax_cents=registration.tax_cents,
            add_ons_cents=registration.add_ons_total_cents,
            discount_cents=registration.discount_amount_cents,
            group_discount_cents=amount,
        )
        updated = (
            Registration.objects.filter(pk=registration.pk, status__in=SYNCABLE_STATUSES, deleted_at__isnull=True)
            .filter(
                Q(group_discount_percent_off__isnull=True) | Q(group_discount_percent_off__lt=discount.percent_off)
            )
            .update(
                group_discount_percent_off=discount.percent_off,
                group_discount_amount_cents=amount,
                total_cents=total,
                updated_at=now,
            )
        )
        registration.refresh_from_db()

    if updated:
        logger.info(
            "group_discount_applied",
            registration_id=str(registration.id),
            percent_off=discount.percent_off,
            amount_cents=amount,
            joined_member_count=discount.joined_member_count,
        )
    return _snapshot(registration, updated=bool(updated))


def sync_group_registrations(group_id: uuid.UUID, now: datetime | None = None) -> int:
    """Reprice every in-progress registration of a group. Returns how many changed."""
    changed = 0
    registration_ids = Registration.objects.alive().filter(
        registration_group_id=group_id, status__in=SYNCABLE_STATUSES
    ).values_list("id", flat=True)
    for registration_id in list(registration_ids):
        snapshot = sync_registration_group_discount_for_registration(registration_id, now)
        if snapshot is not None and snapshot.updated:
            changed += 1
    return changed


def clamp_max_members(value: int | None) -> int:
    """Keep a requested group size within the configured bounds."""
    upper = int(getattr(settings, "EVENTS_REGISTRATION_GROUP_MAX_MEMBERS", 20))
    if value is None:
        value = int(getattr(settings, "EVENTS_REGISTRATION_GROUP_DEFAULT_MAX_MEMBERS", 10))
    return max(MIN_GROUP_MEMBERS, min(value, upper))


def _attach_live_registration(group: RegistrationGroup, user: FinishlineUser, now: datetime) -> None:
    Registration.objects.reserved(now).filter(
        edition_id=group.edition_id,
        distance_id=group.distance_id,
        buyer_user=user,
        registration_group__isnull=True,
        status__in=SYNCABLE_STATUSES,
    ).update(registration_group=group, updated_at=now)


def create_registration_group(
    user: FinishlineUser,
    distance_id: uuid.UUID,
    *,
    name: str = "",
    max_members: int | None = None,
    now: datetime | None = None,
) -> Ok[CreatedRegistrationGroup] | Err:
    """Create a group on a distance with ``user`` as its first member.

    The plaintext token is returned once; only its digest is stored.
    """
    now = now or timezone.now()
    distance = EventDistance.objects.alive().select_related("edition__series__organization").filter(
        pk=distance_id
    ).first()
    if distance is None:
        return err(ErrorCode.NOT_FOUND, "Distance not found.")
    if RegistrationGroupMember.objects.joined().filter(
        user=user, group__edition_id=distance.edition_id, group__deleted_at__isnull=True
    ).exists():
        return err(ErrorCode.ALREADY_IN_GROUP, "You already belong to a group for this event.")

    token = generate_token()
    with transaction.atomic():
        group = RegistrationGroup.objects.create(
            edition=distance.edition,
            distance=distance,
            created_by=user,
            name=name,
            token_hash=hash_token(token),
            token_prefix=get_token_prefix(token),
            max_members=clamp_max_members(max_members),
        )
        RegistrationGroupMember.objects.create(group=group, user=user, joined_at=now)
        _attach_live_registration(group, user, now)
        try_create_audit_log(
            action="registration_group.created",
            entity_type="registration_group",
            entity_id=group.id,
            organization=distance.edition.organization,
            actor=user,
            after={"max_members": group.max_members, "distance_id": str(distance.id)},
        )

    logger.info("registration_group_created", group_id=str(group.id), user_id=str(user.id))
    return Ok(data=CreatedRegistrationGroup(group=group, token=token))


def join_registration_group(
    user: FinishlineUser, token: str, now: datetime | None = None
) -> Ok[GroupJoinResult] | Err:
    """Join a group through its share token. Joining twice is a no-op success."""
    now = now or timezone.now()
    group = RegistrationGroup.objects.alive().filter(token_hash=hash_token(token)).first()
    if group is None:
        return err(ErrorCode.NOT_FOUND, "Group not found.")
    if not group.is_active:
        return err(ErrorCode.DISABLED, "This group no longer accepts members.")

    with transaction.atomic():
        group = RegistrationGroup.objects.select_for_update().select_related("edition__series__organization").get(
            pk=group.pk
        )
        members = RegistrationGroupMember.objects.joined()
        if members.filter(group=group, user=user).exists():
            return Ok(data=GroupJoinResult(group=group, already_member=True))
        if members.filter(
            user=user, group__edition_id=group.edition_id, group__deleted_at__isnull=True
        ).exists():
            return err(ErrorCode.ALREADY_IN_GROUP, "You already belong to another group for this event.")
        if members.filter(group=group).count() >= group.max_members:
            return err(ErrorCode.GROUP_FULL, "This group is full.")
        try:
            with transaction.atomic():
                RegistrationGroupMember.objects.create(group=group, user=user, joined_at=now)
        except IntegrityError:
            return Ok(data=GroupJoinResult(group=group, already_member=True))
        _attach_live_registration(group, user, now)
        try_create_audit_log(
            action="registration_group.joined",
            entity_type="registration_group",
            entity_id=group.id,
            organization=group.edition.organization,
            actor=user,
        )

    changed = sync_group_registrations(group.id, now)
    logger.info("registration_group_joined", group_id=str(group.id), user_id=str(user.id), repriced=changed)
    return Ok(data=GroupJoinResult(group=group, already_member=False))


def leave_registration_group(
    user: FinishlineUser, group_id: uuid.UUID, now: datetime | None = None
) -> Ok[RegistrationGroup] | Err:
    """Leave a group. Discounts already applied to members are kept."""
    now = now or timezone.now()
    group = RegistrationGroup.objects.alive().filter(pk=group_id).first()
    if group is None:
        return err(ErrorCode.NOT_FOUND, "Group not found.")
    with transaction.atomic():
        left = RegistrationGroupMember.objects.joined().filter(group=group, user=user).update(left_at=now)
        if left == 0:
            return err(ErrorCode.NOT_FOUND, "You are not a member of this group.")
        Registration.objects.alive().filter(
            registration_group=group, buyer_user=user, status__in=SYNCABLE_STATUSES
        ).update(registration_group=None, updated_at=now)
    logger.info("registration_group_left", group_id=str(group.id), user_id=str(user.id))
    return Ok(data=group)
