"""Invites to claim registrations reserved by an organizer or a group upload.

Only the SHA-256 digest of an invite token is stored. The plaintext token is
handed out once, in the invite email.
"""

import uuid
from datetime import date, datetime, timedelta

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from pydantic import BaseModel

from accounts.models import FinishlineUser, Profile
from common.audit import try_create_audit_log
from common.results import Err, ErrorCode, Ok, err
from common.utils import generate_token, get_token_prefix, hash_token, normalize_email
from events.models import Registrant, Registration, RegistrationInvite
from events.service.emails import send_registration_invite_email
from events.service.holds import is_expired_hold

logger = structlog.get_logger(__name__)

Status = RegistrationInvite.Status


class ClaimInviteResult(BaseModel):
    invite_id: uuid.UUID
    registration_id: uuid.UUID
    edition_id: uuid.UUID


class IssuedInvite(BaseModel):
    invite_id: uuid.UUID
    token_prefix: str
    status: str
    expires_at: datetime | None


def get_invite_expiry(now: datetime) -> datetime:
    """Expiry of an invite issued at ``now``."""
    return now + timedelta(days=int(getattr(settings, "EVENTS_INVITE_TTL_DAYS", 14)))


def get_current_invite_for_email(
    edition_id: uuid.UUID, email_normalized: str, now: datetime | None = None
) -> RegistrationInvite | None:
    """The live invite addressed to ``email_normalized`` for an edition, if any."""
    now = now or timezone.now()
    return (
        RegistrationInvite.objects.live(now)
        .filter(edition_id=edition_id, email_normalized=email_normalized)
        .first()
    )


def claimable_buyer_q(user: FinishlineUser) -> Q:
    """Registrations ``user`` may take ownership of: unowned, the system buyer's, or already theirs."""
    return (
        Q(buyer_user__isnull=True)
        | Q(buyer_user=user)
        | Q(buyer_user__email__iexact=settings.GROUP_REGISTRATION_SYSTEM_BUYER_EMAIL, buyer_user__is_active=False)
    )


def _send_invite(invite: RegistrationInvite, token: str, now: datetime) -> None:
    RegistrationInvite.objects.filter(pk=invite.pk).update(status=Status.SENT, sent_at=now, updated_at=now)
    invite.status = Status.SENT
    invite.sent_at = now
    send_registration_invite_email(invite, token)


def create_invite_for_registration(
    registration: Registration,
    actor: FinishlineUser | None,
    email: str,
    date_of_birth: date | None,
    *,
    send: bool = True,
    now: datetime | None = None,
) -> Ok[IssuedInvite] | Err:
    """Issue the invite that lets a participant claim an organizer-reserved registration."""
    now = now or timezone.now()
    email_normalized = normalize_email(email)
    if is_expired_hold(registration.status, registration.expires_at, now):
        return err(ErrorCode.INVALID_STATE, "The registration no longer holds a spot.")

    token = generate_token()
    with transaction.atomic():
        if RegistrationInvite.objects.filter(
            edition_id=registration.edition_id, email_normalized=email_normalized, is_current=True
        ).exclude(status__in=[Status.CLAIMED, Status.CANCELLED, Status.EXPIRED]).exists():
            return err(ErrorCode.EXISTING_ACTIVE_INVITE, "This email already has an active invite for the event.")
        invite = RegistrationInvite.objects.create(
            edition_id=registration.edition_id,
            registration=registration,
            invited_by=actor,
            email=email.strip(),
            email_normalized=email_normalized,
            date_of_birth=date_of_birth,
            token_hash=hash_token(token),
            token_prefix=get_token_prefix(token),
            expires_at=get_invite_expiry(now),
        )
        if send:
            _send_invite(invite, token, now)
        try_create_audit_log(
            action="registration_invite.create",
            entity_type="registration_invite",
            entity_id=invite.id,
            organization=registration.edition.organization,
            actor=actor,
            after={"registration_id": str(registration.id), "status": invite.status},
        )

    logger.info("registration_invite_created", invite_id=str(invite.id), registration_id=str(registration.id))
    return Ok(
        data=IssuedInvite(
            invite_id=invite.id, token_prefix=invite.token_prefix, status=invite.status, expires_at=invite.expires_at
        )
    )


def rotate_invite_token(
    invite_id: uuid.UUID, actor: FinishlineUser, now: datetime | None = None
) -> Ok[IssuedInvite] | Err:
    """Replace an invite with a fresh token. The old invite is superseded, not edited."""
    now = now or timezone.now()
    with transaction.atomic():
        old = (
            RegistrationInvite.objects.select_for_update()
            .select_related("edition__series__organization", "registration")
            .filter(pk=invite_id)
            .first()
        )
        if old is None:
            return err(ErrorCode.NOT_FOUND, "Invite not found.")
        organization = old.edition.organization
        if not organization.is_owner_or_staff(actor.id):
            return err(ErrorCode.FORBIDDEN, "You cannot manage invites for this event.")
        if not old.is_current or old.status not in (Status.DRAFT, Status.SENT):
            return err(ErrorCode.INVALID_STATE, f"A {old.status} invite cannot be rotated.")

        RegistrationInvite.objects.filter(pk=old.pk).update(
            is_current=False, status=Status.SUPERSEDED, updated_at=now
        )
        token = generate_token()
        new = RegistrationInvite.objects.create(
            edition_id=old.edition_id,
            registration=old.registration,
            invited_by=actor,
            email=old.email,
            email_normalized=old.email_normalized,
            date_of_birth=old.date_of_birth,
            token_hash=hash_token(token),
            token_prefix=get_token_prefix(token),
            expires_at=get_invite_expiry(now),
            supersedes=old,
        )
        if old.status == Status.SENT:
            _send_invite(new, token, now)
        try_create_audit_log(
            action="registration_invite.rotate",
            entity_type="registration_invite",
            entity_id=new.id,
            organization=organization,
            actor=actor,
            before={"invite_id": str(old.id)},
            after={"invite_id": str(new.id), "status": new.status},
        )

    logger.info("registration_invite_rotated", old_invite_id=str(old.id), invite_id=str(new.id))
    return Ok(
        data=IssuedInvite(invite_id=new.id, token_prefix=new.token_prefix, status=new.status, expires_at=new.expires_at)
    )


def _check_date_of_birth(profile_dob: date | None, invite: RegistrationInvite, provided: date | None) -> Err | None:
    if profile_dob is not None:
        if profile_dob != invite.date_of_birth:
            return err(ErrorCode.DOB_MISMATCH, "Date of birth does not match the invite.")
        return None
    if provided is None:
        return err(ErrorCode.DOB_REQUIRED, "Date of birth is required to claim this invite.")
    if provided != invite.date_of_birth:
        return err(ErrorCode.DOB_MISMATCH, "Date of birth does not match the invite.")
    return None


def claim_invite(
    user: FinishlineUser,
    invite_token: str,
    date_of_birth: date | None = None,
    now: datetime | None = None,
) -> Ok[ClaimInviteResult] | Err:
    """Take ownership of the registration behind an invite.

    Claiming the same invite twice as the same user succeeds both times.
    """
    now = now or timezone.now()
    if not user.email_verified:
        return err(ErrorCode.EMAIL_NOT_VERIFIED, "Verify your email before claiming an invite.")

    with transaction.atomic():
        invite = (
            RegistrationInvite.objects.select_for_update()
            .filter(token_hash=hash_token(invite_token))
            .first()
        )
        if invite is None:
            return err(ErrorCode.NOT_FOUND, "Invite not found.")
        result = ClaimInviteResult(
            invite_id=invite.id, registration_id=invite.registration_id, edition_id=invite.edition_id
        )
        if invite.status == Status.CLAIMED:
            if invite.claimed_by_id == user.id:
                return Ok(data=result)
            return err(ErrorCode.ALREADY_CLAIMED, "This invite was already claimed.")
        if invite.status == Status.CANCELLED:
            return err(ErrorCode.INVITE_CANCELLED, "This invite was cancelled.")
        if invite.status == Status.EXPIRED or (invite.expires_at is not None and invite.expires_at <= now):
            return err(ErrorCode.INVITE_EXPIRED, "This invite has expired.")
        if not invite.is_current or invite.status == Status.SUPERSEDED:
            return err(ErrorCode.INVITE_INVALID, "This invite is no longer active.")

        registration = Registration.objects.select_for_update().filter(pk=invite.registration_id).first()
        if (
            registration is None
            or registration.is_deleted
            or is_expired_hold(registration.status, registration.expires_at, now)
        ):
            return err(ErrorCode.INVITE_EXPIRED, "The reserved spot is no longer available.")
        if user.normalized_email != invite.email_normalized:
            return err(ErrorCode.EMAIL_MISMATCH, "This invite was sent to a different email address.")
        profile = Profile.objects.filter(user=user).first()
        profile_dob = profile.date_of_birth if profile else None
        if dob_error := _check_date_of_birth(profile_dob, invite, date_of_birth):
            return dob_error
        if (
            Registration.objects.reserved(now)
            .filter(edition_id=invite.edition_id, buyer_user=user)
            .exclude(pk=registration.pk)
            .exists()
        ):
            return err(ErrorCode.ALREADY_REGISTERED, "You already have a registration for this event.")

        claimed = (
            Registration.objects.filter(pk=registration.pk)
            .filter(claimable_buyer_q(user))
            .update(buyer_user=user, updated_at=now)
        )
        if claimed == 0:
            return err(ErrorCode.ALREADY_CLAIMED, "This invite was already claimed.")
        if profile_dob is None:
            Profile.objects.update_or_create(user=user, defaults={"date_of_birth": invite.date_of_birth})
        Registrant.objects.update_or_create(registration=registration, defaults={"user": user})
        RegistrationInvite.objects.filter(pk=invite.pk).update(
            status=Status.CLAIMED, claimed_at=now, claimed_by=user, updated_at=now
        )
        try_create_audit_log(
            action="registration_invite.claim",
            entity_type="registration_invite",
            entity_id=invite.id,
            organization=invite.edition.organization,
            actor=user,
            after={"registration_id": str(registration.id)},
        )

    logger.info("registration_invite_claimed", invite_id=str(invite.id), user_id=str(user.id))
    return Ok(data=result)
