"""Hygiene job for self-signup accounts that never verified their email."""

from datetime import datetime

import structlog
from django.db import transaction
from ninja_jwt.token_blacklist.models import OutstandingToken
from pydantic import BaseModel

from accounts.models import FinishlineUser, Profile
from common.models import ContactSubmission

logger = structlog.get_logger(__name__)


class UnverifiedUserCleanupResult(BaseModel):
    cutoff: datetime
    candidates: int
    deleted: int


def cleanup_expired_unverified_users(cutoff: datetime) -> UnverifiedUserCleanupResult:
    """Hard-delete unverified accounts created before ``cutoff``.

    Dependent rows (profile, JWT tokens, group memberships, billing rows) go
    with the user. References that must survive the user, such as contact
    form submissions, are unlinked first.

    Args:
        cutoff: Accounts that joined strictly before this instant are eligible.

    Returns:
        The cutoff used, how many candidates matched and how many were deleted.
    """
    candidate_ids = list(FinishlineUser.objects.unverified_created_before(cutoff).values_list("id", flat=True))
    if not candidate_ids:
        logger.info("unverified_users_cleanup_noop", cutoff=cutoff.isoformat())
        return UnverifiedUserCleanupResult(cutoff=cutoff, candidates=0, deleted=0)

    with transaction.atomic():
        # Re-check the predicate at write time: a user may have verified in the meantime.
        doomed = FinishlineUser.objects.select_for_update().filter(id__in=candidate_ids, email_verified=False)
        doomed_ids = list(doomed.values_list("id", flat=True))

        ContactSubmission.objects.filter(user_id__in=doomed_ids).update(user=None)
        OutstandingToken.objects.filter(user_id__in=doomed_ids).delete()
        Profile.objects.filter(user_id__in=doomed_ids).delete()

        _, per_model = FinishlineUser.objects.filter(id__in=doomed_ids).delete()
        deleted = per_model.get(FinishlineUser._meta.label, 0)

    logger.info(
        "unverified_users_cleaned_up",
        cutoff=cutoff.isoformat(),
        candidates=len(candidate_ids),
        deleted=deleted,
    )
    return UnverifiedUserCleanupResult(cutoff=cutoff, candidates=len(candidate_ids), deleted=deleted)
