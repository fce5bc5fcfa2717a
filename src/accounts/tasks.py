"""Tasks for the accounts app."""

from datetime import timedelta

import structlog
from celery import shared_task
from django.conf import settings
from django.utils import timezone
from ninja_jwt.token_blacklist.models import OutstandingToken
from ninja_jwt.utils import aware_utcnow

from accounts.service.cleanup import cleanup_expired_unverified_users

logger = structlog.get_logger(__name__)


@shared_task
def cleanup_expired_unverified_users_task() -> dict[str, int | str]:
    """Delete self-signup accounts that stayed unverified past the retention window."""
    cutoff = timezone.now() - timedelta(hours=settings.UNVERIFIED_USER_RETENTION_HOURS)
    result = cleanup_expired_unverified_users(cutoff)
    return result.model_dump(mode="json")


@shared_task
def flush_expired_tokens() -> int:
    """Delete outstanding JWTs that have expired. Returns how many were removed."""
    deleted, _ = OutstandingToken.objects.filter(expires_at__lte=aware_utcnow()).delete()
    logger.info("expired_tokens_flushed", deleted=deleted)
    return deleted
