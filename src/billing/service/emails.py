"""Billing notification emails.

Delivery is queued after commit and is best effort: a user without an email
address is skipped with a log line.
"""

from datetime import datetime

import structlog
from django.conf import settings
from django.utils import formats, translation
from django.utils.translation import gettext as _

from accounts.models import FinishlineUser
from common.tasks import queue_email_on_commit

logger = structlog.get_logger(__name__)


def _billing_url() -> str:
    return f"{settings.FRONTEND_BASE_URL}{settings.BILLING_UPSELL_PATH}"


def _format_date(value: datetime) -> str:
    return formats.date_format(value, "DATE_FORMAT")


def _recipient(user: FinishlineUser, kind: str) -> str | None:
    if not user.email or user.deleted_at is not None:
        logger.info("billing_email_skipped", kind=kind, user_id=str(user.id))
        return None
    return user.email


def send_trial_started_email(user: FinishlineUser, trial_ends_at: datetime) -> None:
    if (to := _recipient(user, "trial_started")) is None:
        return
    with translation.override(user.language):
        subject = _("Your Pro trial has started")
        body = _(
            "Hi %(name)s,\n\n"
            "your %(days)s-day Pro trial is active until %(ends)s.\n\n"
            "Manage your plan: %(url)s\n"
        ) % {
            "name": user.display_name,
            "days": settings.BILLING_TRIAL_DAYS,
            "ends": _format_date(trial_ends_at),
            "url": _billing_url(),
        }
    queue_email_on_commit(to=to, subject=subject, body=body)


def send_cancel_scheduled_email(user: FinishlineUser, ends_at: datetime) -> None:
    if (to := _recipient(user, "cancel_scheduled")) is None:
        return
    with translation.override(user.language):
        subject = _("Your Pro plan will end on %(ends)s") % {"ends": _format_date(ends_at)}
        body = _(
            "Hi %(name)s,\n\n"
            "we received your cancellation. You keep Pro access until %(ends)s.\n"
            "Changed your mind? Resume any time before then: %(url)s\n"
        ) % {"name": user.display_name, "ends": _format_date(ends_at), "url": _billing_url()}
    queue_email_on_commit(to=to, subject=subject, body=body)


def send_subscription_ended_email(user: FinishlineUser, *, was_trial: bool) -> None:
    if (to := _recipient(user, "subscription_ended")) is None:
        return
    with translation.override(user.language):
        subject = _("Your Pro trial has ended") if was_trial else _("Your Pro plan has ended")
        body = _("Hi %(name)s,\n\nyour Pro access has ended. Upgrade again at %(url)s\n") % {
            "name": user.display_name,
            "url": _billing_url(),
        }
    queue_email_on_commit(to=to, subject=subject, body=body)


def send_trial_expiring_soon_email(user: FinishlineUser, trial_ends_at: datetime) -> None:
    if (to := _recipient(user, "trial_expiring_soon")) is None:
        return
    with translation.override(user.language):
        subject = _("Your Pro trial ends soon")
        body = _(
            "Hi %(name)s,\n\nyour Pro trial ends on %(ends)s. Keep Pro features at %(url)s\n"
        ) % {"name": user.display_name, "ends": _format_date(trial_ends_at), "url": _billing_url()}
    queue_email_on_commit(to=to, subject=subject, body=body)
