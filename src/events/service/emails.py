"""Transactional emails for registrations.

Every helper queues delivery for after the surrounding transaction commits and
never raises into the business command that triggered it.
"""

import structlog
from django.conf import settings
from django.utils.translation import gettext as _

from common.tasks import queue_email_on_commit
from events.models import Registration, RegistrationInvite

logger = structlog.get_logger(__name__)


def _format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


def send_registration_confirmed_email(registration: Registration) -> None:
    """Tell the buyer their registration is confirmed."""
    buyer = registration.buyer_user
    if buyer is None or not buyer.email:
        logger.info("registration_confirmed_email_skipped", registration_id=str(registration.id))
        return
    edition = registration.edition
    subject = _("Your registration for %(edition)s is confirmed") % {"edition": str(edition)}
    body = _(
        "Hi %(name)s,\n\n"
        "your spot in %(distance)s at %(edition)s is confirmed.\n"
        "Total paid: %(total)s\n\n"
        "Registration: %(url)s/registrations/%(id)s\n"
    ) % {
        "name": buyer.display_name,
        "distance": registration.distance.label,
        "edition": str(edition),
        "total": _format_cents(registration.total_cents),
        "url": settings.FRONTEND_BASE_URL,
        "id": registration.id,
    }
    queue_email_on_commit(to=buyer.email, subject=subject, body=body)


def send_registration_invite_email(invite: RegistrationInvite, token: str) -> None:
    """Send the claim link of an invite. ``token`` is the plaintext token, never stored."""
    subject = _("You have been registered for %(edition)s") % {"edition": str(invite.edition)}
    body = _(
        "Hello,\n\n"
        "a spot at %(edition)s has been reserved for you.\n"
        "Claim it before %(expires)s:\n"
        "%(url)s/invites/claim?token=%(token)s\n"
    ) % {
        "edition": str(invite.edition),
        "expires": invite.expires_at.isoformat() if invite.expires_at else "-",
        "url": settings.FRONTEND_BASE_URL,
        "token": token,
    }
    queue_email_on_commit(to=invite.email, subject=subject, body=body)
