"""Common tasks."""

import structlog
from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import transaction

from common.models import EmailLog

logger = structlog.get_logger(__name__)


@shared_task
def send_email(*, to: str | list[str], subject: str, body: str, html_body: str | None = None) -> None:
    """Send an email and keep a compressed copy in the EmailLog.

    Args:
        to (str | list[str]): The recipient address(es).
        subject (str): The email subject.
        body (str): The plain-text body.
        html_body (str | None): The HTML body.
    """
    recipients = [to] if isinstance(to, str) else to
    email_msg = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        bcc=recipients,
    )
    if html_body:
        email_msg.attach_alternative(html_body, "text/html")
    email_msg.send(fail_silently=False)
    email_logs: list[EmailLog] = []
    for recipient in recipients:
        el = EmailLog(to=recipient, subject=subject)
        el.set_body(body=body)
        if html_body:
            el.set_html(html_body=html_body)
        email_logs.append(el)
    EmailLog.objects.bulk_create(email_logs)
    logger.info("email_sent", recipient_count=len(recipients), subject=subject)


def queue_email_on_commit(*, to: str | list[str], subject: str, body: str, html_body: str | None = None) -> None:
    """Queue an email once the surrounding transaction commits.

    Delivery is best effort: a failure to enqueue is logged and never reaches
    the caller of the business command.
    """
    def _send() -> None:
        try:
            send_email.delay(to=to, subject=subject, body=body, html_body=html_body)
        except Exception:
            logger.exception("email_enqueue_failed", subject=subject)

    transaction.on_commit(_send)
