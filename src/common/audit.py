"""Transaction-scoped audit logging."""

import typing as t
import uuid

import structlog
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.http import HttpRequest

from common.models import AuditLog

if t.TYPE_CHECKING:
    from accounts.models import FinishlineUser
    from events.models import Organization

logger = structlog.get_logger(__name__)


def get_request_context(request: HttpRequest | None) -> dict[str, t.Any] | None:
    """Extract the audit-relevant bits of a request."""
    if request is None:
        return None
    forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR", "")
    ip = forwarded_for.split(",")[0].strip() if forwarded_for else request.META.get("REMOTE_ADDR")
    return {
        "ip": ip,
        "user_agent": request.META.get("HTTP_USER_AGENT", "")[:512],
        "path": request.path,
    }


def create_audit_log(
    *,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str,
    organization: "Organization | None" = None,
    actor: "FinishlineUser | None" = None,
    before: dict[str, t.Any] | None = None,
    after: dict[str, t.Any] | None = None,
    request: HttpRequest | None = None,
) -> AuditLog:
    """Write an audit log row in the caller's transaction.

    Failures propagate: the caller decides whether the audit entry is mandatory
    (let it abort the transaction) or best effort (catch and log).
    """
    entry = AuditLog.objects.create(
        organization=organization,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before=before,
        after=after,
        request_context=get_request_context(request),
    )
    logger.debug("audit_log_created", action=action, entity_type=entity_type, entity_id=str(entity_id))
    return entry


def try_create_audit_log(**kwargs: t.Any) -> AuditLog | None:
    """Best-effort variant of create_audit_log.

    Runs inside a savepoint so a failed insert does not poison the caller's
    transaction.
    """
    try:
        with transaction.atomic():
            return create_audit_log(**kwargs)
    except (DatabaseError, ValidationError):
        logger.warning("audit_log_failed", action=kwargs.get("action"), exc_info=True)
        return None
