import typing as t
import uuid

import structlog
from django.db import IntegrityError, transaction

from billing.models import BillingEvent

logger = structlog.get_logger(__name__)


def append_billing_event(
    *,
    source: str,
    type: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None = None,
    user_id: uuid.UUID | None = None,
    payload: dict[str, t.Any] | None = None,
    provider: str | None = None,
    external_event_id: str | None = None,
    request_id: str | None = None,
    idempotency_key: str | None = None,
) -> BillingEvent | None:
    """Append a row to the billing ledger in the caller's transaction.

    Events carrying both ``provider`` and ``external_event_id`` are deduplicated
    on that pair: a repeat insert returns None instead of a new event.
    """
    fields = {
        "source": source,
        "type": type,
        "entity_type": entity_type,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "user_id": user_id,
        "payload": payload or {},
        "provider": provider,
        "external_event_id": external_event_id,
        "request_id": request_id,
        "idempotency_key": idempotency_key,
    }
    if not (provider and external_event_id):
        return BillingEvent.objects.create(**fields)
    try:
        with transaction.atomic():
            return BillingEvent.objects.create(**fields)
    except IntegrityError:
        logger.debug("billing_event_duplicate", provider=provider, external_event_id=external_event_id)
        return None
