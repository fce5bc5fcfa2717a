import typing as t
import uuid
from datetime import datetime

from django.db import models, transaction
from pydantic import BaseModel

from accounts.models import FinishlineUser
from billing.models import BillingEvent
from billing.service.events import append_billing_event
from common.results import Err, ErrorCode, Ok, err


class ActivationChange(BaseModel):
    id: uuid.UUID
    is_active: bool
    already_in_state: bool


def set_active_flag(
    model: type[models.Model],
    pk: uuid.UUID,
    *,
    is_active: bool,
    actor: FinishlineUser,
    event_type: str,
    entity_type: str,
    now: datetime,
) -> Ok[ActivationChange] | Err:
    """Enable or disable a promotion or pending grant and record it in the ledger.

    Asking for the state the row is already in succeeds with ``already_in_state``.
    """
    manager: models.Manager[t.Any] = getattr(model, "objects")
    with transaction.atomic():
        instance = manager.select_for_update().filter(pk=pk).first()
        if instance is None:
            return err(ErrorCode.NOT_FOUND, f"{model._meta.verbose_name.capitalize()} not found.")
        if instance.is_active == is_active:
            return Ok(data=ActivationChange(id=pk, is_active=is_active, already_in_state=True))
        manager.filter(pk=pk).update(is_active=is_active, updated_at=now)
        append_billing_event(
            source=BillingEvent.Source.ADMIN,
            type=event_type,
            user_id=actor.id,
            entity_type=entity_type,
            entity_id=pk,
            payload={"actor_id": str(actor.id)},
        )
    return Ok(data=ActivationChange(id=pk, is_active=is_active, already_in_state=False))
