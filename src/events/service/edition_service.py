"""Organizer-side management of event series and editions.

Every write here is audited in the same transaction. If the audit row cannot be
written, the change is rolled back.
"""

import typing as t
from datetime import datetime

import structlog
from django.db import IntegrityError, transaction
from django.http import HttpRequest

from accounts.models import FinishlineUser
from common.audit import create_audit_log
from common.results import Err, ErrorCode, Ok, err
from events import schema
from events.models import AddOn, AddOnOption, EventDistance, EventEdition, EventSeries, Organization, PricingTier
from events.service import update_db_instance

logger = structlog.get_logger(__name__)

AUDITED_EDITION_FIELDS = (
    "edition_label",
    "visibility",
    "starts_at",
    "registration_opens_at",
    "registration_closes_at",
    "is_registration_paused",
    "shared_capacity",
)


def _edition_state(edition: EventEdition) -> dict[str, t.Any]:
    state: dict[str, t.Any] = {}
    for field in AUDITED_EDITION_FIELDS:
        value = getattr(edition, field)
        state[field] = value.isoformat() if hasattr(value, "isoformat") else value
    return state


def create_event_series(
    organization: Organization,
    actor: FinishlineUser,
    payload: schema.EventSeriesCreateSchema,
    request: HttpRequest | None = None,
) -> Ok[EventSeries] | Err:
    """Create a series under an organization."""
    try:
        with transaction.atomic():
            series = EventSeries.objects.create(organization=organization, name=payload.name)
            create_audit_log(
                action="event_series.create",
                entity_type="event_series",
                entity_id=series.id,
                organization=organization,
                actor=actor,
                after={"name": series.name, "slug": series.slug},
                request=request,
            )
    except IntegrityError:
        return err(ErrorCode.VALIDATION_ERROR, "A series with this name already exists.")
    logger.info("event_series_created", series_id=str(series.id), organization_id=str(organization.id))
    return Ok(data=series)


def create_event_edition(
    series: EventSeries,
    actor: FinishlineUser,
    payload: schema.EventEditionCreateSchema,
    request: HttpRequest | None = None,
) -> Ok[EventEdition] | Err:
    """Create an edition of a series."""
    try:
        with transaction.atomic():
            edition = EventEdition.objects.create(series=series, **payload.model_dump())
            create_audit_log(
                action="event_edition.create",
                entity_type="event_edition",
                entity_id=edition.id,
                organization=series.organization,
                actor=actor,
                after=_edition_state(edition),
                request=request,
            )
    except IntegrityError:
        return err(ErrorCode.VALIDATION_ERROR, "An edition with this slug already exists in the series.")
    logger.info("event_edition_created", edition_id=str(edition.id), series_id=str(series.id))
    return Ok(data=edition)


@transaction.atomic
def update_event_edition(
    edition: EventEdition,
    actor: FinishlineUser,
    payload: schema.EventEditionUpdateSchema,
    request: HttpRequest | None = None,
) -> EventEdition:
    """Apply the fields set in ``payload`` and audit the before and after state."""
    before = _edition_state(edition)
    edition = update_db_instance(edition, payload)
    create_audit_log(
        action="event_edition.update",
        entity_type="event_edition",
        entity_id=edition.id,
        organization=edition.organization,
        actor=actor,
        before=before,
        after=_edition_state(edition),
        request=request,
    )
    logger.info("event_edition_updated", edition_id=str(edition.id))
    return edition


def clone_event_edition(
    template: EventEdition,
    actor: FinishlineUser,
    payload: schema.EventEditionCloneSchema,
    request: HttpRequest | None = None,
) -> Ok[EventEdition] | Err:
    """Copy an edition with its distances, pricing tiers and add-ons.

    Dates are shifted by the gap between the template's start and the new
    start. The copy is a draft and carries no registrations, groups or
    invites.
    """
    delta = (
        payload.starts_at - template.starts_at
        if payload.starts_at is not None and template.starts_at is not None
        else None
    )

    def shift(value: datetime | None) -> datetime | None:
        return value + delta if value is not None and delta is not None else value

    try:
        with transaction.atomic():
            edition = EventEdition.objects.create(
                series=template.series,
                edition_label=payload.edition_label,
                slug=payload.slug,
                visibility=EventEdition.Visibility.DRAFT,
                starts_at=payload.starts_at or template.starts_at,
                registration_opens_at=shift(template.registration_opens_at),
                registration_closes_at=shift(template.registration_closes_at),
                shared_capacity=template.shared_capacity,
            )
            distance_map: dict[t.Any, EventDistance] = {}
            for distance in template.distances.alive():
                distance_map[distance.id] = EventDistance.objects.create(
                    edition=edition,
                    label=distance.label,
                    distance_value=distance.distance_value,
                    distance_unit=distance.distance_unit,
                    capacity=distance.capacity,
                    capacity_scope=distance.capacity_scope,
                    sort_order=distance.sort_order,
                )
                PricingTier.objects.bulk_create(
                    PricingTier(
                        distance=distance_map[distance.id],
                        label=tier.label,
                        price_cents=tier.price_cents,
                        currency=tier.currency,
                        starts_at=shift(tier.starts_at),
                        ends_at=shift(tier.ends_at),
                        sort_order=tier.sort_order,
                    )
                    for tier in distance.pricing_tiers.filter(deleted_at__isnull=True)
                )
            for add_on in template.add_ons.alive().prefetch_related("options"):
                new_add_on = AddOn.objects.create(
                    edition=edition,
                    distance=distance_map.get(add_on.distance_id) if add_on.distance_id else None,
                    title=add_on.title,
                    is_active=add_on.is_active,
                )
                AddOnOption.objects.bulk_create(
                    AddOnOption(
                        add_on=new_add_on,
                        label=option.label,
                        price_cents=option.price_cents,
                        max_qty_per_order=option.max_qty_per_order,
                        is_active=option.is_active,
                    )
                    for option in add_on.options.all()
                    if option.deleted_at is None
                )
            create_audit_log(
                action="event_edition.clone",
                entity_type="event_edition",
                entity_id=edition.id,
                organization=template.organization,
                actor=actor,
                after={**_edition_state(edition), "cloned_from": str(template.id)},
                request=request,
            )
    except IntegrityError:
        return err(ErrorCode.VALIDATION_ERROR, "An edition with this slug already exists in the series.")
    logger.info("event_edition_cloned", edition_id=str(edition.id), template_id=str(template.id))
    return Ok(data=edition)
