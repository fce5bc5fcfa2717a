"""Capacity and availability for distances and shared pools.

Reserved counts are always derived from the registrations table at read time.
There is no cached counter, so a lapsed hold frees its spot as soon as its
``expires_at`` passes.
"""

import uuid
from datetime import datetime

import structlog
from pydantic import BaseModel, computed_field

from events.exceptions import CapacityExceededError
from events.models import EventDistance, EventEdition, Registration

logger = structlog.get_logger(__name__)


class DistanceAvailability(BaseModel):
    distance_id: uuid.UUID
    capacity: int | None
    reserved: int
    spots_remaining: int | None
    is_shared_pool: bool

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_sold_out(self) -> bool:
        """Whether no spot is left."""
        return self.spots_remaining is not None and self.spots_remaining <= 0


def get_capacity_limit(distance: EventDistance) -> int | None:
    """The capacity that applies to ``distance``; None means unlimited."""
    if distance.uses_shared_pool:
        return distance.edition.shared_capacity
    return distance.capacity


def count_reserved(
    distance: EventDistance,
    now: datetime,
    *,
    exclude_registration_id: uuid.UUID | None = None,
) -> int:
    """Count the registrations currently holding a spot in ``distance``'s capacity scope.

    For shared pools the count spans the whole edition.
    """
    qs = Registration.objects.reserved(now)
    if distance.uses_shared_pool:
        qs = qs.filter(edition_id=distance.edition_id)
    else:
        qs = qs.filter(distance_id=distance.id)
    if exclude_registration_id is not None:
        qs = qs.exclude(id=exclude_registration_id)
    return qs.count()


def compute_spots_remaining(capacity: int | None, reserved: int) -> int | None:
    """``max(capacity - reserved, 0)``, or None for unlimited capacity."""
    if capacity is None:
        return None
    return max(capacity - reserved, 0)


def get_spots_remaining(distance: EventDistance, now: datetime) -> int | None:
    """Spots left for ``distance`` at ``now``; None when unlimited."""
    return compute_spots_remaining(get_capacity_limit(distance), count_reserved(distance, now))


def get_distance_availability(distance: EventDistance, now: datetime) -> DistanceAvailability:
    """Full availability snapshot of a distance."""
    capacity = get_capacity_limit(distance)
    reserved = count_reserved(distance, now)
    return DistanceAvailability(
        distance_id=distance.id,
        capacity=capacity,
        reserved=reserved,
        spots_remaining=compute_spots_remaining(capacity, reserved),
        is_shared_pool=distance.uses_shared_pool,
    )


def lock_edition(edition_id: uuid.UUID) -> None:
    """Lock the edition row. Writers that lock several rows take this one first."""
    EventEdition.objects.select_for_update().filter(pk=edition_id).first()


def lock_capacity_scope(distance: EventDistance) -> None:
    """Take the row lock that serializes writers competing for ``distance``'s capacity.

    Must be called inside a transaction. Shared pools lock the edition row,
    per-distance capacity locks the distance row.
    """
    if distance.uses_shared_pool:
        lock_edition(distance.edition_id)
    else:
        EventDistance.objects.select_for_update().filter(pk=distance.pk).first()


def assert_capacity_for(
    distance: EventDistance,
    requested: int,
    now: datetime,
    *,
    exclude_registration_id: uuid.UUID | None = None,
) -> None:
    """Lock the capacity scope and check that ``requested`` more spots fit.

    Args:
        distance: The distance being registered for.
        requested: Number of new spots.
        now: Reference time for hold expiry.
        exclude_registration_id: A registration already counted that is being re-checked.

    Raises:
        CapacityExceededError: If reserved + requested exceeds the capacity.
    """
    lock_capacity_scope(distance)
    capacity = get_capacity_limit(distance)
    if capacity is None:
        return
    reserved = count_reserved(distance, now, exclude_registration_id=exclude_registration_id)
    if reserved + requested > capacity:
        logger.info(
            "capacity_exceeded",
            distance_id=str(distance.id),
            capacity=capacity,
            reserved=reserved,
            requested=requested,
        )
        raise CapacityExceededError(requested=requested, available=max(capacity - reserved, 0))
