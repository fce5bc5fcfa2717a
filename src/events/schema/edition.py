"""Event series and edition schemas."""

from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import AwareDatetime, Field, model_validator

from common.schema import OneToOneFiftyString, StrippedString
from events.models import EventDistance, EventEdition, EventSeries


class EventSeriesSchema(ModelSchema):
    organization_id: UUID

    class Meta:
        model = EventSeries
        fields = ["id", "name", "slug", "created_at"]


class EventSeriesCreateSchema(Schema):
    name: OneToOneFiftyString


class EventDistanceSchema(ModelSchema):
    capacity_scope: EventDistance.CapacityScope

    class Meta:
        model = EventDistance
        fields = ["id", "label", "distance_value", "distance_unit", "capacity", "sort_order"]


class EventEditionSchema(ModelSchema):
    series_id: UUID
    visibility: EventEdition.Visibility
    distances: list[EventDistanceSchema] = Field(default_factory=list)

    class Meta:
        model = EventEdition
        fields = [
            "id",
            "edition_label",
            "slug",
            "starts_at",
            "registration_opens_at",
            "registration_closes_at",
            "is_registration_paused",
            "shared_capacity",
        ]

    @staticmethod
    def resolve_distances(obj: EventEdition) -> list[EventDistance]:
        """Distances that are not deleted."""
        return list(obj.distances.alive())


class _EditionWindowMixin(Schema):
    registration_opens_at: AwareDatetime | None = None
    registration_closes_at: AwareDatetime | None = None

    @model_validator(mode="after")
    def validate_window(self) -> "_EditionWindowMixin":
        """Registration must close after it opens."""
        if (
            self.registration_opens_at
            and self.registration_closes_at
            and self.registration_closes_at <= self.registration_opens_at
        ):
            raise ValueError("registration_closes_at must be after registration_opens_at.")
        return self


class EventEditionCreateSchema(_EditionWindowMixin):
    edition_label: StrippedString = Field(..., min_length=1, max_length=64)
    slug: StrippedString = Field(..., min_length=1, max_length=255, pattern=r"^[-a-z0-9_]+$")
    visibility: EventEdition.Visibility = EventEdition.Visibility.DRAFT
    starts_at: AwareDatetime | None = None
    shared_capacity: int | None = Field(None, ge=0)


class EventEditionUpdateSchema(_EditionWindowMixin):
    edition_label: StrippedString | None = Field(None, min_length=1, max_length=64)
    visibility: EventEdition.Visibility | None = None
    starts_at: AwareDatetime | None = None
    is_registration_paused: bool | None = None
    shared_capacity: int | None = Field(None, ge=0)


class EventEditionCloneSchema(Schema):
    edition_label: StrippedString = Field(..., min_length=1, max_length=64)
    slug: StrippedString = Field(..., min_length=1, max_length=255, pattern=r"^[-a-z0-9_]+$")
    starts_at: AwareDatetime | None = None
