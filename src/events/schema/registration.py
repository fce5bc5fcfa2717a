"""Registration schemas."""

from datetime import date
from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import AwareDatetime, Field

from common.schema import StrippedString
from events.models import Registration


class RegistrationSchema(ModelSchema):
    edition_id: UUID
    distance_id: UUID
    registration_group_id: UUID | None = None
    status: Registration.Status
    payment_responsibility: Registration.PaymentResponsibility
    expires_at: AwareDatetime | None = None

    class Meta:
        model = Registration
        fields = [
            "id",
            "base_price_cents",
            "fees_cents",
            "tax_cents",
            "discount_amount_cents",
            "group_discount_percent_off",
            "group_discount_amount_cents",
            "total_cents",
            "created_at",
        ]


class MyRegistrationSchema(RegistrationSchema):
    edition_label: str
    series_name: str
    distance_label: str

    @staticmethod
    def resolve_edition_label(obj: Registration) -> str:
        """Edition label."""
        return obj.edition.edition_label

    @staticmethod
    def resolve_series_name(obj: Registration) -> str:
        """Series name."""
        return obj.edition.series.name

    @staticmethod
    def resolve_distance_label(obj: Registration) -> str:
        """Distance label."""
        return obj.distance.label


class RegistrantInfoSchema(Schema):
    first_name: StrippedString = Field(..., min_length=1, max_length=150)
    last_name: StrippedString = Field(..., min_length=1, max_length=150)
    date_of_birth: date | None = None
    phone: StrippedString | None = Field(None, max_length=32)
    gender: StrippedString | None = Field(None, max_length=32)
    gender_identity: StrippedString | None = Field(None, max_length=64)
    city: StrippedString | None = Field(None, max_length=128)
    state: StrippedString | None = Field(None, max_length=128)
    country: StrippedString | None = Field(None, min_length=2, max_length=2)
    emergency_contact_name: StrippedString | None = Field(None, max_length=255)
    emergency_contact_phone: StrippedString | None = Field(None, max_length=32)
