"""Schema for accounts module."""

from ninja import ModelSchema
from pydantic import UUID4

from .models import FinishlineUser


class FinishlineUserSchema(ModelSchema):
    id: UUID4
    display_name: str

    class Meta:
        model = FinishlineUser
        fields = ["email", "email_verified", "first_name", "last_name", "language", "is_internal"]
