"""Registration invite schemas."""

from datetime import date

from ninja import Schema
from pydantic import EmailStr, Field

from common.schema import StrippedString


class ClaimInviteSchema(Schema):
    invite_token: StrippedString = Field(..., min_length=1)
    date_of_birth: date | None = None


class InviteCreateSchema(Schema):
    email: EmailStr
    date_of_birth: date | None = None
    send: bool = True
