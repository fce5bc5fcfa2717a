"""Typed results for business commands.

Expected business outcomes are returned as values, never raised: callers branch
on ``result.ok``. Exceptions are reserved for invariant violations.
"""

import typing as t
from enum import StrEnum

from ninja.errors import HttpError
from pydantic import BaseModel, ConfigDict

T = t.TypeVar("T")


class ErrorCode(StrEnum):
    """Machine-readable error codes shared by every command."""

    # generic
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_STATE = "INVALID_STATE"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    RETRY = "RETRY"
    # capacity
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    SOLD_OUT = "SOLD_OUT"
    # registration lifecycle
    NOT_PUBLISHED = "NOT_PUBLISHED"
    REGISTRATION_PAUSED = "REGISTRATION_PAUSED"
    REGISTRATION_NOT_OPEN = "REGISTRATION_NOT_OPEN"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    REGISTRATION_EXPIRED = "REGISTRATION_EXPIRED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    HAS_ACTIVE_INVITE = "HAS_ACTIVE_INVITE"
    MISSING_REGISTRANT = "MISSING_REGISTRANT"
    DEMO_PAYMENTS_DISABLED = "DEMO_PAYMENTS_DISABLED"
    # groups
    DISABLED = "DISABLED"
    ALREADY_IN_GROUP = "ALREADY_IN_GROUP"
    GROUP_FULL = "GROUP_FULL"
    # invites
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    INVITE_CANCELLED = "INVITE_CANCELLED"
    INVITE_EXPIRED = "INVITE_EXPIRED"
    INVITE_INVALID = "INVITE_INVALID"
    EMAIL_MISMATCH = "EMAIL_MISMATCH"
    DOB_REQUIRED = "DOB_REQUIRED"
    DOB_MISMATCH = "DOB_MISMATCH"
    EXISTING_ACTIVE_INVITE = "EXISTING_ACTIVE_INVITE"
    # billing
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    ALREADY_PRO = "ALREADY_PRO"
    TRIAL_ALREADY_USED = "TRIAL_ALREADY_USED"
    SUBSCRIPTION_ENDED = "SUBSCRIPTION_ENDED"
    NOT_ACTIVE = "NOT_ACTIVE"
    PROMO_NOT_FOUND = "PROMO_NOT_FOUND"
    PROMO_INACTIVE = "PROMO_INACTIVE"
    PROMO_MAX_REDEMPTIONS = "PROMO_MAX_REDEMPTIONS"
    CODE_GENERATION_FAILED = "CODE_GENERATION_FAILED"


class Ok(BaseModel, t.Generic[T]):
    """Successful command outcome."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: t.Literal[True] = True
    data: T


class Err(BaseModel):
    """Expected business failure."""

    ok: t.Literal[False] = False
    code: ErrorCode
    error: str


def err(code: ErrorCode, error: str) -> Err:
    """Shorthand for building an Err."""
    return Err(code=code, error=error)


HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PROMO_NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.EMAIL_NOT_VERIFIED: 403,
    ErrorCode.DEMO_PAYMENTS_DISABLED: 403,
    ErrorCode.INSUFFICIENT_CAPACITY: 409,
    ErrorCode.SOLD_OUT: 409,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.ALREADY_REGISTERED: 409,
    ErrorCode.ALREADY_CLAIMED: 409,
    ErrorCode.TRIAL_ALREADY_USED: 409,
    ErrorCode.ALREADY_PRO: 409,
    ErrorCode.RETRY: 503,
}


def unwrap(result: Ok[T] | Err) -> T:
    """Return the data of an Ok or raise the matching HttpError for an Err."""
    if isinstance(result, Err):
        raise HttpError(HTTP_STATUS_BY_CODE.get(result.code, 400), f"{result.code}: {result.error}")
    return result.data
