from .edition import AddOn, AddOnOption, EventDistance, EventEdition, PricingTier
from .group import (
    GroupDiscountRule,
    GroupRegistrationBatch,
    GroupRegistrationBatchRow,
    RegistrationGroup,
    RegistrationGroupMember,
)
from .invite import RegistrationInvite
from .organization import EventSeries, Organization
from .registration import HOLD_STATUSES, AddOnSelection, Registrant, Registration, reserved_registrations_q

__all__ = [
    "AddOn",
    "AddOnOption",
    "AddOnSelection",
    "EventDistance",
    "EventEdition",
    "EventSeries",
    "GroupDiscountRule",
    "GroupRegistrationBatch",
    "GroupRegistrationBatchRow",
    "HOLD_STATUSES",
    "reserved_registrations_q",
    "Organization",
    "PricingTier",
    "Registrant",
    "Registration",
    "RegistrationGroup",
    "RegistrationGroupMember",
    "RegistrationInvite",
]
