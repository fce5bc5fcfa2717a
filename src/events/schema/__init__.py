"""Events schema package.

Schemas are grouped by the models they describe and re-exported here.
"""

from .edition import (
    EventDistanceSchema,
    EventEditionCloneSchema,
    EventEditionCreateSchema,
    EventEditionSchema,
    EventEditionUpdateSchema,
    EventSeriesCreateSchema,
    EventSeriesSchema,
)
from .group import (
    GroupBatchDetailSchema,
    GroupBatchRowSchema,
    GroupBatchSchema,
    RegistrationGroupCreatedSchema,
    RegistrationGroupCreateSchema,
    RegistrationGroupJoinResultSchema,
    RegistrationGroupJoinSchema,
    RegistrationGroupSchema,
)
from .invite import ClaimInviteSchema, InviteCreateSchema
from .registration import MyRegistrationSchema, RegistrantInfoSchema, RegistrationSchema

__all__ = [
    "ClaimInviteSchema",
    "EventDistanceSchema",
    "EventEditionCloneSchema",
    "EventEditionCreateSchema",
    "EventEditionSchema",
    "EventEditionUpdateSchema",
    "EventSeriesCreateSchema",
    "EventSeriesSchema",
    "GroupBatchDetailSchema",
    "GroupBatchRowSchema",
    "GroupBatchSchema",
    "InviteCreateSchema",
    "MyRegistrationSchema",
    "RegistrantInfoSchema",
    "RegistrationGroupCreateSchema",
    "RegistrationGroupCreatedSchema",
    "RegistrationGroupJoinResultSchema",
    "RegistrationGroupJoinSchema",
    "RegistrationGroupSchema",
    "RegistrationSchema",
]
