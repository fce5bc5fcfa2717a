"""Group registration schemas: registration groups and bulk upload batches."""

from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import AwareDatetime, Field

from common.schema import StrippedString
from events.models import GroupRegistrationBatch, GroupRegistrationBatchRow, RegistrationGroup


class RegistrationGroupSchema(ModelSchema):
    edition_id: UUID
    distance_id: UUID
    member_count: int = 0

    class Meta:
        model = RegistrationGroup
        fields = ["id", "name", "token_prefix", "max_members", "is_active", "created_at"]

    @staticmethod
    def resolve_member_count(obj: RegistrationGroup) -> int:
        """Members that have not left."""
        return obj.members.joined().count()


class RegistrationGroupCreateSchema(Schema):
    distance_id: UUID
    name: StrippedString = Field("", max_length=128)
    max_members: int | None = Field(None, ge=2)


class RegistrationGroupCreatedSchema(Schema):
    group: RegistrationGroupSchema
    token: str


class RegistrationGroupJoinSchema(Schema):
    token: StrippedString = Field(..., min_length=1)


class RegistrationGroupJoinResultSchema(Schema):
    group: RegistrationGroupSchema
    already_member: bool


class GroupBatchRowSchema(ModelSchema):
    matched_user_id: UUID | None = None
    created_registration_id: UUID | None = None

    class Meta:
        model = GroupRegistrationBatchRow
        fields = ["id", "row_index", "raw_json", "validation_errors"]


class GroupBatchSchema(ModelSchema):
    edition_id: UUID
    status: GroupRegistrationBatch.Status
    processed_at: AwareDatetime | None = None

    class Meta:
        model = GroupRegistrationBatch
        fields = ["id", "payment_responsibility", "error_code", "created_at"]


class GroupBatchDetailSchema(GroupBatchSchema):
    rows: list[GroupBatchRowSchema] = Field(default_factory=list)

    @staticmethod
    def resolve_rows(obj: GroupRegistrationBatch) -> list[GroupRegistrationBatchRow]:
        """Rows in file order."""
        return list(obj.rows.order_by("row_index"))
