from uuid import UUID

from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import unwrap
from common.throttling import WriteThrottle
from events import schema
from events.models import RegistrationGroup
from events.service import group_discount_service


@api_controller("/registration-groups", auth=I18nJWTAuth(), tags=["Registration Groups"], throttle=WriteThrottle())
class RegistrationGroupController(UserAwareController):
    @route.post("/", url_name="create_registration_group", response=schema.RegistrationGroupCreatedSchema)
    def create_group(
        self, payload: schema.RegistrationGroupCreateSchema
    ) -> group_discount_service.CreatedRegistrationGroup:
        """Create a group and get its share link token. The token is shown only once."""
        return unwrap(
            group_discount_service.create_registration_group(
                self.user(), payload.distance_id, name=payload.name, max_members=payload.max_members
            )
        )

    @route.post("/join", url_name="join_registration_group", response=schema.RegistrationGroupJoinResultSchema)
    def join_group(self, payload: schema.RegistrationGroupJoinSchema) -> group_discount_service.GroupJoinResult:
        """Join a group through its share token."""
        return unwrap(group_discount_service.join_registration_group(self.user(), payload.token))

    @route.post("/{group_id}/leave", url_name="leave_registration_group", response=schema.RegistrationGroupSchema)
    def leave_group(self, group_id: UUID) -> RegistrationGroup:
        """Leave a group."""
        return unwrap(group_discount_service.leave_registration_group(self.user(), group_id))
