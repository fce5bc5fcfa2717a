from uuid import UUID

from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import unwrap
from common.throttling import WriteThrottle
from events import schema
from events.models import Registration
from events.service import invite_service

from .permissions import OrganizerPermission


@api_controller("/invites", auth=I18nJWTAuth(), tags=["Invites"], throttle=WriteThrottle())
class InviteController(UserAwareController):
    @route.post("/claim", url_name="claim_invite", response=invite_service.ClaimInviteResult)
    def claim_invite(self, payload: schema.ClaimInviteSchema) -> invite_service.ClaimInviteResult:
        """Claim the registration reserved for you."""
        return unwrap(invite_service.claim_invite(self.user(), payload.invite_token, payload.date_of_birth))

    @route.post(
        "/registrations/{registration_id}",
        url_name="create_invite",
        response=invite_service.IssuedInvite,
        permissions=[OrganizerPermission()],
    )
    def create_invite(self, registration_id: UUID, payload: schema.InviteCreateSchema) -> invite_service.IssuedInvite:
        """Invite a participant to claim an organizer-reserved registration."""
        registration = self.get_object_or_exception(
            Registration.objects.alive().select_related("edition__series__organization"), pk=registration_id
        )
        return unwrap(
            invite_service.create_invite_for_registration(
                registration, self.user(), payload.email, payload.date_of_birth, send=payload.send
            )
        )

    @route.post("/{invite_id}/rotate", url_name="rotate_invite", response=invite_service.IssuedInvite)
    def rotate_invite(self, invite_id: UUID) -> invite_service.IssuedInvite:
        """Issue a fresh token for an invite, superseding the previous one."""
        return unwrap(invite_service.rotate_invite_token(invite_id, self.user()))
