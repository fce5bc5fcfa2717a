from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from django.utils import timezone
from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import unwrap
from common.throttling import UserDefaultThrottle, WriteThrottle
from events import schema
from events.models import EventDistance, Registration
from events.service import capacity_service, registration_service


@api_controller("/registrations", auth=I18nJWTAuth(), tags=["Registrations"], throttle=WriteThrottle())
class RegistrationController(UserAwareController):
    @route.get(
        "/mine",
        url_name="list_my_registrations",
        response=list[schema.MyRegistrationSchema],
        throttle=UserDefaultThrottle(),
    )
    def list_my_registrations(self) -> QuerySet[Registration]:
        """List the registrations bought by the current user."""
        return registration_service.list_my_registrations(self.user())

    @route.get(
        "/distances/{distance_id}/availability",
        url_name="distance_availability",
        response=capacity_service.DistanceAvailability,
        auth=None,
        throttle=UserDefaultThrottle(),
    )
    def distance_availability(self, distance_id: UUID) -> capacity_service.DistanceAvailability:
        """Spots left on a distance. Lapsed holds are not counted."""
        distance = get_object_or_404(
            EventDistance.objects.alive().select_related("edition").filter(edition__deleted_at__isnull=True),
            pk=distance_id,
        )
        return capacity_service.get_distance_availability(distance, timezone.now())

    @route.post("/distances/{distance_id}/start", url_name="start_registration", response=schema.RegistrationSchema)
    def start_registration(self, distance_id: UUID) -> Registration:
        """Reserve a spot on a distance with a short hold."""
        return unwrap(registration_service.start_registration_for_user(self.user(), distance_id))

    @route.post("/{registration_id}/submit", url_name="submit_registration", response=schema.RegistrationSchema)
    def submit_registration(self, registration_id: UUID, payload: schema.RegistrantInfoSchema) -> Registration:
        """Store the participant's data on an in-progress registration."""
        return unwrap(
            registration_service.submit_registrant_info(self.user(), registration_id, payload.model_dump())
        )

    @route.post("/{registration_id}/finalize", url_name="finalize_registration", response=schema.RegistrationSchema)
    def finalize_registration(self, registration_id: UUID) -> Registration:
        """Move a submitted registration to payment, or confirm it when no payment is due."""
        return unwrap(registration_service.finalize_registration(self.user(), registration_id))

    @route.post("/{registration_id}/demo-pay", url_name="demo_pay_registration", response=schema.RegistrationSchema)
    def demo_pay(self, registration_id: UUID) -> Registration:
        """Confirm a payment-pending registration without a payment processor."""
        return unwrap(registration_service.demo_pay_registration(self.user(), registration_id))
