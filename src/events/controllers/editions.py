from uuid import UUID

from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import unwrap
from common.throttling import WriteThrottle
from events import schema
from events.models import EventEdition, EventSeries, Organization
from events.service import edition_service
from pro_features.service import require_pro_feature

from .permissions import OrganizerPermission


@api_controller("/organization-admin", auth=I18nJWTAuth(), tags=["Organization Admin"], throttle=WriteThrottle())
class EditionAdminController(UserAwareController):
    @route.post(
        "/{slug}/series",
        url_name="create_event_series",
        response=schema.EventSeriesSchema,
        permissions=[OrganizerPermission()],
    )
    def create_series(self, slug: str, payload: schema.EventSeriesCreateSchema) -> EventSeries:
        """Create an event series."""
        organization = self.get_object_or_exception(Organization.objects.alive(), slug=slug)
        request = self.context.request  # type: ignore[union-attr]
        return unwrap(edition_service.create_event_series(organization, self.user(), payload, request=request))

    @route.post(
        "/series/{series_id}/editions",
        url_name="create_event_edition",
        response=schema.EventEditionSchema,
        permissions=[OrganizerPermission()],
    )
    def create_edition(self, series_id: UUID, payload: schema.EventEditionCreateSchema) -> EventEdition:
        """Create an edition of a series."""
        series = self.get_object_or_exception(EventSeries.objects.alive().select_related("organization"), pk=series_id)
        request = self.context.request  # type: ignore[union-attr]
        return unwrap(edition_service.create_event_edition(series, self.user(), payload, request=request))

    @route.patch(
        "/editions/{edition_id}",
        url_name="update_event_edition",
        response=schema.EventEditionSchema,
        permissions=[OrganizerPermission()],
    )
    def update_edition(self, edition_id: UUID, payload: schema.EventEditionUpdateSchema) -> EventEdition:
        """Update an edition. Only the fields sent are changed."""
        edition = self.get_object_or_exception(
            EventEdition.objects.alive().select_related("series__organization"), pk=edition_id
        )
        request = self.context.request  # type: ignore[union-attr]
        return edition_service.update_event_edition(edition, self.user(), payload, request=request)

    @route.post(
        "/editions/{edition_id}/clone",
        url_name="clone_event_edition",
        response=schema.EventEditionSchema,
        permissions=[OrganizerPermission()],
    )
    def clone_edition(self, edition_id: UUID, payload: schema.EventEditionCloneSchema) -> EventEdition:
        """Copy an edition into a new draft of the same series. Pro feature."""
        edition = self.get_object_or_exception(
            EventEdition.objects.alive().select_related("series__organization"), pk=edition_id
        )
        require_pro_feature("event_clone", self.user())
        request = self.context.request  # type: ignore[union-attr]
        return unwrap(edition_service.clone_event_edition(edition, self.user(), payload, request=request))
