from uuid import UUID

from django.http import HttpResponse
from ninja import File, Form
from ninja.errors import HttpError
from ninja.files import UploadedFile
from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import unwrap
from common.throttling import UserDefaultThrottle, WriteThrottle
from events import schema
from events.models import EventEdition, GroupRegistrationBatch, Registration
from events.service import batch_registration_service, group_csv

from .permissions import OrganizerPermission

MAX_UPLOAD_BYTES = 2 * 1024 * 1024


@api_controller("/group-registrations", auth=I18nJWTAuth(), tags=["Group Registrations"], throttle=WriteThrottle())
class GroupRegistrationController(UserAwareController):
    @route.get(
        "/template",
        url_name="group_registration_template",
        response={200: None},
        auth=None,
        throttle=UserDefaultThrottle(),
    )
    def download_template(self) -> HttpResponse:
        """Download the CSV template for group uploads."""
        response = HttpResponse(group_csv.generate_group_registration_template_csv(), content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="group-registration-template.csv"'
        return response

    @route.post(
        "/editions/{edition_id}/batches",
        url_name="upload_group_batch",
        response=schema.GroupBatchDetailSchema,
        permissions=[OrganizerPermission()],
    )
    def upload_batch(
        self,
        edition_id: UUID,
        file: File[UploadedFile],
        payment_responsibility: Form[Registration.PaymentResponsibility] = (
            Registration.PaymentResponsibility.CENTRAL_PAY
        ),
    ) -> GroupRegistrationBatch:
        """Upload a CSV of participants. Every row is validated and stored with its errors."""
        edition = self.get_object_or_exception(
            EventEdition.objects.alive().select_related("series__organization"), pk=edition_id
        )
        if file.size and file.size > MAX_UPLOAD_BYTES:
            raise HttpError(413, "File too large.")
        try:
            csv_text = file.read().decode("utf-8")
        except UnicodeDecodeError as e:
            raise HttpError(400, "File must be UTF-8 encoded.") from e
        return unwrap(
            batch_registration_service.create_group_batch(
                edition, self.user(), csv_text, payment_responsibility=payment_responsibility
            )
        )

    @route.get(
        "/batches/{batch_id}",
        url_name="get_group_batch",
        response=schema.GroupBatchDetailSchema,
        permissions=[OrganizerPermission()],
        throttle=UserDefaultThrottle(),
    )
    def get_batch(self, batch_id: UUID) -> GroupRegistrationBatch:
        """Batch status and rows."""
        return self.get_object_or_exception(
            GroupRegistrationBatch.objects.select_related("edition__series__organization"), pk=batch_id
        )

    @route.post(
        "/batches/{batch_id}/process",
        url_name="process_group_batch",
        response=batch_registration_service.ProcessGroupBatchResult,
        permissions=[OrganizerPermission()],
    )
    def process_batch(self, batch_id: UUID) -> batch_registration_service.ProcessGroupBatchResult:
        """Create every registration of a validated batch, all or nothing."""
        batch = self.get_object_or_exception(
            GroupRegistrationBatch.objects.select_related("edition__series__organization"), pk=batch_id
        )
        return unwrap(batch_registration_service.process_group_batch(batch.id, self.user()))
