from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI

from accounts.controllers.auth import AccountController, AuthController
from billing.controllers import BillingController
from common.exceptions import InvariantViolationError
from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle, UserDefaultThrottle
from events.controllers.editions import EditionAdminController
from events.controllers.group_registrations import GroupRegistrationController
from events.controllers.invites import InviteController
from events.controllers.registration_groups import RegistrationGroupController
from events.controllers.registrations import RegistrationController
from pro_features.controllers import ProFeatureController

from .exception_handlers import (
    handle_django_validation_error,
    handle_general_exception,
    handle_invariant_violation,
)

api = NinjaExtraAPI(
    title=f"{settings.SITE_NAME} API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"{settings.SITE_NAME} registration and billing API {settings.VERSION}",
    app_name=f"finishline-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SERVICE_DESCRIPTION},
    ],
    throttle=[AnonDefaultThrottle(), UserDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version."""
    return 200, VersionResponse(version=settings.VERSION, demo=settings.DEMO_MODE)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API."""
    return 200, ResponseOk()


api.register_controllers(
    # Auth/Account controllers
    AuthController,
    AccountController,
    # Registration controllers
    EditionAdminController,
    RegistrationController,
    RegistrationGroupController,
    GroupRegistrationController,
    InviteController,
    # Billing controllers
    BillingController,
    ProFeatureController,
)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    InvariantViolationError: handle_invariant_violation,
    ValidationError: handle_django_validation_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
