"""Controllers for authentication and the current account."""

import typing as t

import structlog
from ninja_extra import api_controller, route
from ninja_jwt.controller import TokenObtainPairController
from ninja_jwt.schema import TokenObtainPairInputSchema, TokenObtainPairOutputSchema

from accounts import schema
from accounts.models import FinishlineUser
from billing.models import BillingPendingEntitlementGrant
from billing.service.pending_grant_service import claim_pending_entitlement_grants_for_user
from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import Ok
from common.throttling import AuthThrottle, UserDefaultThrottle

logger = structlog.get_logger(__name__)


@api_controller("/auth", tags=["Auth"], throttle=AuthThrottle())
class AuthController(TokenObtainPairController):
    @route.post("/token/pair", response=TokenObtainPairOutputSchema, url_name="token_obtain_pair")
    def obtain_token(self, user_token: TokenObtainPairInputSchema) -> TokenObtainPairOutputSchema:
        """Authenticate with username and password to obtain JWT access/refresh tokens.

        A verified user picks up any Pro grants reserved for their email on login.
        """
        user = t.cast(FinishlineUser, user_token._user)
        if user.email_verified:
            result = claim_pending_entitlement_grants_for_user(
                user, claim_source=BillingPendingEntitlementGrant.ClaimSource.AUTO_ON_VERIFIED_SESSION
            )
            if isinstance(result, Ok) and result.data.claimed_count:
                logger.info("pending_grants_auto_claimed", user_id=str(user.id), claimed=result.data.claimed_count)
        return t.cast(TokenObtainPairOutputSchema, user_token.to_response_schema())  # type: ignore[no-untyped-call]


@api_controller("/account", auth=I18nJWTAuth(), tags=["Account"], throttle=UserDefaultThrottle())
class AccountController(UserAwareController):
    @route.get("/me", response=schema.FinishlineUserSchema, url_name="me")
    def me(self) -> FinishlineUser:
        """The authenticated user."""
        return self.user()
