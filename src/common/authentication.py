import typing as t

import structlog
from django.contrib.auth.models import AnonymousUser
from django.http import HttpRequest
from django.utils import translation
from ninja_jwt.authentication import JWTAuth

logger = structlog.get_logger(__name__)


class I18nJWTAuth(JWTAuth):
    """JWT authentication that switches the request to the user's language.

    Error messages and emails triggered by the request are then rendered in
    that language.
    """

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        """Authenticate and activate ``user.language`` when set."""
        user = super().authenticate(request, token)
        language = getattr(user, "language", None) if user else None
        if language:
            translation.activate(language)
            request.LANGUAGE_CODE = language
        return user


class OptionalAuth(I18nJWTAuth):
    """Authenticate when a bearer token is sent, fall back to AnonymousUser otherwise.

    Used for public endpoints whose answer depends on who is asking, such as
    Pro feature decisions.
    """

    def __call__(self, request: HttpRequest) -> t.Any | None:
        """Let requests without an Authorization header through as anonymous."""
        auth_value = request.headers.get(self.header)
        if not auth_value:
            request.user = AnonymousUser()
            return request.user
        scheme, _, token = auth_value.partition(" ")
        if scheme.lower() != self.openapi_scheme:
            logger.debug("unexpected_auth_scheme", scheme=scheme)
            return None
        return self.authenticate(request, token)
