"""Exception handlers for the API."""

import traceback
import typing as t
from copy import deepcopy

import orjson
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from common.exceptions import InvariantViolationError

logger = structlog.get_logger(__name__)

SENSITIVE_KEYS = {"password", "token", "code", "email", "authorization", "x-api-key"}


def obfuscate(data: t.Any) -> t.Any:
    """Mask sensitive values in payloads and headers, recursing into nested dicts."""
    if not isinstance(data, dict):
        return data
    new_data = deepcopy(data)
    for key, value in data.items():
        if key.lower() in SENSITIVE_KEYS:
            new_data[key] = "********"
        elif isinstance(value, dict):
            new_data[key] = obfuscate(value)
    return new_data


def _request_context(request: HttpRequest) -> dict[str, t.Any]:
    json_payload = None
    if request.method in ("POST", "PUT", "PATCH") and request.headers.get("Content-Type") == "application/json":
        try:
            json_payload = obfuscate(orjson.loads(request.body))
        except orjson.JSONDecodeError:
            json_payload = None
    user = getattr(request, "user", None)
    return {
        "method": request.method,
        "path": request.path,
        "query": obfuscate(request.GET.dict()),
        "headers": obfuscate(dict(request.headers)),
        "json_payload": json_payload,
        "user_id": str(user.pk) if user is not None and user.pk else None,
    }


def _server_error(request: HttpRequest, event: str) -> Response:
    logger.exception(event, **_request_context(request))
    data = {"detail": "Internal Server Error."}
    is_staff = bool(getattr(request, "user", None) and request.user.is_staff)
    if settings.DEBUG or is_staff:  # pragma: no cover
        data["traceback"] = traceback.format_exc()
    return Response(status=500, data=data)


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Log any unhandled exception with request context and answer with a generic 500."""
    return _server_error(request, "internal_server_error")


def handle_invariant_violation(
    request: HttpRequest, exc: InvariantViolationError | t.Type[InvariantViolationError]
) -> Response:
    """A guarded write hit zero rows where one was expected. Never a client error."""
    return _server_error(request, "invariant_violation")


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | t.Type[ValidationError]) -> Response:
    """Turn model validation errors into a 400 keyed by field."""
    logger.info("validation_error", path=request.path)
    if hasattr(exc, "error_dict"):
        errors = {k: [msg for e in v for msg in e] for k, v in exc.error_dict.items()}
    else:
        errors = {"__all__": list(getattr(exc, "messages", [str(exc)]))}
    return Response(status=400, data={"errors": errors})
