import typing as t
from datetime import datetime

from django.contrib.auth import get_user_model
from django.core.management.base import CommandError
from django.utils.dateparse import parse_datetime

from accounts.models import FinishlineUser
from common.results import Err, Ok

T = t.TypeVar("T")


def get_user_by_email(email: str) -> FinishlineUser:
    User = get_user_model()
    try:
        return t.cast(FinishlineUser, User.objects.get(email__iexact=email))
    except User.DoesNotExist:
        raise CommandError(f'User with email "{email}" does not exist')


def parse_optional_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed is None or parsed.tzinfo is None:
        raise CommandError(f'"{value}" is not an ISO 8601 datetime with a timezone offset')
    return parsed


def unwrap_or_fail(result: Ok[T] | Err) -> T:
    if isinstance(result, Err):
        raise CommandError(f"{result.code}: {result.error}")
    return result.data
