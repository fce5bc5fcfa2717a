import hashlib
import secrets
import typing as t

from django.db import IntegrityError, models, transaction

T = t.TypeVar("T", bound=models.Model)


def get_or_create_with_race_protection(
    model: type[T],
    lookup_filter: models.Q,
    defaults: dict[str, t.Any],
) -> tuple[T, bool]:
    """Get or create a model instance with protection against race conditions.

    Attempts to retrieve an instance matching the lookup filter. If not found,
    creates one using the defaults inside a savepoint. Handles IntegrityError
    from a concurrent insert by retrying the lookup.

    Args:
        model: The Django model class
        lookup_filter: Q object for filtering the lookup
        defaults: Dictionary of field values for creating the instance

    Returns:
        Tuple of (instance, created) where created is True if the instance was created
    """
    manager: models.Manager[T] = getattr(model, "objects")
    instance = manager.filter(lookup_filter).first()
    if instance:
        return instance, False

    try:
        with transaction.atomic():
            return manager.create(**defaults), True
    except IntegrityError:
        instance = manager.filter(lookup_filter).first()
        if not instance:
            raise
        return instance, False


def generate_token(nbytes: int = 32) -> str:
    """Generate a URL-safe random token."""
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token. Only the digest is ever stored."""
    return hashlib.sha256(token.encode()).hexdigest()


def get_token_prefix(token: str, length: int = 8) -> str:
    """Non-secret prefix used to identify a token in admin listings."""
    return token[:length]


def normalize_email(email: str) -> str:
    """Canonical form of an email address for comparisons and hashing."""
    return email.strip().lower()
