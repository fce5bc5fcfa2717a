"""HMAC digests of promo codes and emails.

Secrets are versioned so they can be rotated: new rows are hashed with the
latest version, lookups try every known version.
"""

import hashlib
import hmac

from django.conf import settings
from pydantic import BaseModel

from common.utils import normalize_email


class VersionedHash(BaseModel):
    version: int
    hash: str


def get_hash_secrets() -> dict[int, str]:
    """Configured secrets keyed by version."""
    secrets: dict[int, str] = settings.BILLING_HASH_SECRETS
    if not secrets:
        raise RuntimeError("No billing hash secret is configured.")
    return secrets


def get_latest_hash_version() -> int:
    return max(get_hash_secrets())


def normalize_promo_code(code: str) -> str:
    return code.strip().upper()


def _hmac_hex(secret: str, value: str) -> str:
    return hmac.new(secret.encode(), value.encode(), hashlib.sha256).hexdigest()


def _hash(value: str, version: int | None) -> VersionedHash:
    secrets = get_hash_secrets()
    version = version if version is not None else max(secrets)
    return VersionedHash(version=version, hash=_hmac_hex(secrets[version], value))


def _hash_all_versions(value: str) -> list[VersionedHash]:
    return [
        VersionedHash(version=version, hash=_hmac_hex(secret, value))
        for version, secret in sorted(get_hash_secrets().items())
    ]


def hash_promo_code(code: str, version: int | None = None) -> VersionedHash:
    """Digest of a promo code, with the latest secret unless ``version`` is given."""
    return _hash(normalize_promo_code(code), version)


def hash_promo_code_all_versions(code: str) -> list[VersionedHash]:
    return _hash_all_versions(normalize_promo_code(code))


def hash_email(email: str, version: int | None = None) -> VersionedHash:
    """Digest of an email address, with the latest secret unless ``version`` is given."""
    return _hash(normalize_email(email), version)


def hash_email_all_versions(email: str) -> list[VersionedHash]:
    return _hash_all_versions(normalize_email(email))


def get_promo_code_prefix(code: str, length: int | None = None) -> str:
    """Non-secret leading characters of a normalized code, shown in admin listings."""
    if length is None:
        length = settings.BILLING_PROMO_CODE_PREFIX_LENGTH
    return normalize_promo_code(code)[:length]
