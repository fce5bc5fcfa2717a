"""Billing and Pro entitlement settings."""

import os
import re

from decouple import config

from .base import SECRET_KEY

BILLING_TRIAL_DAYS = config("BILLING_TRIAL_DAYS", default=14, cast=int)
BILLING_TRIAL_EXPIRING_SOON_DAYS = config("BILLING_TRIAL_EXPIRING_SOON_DAYS", default=3, cast=int)
BILLING_PROMO_CODE_LENGTH = config("BILLING_PROMO_CODE_LENGTH", default=10, cast=int)
BILLING_PROMO_CODE_PREFIX_LENGTH = config("BILLING_PROMO_CODE_PREFIX_LENGTH", default=4, cast=int)
BILLING_UPSELL_PATH = config("BILLING_UPSELL_PATH", default="/settings/billing")

# Versioned HMAC secrets: BILLING_HASH_SECRET_V1, BILLING_HASH_SECRET_V2, ...
# The legacy BILLING_HASH_SECRET counts as version 1 when no explicit V1 is set.
_HASH_SECRET_PATTERN = re.compile(r"^BILLING_HASH_SECRET_V(\d+)$")

BILLING_HASH_SECRETS: dict[int, str] = {
    int(match.group(1)): value
    for key, value in os.environ.items()
    if (match := _HASH_SECRET_PATTERN.match(key)) and value
}

_legacy_secret = config("BILLING_HASH_SECRET", default="")
if _legacy_secret and 1 not in BILLING_HASH_SECRETS:
    BILLING_HASH_SECRETS[1] = _legacy_secret

if not BILLING_HASH_SECRETS:
    BILLING_HASH_SECRETS[1] = SECRET_KEY
