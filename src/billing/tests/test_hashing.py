import typing as t

import pytest

from billing.service import hashing


@pytest.fixture
def two_secrets(settings: t.Any) -> None:
    settings.BILLING_HASH_SECRETS = {1: "first-secret", 2: "second-secret"}


@pytest.mark.usefixtures("two_secrets")
class TestHashing:
    def test_latest_version_is_used(self) -> None:
        hashed = hashing.hash_promo_code("spring24")

        assert hashed.version == 2
        assert len(hashed.hash) == 64

    def test_codes_are_normalized(self) -> None:
        assert hashing.hash_promo_code(" spring24 ").hash == hashing.hash_promo_code("SPRING24").hash

    def test_emails_are_normalized(self) -> None:
        assert hashing.hash_email("Runner@Example.com ").hash == hashing.hash_email("runner@example.com").hash

    def test_all_versions(self) -> None:
        hashes = hashing.hash_promo_code_all_versions("spring24")

        assert [h.version for h in hashes] == [1, 2]
        assert hashes[0].hash == hashing.hash_promo_code("spring24", version=1).hash
        assert hashes[0].hash != hashes[1].hash

    def test_promo_and_email_digests_differ_per_secret(self) -> None:
        assert hashing.hash_email("a@b.co", version=1).hash != hashing.hash_email("a@b.co", version=2).hash


def test_missing_secret_raises(settings: t.Any) -> None:
    settings.BILLING_HASH_SECRETS = {}

    with pytest.raises(RuntimeError):
        hashing.hash_email("a@b.co")


def test_prefix(settings: t.Any) -> None:
    settings.BILLING_PROMO_CODE_PREFIX_LENGTH = 4

    assert hashing.get_promo_code_prefix(" abcdefgh ") == "ABCD"
