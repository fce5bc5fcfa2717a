import typing as t
import uuid
from datetime import date, datetime

import orjson
import pytest

from accounts.models import FinishlineUser, Profile
from common.models import AuditLog
from common.results import Err, ErrorCode, Ok
from events.models import (
    AddOnOption,
    AddOnSelection,
    EventDistance,
    EventEdition,
    GroupDiscountRule,
    GroupRegistrationBatch,
    PricingTier,
    Registrant,
    Registration,
)
from events.service import batch_registration_service as service

pytestmark = pytest.mark.django_db

HEADER = "firstName,lastName,email,dateOfBirth,distanceLabel,addOnSelections"


def _csv(*rows: str) -> str:
    return "\n".join([HEADER, *rows]) + "\n"


def _upload(edition: EventEdition, actor: FinishlineUser, text: str, now: datetime) -> GroupRegistrationBatch:
    result = service.create_group_batch(edition, actor, text, now=now)
    assert isinstance(result, Ok), result
    return result.data


class TestParseHelpers:
    def test_parse_iso_date(self) -> None:
        assert service.parse_iso_date(" 1990-01-15 ") == date(1990, 1, 15)
        assert service.parse_iso_date("15/01/1990") is None
        assert service.parse_iso_date("") is None

    def test_parse_add_on_selections(self) -> None:
        option_id = uuid.uuid4()
        cell = orjson.dumps([{"optionId": str(option_id), "quantity": 2}]).decode()

        selections = service.parse_add_on_selections(cell)

        assert selections == [service.AddOnSelectionInput(option_id=option_id, quantity=2)]
        assert service.parse_add_on_selections("  ") == []

    @pytest.mark.parametrize(
        "cell",
        [
            "not json",
            '{"optionId": "x"}',
            '["x"]',
            '[{"optionId": "nope"}]',
            '[{"optionId": "6f1c8a52-9a8e-4c1e-9d53-0d7d1f0f4a11", "quantity": 0}]',
            '[{"optionId": "6f1c8a52-9a8e-4c1e-9d53-0d7d1f0f4a11"},'
            ' {"optionId": "6f1c8a52-9a8e-4c1e-9d53-0d7d1f0f4a11"}]',
        ],
    )
    def test_parse_add_on_selections_rejects(self, cell: str) -> None:
        with pytest.raises(ValueError):
            service.parse_add_on_selections(cell)


class TestCreateGroupBatch:
    def test_valid_upload(
        self, edition: EventEdition, distance: EventDistance, organizer: FinishlineUser, now: datetime
    ) -> None:
        batch = _upload(
            edition,
            organizer,
            _csv("Ana,Perez,Ana@Example.com,1990-01-15,10K,", "Luis,Gomez,luis@example.com,1985-06-01,10k,"),
            now,
        )

        assert batch.status == GroupRegistrationBatch.Status.VALIDATED
        rows = list(batch.rows.order_by("row_index"))
        assert [row.row_index for row in rows] == [2, 3]
        assert rows[0].raw_json["email"] == "ana@example.com"
        assert rows[0].raw_json["distanceId"] == str(distance.id)
        assert all(row.validation_errors == [] for row in rows)
        assert AuditLog.objects.filter(action="group_registrations.upload", entity_id=str(batch.id)).exists()

    def test_invalid_rows_fail_the_batch(
        self, edition: EventEdition, distance: EventDistance, organizer: FinishlineUser, now: datetime
    ) -> None:
        batch = _upload(
            edition,
            organizer,
            _csv(
                "Ana,Perez,ana@example.com,1990-01-15,10K,",
                ",Gomez,not-an-email,01/06/1985,Marathon,",
                "Ana,Perez,ana@example.com,1990-01-15,10K,",
            ),
            now,
        )

        assert batch.status == GroupRegistrationBatch.Status.FAILED
        first, second, third = batch.rows.order_by("row_index")
        assert first.validation_errors == []
        assert "firstName is required" in second.validation_errors
        assert "email is invalid" in second.validation_errors
        assert "dateOfBirth must be YYYY-MM-DD" in second.validation_errors
        assert "distanceLabel does not match any distance in this edition" in second.validation_errors
        assert third.validation_errors == ["duplicate row (email + dateOfBirth) in this file"]

    def test_sold_out_distance(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        now: datetime,
        make_registration: t.Any,
    ) -> None:
        distance.capacity = 1
        distance.save()
        make_registration(distance, None, status=Registration.Status.CONFIRMED, now=now)

        batch = _upload(edition, organizer, _csv("Ana,Perez,ana@example.com,1990-01-15,10K,"), now)

        assert batch.rows.get().validation_errors == ["distance is sold out"]

    def test_matches_existing_account(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        user: FinishlineUser,
        now: datetime,
    ) -> None:
        batch = _upload(edition, organizer, _csv(f"Ana,Perez,{user.email},1990-01-15,10K,"), now)

        assert batch.rows.get().matched_user_id == user.id

    def test_existing_account_with_other_birth_date(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        user: FinishlineUser,
        now: datetime,
    ) -> None:
        Profile.objects.create(user=user, date_of_birth=date(1970, 1, 1))

        batch = _upload(edition, organizer, _csv(f"Ana,Perez,{user.email},1990-01-15,10K,"), now)

        row = batch.rows.get()
        assert row.matched_user_id is None
        assert row.validation_errors == ["existing account found with same email but different dateOfBirth"]

    def test_add_on_quantity_is_validated(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        tshirt_option: AddOnOption,
        now: datetime,
    ) -> None:
        cell = '"[{""optionId"": ""%s"", ""quantity"": 3}]"' % tshirt_option.id

        batch = _upload(edition, organizer, _csv(f"Ana,Perez,ana@example.com,1990-01-15,10K,{cell}"), now)

        assert batch.rows.get().validation_errors == ["addOnSelections quantity exceeds maxQtyPerOrder"]

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "firstName,lastName\nAna,Perez\n",
            HEADER + "\n",
            'firstName,"lastName\nAna',
        ],
    )
    def test_rejected_uploads(
        self, edition: EventEdition, organizer: FinishlineUser, now: datetime, text: str
    ) -> None:
        result = service.create_group_batch(edition, organizer, text, now=now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.VALIDATION_ERROR
        assert not GroupRegistrationBatch.objects.exists()


class TestProcessGroupBatch:
    @pytest.fixture(autouse=True)
    def payment_mode(self, settings: t.Any) -> None:
        settings.EVENTS_NO_PAYMENT_MODE = False

    def test_creates_discounted_registrations(
        self,
        edition: EventEdition,
        distance: EventDistance,
        pricing_tier: PricingTier,
        group_discount_rule: GroupDiscountRule,
        organizer: FinishlineUser,
        now: datetime,
    ) -> None:
        batch = _upload(
            edition,
            organizer,
            _csv("Ana,Perez,ana@example.com,1990-01-15,10K,", "Luis,Gomez,luis@example.com,1985-06-01,10K,"),
            now,
        )

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Ok), result
        assert result.data.created_count == 2
        assert result.data.group_discount_percent_off == 10
        assert result.data.status == GroupRegistrationBatch.Status.PROCESSED
        registrations = Registration.objects.filter(edition=edition)
        assert registrations.count() == 2
        for registration in registrations:
            assert registration.status == Registration.Status.PAYMENT_PENDING
            assert registration.payment_responsibility == Registration.PaymentResponsibility.CENTRAL_PAY
            assert registration.base_price_cents == 9000
            assert registration.fees_cents == 500
            assert registration.total_cents == 9500
            assert registration.group_discount_percent_off == 10
        batch.refresh_from_db()
        assert batch.status == GroupRegistrationBatch.Status.PROCESSED
        assert batch.processed_at == now
        assert all(row.created_registration_id for row in batch.rows.all())

    def test_unmatched_rows_belong_to_system_buyer(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        user: FinishlineUser,
        now: datetime,
    ) -> None:
        batch = _upload(
            edition,
            organizer,
            _csv(f"Ana,Perez,{user.email},1990-01-15,10K,", "Luis,Gomez,luis@example.com,1985-06-01,10K,"),
            now,
        )

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Ok)
        system_buyer = service.get_or_create_system_buyer()
        assert system_buyer.is_active is False
        assert system_buyer.email_verified is True
        assert Registration.objects.filter(buyer_user=user).count() == 1
        unmatched = Registration.objects.get(buyer_user=system_buyer)
        assert Registrant.objects.get(registration=unmatched).profile_snapshot["email"] == "luis@example.com"

    def test_add_ons_are_priced(
        self,
        edition: EventEdition,
        distance: EventDistance,
        pricing_tier: PricingTier,
        tshirt_option: AddOnOption,
        organizer: FinishlineUser,
        now: datetime,
    ) -> None:
        cell = '"[{""optionId"": ""%s"", ""quantity"": 2}]"' % tshirt_option.id
        batch = _upload(edition, organizer, _csv(f"Ana,Perez,ana@example.com,1990-01-15,10K,{cell}"), now)

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Ok)
        registration = Registration.objects.get(edition=edition)
        selection = AddOnSelection.objects.get(registration=registration)
        assert selection.quantity == 2
        assert selection.line_total_cents == 5000
        assert registration.total_cents == 10000 + 500 + 5000
        assert registration.group_discount_percent_off is None

    def test_no_payment_mode_confirms(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        now: datetime,
        settings: t.Any,
    ) -> None:
        settings.EVENTS_NO_PAYMENT_MODE = True
        batch = _upload(edition, organizer, _csv("Ana,Perez,ana@example.com,1990-01-15,10K,"), now)

        service.process_group_batch(batch.id, organizer, now)

        registration = Registration.objects.get(edition=edition)
        assert registration.status == Registration.Status.CONFIRMED
        assert registration.expires_at is None

    def test_capacity_shortfall_writes_nothing(
        self,
        edition: EventEdition,
        distance: EventDistance,
        organizer: FinishlineUser,
        now: datetime,
    ) -> None:
        distance.capacity = 1
        distance.save()
        batch = _upload(
            edition,
            organizer,
            _csv("Ana,Perez,ana@example.com,1990-01-15,10K,", "Luis,Gomez,luis@example.com,1985-06-01,10K,"),
            now,
        )

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.INSUFFICIENT_CAPACITY
        assert not Registration.objects.exists()
        batch.refresh_from_db()
        assert batch.status == GroupRegistrationBatch.Status.FAILED
        assert batch.error_code == ErrorCode.INSUFFICIENT_CAPACITY
        assert AuditLog.objects.filter(action="group_registrations.process_failed").count() == 1

    def test_shared_pool_demand_is_aggregated(
        self,
        shared_edition: EventEdition,
        pooled_distances: tuple[EventDistance, EventDistance],
        organizer: FinishlineUser,
        now: datetime,
    ) -> None:
        batch = _upload(
            shared_edition,
            organizer,
            _csv(
                "Ana,Perez,ana@example.com,1990-01-15,5K,",
                "Luis,Gomez,luis@example.com,1985-06-01,21K,",
                "Eva,Diaz,eva@example.com,1992-03-03,5K,",
                "Leo,Ruiz,leo@example.com,1999-09-09,21K,",
            ),
            now,
        )

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.INSUFFICIENT_CAPACITY
        assert not Registration.objects.exists()

    def test_edition_is_locked_before_distances(
        self,
        edition: EventEdition,
        distance: EventDistance,
        pricing_tier: PricingTier,
        organizer: FinishlineUser,
        now: datetime,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        batch = _upload(edition, organizer, _csv("Ana,Perez,ana@example.com,1990-01-15,10K,"), now)
        locks: list[tuple[str, uuid.UUID]] = []
        lock_edition, lock_capacity_scope = service.lock_edition, service.lock_capacity_scope

        def record_edition(edition_id: uuid.UUID) -> None:
            locks.append(("edition", edition_id))
            lock_edition(edition_id)

        def record_scope(locked: EventDistance) -> None:
            locks.append(("distance", locked.id))
            lock_capacity_scope(locked)

        monkeypatch.setattr(service, "lock_edition", record_edition)
        monkeypatch.setattr(service, "lock_capacity_scope", record_scope)

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Ok), result
        assert locks == [("edition", edition.id), ("distance", distance.id)]

    def test_processing_twice_is_rejected(
        self, edition: EventEdition, distance: EventDistance, organizer: FinishlineUser, now: datetime
    ) -> None:
        batch = _upload(edition, organizer, _csv("Ana,Perez,ana@example.com,1990-01-15,10K,"), now)
        service.process_group_batch(batch.id, organizer, now)

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.INVALID_STATE
        assert Registration.objects.count() == 1

    def test_failed_batch_cannot_be_processed(
        self, edition: EventEdition, distance: EventDistance, organizer: FinishlineUser, now: datetime
    ) -> None:
        batch = _upload(edition, organizer, _csv(",Perez,ana@example.com,1990-01-15,10K,"), now)

        result = service.process_group_batch(batch.id, organizer, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.INVALID_STATE

    def test_unknown_batch(self, organizer: FinishlineUser, now: datetime) -> None:
        result = service.process_group_batch(uuid.uuid4(), organizer, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.NOT_FOUND


def test_system_buyer_is_created_once() -> None:
    first = service.get_or_create_system_buyer()
    second = service.get_or_create_system_buyer()

    assert first.pk == second.pk
    assert not first.has_usable_password()
