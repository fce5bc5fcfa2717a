"""Bulk group registration: CSV upload validation and atomic batch processing."""

import json
import typing as t
import uuid
from collections import Counter
from datetime import date, datetime

import structlog
from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from pydantic import BaseModel, ConfigDict

from accounts.models import FinishlineUser
from common.audit import create_audit_log, try_create_audit_log
from common.results import Err, ErrorCode, Ok, err
from common.utils import get_or_create_with_race_protection, normalize_email
from events.exceptions import CapacityExceededError, InvalidBatchRowError, RegistrationFlowError
from events.models import (
    AddOnOption,
    AddOnSelection,
    EventDistance,
    EventEdition,
    GroupRegistrationBatch,
    GroupRegistrationBatchRow,
    Registrant,
    Registration,
)
from events.service import group_csv, pricing
from events.service.capacity_service import (
    count_reserved,
    get_capacity_limit,
    get_spots_remaining,
    lock_capacity_scope,
    lock_edition,
)
from events.service.group_discount_service import resolve_batch_discount
from events.service.holds import compute_expires_at
from events.service.registration_service import is_no_payment_mode

logger = structlog.get_logger(__name__)

MAX_BATCH_ROWS = 1000

# CSV column -> registrant snapshot key
SNAPSHOT_COLUMNS: dict[str, str] = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "dateOfBirth": "date_of_birth",
    "phone": "phone",
    "gender": "gender",
    "genderIdentity": "gender_identity",
    "city": "city",
    "state": "state",
    "country": "country",
    "emergencyContactName": "emergency_contact_name",
    "emergencyContactPhone": "emergency_contact_phone",
}


class AddOnSelectionInput(BaseModel):
    option_id: uuid.UUID
    quantity: int = 1


class ProcessGroupBatchResult(BaseModel):
    batch_id: uuid.UUID
    status: str
    processed_at: datetime
    created_count: int
    group_discount_percent_off: int | None


class ResolvedOption(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    option: AddOnOption
    add_on_distance_id: uuid.UUID | None


def parse_iso_date(value: str) -> date | None:
    """Parse ``YYYY-MM-DD``; anything else yields None."""
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def parse_add_on_selections(cell: str) -> list[AddOnSelectionInput]:
    """Parse the ``addOnSelections`` cell: a JSON array of ``{"optionId", "quantity"}`` objects.

    Raises:
        ValueError: With a message suitable for the row's validation errors.
    """
    if not cell.strip():
        return []
    try:
        payload = json.loads(cell)
    except json.JSONDecodeError as e:
        raise ValueError("addOnSelections must be valid JSON") from e
    if not isinstance(payload, list):
        raise ValueError("addOnSelections must be a JSON array")
    selections: list[AddOnSelectionInput] = []
    seen: set[uuid.UUID] = set()
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError("addOnSelections must be an array of objects")
        try:
            option_id = uuid.UUID(str(item.get("optionId")))
        except ValueError as e:
            raise ValueError("addOnSelections.optionId must be a UUID") from e
        quantity = item.get("quantity", 1)
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            quantity = 1
        if quantity <= 0:
            raise ValueError("addOnSelections.quantity must be a positive integer")
        if option_id in seen:
            raise ValueError("addOnSelections contains duplicate optionId values")
        seen.add(option_id)
        selections.append(AddOnSelectionInput(option_id=option_id, quantity=quantity))
    return selections


class GroupBatchValidator:
    """Validate uploaded rows against an edition and store them on a new batch."""

    def __init__(self, edition: EventEdition, now: datetime) -> None:
        """Preload distances and add-on options of the edition."""
        self.edition = edition
        self.now = now
        self.distances = {d.id: d for d in EventDistance.objects.alive().filter(edition=edition)}
        self.distances_by_label = {d.label.strip().lower(): d for d in self.distances.values()}
        self.options = {
            o.id: o
            for o in AddOnOption.objects.alive()
            .select_related("add_on")
            .filter(add_on__edition=edition, add_on__deleted_at__isnull=True, add_on__is_active=True, is_active=True)
        }
        self.sold_out = {d_id: get_spots_remaining(d, now) == 0 for d_id, d in self.distances.items()}
        self.seen_identities: set[tuple[str, str]] = set()

    def _resolve_distance(self, distance_id: str, distance_label: str, errors: list[str]) -> EventDistance | None:
        if distance_id:
            try:
                distance = self.distances.get(uuid.UUID(distance_id))
            except ValueError:
                errors.append("distanceId must be a UUID")
                return None
            if distance is None:
                errors.append("distanceId does not exist in this edition")
            return distance
        if distance_label:
            distance = self.distances_by_label.get(distance_label.lower())
            if distance is None:
                errors.append("distanceLabel does not match any distance in this edition")
            return distance
        errors.append("distanceId or distanceLabel is required")
        return None

    def _match_user(self, email: str, date_of_birth: date, errors: list[str]) -> FinishlineUser | None:
        user = (
            FinishlineUser.objects.alive().select_related("profile").filter(email__iexact=email).first()
        )
        if user is None:
            return None
        profile_dob = getattr(getattr(user, "profile", None), "date_of_birth", None)
        if profile_dob is not None and profile_dob != date_of_birth:
            errors.append("existing account found with same email but different dateOfBirth")
            return None
        if Registration.objects.reserved(self.now).filter(edition=self.edition, buyer_user=user).exists():
            errors.append("user already has an active registration for this edition")
        return user

    def validate_row(self, row: list[str], header_index: dict[str, int]) -> tuple[dict[str, t.Any], list[str]]:
        """Return the normalized row payload and its validation errors."""
        errors: list[str] = []
        values = {
            column: group_csv.get_cell(row, header_index, column).strip() for column in SNAPSHOT_COLUMNS
        }
        email = normalize_email(values["email"])
        values["email"] = email
        date_of_birth = parse_iso_date(values["dateOfBirth"])

        if not values["firstName"]:
            errors.append("firstName is required")
        if not values["lastName"]:
            errors.append("lastName is required")
        if not email:
            errors.append("email is required")
        else:
            try:
                validate_email(email)
            except ValidationError:
                errors.append("email is invalid")
        if date_of_birth is None:
            errors.append("dateOfBirth must be YYYY-MM-DD")

        distance_label = group_csv.get_cell(row, header_index, "distanceLabel").strip()
        distance = self._resolve_distance(
            group_csv.get_cell(row, header_index, "distanceId").strip(), distance_label, errors
        )
        if distance is not None and self.sold_out.get(distance.id):
            errors.append("edition is sold out" if distance.uses_shared_pool else "distance is sold out")

        try:
            selections = parse_add_on_selections(group_csv.get_cell(row, header_index, "addOnSelections"))
        except ValueError as e:
            errors.append(str(e))
            selections = []
        if selections and distance is None:
            errors.append("addOnSelections requires a valid distance")
        elif distance is not None:
            for selection in selections:
                option = self.options.get(selection.option_id)
                if option is None:
                    errors.append("addOnSelections contains an invalid optionId")
                    continue
                if option.add_on.distance_id and option.add_on.distance_id != distance.id:
                    errors.append("addOnSelections contains options not available for this distance")
                if selection.quantity > option.max_qty_per_order:
                    errors.append("addOnSelections quantity exceeds maxQtyPerOrder")

        matched_user = None
        if email and date_of_birth is not None:
            identity = (email, date_of_birth.isoformat())
            if identity in self.seen_identities:
                errors.append("duplicate row (email + dateOfBirth) in this file")
            self.seen_identities.add(identity)
            matched_user = self._match_user(email, date_of_birth, errors)

        payload: dict[str, t.Any] = {
            **{column: (value or None) for column, value in values.items()},
            "dateOfBirth": date_of_birth.isoformat() if date_of_birth else None,
            "distanceId": str(distance.id) if distance else None,
            "distanceLabel": distance_label or None,
            "addOnSelections": [{"optionId": str(s.option_id), "quantity": s.quantity} for s in selections],
            "matchedUserId": str(matched_user.id) if matched_user else None,
        }
        return payload, errors


def create_group_batch(
    edition: EventEdition,
    actor: FinishlineUser | None,
    csv_text: str,
    *,
    payment_responsibility: str = Registration.PaymentResponsibility.CENTRAL_PAY,
    now: datetime | None = None,
) -> Ok[GroupRegistrationBatch] | Err:
    """Parse and validate an upload, storing every row with its errors.

    The batch ends up ``validated`` when no row has errors and ``failed`` otherwise.
    """
    now = now or timezone.now()
    try:
        parsed = group_csv.parse_csv(csv_text)
    except group_csv.CsvParseError as e:
        return err(ErrorCode.VALIDATION_ERROR, str(e))
    header_index = parsed.header_index()
    missing = [h for h in group_csv.REQUIRED_HEADERS if h not in header_index]
    if missing or not any(h in header_index for h in group_csv.DISTANCE_HEADERS):
        return err(ErrorCode.VALIDATION_ERROR, "Headers do not match the expected template.")
    if not parsed.rows:
        return err(ErrorCode.VALIDATION_ERROR, "File has no data rows.")
    if len(parsed.rows) > MAX_BATCH_ROWS:
        return err(ErrorCode.VALIDATION_ERROR, f"File exceeds maximum of {MAX_BATCH_ROWS} rows.")

    validator = GroupBatchValidator(edition, now)
    error_count = 0
    with transaction.atomic():
        batch = GroupRegistrationBatch.objects.create(
            edition=edition, created_by=actor, payment_responsibility=payment_responsibility
        )
        rows: list[GroupRegistrationBatchRow] = []
        for position, row in enumerate(parsed.rows):
            payload, errors = validator.validate_row(row, header_index)
            error_count += bool(errors)
            matched_user_id = payload["matchedUserId"]
            rows.append(
                GroupRegistrationBatchRow(
                    batch=batch,
                    row_index=position + 2,  # line 1 holds the headers
                    raw_json=payload,
                    validation_errors=errors,
                    matched_user_id=uuid.UUID(matched_user_id) if matched_user_id else None,
                )
            )
        GroupRegistrationBatchRow.objects.bulk_create(rows)
        batch.status = (
            GroupRegistrationBatch.Status.FAILED if error_count else GroupRegistrationBatch.Status.VALIDATED
        )
        batch.save(update_fields=["status", "updated_at"])
        try_create_audit_log(
            action="group_registrations.upload",
            entity_type="group_registration_batch",
            entity_id=batch.id,
            organization=edition.organization,
            actor=actor,
            after={"row_count": len(rows), "error_count": error_count, "status": batch.status},
        )

    logger.info(
        "group_batch_uploaded", batch_id=str(batch.id), row_count=len(rows), error_count=error_count
    )
    return Ok(data=batch)


def get_or_create_system_buyer() -> FinishlineUser:
    """Placeholder buyer owning batch registrations until a participant claims them."""
    email = normalize_email(settings.GROUP_REGISTRATION_SYSTEM_BUYER_EMAIL)
    user, created = get_or_create_with_race_protection(
        FinishlineUser,
        Q(username=email),
        {
            "username": email,
            "email": email,
            "password": make_password(None),
            "email_verified": True,
            "is_active": False,
        },
    )
    if created:
        logger.info("system_buyer_created", user_id=str(user.id))
    return user


class GroupBatchProcessor:
    """Turn the rows of a validated batch into registrations in one transaction.

    Either every row gets a registration or none does. Capacity for all rows is
    checked up front under row locks.
    """

    def __init__(
        self,
        batch: GroupRegistrationBatch,
        rows: list[GroupRegistrationBatchRow],
        actor: FinishlineUser | None,
        now: datetime,
        percent_off: int | None,
    ) -> None:
        """Initialize the processor.

        Args:
            batch: The batch being processed.
            rows: Its rows, ordered by row index.
            actor: The organizer triggering the run.
            now: Reference time for holds and pricing windows.
            percent_off: Batch group discount, if any rule applies.
        """
        self.batch = batch
        self.edition = batch.edition
        self.rows = rows
        self.actor = actor
        self.now = now
        self.percent_off = percent_off

    def _row_distance_id(self, row: GroupRegistrationBatchRow) -> uuid.UUID:
        try:
            return uuid.UUID(str(row.raw_json.get("distanceId")))
        except ValueError as e:
            raise InvalidBatchRowError(row.row_index, "missing distance") from e

    def load_distances(self) -> dict[uuid.UUID, EventDistance]:
        """Distances referenced by the rows, all of which must belong to the edition."""
        ids = {self._row_distance_id(row) for row in self.rows}
        distances = {
            d.id: d for d in EventDistance.objects.alive().select_related("edition").filter(
                edition=self.edition, id__in=ids
            )
        }
        for row in self.rows:
            if self._row_distance_id(row) not in distances:
                raise InvalidBatchRowError(row.row_index, "distance does not belong to this edition")
        return distances

    def check_capacity(self, distances: dict[uuid.UUID, EventDistance]) -> None:
        """Lock every capacity scope touched by the batch and verify the aggregate demand fits.

        Raises:
            CapacityExceededError: If any scope cannot absorb its share of the rows.
        """
        demand: Counter[t.Any] = Counter()
        scope_distance: dict[t.Any, EventDistance] = {}
        for row in self.rows:
            distance = distances[self._row_distance_id(row)]
            scope = ("edition", distance.edition_id) if distance.uses_shared_pool else ("distance", distance.id)
            demand[scope] += 1
            scope_distance.setdefault(scope, distance)

        # Edition row before distance rows.
        lock_edition(self.edition.id)
        for scope in sorted(demand, key=str):
            if scope[0] == "distance":
                lock_capacity_scope(scope_distance[scope])
        for scope, requested in demand.items():
            distance = scope_distance[scope]
            capacity = get_capacity_limit(distance)
            if capacity is None:
                continue
            reserved = count_reserved(distance, self.now)
            if reserved + requested > capacity:
                logger.info(
                    "group_batch_capacity_exceeded",
                    batch_id=str(self.batch.id),
                    scope=scope[0],
                    capacity=capacity,
                    reserved=reserved,
                    requested=requested,
                )
                raise CapacityExceededError(requested=requested, available=max(capacity - reserved, 0))

    def load_options(self) -> dict[uuid.UUID, ResolvedOption]:
        """Active add-on options referenced by the rows, restricted to this edition."""
        wanted: set[uuid.UUID] = set()
        for row in self.rows:
            for selection in self.row_selections(row):
                wanted.add(selection.option_id)
        if not wanted:
            return {}
        options = AddOnOption.objects.alive().select_related("add_on").filter(id__in=wanted, is_active=True)
        resolved: dict[uuid.UUID, ResolvedOption] = {}
        for option in options:
            add_on = option.add_on
            if add_on.is_deleted or not add_on.is_active or add_on.edition_id != self.edition.id:
                continue
            resolved[option.id] = ResolvedOption(option=option, add_on_distance_id=add_on.distance_id)
        return resolved

    def row_selections(self, row: GroupRegistrationBatchRow) -> list[AddOnSelectionInput]:
        """Stored add-on selections of a row."""
        raw = row.raw_json.get("addOnSelections") or []
        if not isinstance(raw, list):
            raise InvalidBatchRowError(row.row_index, "malformed add-on selections")
        try:
            return [AddOnSelectionInput(option_id=item["optionId"], quantity=item.get("quantity", 1)) for item in raw]
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidBatchRowError(row.row_index, "malformed add-on selections") from e

    def _price_add_ons(
        self, row: GroupRegistrationBatchRow, distance_id: uuid.UUID, options: dict[uuid.UUID, ResolvedOption]
    ) -> list[tuple[AddOnOption, int, int]]:
        lines: list[tuple[AddOnOption, int, int]] = []
        for selection in self.row_selections(row):
            resolved = options.get(selection.option_id)
            if resolved is None:
                raise InvalidBatchRowError(row.row_index, "add-on option is missing or inactive")
            if resolved.add_on_distance_id and resolved.add_on_distance_id != distance_id:
                raise InvalidBatchRowError(row.row_index, "add-on option is not available for this distance")
            if selection.quantity < 1 or selection.quantity > resolved.option.max_qty_per_order:
                raise InvalidBatchRowError(row.row_index, "add-on quantity exceeds the maximum per order")
            lines.append((resolved.option, selection.quantity, resolved.option.price_cents * selection.quantity))
        return lines

    def _snapshot(self, row: GroupRegistrationBatchRow) -> dict[str, t.Any]:
        return {
            key: row.raw_json[column]
            for column, key in SNAPSHOT_COLUMNS.items()
            if isinstance(row.raw_json.get(column), str)
        }

    def run(self) -> int:
        """Create all registrations. Must run inside ``transaction.atomic``.

        Returns:
            The number of registrations created.

        Raises:
            CapacityExceededError: When the batch does not fit.
            InvalidBatchRowError: When a row references unusable data.
            RegistrationFlowError: When the batch left the validated state concurrently.
        """
        locked = GroupRegistrationBatch.objects.select_for_update().get(pk=self.batch.pk)
        if locked.status != GroupRegistrationBatch.Status.VALIDATED:
            raise RegistrationFlowError(ErrorCode.INVALID_STATE, "Batch is no longer validated.")

        distances = self.load_distances()
        self.check_capacity(distances)
        options = self.load_options()
        prices = {d_id: pricing.get_current_price_cents(d, self.now) for d_id, d in distances.items()}

        no_payment = is_no_payment_mode()
        status = Registration.Status.CONFIRMED if no_payment else Registration.Status.PAYMENT_PENDING
        expires_at = None if no_payment else compute_expires_at(self.now, Registration.Status.PAYMENT_PENDING)
        system_buyer: FinishlineUser | None = None
        organization = self.edition.organization

        for row in self.rows:
            distance_id = self._row_distance_id(row)
            original_base = prices[distance_id]
            discount = pricing.compute_percent_amount(original_base, self.percent_off) if self.percent_off else 0
            base = max(original_base - discount, 0)
            fees = pricing.compute_fees_cents(original_base)
            add_on_lines = self._price_add_ons(row, distance_id, options)
            add_ons_total = sum(line_total for _, _, line_total in add_on_lines)
            total = base + fees + add_ons_total

            buyer = row.matched_user
            if buyer is None:
                system_buyer = system_buyer or get_or_create_system_buyer()
                buyer = system_buyer

            registration = Registration.objects.create(
                edition=self.edition,
                distance=distances[distance_id],
                buyer_user=buyer,
                status=status,
                expires_at=expires_at,
                payment_responsibility=self.batch.payment_responsibility,
                base_price_cents=base,
                fees_cents=fees,
                tax_cents=0,
                group_discount_percent_off=self.percent_off,
                total_cents=total,
            )
            AddOnSelection.objects.bulk_create(
                [
                    AddOnSelection(registration=registration, option=option, quantity=qty, line_total_cents=line)
                    for option, qty, line in add_on_lines
                ]
            )
            snapshot = self._snapshot(row)
            Registrant.objects.create(
                registration=registration,
                user=row.matched_user,
                profile_snapshot=snapshot,
                gender_identity=snapshot.get("gender_identity", ""),
            )
            create_audit_log(
                action="registration.create",
                entity_type="registration",
                entity_id=registration.id,
                organization=organization,
                actor=self.actor,
                after={
                    "distance_id": str(distance_id),
                    "buyer_user_id": str(buyer.id),
                    "status": status,
                    "base_price_cents": base,
                    "fees_cents": fees,
                    "add_ons_total_cents": add_ons_total,
                    "total_cents": total,
                    "group_batch_id": str(self.batch.id),
                    "row_index": row.row_index,
                    "percent_off": self.percent_off,
                },
            )
            GroupRegistrationBatchRow.objects.filter(pk=row.pk).update(created_registration=registration)

        GroupRegistrationBatch.objects.filter(pk=self.batch.pk).update(
            status=GroupRegistrationBatch.Status.PROCESSED, processed_at=self.now, updated_at=self.now
        )
        create_audit_log(
            action="group_registrations.process",
            entity_type="group_registration_batch",
            entity_id=self.batch.id,
            organization=organization,
            actor=self.actor,
            after={"status": "processed", "created_count": len(self.rows), "percent_off": self.percent_off},
        )
        return len(self.rows)


def _mark_batch_failed(
    batch: GroupRegistrationBatch, code: ErrorCode, actor: FinishlineUser | None, now: datetime
) -> None:
    with transaction.atomic():
        updated = GroupRegistrationBatch.objects.filter(
            pk=batch.pk, status=GroupRegistrationBatch.Status.VALIDATED
        ).update(status=GroupRegistrationBatch.Status.FAILED, processed_at=now, error_code=code, updated_at=now)
        if updated:
            try_create_audit_log(
                action="group_registrations.process_failed",
                entity_type="group_registration_batch",
                entity_id=batch.id,
                organization=batch.edition.organization,
                actor=actor,
                after={"status": "failed", "reason": code},
            )


def process_group_batch(
    batch_id: uuid.UUID, actor: FinishlineUser | None = None, now: datetime | None = None
) -> Ok[ProcessGroupBatchResult] | Err:
    """Create one registration per row of a validated batch, all or nothing.

    On a capacity shortfall or an unusable row nothing is written, the batch is
    marked failed in a separate transaction and an Err is returned.
    """
    now = now or timezone.now()
    batch = (
        GroupRegistrationBatch.objects.select_related("edition__series__organization").filter(pk=batch_id).first()
    )
    if batch is None or batch.edition.is_deleted:
        return err(ErrorCode.NOT_FOUND, "Batch not found.")
    if batch.status != GroupRegistrationBatch.Status.VALIDATED:
        return err(ErrorCode.INVALID_STATE, f"Batch is {batch.status}, expected validated.")
    rows = list(batch.rows.select_related("matched_user").order_by("row_index"))
    if not rows:
        return err(ErrorCode.VALIDATION_ERROR, "Batch has no rows.")
    if any(row.has_errors for row in rows):
        return err(ErrorCode.VALIDATION_ERROR, "Batch contains validation errors.")

    discount = resolve_batch_discount(batch.edition_id, len(rows))
    percent_off = discount.percent_off if discount else None
    processor = GroupBatchProcessor(batch, rows, actor, now, percent_off)
    try:
        with transaction.atomic():
            created_count = processor.run()
    except CapacityExceededError as e:
        _mark_batch_failed(batch, ErrorCode.INSUFFICIENT_CAPACITY, actor, now)
        logger.info("group_batch_failed", batch_id=str(batch.id), reason="capacity", available=e.available)
        return err(ErrorCode.INSUFFICIENT_CAPACITY, "Insufficient capacity to process this batch.")
    except InvalidBatchRowError as e:
        _mark_batch_failed(batch, ErrorCode.VALIDATION_ERROR, actor, now)
        logger.info("group_batch_failed", batch_id=str(batch.id), reason="invalid_row", row_index=e.row_index)
        return err(ErrorCode.VALIDATION_ERROR, str(e))
    except RegistrationFlowError as e:
        return err(e.code, str(e))

    logger.info(
        "group_batch_processed",
        batch_id=str(batch.id),
        created_count=created_count,
        group_discount_percent_off=percent_off,
    )
    return Ok(
        data=ProcessGroupBatchResult(
            batch_id=batch.id,
            status=GroupRegistrationBatch.Status.PROCESSED,
            processed_at=now,
            created_count=created_count,
            group_discount_percent_off=percent_off,
        )
    )
