"""Grant, extend or revoke admin Pro overrides."""

import typing as t
import uuid

from django.core.management.base import BaseCommand, CommandError

from billing.service import override_service

from ._helpers import get_user_by_email, parse_optional_datetime, unwrap_or_fail


class Command(BaseCommand):
    help = "Grant, extend or revoke Pro time for a user."

    def add_arguments(self, parser: t.Any) -> None:
        """Add command arguments."""
        parser.add_argument("action", choices=["grant", "extend", "revoke"])
        parser.add_argument("--actor", required=True, help="Email of the admin performing the change")
        parser.add_argument("--user", help="Email of the user receiving Pro time")
        parser.add_argument("--override", type=uuid.UUID, help="Override id to revoke")
        parser.add_argument("--days", type=int)
        parser.add_argument("--until", help="ISO 8601 datetime")
        parser.add_argument("--reason", default="")

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Apply the override change."""
        actor = get_user_by_email(options["actor"])
        if options["action"] == "revoke":
            if not options["override"]:
                raise CommandError("--override is required to revoke")
            revoked = unwrap_or_fail(override_service.revoke_admin_override(options["override"], actor))
            state = "was already over" if revoked.already_revoked else "revoked"
            self.stdout.write(self.style.SUCCESS(f"Override {revoked.override_id} {state}"))
            return

        if not options["user"]:
            raise CommandError("--user is required to grant or extend")
        command = (
            override_service.grant_admin_override
            if options["action"] == "grant"
            else override_service.extend_admin_override
        )
        granted = unwrap_or_fail(
            command(
                get_user_by_email(options["user"]),
                actor,
                reason=options["reason"],
                grant_duration_days=options["days"],
                grant_fixed_ends_at=parse_optional_datetime(options["until"]),
            )
        )
        if granted.no_extension:
            self.stdout.write(self.style.WARNING("The user already has Pro beyond that date; nothing granted"))
            return
        self.stdout.write(
            self.style.SUCCESS(f"Override {granted.override_id}: {granted.starts_at} to {granted.ends_at}")
        )
