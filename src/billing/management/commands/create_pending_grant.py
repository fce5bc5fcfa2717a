"""Reserve Pro time for an email address."""

import typing as t

from django.core.management.base import BaseCommand

from billing.service.pending_grant_service import create_pending_entitlement_grant

from ._helpers import get_user_by_email, parse_optional_datetime, unwrap_or_fail


class Command(BaseCommand):
    help = "Reserve Pro time for an email address, claimed when its owner verifies it."

    def add_arguments(self, parser: t.Any) -> None:
        """Add command arguments."""
        parser.add_argument("email")
        parser.add_argument("--actor", required=True, help="Email of the admin creating the grant")
        grant = parser.add_mutually_exclusive_group(required=True)
        grant.add_argument("--days", type=int)
        grant.add_argument("--until", help="ISO 8601 datetime")
        parser.add_argument("--claim-from", help="ISO 8601 datetime the grant becomes claimable")
        parser.add_argument("--claim-to", help="ISO 8601 datetime the grant stops being claimable")

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Create the grant."""
        grant = unwrap_or_fail(
            create_pending_entitlement_grant(
                options["email"],
                get_user_by_email(options["actor"]),
                grant_duration_days=options["days"],
                grant_fixed_ends_at=parse_optional_datetime(options["until"]),
                claim_valid_from=parse_optional_datetime(options["claim_from"]),
                claim_valid_to=parse_optional_datetime(options["claim_to"]),
            )
        )
        self.stdout.write(self.style.SUCCESS(f"Pending grant {grant.id} created"))
