"""Create a promo code for Pro time."""

import typing as t

from django.core.management.base import BaseCommand

from billing.service.promotion_service import create_promotion

from ._helpers import get_user_by_email, parse_optional_datetime, unwrap_or_fail


class Command(BaseCommand):
    help = "Create a promotion and print its code. The code is shown only once."

    def add_arguments(self, parser: t.Any) -> None:
        """Add command arguments."""
        parser.add_argument("--actor", required=True, help="Email of the admin creating the promotion")
        parser.add_argument("--name", default="")
        grant = parser.add_mutually_exclusive_group(required=True)
        grant.add_argument("--days", type=int, help="Grant this many days of Pro")
        grant.add_argument("--until", help="Grant Pro until this ISO 8601 datetime")
        parser.add_argument("--valid-from", help="ISO 8601 datetime the code becomes redeemable")
        parser.add_argument("--valid-to", help="ISO 8601 datetime the code stops being redeemable")
        parser.add_argument("--max-redemptions", type=int, default=None)
        parser.add_argument("--inactive", action="store_true", help="Create the promotion disabled")

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Create the promotion."""
        created = unwrap_or_fail(
            create_promotion(
                get_user_by_email(options["actor"]),
                name=options["name"],
                grant_duration_days=options["days"],
                grant_fixed_ends_at=parse_optional_datetime(options["until"]),
                valid_from=parse_optional_datetime(options["valid_from"]),
                valid_to=parse_optional_datetime(options["valid_to"]),
                max_redemptions=options["max_redemptions"],
                is_active=not options["inactive"],
            )
        )
        self.stdout.write(self.style.SUCCESS(f"Promotion {created.promotion_id} created"))
        self.stdout.write(created.code)
