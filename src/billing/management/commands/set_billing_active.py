"""Enable or disable a promotion or pending grant."""

import typing as t
import uuid

from django.core.management.base import BaseCommand

from billing.service import pending_grant_service, promotion_service

from ._helpers import get_user_by_email, unwrap_or_fail

COMMANDS = {
    ("promotion", True): promotion_service.enable_promotion,
    ("promotion", False): promotion_service.disable_promotion,
    ("pending-grant", True): pending_grant_service.enable_pending_entitlement_grant,
    ("pending-grant", False): pending_grant_service.disable_pending_entitlement_grant,
}


class Command(BaseCommand):
    help = "Enable or disable a promotion or a pending grant."

    def add_arguments(self, parser: t.Any) -> None:
        """Add command arguments."""
        parser.add_argument("kind", choices=["promotion", "pending-grant"])
        parser.add_argument("id", type=uuid.UUID)
        parser.add_argument("state", choices=["on", "off"])
        parser.add_argument("--actor", required=True)

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Toggle the flag."""
        command = COMMANDS[(options["kind"], options["state"] == "on")]
        change = unwrap_or_fail(command(options["id"], get_user_by_email(options["actor"])))
        suffix = " (unchanged)" if change.already_in_state else ""
        self.stdout.write(self.style.SUCCESS(f"{options['kind']} {change.id} active={change.is_active}{suffix}"))
