"""Write the OpenAPI schema to a JSON file."""

import typing as t
from pathlib import Path

import orjson
from django.conf import settings
from django.core.management.base import BaseCommand, CommandParser
from ninja.responses import NinjaJSONEncoder

from api.api import api


class Command(BaseCommand):
    help = "Dump the OpenAPI schema in a json file."

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument("--output", type=Path, default=settings.BASE_DIR.parent / ".artifacts" / "openapi.json")

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        output_file: Path = options["output"]
        output_file.parent.mkdir(parents=True, exist_ok=True)
        schema = NinjaJSONEncoder().encode(api.get_openapi_schema())
        output_file.write_bytes(orjson.dumps(orjson.loads(schema), option=orjson.OPT_INDENT_2))
        self.stdout.write(self.style.SUCCESS(f"OpenAPI schema dumped to {output_file}"))
