"""CSV reading and the downloadable template for group registration uploads."""

import csv
import io
import typing as t

from pydantic import BaseModel

BOM = "\ufeff"

GROUP_REGISTRATION_TEMPLATE_HEADERS: tuple[str, ...] = (
    "firstName",
    "lastName",
    "email",
    "dateOfBirth",
    "phone",
    "gender",
    "genderIdentity",
    "city",
    "state",
    "country",
    "emergencyContactName",
    "emergencyContactPhone",
    "distanceId",
    "distanceLabel",
    "addOnSelections",
)

GROUP_REGISTRATION_TEMPLATE_EXAMPLE_ROW: tuple[str, ...] = (
    "Ana",
    "Perez",
    "ana.perez@example.com",
    "1990-01-15",
    "",
    "",
    "",
    "",
    "",
    "MX",
    "",
    "",
    "",
    "",
    "",
)

REQUIRED_HEADERS = ("firstName", "lastName", "email", "dateOfBirth")
DISTANCE_HEADERS = ("distanceId", "distanceLabel")


class CsvParseError(ValueError):
    """Raised when the uploaded text is not well-formed CSV."""


class ParsedCsv(BaseModel):
    headers: list[str]
    rows: list[list[str]]

    def header_index(self) -> dict[str, int]:
        """Column position per header name. The first occurrence wins."""
        index: dict[str, int] = {}
        for position, header in enumerate(self.headers):
            index.setdefault(header, position)
        return index


def _is_blank(row: t.Sequence[str]) -> bool:
    return all(not value.strip() for value in row)


def parse_csv(text: str) -> ParsedCsv:
    """Parse CSV text into trimmed headers and data rows.

    Handles a leading UTF-8 BOM, quoted fields with commas, doubled quotes and
    embedded newlines. Blank lines are skipped.

    Raises:
        CsvParseError: If a quoted field is never closed.
    """
    if text.startswith(BOM):
        text = text[len(BOM) :]
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        rows = [row for row in reader if row and not _is_blank(row)]
    except csv.Error as e:
        raise CsvParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e
    if not rows:
        return ParsedCsv(headers=[], rows=[])
    headers = [header.strip() for header in rows[0]]
    return ParsedCsv(headers=headers, rows=rows[1:])


def generate_group_registration_template_csv() -> str:
    """Header line plus one example row."""
    header_line = ",".join(GROUP_REGISTRATION_TEMPLATE_HEADERS)
    example_line = ",".join(GROUP_REGISTRATION_TEMPLATE_EXAMPLE_ROW)
    return f"{header_line}\n{example_line}\n"


def get_cell(row: t.Sequence[str], header_index: dict[str, int], header: str) -> str:
    """Value of ``header`` in ``row``, empty when the column is missing or the row is short."""
    position = header_index.get(header)
    if position is None or position >= len(row):
        return ""
    return row[position]
