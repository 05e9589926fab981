"""Tolerant CSV parsing with alias-based header resolution.

The parser works on the raw text of an uploaded file and never touches I/O,
so the same text always yields the same rows. Header cells are matched
case-insensitively against a per-field alias list; the first column that
matches a field wins and unmatched columns are ignored.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from bulk_importer.utils.csv_validator import ValidationError, validate_headers


class CSVParseError(ValueError):
    """Raised when a file cannot be turned into rows at all."""


@dataclass(frozen=True)
class ParsedCSV:
    rows: list[dict[str, str]]
    header_map: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.rows)


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if value[:1] in ("'", '"'):
        value = value[1:]
    if value[-1:] in ("'", '"'):
        value = value[:-1]
    return value.strip()


def split_csv_line(line: str) -> list[str]:
    """Split one line on commas that are not inside double quotes."""
    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append(_strip_quotes("".join(current)))
            current = []
        else:
            current.append(char)
    values.append(_strip_quotes("".join(current)))
    return values


def resolve_header(
    header: Sequence[str], column_map: Mapping[str, Sequence[str]]
) -> dict[str, int]:
    """Map each target field to the index of the first header cell matching one of its aliases."""
    normalized = [cell.replace('"', "").replace("'", "").strip().lower() for cell in header]
    header_map: dict[str, int] = {}
    for field_name, aliases in column_map.items():
        variants = {alias.lower() for alias in aliases}
        for index, cell in enumerate(normalized):
            if cell in variants:
                header_map[field_name] = index
                break
    return header_map


def parse_csv(
    text: str,
    column_map: Mapping[str, Sequence[str]],
    required_fields: Sequence[str] = (),
) -> ParsedCSV:
    """Parse raw CSV text into field dicts keyed by the names in ``column_map``.

    Raises:
        CSVParseError: when the file has no data rows or required columns are missing.
    """
    # Only "\n" ends a record; form feeds and other separators stay inside fields
    lines = [line.rstrip("\r") for line in text.split("\n")]
    lines = [line for line in lines if line.strip()]
    if len(lines) < 2:
        raise CSVParseError("CSV file must contain header and at least one data row")

    header_map = resolve_header(split_csv_line(lines[0]), column_map)
    try:
        validate_headers(header_map, required_fields)
    except ValidationError as exc:
        raise CSVParseError(str(exc)) from exc

    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        values = split_csv_line(line)
        rows.append(
            {
                field_name: values[index] if index < len(values) else ""
                for field_name, index in header_map.items()
            }
        )
    return ParsedCSV(rows=rows, header_map=header_map)
