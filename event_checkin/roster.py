"""
Roster ingestion and export for the Event Check-in Application

Turns the raw text of an uploaded attendee list into attendee records.
Headers are matched loosely so that spreadsheets exported from different
tools ("Full Name", "first_name"/"last_name", "Member ID", ...) all work.
Rows that cannot be used are reported, not raised.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .exceptions import EmptyRosterException
from .models import AttendeeRecord, ExportRow, RosterParseResult, format_timestamp

logger = logging.getLogger(__name__)


EXPORT_HEADER = "Name,External ID,Checked In,Check-in Time"


@dataclass
class ColumnMapping:
    """Index of each recognised column in the header row, or None"""
    name: Optional[int] = None
    first_name: Optional[int] = None
    last_name: Optional[int] = None
    external_id: Optional[int] = None
    email: Optional[int] = None


def parse_csv_row(line: str) -> List[str]:
    """
    Split one line into fields, honouring double-quoted fields

    A doubled quote inside a quoted field is a literal quote, commas
    inside quotes do not split, and every field is stripped.

    Args:
        line: A single line of CSV text

    Returns:
        List of field values
    """
    fields = []
    current = []
    in_quotes = False
    i = 0

    while i < len(line):
        char = line[i]

        if char == '"' and not in_quotes:
            in_quotes = True
        elif char == '"' and in_quotes:
            if i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = False
        elif char == ',' and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def _classify_header(header: str) -> Optional[str]:
    """Return the semantic role of a lower-cased header, if any"""
    if header == "name" or (
        "name" in header
        and not any(word in header for word in ("first", "last", "given", "family"))
    ):
        return "name"
    if "first" in header:
        return "first_name"
    if "last" in header or "family" in header or "surname" in header:
        return "last_name"
    if "id" in header and "email" not in header:
        return "external_id"
    if "email" in header:
        return "email"
    return None


def map_columns(headers: List[str]) -> ColumnMapping:
    """
    Work out which header holds which attendee field

    The first header claiming a role keeps it; later headers with the
    same role are ignored.

    Args:
        headers: Lower-cased header values

    Returns:
        ColumnMapping with the chosen indexes
    """
    mapping = ColumnMapping()
    for index, header in enumerate(headers):
        role = _classify_header(header)
        if role and getattr(mapping, role) is None:
            setattr(mapping, role, index)
    return mapping


def _derive_name(row: List[str], mapping: ColumnMapping) -> str:
    if mapping.name is not None and row[mapping.name]:
        return row[mapping.name]
    if mapping.first_name is not None and mapping.last_name is not None:
        return f"{row[mapping.first_name]} {row[mapping.last_name]}".strip()
    if mapping.first_name is not None:
        return row[mapping.first_name]
    return ""


def parse_roster(content: str) -> RosterParseResult:
    """
    Parse an uploaded attendee list

    The first line is the header row. Each following line becomes an
    attendee record, or a ``"Row N: ..."`` error where N is the line
    number counting the header as line 1.

    Args:
        content: Raw text of the uploaded file

    Returns:
        RosterParseResult with attendees and row-level errors

    Raises:
        EmptyRosterException: If the content has no lines
    """
    text = (content or "").strip()
    if not text:
        raise EmptyRosterException()

    lines = text.split("\n")
    headers = [header.lower() for header in parse_csv_row(lines[0])]
    logger.info(f"Roster headers: {headers}")

    mapping = map_columns(headers)
    logger.debug(f"Roster column mapping: {mapping}")

    result = RosterParseResult()

    for index, line in enumerate(lines[1:], start=2):
        row = parse_csv_row(line)

        if len(row) != len(headers):
            result.errors.append(
                f"Row {index}: Column count mismatch (expected {len(headers)}, got {len(row)})"
            )
            continue

        name = _derive_name(row, mapping)
        if not name:
            result.errors.append(f"Row {index}: No name found")
            continue

        external_id = None
        if mapping.external_id is not None and row[mapping.external_id]:
            external_id = row[mapping.external_id]

        result.attendees.append(AttendeeRecord(name=name, external_id=external_id))

    logger.info(
        f"Parsed {len(result.attendees)} attendees with {len(result.errors)} errors"
    )
    return result


def render_export_csv(rows: Iterable[ExportRow]) -> str:
    """
    Render the check-in export

    Every field is wrapped in double quotes as-is; embedded quotes are
    not escaped.

    Args:
        rows: Export rows ordered by attendee name

    Returns:
        CSV text with a header line
    """
    lines = [EXPORT_HEADER]
    for row in rows:
        checked_in = "Yes" if row.checked_in else "No"
        check_in_time = format_timestamp(row.checked_in_at) or ""
        lines.append(
            f'"{row.name}","{row.external_id or ""}","{checked_in}","{check_in_time}"'
        )
    return "\n".join(lines)
