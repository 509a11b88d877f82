"""
CSV export service for auction registrations.

Generates the admin download of buyer registrations, one row per registration,
annotated with the parent auction.

Format:
- Fixed column order (see REGISTRATION_CSV_COLUMNS)
- Every value is quoted; embedded quotes are doubled and newlines stay inside
  the quoted value (RFC 4180), so buyer-supplied text cannot break the layout

Security:
- CSV Injection Prevention: buyer-supplied fields are sanitized to prevent
  formula execution in spreadsheet tools
- Security Logging: logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from io import StringIO
from typing import Iterable, List

logger = logging.getLogger(__name__)

# International phone numbers legitimately start with "+"
_PHONE_PATTERN = re.compile(r"^\+\d[\d\s().-]*$")

REGISTRATION_CSV_COLUMNS: List[str] = [
    "Auction Title",
    "Auction Date",
    "Location",
    "Buyer Name",
    "Email",
    "Phone",
    "Company",
    "Status",
    "Registered Date",
    "Payment Method",
    "Payment Status",
    "Special Requirements",
]


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    If dangerous characters are found and stripped, a warning is logged for
    security monitoring.

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "buyer_name")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character

        sanitize_csv_field("Green Acres Ltd", "buyer_company")
        # Returns "Green Acres Ltd" (unchanged, no logging)
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


@dataclass(frozen=True, slots=True)
class RegistrationExportRow:
    """Flattened registration + auction information for one CSV row."""
    auction_title: str
    auction_date: datetime
    auction_location: str
    buyer_name: str
    buyer_email: str
    buyer_phone: str
    buyer_company: str
    status: str
    registered_at: datetime
    payment_method: str
    payment_status: str
    special_requirements: str


def _export_phone(value: str) -> str:
    if value and _PHONE_PATTERN.match(value.strip()):
        return value.strip()
    return sanitize_csv_field(value, "buyer_phone")


def _format_date(value: datetime) -> str:
    return value.date().isoformat()


def generate_registrations_csv(rows: Iterable[RegistrationExportRow]) -> str:
    """
    Generate CSV content for the given registrations.

    An empty iterable yields a header-only document.

    Example:
        csv_content = generate_registrations_csv(rows)
        return Response(content=csv_content, media_type="text/csv")
    """
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(REGISTRATION_CSV_COLUMNS)

    for row in rows:
        writer.writerow([
            sanitize_csv_field(row.auction_title, "auction_title"),
            _format_date(row.auction_date),
            sanitize_csv_field(row.auction_location, "auction_location"),

            # Buyer-supplied fields
            sanitize_csv_field(row.buyer_name, "buyer_name"),
            sanitize_csv_field(row.buyer_email, "buyer_email"),
            _export_phone(row.buyer_phone),
            sanitize_csv_field(row.buyer_company, "buyer_company"),

            row.status,
            _format_date(row.registered_at),
            sanitize_csv_field(row.payment_method, "payment_method"),
            row.payment_status or "pending",
            sanitize_csv_field(row.special_requirements, "special_requirements"),
        ])

    return output.getvalue()


__all__ = [
    "REGISTRATION_CSV_COLUMNS",
    "RegistrationExportRow",
    "generate_registrations_csv",
    "sanitize_csv_field",
]
