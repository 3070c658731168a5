"""
inventory/export.py -- CSV rendering for proxy exports.

Column set is fixed; clients and spreadsheets key off the header names.

Cells are neutralized against CSV formula injection (CWE-1236): any value
starting with =, +, -, @, tab or carriage return gets a leading tab so
spreadsheet applications treat it as text. Notes, tags and locations are
user-supplied, so every text cell goes through _sanitize_csv_cell().
"""

from __future__ import annotations

import csv
import io
from typing import Iterable

from core.database import from_iso
from inventory.models import Proxy

EXPORT_COLUMNS = [
    "IP Address",
    "Port",
    "Full Address",
    "Protocol",
    "Username",
    "Location",
    "Speed",
    "Status",
    "Department",
    "Tags",
    "Expiration Date",
    "Created At",
    "Notes",
]

_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_csv_cell(value: str) -> str:
    if value and value.startswith(_FORMULA_PREFIXES):
        return "\t" + value
    return value


def _date_only(value: str | None) -> str:
    dt = from_iso(value)
    return dt.date().isoformat() if dt else ""


def _speed(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def proxy_row(proxy: Proxy) -> list[str]:
    cells = [
        proxy.ip_address,
        str(proxy.port),
        proxy.full_address,
        proxy.protocol.value,
        proxy.username or "",
        proxy.location or "",
        _speed(proxy.speed),
        proxy.status.value,
        proxy.department_name or "",
        ", ".join(proxy.tags),
        _date_only(proxy.expiration_date),
        _date_only(proxy.created_at),
        proxy.notes or "",
    ]
    return [_sanitize_csv_cell(c) for c in cells]


def to_csv(proxies: Iterable[Proxy]) -> str:
    """Render proxies as CSV text with the EXPORT_COLUMNS header row."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    for proxy in proxies:
        writer.writerow(proxy_row(proxy))
    return buf.getvalue()
