"""
tests/test_csv_formula_injection.py -- Regression tests for CSV formula injection (CWE-1236).

Security background: Spreadsheet applications (Excel, LibreOffice, Google Sheets)
interpret cells that start with =, +, -, or @ as formulas. Proxy notes, tags
and locations are free text typed by department managers; written straight
into the export, a value like =HYPERLINK("http://evil") would execute when
someone opens the CSV.

Mitigation: Tab-prefix sanitization. Cells starting with a dangerous character
are prefixed with \t so spreadsheet applications treat the cell as text.
"""

import csv
import io
from typing import Optional

import pytest

from inventory.export import EXPORT_COLUMNS, to_csv
from inventory.models import Protocol, Proxy, ProxyStatus

# ---------------------------------------------------------------------------
# Test data helper
# ---------------------------------------------------------------------------


def _make_proxy(notes: Optional[str] = None, tags: Optional[list[str]] = None, location: Optional[str] = None) -> Proxy:
    return Proxy(
        id=1,
        ip_address="10.0.0.5",
        port=8080,
        protocol=Protocol.HTTP,
        department_id=1,
        department_name="IT",
        username="svc",
        location=location,
        speed=120.0,
        status=ProxyStatus.ACTIVE,
        expiration_date="2030-01-15T00:00:00.000000+00:00",
        notes=notes,
        tags=tags or [],
        created_at="2024-05-01T12:30:00.000000+00:00",
    )


def _rows(proxies: list[Proxy]) -> list[dict]:
    return list(csv.DictReader(io.StringIO(to_csv(proxies))))


# ---------------------------------------------------------------------------
# Dangerous prefixes
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("payload", ["=1+1", "+1+1", "-1+1", "@SUM(A1)", "\t=1", "\r=1"])
def test_dangerous_notes_are_tab_prefixed(payload: str) -> None:
    row = _rows([_make_proxy(notes=payload)])[0]
    assert row["Notes"] == "\t" + payload


def test_dangerous_location_is_tab_prefixed() -> None:
    row = _rows([_make_proxy(location='=HYPERLINK("http://evil")')])[0]
    assert row["Location"].startswith("\t=")


def test_dangerous_tags_are_tab_prefixed() -> None:
    row = _rows([_make_proxy(tags=["=cmd", "safe"])])[0]
    assert row["Tags"] == "\t=cmd, safe"


# ---------------------------------------------------------------------------
# Safe values and shape
# ---------------------------------------------------------------------------


def test_safe_values_are_unchanged() -> None:
    row = _rows([_make_proxy(notes="Primary egress", tags=["eu", "fast"], location="Frankfurt")])[0]
    assert row["Notes"] == "Primary egress"
    assert row["Tags"] == "eu, fast"
    assert row["Location"] == "Frankfurt"


def test_header_and_formatting() -> None:
    text = to_csv([_make_proxy()])
    header = next(csv.reader(io.StringIO(text)))
    assert header == EXPORT_COLUMNS

    row = _rows([_make_proxy()])[0]
    assert row["Full Address"] == "10.0.0.5:8080"
    assert row["Speed"] == "120"
    assert row["Department"] == "IT"
    assert row["Expiration Date"] == "2030-01-15"
    assert row["Created At"] == "2024-05-01"
    assert row["Notes"] == ""


def test_empty_export_is_header_only() -> None:
    assert to_csv([]).strip().splitlines() == [",".join(EXPORT_COLUMNS)]
