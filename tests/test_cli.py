"""
tests/test_cli.py -- Tests for the management CLI in main.py.

Each test points the CLI at its own SQLite file by patching main.get_settings,
so the cached application settings used by the API tests stay untouched.
"""

from __future__ import annotations

import csv
import io
import sys

import pytest

import main as cli
from audit.models import AuditAction, AuditQuery
from audit.store import AuditStore
from core.config import Settings, get_settings
from core.database import create_db_engine


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    settings = Settings(
        debug=True,
        secret_key=get_settings().secret_key,
        database_url=url,
        admin_username="root",
        admin_password="root-password",
    )
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return url


def _run(monkeypatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["proxyvault", *argv])
    cli.main()


def test_bootstrap_then_noop(cli_db, monkeypatch, capsys):
    _run(monkeypatch, "bootstrap")
    assert "SuperAdmin 'root' created" in capsys.readouterr().out
    _run(monkeypatch, "bootstrap")
    assert "already exists" in capsys.readouterr().out

    _run(monkeypatch, "list-departments")
    assert "IT Department" in capsys.readouterr().out


def test_create_department_and_user(cli_db, monkeypatch, capsys):
    _run(monkeypatch, "create-department", "Marketing", "--description", "Growth")
    _run(monkeypatch, "create-user", "alice", "--department", "Marketing", "--password", "alice-pass")
    out = capsys.readouterr().out
    assert "Department 'Marketing' created" in out
    assert "User 'alice' (DepartmentManager) created" in out

    entries = AuditStore(create_db_engine(cli_db)).list_entries(AuditQuery(actor_id=0)).entries
    assert {e.action for e in entries} == {AuditAction.CREATE_DEPARTMENT, AuditAction.CREATE_USER}
    assert all(e.actor_username == "cli" for e in entries)


def test_unknown_department_exits(cli_db, monkeypatch):
    with pytest.raises(SystemExit, match="does not exist"):
        _run(monkeypatch, "create-user", "bob", "--department", "Nowhere", "--password", "bob-pass1")


def test_service_errors_exit_with_message(cli_db, monkeypatch):
    _run(monkeypatch, "create-department", "Dup")
    with pytest.raises(SystemExit, match="already exists"):
        _run(monkeypatch, "create-department", "Dup")


def test_export_to_stdout(cli_db, monkeypatch, capsys):
    _run(monkeypatch, "create-department", "Empty")
    capsys.readouterr()
    _run(monkeypatch, "export", "--department", "Empty")
    rows = list(csv.reader(io.StringIO(capsys.readouterr().out)))
    assert rows[0][0] == "IP Address"
    assert len(rows) == 1
