"""
audit/store.py -- Append-only persistence for audit entries.

The store exposes append() and read queries only. There is no update or
delete: entries are immutable once written.

Snapshots (before/after/extra) are serialized as JSON text. default=str
keeps the write from failing on values json cannot encode natively
(datetimes, enums); the audit trail is for humans, so a string form is fine.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from audit.models import AuditAction, AuditDraft, AuditEntry, AuditPage, AuditQuery, TargetType
from core.database import now_iso

_metadata = MetaData()

_audit_logs = Table(
    "audit_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("actor_id", Integer, nullable=False, index=True),
    Column("actor_username", String(50), nullable=False),
    Column("action", String(30), nullable=False, index=True),
    Column("target_id", Integer),
    Column("target_type", String(20)),
    Column("before", Text),
    Column("after", Text),
    Column("extra", Text),
    Column("ip_address", String(45)),
    Column("user_agent", String(500)),
    Column("created_at", String(32), nullable=False, index=True),
    sqlite_autoincrement=True,
)


def _dump(value: Optional[dict]) -> Optional[str]:
    return json.dumps(value, default=str) if value is not None else None


def _load(value: Optional[str]) -> Optional[dict]:
    return json.loads(value) if value else None


class AuditStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def append(self, draft: AuditDraft) -> int:
        """Persist one entry and return its ID."""
        ctx = draft.context
        with self.engine.connect() as conn:
            result = conn.execute(
                _audit_logs.insert().values(
                    actor_id=ctx.actor_id,
                    actor_username=ctx.actor_username,
                    action=AuditAction(draft.action).value,
                    target_id=draft.target_id,
                    target_type=TargetType(draft.target_type).value if draft.target_type else None,
                    before=_dump(draft.before),
                    after=_dump(draft.after),
                    extra=_dump(draft.extra),
                    ip_address=ctx.ip_address,
                    user_agent=(ctx.user_agent or "")[:500] or None,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_entries(self, query: Optional[AuditQuery] = None) -> AuditPage:
        """Return a page of entries, newest first."""
        query = query or AuditQuery()
        clauses = []
        if query.action is not None:
            clauses.append(_audit_logs.c.action == AuditAction(query.action).value)
        if query.actor_id is not None:
            clauses.append(_audit_logs.c.actor_id == query.actor_id)
        if query.target_type is not None:
            clauses.append(_audit_logs.c.target_type == TargetType(query.target_type).value)

        stmt = (
            _audit_logs.select()
            .where(*clauses)
            .order_by(_audit_logs.c.created_at.desc(), _audit_logs.c.id.desc())
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )
        count_stmt = select(func.count()).select_from(_audit_logs).where(*clauses)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            total = conn.execute(count_stmt).scalar() or 0
        return AuditPage(entries=[_row_to_entry(r) for r in rows], total=total, page=query.page, limit=query.limit)

    def entries_for_target(self, target_type: TargetType, target_id: int) -> list[AuditEntry]:
        """Return the full history of one record, oldest first."""
        stmt = (
            _audit_logs.select()
            .where((_audit_logs.c.target_type == TargetType(target_type).value) & (_audit_logs.c.target_id == target_id))
            .order_by(_audit_logs.c.created_at, _audit_logs.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_entry(r) for r in rows]


def _row_to_entry(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        actor_id=row.actor_id,
        actor_username=row.actor_username,
        action=AuditAction(row.action),
        target_id=row.target_id,
        target_type=TargetType(row.target_type) if row.target_type else None,
        before=_load(row.before),
        after=_load(row.after),
        extra=_load(row.extra),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
