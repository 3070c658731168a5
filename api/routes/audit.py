"""
api/routes/audit.py -- Read-only audit trail (SuperAdmin only).

Routes:
  GET /audit-logs                          -- newest first; filter by action, userId, targetType
  GET /audit-logs/{targetType}/{targetId}  -- one record's history, oldest first

There is deliberately no write, update or delete route: entries are created
only by the services' post-commit hook.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from api.deps import ok
from api.models import AuditLogOut, dump
from audit.models import AuditAction, AuditQuery, TargetType
from audit.store import AuditStore
from auth.dependencies import require_super_admin

router = APIRouter(dependencies=[Depends(require_super_admin)])


@router.get("/audit-logs")
def list_audit_logs(
    request: Request,
    action: Optional[AuditAction] = Query(default=None),
    user_id: Optional[int] = Query(default=None, alias="userId", ge=1),
    target_type: Optional[TargetType] = Query(default=None, alias="targetType"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    store: AuditStore = request.app.state.audit_store
    result = store.list_entries(
        AuditQuery(action=action, actor_id=user_id, target_type=target_type, page=page, limit=limit)
    )
    total_pages = (result.total + limit - 1) // limit
    return ok(
        {
            "logs": [dump(AuditLogOut.from_domain(e)) for e in result.entries],
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalItems": result.total,
                "itemsPerPage": limit,
                "hasNextPage": page < total_pages,
                "hasPrevPage": page > 1,
            },
        }
    )


@router.get("/audit-logs/{target_type}/{target_id}")
def target_history(
    request: Request,
    target_type: TargetType,
    target_id: int = Path(ge=1),
) -> dict:
    """Full history of one record, oldest first, including entries after its deletion."""
    store: AuditStore = request.app.state.audit_store
    entries = store.entries_for_target(target_type, target_id)
    return ok({"logs": [dump(AuditLogOut.from_domain(e)) for e in entries]})
