"""
audit/models.py -- Audit trail domain types.

AuditAction is a closed set. Session-level actions (LOGIN, LOGOUT,
EXPORT_DATA) carry no target; every other action must name both a target id
and a target kind. AuditDraft enforces that on construction, and its factory
classmethods enforce the snapshot shape:

  created()  -> after only
  deleted()  -> before only
  updated()  -> before and after (full snapshots, not diffs)

AuditEntry is what the store hands back: a draft plus id and timestamp.
Entries are append-only; nothing in the system updates or deletes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AuditAction(str, Enum):
    CREATE_PROXY = "CREATE_PROXY"
    UPDATE_PROXY = "UPDATE_PROXY"
    DELETE_PROXY = "DELETE_PROXY"
    ASSIGN_PROXY = "ASSIGN_PROXY"
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    DELETE_USER = "DELETE_USER"
    CREATE_DEPARTMENT = "CREATE_DEPARTMENT"
    UPDATE_DEPARTMENT = "UPDATE_DEPARTMENT"
    DELETE_DEPARTMENT = "DELETE_DEPARTMENT"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    EXPORT_DATA = "EXPORT_DATA"
    BULK_OPERATION = "BULK_OPERATION"


class TargetType(str, Enum):
    PROXY = "Proxy"
    USER = "User"
    DEPARTMENT = "Department"


SESSION_ACTIONS = frozenset({AuditAction.LOGIN, AuditAction.LOGOUT, AuditAction.EXPORT_DATA})

_DESCRIPTIONS = {
    AuditAction.CREATE_PROXY: "Created new proxy",
    AuditAction.UPDATE_PROXY: "Updated proxy information",
    AuditAction.DELETE_PROXY: "Deleted proxy",
    AuditAction.ASSIGN_PROXY: "Assigned proxy to department",
    AuditAction.CREATE_USER: "Created new user",
    AuditAction.UPDATE_USER: "Updated user information",
    AuditAction.DELETE_USER: "Deleted user",
    AuditAction.CREATE_DEPARTMENT: "Created new department",
    AuditAction.UPDATE_DEPARTMENT: "Updated department information",
    AuditAction.DELETE_DEPARTMENT: "Deleted department",
    AuditAction.LOGIN: "Logged in",
    AuditAction.LOGOUT: "Logged out",
    AuditAction.EXPORT_DATA: "Exported data",
    AuditAction.BULK_OPERATION: "Performed bulk operation",
}


def describe(action: AuditAction) -> str:
    return _DESCRIPTIONS.get(AuditAction(action), str(action))


@dataclass(frozen=True)
class AuditContext:
    """Who is acting and from where. Built once per request by the API layer."""

    actor_id: int
    actor_username: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuditDraft:
    """A not-yet-persisted audit entry. Prefer the factory classmethods."""

    context: AuditContext
    action: AuditAction
    target_id: Optional[int] = None
    target_type: Optional[TargetType] = None
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    extra: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        action = AuditAction(self.action)
        has_target = self.target_id is not None and self.target_type is not None
        if action in SESSION_ACTIONS:
            if self.target_id is not None or self.target_type is not None:
                raise ValueError(f"{action.value} does not take a target")
        elif not has_target:
            raise ValueError(f"{action.value} requires target_id and target_type")

    @classmethod
    def created(cls, context: AuditContext, action: AuditAction, target_type: TargetType, after: dict) -> "AuditDraft":
        return cls(context=context, action=action, target_id=after["id"], target_type=target_type, after=after)

    @classmethod
    def updated(
        cls,
        context: AuditContext,
        action: AuditAction,
        target_type: TargetType,
        before: dict,
        after: dict,
        extra: Optional[dict] = None,
    ) -> "AuditDraft":
        return cls(
            context=context,
            action=action,
            target_id=before["id"],
            target_type=target_type,
            before=before,
            after=after,
            extra=extra,
        )

    @classmethod
    def deleted(cls, context: AuditContext, action: AuditAction, target_type: TargetType, before: dict) -> "AuditDraft":
        return cls(context=context, action=action, target_id=before["id"], target_type=target_type, before=before)

    @classmethod
    def session(cls, context: AuditContext, action: AuditAction, extra: Optional[dict] = None) -> "AuditDraft":
        return cls(context=context, action=action, extra=extra)


@dataclass
class AuditEntry:
    id: int
    actor_id: int
    actor_username: str
    action: AuditAction
    created_at: str
    target_id: Optional[int] = None
    target_type: Optional[TargetType] = None
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    extra: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def description(self) -> str:
        return describe(self.action)


@dataclass
class AuditQuery:
    action: Optional[AuditAction] = None
    actor_id: Optional[int] = None
    target_type: Optional[TargetType] = None
    page: int = 1
    limit: int = 20


@dataclass
class AuditPage:
    entries: list[AuditEntry] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
