"""
auth/scope.py -- Role authorization and department query scoping.

This module is the single producer of QueryScope values. Every service
operation that reads or writes departmental data takes a QueryScope and ANDs
it into its storage query; no handler re-implements the role logic.

Order of checks within a request is fixed: authenticate (auth/dependencies.py)
-> authorize() -> scope_filter() -> persistence. The FastAPI dependency chain
in auth/dependencies.py makes that order structural.

Layer rule: no imports from api/, services/, inventory/, or audit/.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from auth.models import Role, User
from core.errors import Forbidden


@dataclass(frozen=True)
class QueryScope:
    """Department restriction applied to every departmental query.

    department_id -- None means "all departments"; otherwise only rows whose
                     department equals this id are visible or writable.
    pinned        -- True when the restriction comes from the caller's role
                     (DepartmentManager) rather than an explicit filter a
                     SuperAdmin asked for. Pinned scopes also force the
                     department on create and forbid moving records.
    """

    department_id: int | None = None
    pinned: bool = False

    @property
    def unrestricted(self) -> bool:
        return self.department_id is None

    def allows(self, department_id: int | None) -> bool:
        """Return True if a row owned by department_id is inside this scope."""
        return self.department_id is None or self.department_id == department_id


UNRESTRICTED = QueryScope()


def authorize(user: User, allowed_roles: Iterable[Role]) -> None:
    """Raise Forbidden unless user.role is one of allowed_roles."""
    if user.role not in set(allowed_roles):
        raise Forbidden("Access forbidden. Insufficient permissions.")


def scope_filter(user: User, requested_department_id: int | None = None) -> QueryScope:
    """Derive the QueryScope for a caller.

    SuperAdmin: unrestricted, or narrowed to requested_department_id when the
    caller explicitly asked for one.

    DepartmentManager: asking for any department other than their own is
    Forbidden; otherwise the scope is pinned to their own department whether
    or not they asked for it.
    """
    if user.role is Role.SUPER_ADMIN:
        return QueryScope(department_id=requested_department_id)

    if user.department_id is None:
        # A manager without a department would otherwise fall through to an
        # unrestricted scope.
        raise Forbidden("Access forbidden. Your account is not assigned to a department.")
    if requested_department_id is not None and requested_department_id != user.department_id:
        raise Forbidden("Access forbidden. You can only access data from your department.")
    return QueryScope(department_id=user.department_id, pinned=True)
