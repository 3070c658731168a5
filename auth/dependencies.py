"""
auth/dependencies.py -- FastAPI Depends() helpers forming the access gate.

The gate is a dependency chain, so FastAPI resolves it strictly in order:

  get_current_user          authenticate: Authorization: Bearer <token>
        ^
  require_roles(*roles)     authorize: role membership
        ^
  query_scope(*roles)       scope: QueryScope for the caller, honouring an
                            optional ?departmentId= query parameter

Route handlers depend on the outermost piece they need; none of them can
reach a store without first passing the earlier checks.

try_get_current_user() is the soft variant (returns None on failure).

Layer rule: no imports from api/, services/, inventory/, or audit/.
  This module may import from fastapi because it is part of the FastAPI
  dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Query, Request

from auth.models import Role, User
from auth.scope import QueryScope, authorize, scope_filter
from auth.store import UserStore
from auth.tokens import decode_access_token
from core.errors import Unauthenticated

_ALL_ROLES = (Role.SUPER_ADMIN, Role.DEPARTMENT_MANAGER)


def bearer_token(request: Request) -> str | None:
    """Extract the token from an 'Authorization: Bearer <token>' header."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request. Returns the live, active User or None.

    Never raises. The token's role claim is not trusted: the user record is
    re-read on every request so deactivation and role changes apply at once.
    The subject must still name the account the ID resolves to, so a token
    never outlives a deletion or rename of its user.
    """
    token = bearer_token(request)
    if token is None:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(payload["user_id"])
    if user is None or not user.is_active or payload.get("sub") != user.username:
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        if bearer_token(request) is None:
            raise Unauthenticated("Access denied. No token provided.")
        raise Unauthenticated("Invalid token or user is inactive.")
    return user


def require_roles(*roles: Role) -> Callable[..., User]:
    """Build a dependency that authenticates, then authorizes against roles.

    Usage:
        @router.post("/departments")
        def create(user: User = Depends(require_roles(Role.SUPER_ADMIN))): ...
    """
    allowed = roles or _ALL_ROLES

    def dependency(user: User = Depends(get_current_user)) -> User:
        authorize(user, allowed)
        return user

    return dependency


require_super_admin = require_roles(Role.SUPER_ADMIN)
require_any_role = require_roles(*_ALL_ROLES)


def query_scope(authorized: Callable[..., User]) -> Callable[..., QueryScope]:
    """Build a dependency yielding the caller's QueryScope after `authorized` passed.

    Reads the optional departmentId query parameter. A DepartmentManager
    naming a foreign department is rejected here with 403, before any handler
    code runs.
    """

    def dependency(
        user: User = Depends(authorized),
        requested_department_id: int | None = Query(default=None, alias="departmentId", ge=1),
    ) -> QueryScope:
        return scope_filter(user, requested_department_id)

    return dependency


scoped_any_role = query_scope(require_any_role)
