"""Unit tests for auth/scope.py -- role authorization and department scoping.

Covers:
- authorize() accepts listed roles and rejects others with Forbidden
- scope_filter() for SuperAdmin: unrestricted, or narrowed on request
- scope_filter() for DepartmentManager: pinned to own department, Forbidden
  for a foreign department, Forbidden when no department is assigned
"""

import pytest

from auth.models import Role, User
from auth.scope import UNRESTRICTED, QueryScope, authorize, scope_filter
from core.errors import Forbidden


def _admin() -> User:
    return User(id=1, username="root", role=Role.SUPER_ADMIN)


def _manager(department_id=10) -> User:
    return User(id=2, username="mgr", role=Role.DEPARTMENT_MANAGER, department_id=department_id)


class TestAuthorize:
    def test_allowed_role_passes(self) -> None:
        authorize(_manager(), [Role.SUPER_ADMIN, Role.DEPARTMENT_MANAGER])

    def test_disallowed_role_raises(self) -> None:
        with pytest.raises(Forbidden) as exc_info:
            authorize(_manager(), [Role.SUPER_ADMIN])
        assert exc_info.value.status_code == 403
        assert "Insufficient permissions" in exc_info.value.message


class TestScopeFilter:
    def test_super_admin_is_unrestricted(self) -> None:
        scope = scope_filter(_admin())
        assert scope == UNRESTRICTED
        assert scope.unrestricted
        assert not scope.pinned

    def test_super_admin_can_narrow_to_any_department(self) -> None:
        scope = scope_filter(_admin(), requested_department_id=99)
        assert scope == QueryScope(department_id=99, pinned=False)

    def test_manager_is_pinned_to_own_department(self) -> None:
        scope = scope_filter(_manager(10))
        assert scope.department_id == 10
        assert scope.pinned

    def test_manager_requesting_own_department_is_allowed(self) -> None:
        assert scope_filter(_manager(10), requested_department_id=10).department_id == 10

    def test_manager_requesting_foreign_department_is_forbidden(self) -> None:
        with pytest.raises(Forbidden) as exc_info:
            scope_filter(_manager(10), requested_department_id=11)
        assert "your department" in exc_info.value.message

    def test_manager_without_department_is_forbidden(self) -> None:
        with pytest.raises(Forbidden):
            scope_filter(_manager(None))


class TestQueryScope:
    def test_allows(self) -> None:
        assert UNRESTRICTED.allows(5)
        assert QueryScope(department_id=5).allows(5)
        assert not QueryScope(department_id=5).allows(6)
