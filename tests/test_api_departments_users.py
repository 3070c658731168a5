"""
tests/test_api_departments_users.py -- Integration tests for departments, users and audit-log routes.

Covers:
  - departments: managers read only their own, writes are SuperAdmin-only,
    name uniqueness, delete refused while proxies or users reference it
  - users: SuperAdmin-only, username uniqueness, manager needs a department,
    self-deactivation/self-deletion and last-SuperAdmin guards
  - the password hash never appears in responses or audit snapshots
  - /api/audit-logs: SuperAdmin-only, filters, newest first, per-record history
"""

from __future__ import annotations

from audit.models import AuditAction, TargetType


def _new_department(env, name: str) -> dict:
    resp = env.client.post("/api/departments", json={"name": name}, headers=env.headers("admin"))
    assert resp.status_code == 201, resp.json()
    return resp.json()["data"]["department"]


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


def test_admin_lists_all_departments_with_counts(api_env):
    resp = api_env.client.get("/api/departments", headers=api_env.headers("admin"))
    assert resp.status_code == 200
    departments = resp.json()["data"]["departments"]
    names = [d["name"] for d in departments]
    assert {"IT", "Sales"} <= set(names)
    assert all("proxyCount" in d for d in departments)


def test_manager_sees_only_own_department(api_env):
    resp = api_env.client.get("/api/departments", headers=api_env.headers("sales"))
    assert [d["name"] for d in resp.json()["data"]["departments"]] == ["Sales"]

    foreign = api_env.client.get(f"/api/departments/{api_env.it_dept.id}", headers=api_env.headers("sales"))
    assert foreign.status_code == 404
    own = api_env.client.get(f"/api/departments/{api_env.sales_dept.id}", headers=api_env.headers("sales"))
    assert own.json()["data"]["department"]["name"] == "Sales"


def test_department_detail_with_department_query(api_env):
    url = f"/api/departments/{api_env.it_dept.id}"
    admin = api_env.headers("admin")

    assert api_env.client.get(url, headers=admin).json()["data"]["department"]["name"] == "IT"
    narrowed = api_env.client.get(url, params={"departmentId": api_env.it_dept.id}, headers=admin)
    assert narrowed.status_code == 200
    elsewhere = api_env.client.get(url, params={"departmentId": api_env.sales_dept.id}, headers=admin)
    assert elsewhere.status_code == 404

    foreign = api_env.client.get(url, params={"departmentId": api_env.sales_dept.id}, headers=api_env.headers("it"))
    assert foreign.status_code == 403
    assert api_env.client.get(url, params={"departmentId": 0}, headers=admin).status_code == 400


def test_manager_cannot_write_departments(api_env):
    it = api_env.headers("it")
    assert api_env.client.post("/api/departments", json={"name": "Rogue"}, headers=it).status_code == 403
    assert (
        api_env.client.put(f"/api/departments/{api_env.it_dept.id}", json={"name": "Mine"}, headers=it).status_code
        == 403
    )
    assert api_env.client.delete(f"/api/departments/{api_env.it_dept.id}", headers=it).status_code == 403


def test_department_create_update_delete(api_env):
    created = _new_department(api_env, "Research")
    assert created["proxyCount"] == 0

    resp = api_env.client.put(
        f"/api/departments/{created['id']}",
        json={"description": "R&D"},
        headers=api_env.headers("admin"),
    )
    assert resp.json()["data"]["department"]["description"] == "R&D"
    assert resp.json()["data"]["department"]["name"] == "Research"

    deleted = api_env.client.delete(f"/api/departments/{created['id']}", headers=api_env.headers("admin"))
    assert deleted.json() == {"success": True, "message": "Department deleted successfully"}

    api_env.flush()
    history = api_env.services.audit_store.entries_for_target(TargetType.DEPARTMENT, created["id"])
    assert [e.action for e in history] == [
        AuditAction.CREATE_DEPARTMENT,
        AuditAction.UPDATE_DEPARTMENT,
        AuditAction.DELETE_DEPARTMENT,
    ]
    assert history[1].before["description"] is None
    assert history[1].after["description"] == "R&D"


def test_department_name_must_be_unique(api_env):
    resp = api_env.client.post("/api/departments", json={"name": "IT"}, headers=api_env.headers("admin"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Department with this name already exists"

    other = _new_department(api_env, "Legal")
    rename = api_env.client.put(
        f"/api/departments/{other['id']}", json={"name": "Sales"}, headers=api_env.headers("admin")
    )
    assert rename.status_code == 400


def test_department_delete_blocked_while_referenced(api_env):
    dept = _new_department(api_env, "Ops")
    resp = api_env.client.post(
        "/api/proxies",
        json={"ipAddress": "10.50.0.1", "port": 8080, "protocol": "HTTPS", "departmentId": dept["id"]},
        headers=api_env.headers("admin"),
    )
    assert resp.status_code == 201

    blocked = api_env.client.delete(f"/api/departments/{dept['id']}", headers=api_env.headers("admin"))
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "Cannot delete department with associated proxies or users"

    # Still present, proxy still attached.
    listing = api_env.client.get("/api/departments", headers=api_env.headers("admin")).json()["data"]
    ops = next(d for d in listing["departments"] if d["id"] == dept["id"])
    assert ops["proxyCount"] == 1


def test_department_delete_blocked_by_users(api_env):
    dept = _new_department(api_env, "Support")
    api_env.make_user("support_manager", department_id=dept["id"])
    blocked = api_env.client.delete(f"/api/departments/{dept['id']}", headers=api_env.headers("admin"))
    assert blocked.status_code == 400


def test_department_name_validation(api_env):
    resp = api_env.client.post("/api/departments", json={"name": "X"}, headers=api_env.headers("admin"))
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "name"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def test_manager_cannot_manage_users(api_env):
    it = api_env.headers("it")
    assert api_env.client.get("/api/users", headers=it).status_code == 403
    assert (
        api_env.client.post(
            "/api/users", json={"username": "sneaky", "password": "secret123"}, headers=it
        ).status_code
        == 403
    )


def test_create_user_and_hash_stays_hidden(api_env):
    resp = api_env.client.post(
        "/api/users",
        json={
            "username": "new_manager",
            "password": "secret123",
            "role": "DepartmentManager",
            "departmentId": api_env.it_dept.id,
            "email": "new.manager@example.com",
        },
        headers=api_env.headers("admin"),
    )
    assert resp.status_code == 201
    user = resp.json()["data"]["user"]
    assert user["departmentId"] == api_env.it_dept.id
    assert "password" not in user
    assert "hashedPassword" not in user

    listing = api_env.client.get("/api/users", headers=api_env.headers("admin")).text
    assert "$2b$" not in listing

    entry = [e for e in api_env.audit(action=AuditAction.CREATE_USER) if e.target_id == user["id"]][0]
    assert "secret123" not in str(entry.after)
    assert "$2b$" not in str(entry.after)
    assert "hashedPassword" not in entry.after

    login = api_env.client.post("/api/auth/login", json={"username": "new_manager", "password": "secret123"})
    assert login.status_code == 200


def test_username_must_be_unique(api_env):
    resp = api_env.client.post(
        "/api/users",
        json={"username": "it_manager", "password": "secret123", "departmentId": api_env.it_dept.id},
        headers=api_env.headers("admin"),
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "User with this username already exists"


def test_manager_requires_existing_department(api_env):
    missing = api_env.client.post(
        "/api/users", json={"username": "no_dept", "password": "secret123"}, headers=api_env.headers("admin")
    )
    assert missing.status_code == 400
    unknown = api_env.client.post(
        "/api/users",
        json={"username": "bad_dept", "password": "secret123", "departmentId": 99999},
        headers=api_env.headers("admin"),
    )
    assert unknown.status_code == 400
    assert unknown.json()["message"] == "Invalid department ID"


def test_super_admin_never_has_a_department(api_env):
    resp = api_env.client.post(
        "/api/users",
        json={
            "username": "second_admin",
            "password": "secret123",
            "role": "SuperAdmin",
            "departmentId": api_env.it_dept.id,
        },
        headers=api_env.headers("admin"),
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["user"]["departmentId"] is None


def test_list_users_filters(api_env):
    resp = api_env.client.get(
        f"/api/users?role=DepartmentManager&departmentId={api_env.sales_dept.id}", headers=api_env.headers("admin")
    )
    users = resp.json()["data"]["users"]
    assert users
    assert all(u["role"] == "DepartmentManager" and u["departmentId"] == api_env.sales_dept.id for u in users)


def test_update_user_is_audited(api_env):
    user = api_env.make_user("to_update")
    resp = api_env.client.put(
        f"/api/users/{user.id}",
        json={"email": "updated@example.com", "password": "another-pass"},
        headers=api_env.headers("admin"),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["email"] == "updated@example.com"

    entry = [e for e in api_env.audit(action=AuditAction.UPDATE_USER) if e.target_id == user.id][0]
    assert entry.before["email"] is None
    assert entry.after["email"] == "updated@example.com"
    assert "another-pass" not in str(entry.after)


def test_cannot_deactivate_self(api_env):
    resp = api_env.client.put(
        f"/api/users/{api_env.admin.id}", json={"isActive": False}, headers=api_env.headers("admin")
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "You cannot deactivate your own account"


def test_cannot_delete_self(api_env):
    resp = api_env.client.delete(f"/api/users/{api_env.admin.id}", headers=api_env.headers("admin"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "You cannot delete your own account"


def test_delete_user(api_env):
    user = api_env.make_user("to_delete")
    resp = api_env.client.delete(f"/api/users/{user.id}", headers=api_env.headers("admin"))
    assert resp.status_code == 200
    assert api_env.client.get(f"/api/users/{user.id}", headers=api_env.headers("admin")).status_code == 404

    entry = [e for e in api_env.audit(action=AuditAction.DELETE_USER) if e.target_id == user.id][0]
    assert entry.before["username"] == "to_delete"
    assert entry.after is None


# ---------------------------------------------------------------------------
# Audit log route
# ---------------------------------------------------------------------------


def test_audit_logs_are_super_admin_only(api_env):
    assert api_env.client.get("/api/audit-logs", headers=api_env.headers("it")).status_code == 403
    assert api_env.client.get("/api/audit-logs").status_code == 401


def test_audit_logs_listing(api_env):
    _new_department(api_env, "Audit Listing")
    api_env.flush()

    resp = api_env.client.get(
        "/api/audit-logs?targetType=Department&action=CREATE_DEPARTMENT&limit=5", headers=api_env.headers("admin")
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    newest = data["logs"][0]
    assert newest["action"] == "CREATE_DEPARTMENT"
    assert newest["description"] == "Created new department"
    assert newest["targetType"] == "Department"
    assert newest["after"]["name"] == "Audit Listing"
    assert newest["userId"] == api_env.admin.id
    assert newest["username"] == "testadmin"
    assert data["pagination"]["itemsPerPage"] == 5

    by_user = api_env.client.get(f"/api/audit-logs?userId={api_env.admin.id}", headers=api_env.headers("admin"))
    assert all(log["userId"] == api_env.admin.id for log in by_user.json()["data"]["logs"])

    bad = api_env.client.get("/api/audit-logs?action=DROP_TABLE", headers=api_env.headers("admin"))
    assert bad.status_code == 400


def test_audit_history_of_a_deleted_record(api_env):
    created = _new_department(api_env, "Short Lived")
    admin = api_env.headers("admin")
    api_env.client.put(f"/api/departments/{created['id']}", json={"description": "soon gone"}, headers=admin)
    api_env.client.delete(f"/api/departments/{created['id']}", headers=admin)
    successor = _new_department(api_env, "Short Lived")
    assert successor["id"] != created["id"]
    api_env.flush()

    resp = api_env.client.get(f"/api/audit-logs/Department/{created['id']}", headers=admin)
    assert resp.status_code == 200
    logs = resp.json()["data"]["logs"]
    assert [log["action"] for log in logs] == ["CREATE_DEPARTMENT", "UPDATE_DEPARTMENT", "DELETE_DEPARTMENT"]
    assert logs[-1]["before"]["description"] == "soon gone"

    manager = api_env.client.get(f"/api/audit-logs/Department/{created['id']}", headers=api_env.headers("it"))
    assert manager.status_code == 403
    assert api_env.client.get("/api/audit-logs/Widget/1", headers=admin).status_code == 400
