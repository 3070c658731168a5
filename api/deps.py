"""
api/deps.py -- Request-scoped helpers shared by the route modules.

Services live on app.state (built once in the lifespan). These helpers fetch
them and build the AuditContext for the current caller, so handlers stay
focused on mapping between API models and service calls.
"""

from __future__ import annotations

from fastapi import Request

from audit.models import AuditContext
from auth.models import User
from services.departments import DepartmentService
from services.proxies import ProxyService
from services.sessions import SessionService
from services.users import UserService


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def audit_context(request: Request, user: User) -> AuditContext:
    return AuditContext(
        actor_id=user.id,
        actor_username=user.username,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def proxy_service(request: Request) -> ProxyService:
    return request.app.state.proxy_service


def department_service(request: Request) -> DepartmentService:
    return request.app.state.department_service


def user_service(request: Request) -> UserService:
    return request.app.state.user_service


def session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def ok(data=None, message: str | None = None) -> dict:
    """Build the success envelope: {"success": true, "message"?, "data"?}."""
    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
