"""
api/routes/auth.py -- Session endpoints.

Routes:
  POST /api/auth/login    -- username/password login; returns a bearer token
  GET  /api/auth/me       -- current user (requires auth)
  POST /api/auth/refresh  -- fresh token for the current user (requires auth)
  POST /api/auth/logout   -- records the logout (requires auth)

Security:
  POST /login is rate-limited per client IP (Settings.login_rate_limit).
  authenticate_user() provides timing equalization; SessionService uses it.
  Cache-Control: no-store on responses that carry a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.deps import audit_context, client_ip, ok, session_service
from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import LoginRequest, UserOut, dump
from auth.dependencies import get_current_user
from auth.models import User
from services.sessions import SessionService, issue_token

router = APIRouter()


@router.post("/auth/login")
@limiter.limit(LOGIN_RATE_LIMIT)
def login(
    request: Request,
    body: LoginRequest,
    sessions: SessionService = Depends(session_service),
) -> JSONResponse:
    """Authenticate with username and password.

    Wrong username, wrong password and inactive account all return the same
    401 so the response does not reveal which accounts exist.
    """
    token, user = sessions.login(
        body.username,
        body.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    resp = JSONResponse(content=ok({"token": token, "user": dump(UserOut.from_domain(user))}, "Login successful"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    return ok({"user": dump(UserOut.from_domain(current_user))})


@router.post("/auth/refresh")
def refresh(current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Issue a new token for the already-authenticated caller."""
    resp = JSONResponse(content=ok({"token": issue_token(current_user)}, "Token refreshed"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    sessions: SessionService = Depends(session_service),
) -> dict:
    """Record the logout. Tokens are stateless; the client discards its copy."""
    sessions.logout(audit_context(request, current_user))
    return ok(message="Logged out successfully")
