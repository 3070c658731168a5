"""
services/sessions.py -- Login, refresh and logout.

Tokens are stateless JWTs, so logout only records the event; the client is
responsible for discarding its token.
"""

from __future__ import annotations

import logging

from audit.models import AuditAction, AuditContext, AuditDraft
from audit.recorder import AuditRecorder
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token
from core.errors import Unauthenticated

logger = logging.getLogger("proxyvault.services.sessions")


class SessionService:
    def __init__(self, users: UserStore, recorder: AuditRecorder) -> None:
        self.users = users
        self.recorder = recorder

    def login(self, username: str, password: str, ip_address: str | None, user_agent: str | None) -> tuple[str, User]:
        """Return (token, user). Raises Unauthenticated with one generic message for every failure."""
        user = authenticate_user(self.users, username, password)
        if user is None:
            logger.info("Failed login for %r from %s", username, ip_address)
            raise Unauthenticated("Invalid credentials")

        self.users.update_last_login(user.id)
        user = self.users.get_by_id(user.id)
        ctx = AuditContext(
            actor_id=user.id,
            actor_username=user.username,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.recorder.record(AuditDraft.session(ctx, AuditAction.LOGIN))
        return issue_token(user), user

    def logout(self, ctx: AuditContext) -> None:
        self.recorder.record(AuditDraft.session(ctx, AuditAction.LOGOUT))


def issue_token(user: User) -> str:
    return create_access_token(user.id, user.username, user.role.value)
