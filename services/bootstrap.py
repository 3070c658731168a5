"""
services/bootstrap.py -- Wiring and first-run setup shared by the API and CLI.

build_services() is the one place that assembles stores, cipher, recorder
and services on top of an Engine. The API lifespan, the test fixtures and the
management CLI all go through it, so every entry point sees the same graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings
from inventory.crypto import CredentialCipher
from inventory.models import Department
from inventory.store import InventoryStore
from services.departments import DepartmentService
from services.proxies import ProxyService
from services.sessions import SessionService
from services.users import UserService

logger = logging.getLogger("proxyvault.bootstrap")

DEFAULT_DEPARTMENT = "IT Department"


@dataclass
class Services:
    user_store: UserStore
    inventory: InventoryStore
    audit_store: AuditStore
    recorder: AuditRecorder
    proxies: ProxyService
    departments: DepartmentService
    users: UserService
    sessions: SessionService


def build_services(engine: Engine, settings: Settings) -> Services:
    user_store = UserStore(engine)
    inventory = InventoryStore(engine)
    audit_store = AuditStore(engine)
    recorder = AuditRecorder(audit_store, max_workers=settings.audit_workers)
    cipher = CredentialCipher.from_settings(settings)
    return Services(
        user_store=user_store,
        inventory=inventory,
        audit_store=audit_store,
        recorder=recorder,
        proxies=ProxyService(inventory, recorder, cipher, expiring_window_days=settings.expiring_window_days),
        departments=DepartmentService(inventory, user_store, recorder),
        users=UserService(user_store, inventory, recorder),
        sessions=SessionService(user_store, recorder),
    )


def ensure_super_admin(users: UserStore, inventory: InventoryStore, username: str, password: str) -> bool:
    """Create the default department and a SuperAdmin if none exists yet.

    Returns True when an account was created. An empty password disables the
    bootstrap so production deployments never get a guessable default login.
    """
    if users.has_super_admin():
        return False
    if not password:
        logger.warning("No SuperAdmin exists and ADMIN_PASSWORD is not set -- skipping bootstrap")
        return False

    if inventory.get_department_by_name(DEFAULT_DEPARTMENT) is None:
        try:
            inventory.create_department(
                Department(name=DEFAULT_DEPARTMENT, description="Information Technology Department")
            )
        except IntegrityError:
            # Another worker created it first.
            pass
    try:
        users.create_user(User(username=username, role=Role.SUPER_ADMIN, hashed_password=hash_password(password)))
    except IntegrityError:
        logger.warning("Bootstrap user %r already exists with a different role", username)
        return False
    logger.info("Bootstrap SuperAdmin %r created", username)
    return True
