"""
services/proxies.py -- Proxy inventory operations behind the access gate.

Every method takes the caller's QueryScope (from auth/scope.py) and passes it
to the store, which ANDs it into the SQL. Nothing here inspects roles
directly: a pinned scope means "DepartmentManager", and that is all the
service needs to know.

Audit hook: each mutation calls AuditRecorder.record() only after the store
write returned successfully. A write that raises never reaches the recorder,
so failed mutations leave no audit entry.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from audit.models import AuditAction, AuditContext, AuditDraft, TargetType
from audit.recorder import AuditRecorder
from auth.models import User
from auth.scope import UNRESTRICTED, QueryScope
from core.database import to_iso
from core.errors import Conflict, NotFound, ValidationFailed
from inventory.crypto import CredentialCipher
from inventory.export import to_csv
from inventory.models import PageRequest, Proxy, ProxyFilter, ProxyPage, ProxyStats, ProxyStatus
from inventory.store import InventoryStore

logger = logging.getLogger("proxyvault.services.proxies")

PROXY_CONFLICT = "Proxy with this IP:Port combination already exists"
INVALID_DEPARTMENT = "Invalid department ID"

# Fields a caller may change through update(). department_id is dropped for
# pinned scopes before this whitelist is applied.
_UPDATABLE = {
    "ip_address",
    "port",
    "protocol",
    "username",
    "password",
    "location",
    "speed",
    "status",
    "department_id",
    "expiration_date",
    "notes",
    "tags",
}


class ProxyService:
    def __init__(
        self,
        inventory: InventoryStore,
        recorder: AuditRecorder,
        cipher: CredentialCipher,
        expiring_window_days: int = 7,
    ) -> None:
        self.inventory = inventory
        self.recorder = recorder
        self.cipher = cipher
        self.expiring_window_days = expiring_window_days

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_proxies(self, scope: QueryScope, filters: ProxyFilter, page: PageRequest) -> ProxyPage:
        return self.inventory.list_proxies(scope, filters, page)

    def get(self, proxy_id: int, scope: QueryScope) -> Proxy:
        proxy = self.inventory.get_proxy(proxy_id, scope)
        if proxy is None:
            raise NotFound("Proxy not found")
        return proxy

    def credentials(self, proxy_id: int, scope: QueryScope) -> dict:
        """Return the decrypted credential pair for one proxy.

        CredentialDecryptionError propagates; the API reports it as a 500
        because it means the stored token or the key is wrong.
        """
        proxy = self.get(proxy_id, scope)
        password = self.cipher.decrypt(proxy.encrypted_password) if proxy.encrypted_password else None
        return {"username": proxy.username, "password": password}

    def stats(self, scope: QueryScope) -> ProxyStats:
        # Department breakdown is an all-departments view; pinned scopes get none.
        return self.inventory.get_stats(
            scope,
            expiring_within_days=self.expiring_window_days,
            include_departments=not scope.pinned,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        proxy: Proxy,
        password: Optional[str],
        scope: QueryScope,
        actor: User,
        ctx: AuditContext,
    ) -> Proxy:
        if scope.pinned:
            proxy.department_id = scope.department_id
        if proxy.department_id is None:
            raise ValidationFailed(errors=[{"field": "departmentId", "message": "Department is required"}])
        self._require_department(proxy.department_id)

        proxy.encrypted_password = self.cipher.encrypt(password) if password else None
        proxy.expiration_date = _iso(proxy.expiration_date)
        proxy.created_by = actor.id
        proxy.updated_by = actor.id
        try:
            proxy_id = self.inventory.create_proxy(proxy)
        except IntegrityError as exc:
            raise Conflict(PROXY_CONFLICT) from exc

        created = self.inventory.get_proxy(proxy_id, UNRESTRICTED)
        logger.info("Proxy %s created by %s", created.full_address, actor.username)
        self.recorder.record(AuditDraft.created(ctx, AuditAction.CREATE_PROXY, TargetType.PROXY, created.snapshot()))
        return created

    def update(
        self,
        proxy_id: int,
        changes: dict[str, Any],
        scope: QueryScope,
        actor: User,
        ctx: AuditContext,
    ) -> Proxy:
        before = self.get(proxy_id, scope)

        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}
        if scope.pinned:
            fields.pop("department_id", None)
        if "department_id" in fields:
            if fields["department_id"] is None:
                raise ValidationFailed(errors=[{"field": "departmentId", "message": "Department is required"}])
            self._require_department(fields["department_id"])
        if "password" in fields:
            password = fields.pop("password")
            fields["encrypted_password"] = self.cipher.encrypt(password) if password else None
        if "expiration_date" in fields:
            fields["expiration_date"] = _iso(fields["expiration_date"])
        fields["updated_by"] = actor.id

        try:
            updated = self.inventory.update_proxy(proxy_id, scope, **fields)
        except IntegrityError as exc:
            raise Conflict(PROXY_CONFLICT) from exc
        if not updated:
            # Deleted (or moved out of scope) between the read and the write.
            raise NotFound("Proxy not found")

        after = self.inventory.get_proxy(proxy_id, UNRESTRICTED)
        self.recorder.record(
            AuditDraft.updated(ctx, AuditAction.UPDATE_PROXY, TargetType.PROXY, before.snapshot(), after.snapshot())
        )
        return after

    def delete(self, proxy_id: int, scope: QueryScope, actor: User, ctx: AuditContext) -> None:
        before = self.get(proxy_id, scope)
        if not self.inventory.delete_proxy(proxy_id, scope):
            raise NotFound("Proxy not found")
        logger.info("Proxy %s deleted by %s", before.full_address, actor.username)
        self.recorder.record(AuditDraft.deleted(ctx, AuditAction.DELETE_PROXY, TargetType.PROXY, before.snapshot()))

    def assign(self, proxy_id: int, department_id: int, actor: User, ctx: AuditContext) -> Proxy:
        """Move a proxy to another department. Callers must be SuperAdmin."""
        before = self.get(proxy_id, UNRESTRICTED)
        department = self._require_department(department_id)
        if not self.inventory.update_proxy(proxy_id, UNRESTRICTED, department_id=department_id, updated_by=actor.id):
            raise NotFound("Proxy not found")

        after = self.inventory.get_proxy(proxy_id, UNRESTRICTED)
        logger.info("Proxy %s assigned to %s by %s", after.full_address, department.name, actor.username)
        self.recorder.record(
            AuditDraft.updated(
                ctx,
                AuditAction.ASSIGN_PROXY,
                TargetType.PROXY,
                before.snapshot(),
                after.snapshot(),
                extra={"fromDepartmentId": before.department_id, "toDepartmentId": department_id},
            )
        )
        return after

    def bulk_update_status(
        self,
        proxy_ids: list[int],
        status: ProxyStatus,
        scope: QueryScope,
        actor: User,
        ctx: AuditContext,
    ) -> dict:
        """Set status on many proxies at once.

        Ids outside scope are reported as not found, same as missing ids.
        Proxies already in the target status are left alone and produce no
        audit entry.
        """
        status = ProxyStatus(status)
        requested = list(dict.fromkeys(proxy_ids))
        visible = self.inventory.get_proxies(requested, scope)
        found_ids = {p.id for p in visible}
        to_change = [p for p in visible if p.status is not status]

        changed: list[tuple[Proxy, Proxy]] = []
        for before in to_change:
            if self.inventory.update_proxy(before.id, scope, status=status, updated_by=actor.id):
                changed.append((before, self.inventory.get_proxy(before.id, UNRESTRICTED)))

        for before, after in changed:
            self.recorder.record(
                AuditDraft.updated(
                    ctx,
                    AuditAction.BULK_OPERATION,
                    TargetType.PROXY,
                    before.snapshot(),
                    after.snapshot(),
                    extra={"operation": "updateStatus", "status": status.value, "batchSize": len(changed)},
                )
            )
        logger.info("Bulk status %s by %s: %d updated", status.value, actor.username, len(changed))
        return {
            "updatedCount": len(changed),
            "unchangedCount": len(visible) - len(changed),
            "notFoundIds": [pid for pid in requested if pid not in found_ids],
        }

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, scope: QueryScope, filters: ProxyFilter, ctx: AuditContext) -> tuple[str, int]:
        """Render every proxy in scope as CSV. Returns (csv_text, row_count)."""
        proxies = list(self.inventory.iter_proxies(scope, filters))
        body = to_csv(proxies)
        self.recorder.record(
            AuditDraft.session(
                ctx,
                AuditAction.EXPORT_DATA,
                extra={
                    "count": len(proxies),
                    "filters": {
                        "status": filters.status.value if filters.status else None,
                        "protocol": filters.protocol.value if filters.protocol else None,
                        "location": filters.location,
                        "search": filters.search,
                        "departmentId": scope.department_id,
                    },
                },
            )
        )
        logger.info("Export of %d proxies by %s", len(proxies), ctx.actor_username)
        return body, len(proxies)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_department(self, department_id: int):
        department = self.inventory.get_department(department_id)
        if department is None:
            raise ValidationFailed(INVALID_DEPARTMENT, errors=[{"field": "departmentId", "message": INVALID_DEPARTMENT}])
        return department


def _iso(value) -> Optional[str]:
    if isinstance(value, datetime):
        return to_iso(value)
    return value
