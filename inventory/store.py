"""
inventory/store.py -- SQLAlchemy-backed persistence for departments and proxies.

Uses SQLAlchemy Core (not ORM) so the dataclasses in inventory/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change.

Pattern: Repository + Data Mapper. InventoryStore is the repository; the
_row_to_* functions are the mappers. Services never touch SQL directly.

Scoping: every proxy read and write takes a QueryScope and ANDs its
department restriction into the WHERE clause. update_proxy() and
delete_proxy() apply the scope in the same statement that mutates, so a
record outside the caller's department is indistinguishable from a missing
one (rowcount 0).

Uniqueness: UNIQUE(ip_address, port) and UNIQUE(departments.name) are
enforced by the database. Inserts and updates let IntegrityError propagate;
services map it to Conflict. Two concurrent creates for the same address
therefore resolve to exactly one success.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Iterator, Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    case,
    column,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.scope import UNRESTRICTED, QueryScope
from core.database import now_iso, to_iso, utc_now
from inventory.models import (
    Department,
    PageRequest,
    Protocol,
    Proxy,
    ProxyFilter,
    ProxyPage,
    ProxyStats,
    ProxyStatus,
    ProxyUsage,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_departments = Table(
    "departments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", String(500)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

_proxies = Table(
    "proxies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ip_address", String(45), nullable=False),
    Column("port", Integer, nullable=False),
    Column("protocol", String(10), nullable=False),
    Column("username", String(100)),
    Column("password", Text),  # AES-GCM token, see inventory/crypto.py
    Column("location", String(200)),
    Column("speed", Float, nullable=False, server_default="0"),
    Column("status", String(10), nullable=False, server_default="Active"),
    Column("department_id", Integer, nullable=False, index=True),
    Column("expiration_date", String(32), index=True),
    Column("notes", Text),
    Column("tags", Text),  # JSON array serialized as text
    Column("total_connections", Integer, nullable=False, server_default="0"),
    Column("last_used", String(32)),
    Column("monthly_traffic", Float, nullable=False, server_default="0"),
    Column("created_by", Integer),
    Column("updated_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("ip_address", "port", name="uq_proxy_address"),
    sqlite_autoincrement=True,
)

# API sort key -> column
_SORT_COLUMNS = {
    "createdAt": _proxies.c.created_at,
    "updatedAt": _proxies.c.updated_at,
    "ipAddress": _proxies.c.ip_address,
    "port": _proxies.c.port,
    "protocol": _proxies.c.protocol,
    "status": _proxies.c.status,
    "location": _proxies.c.location,
    "speed": _proxies.c.speed,
    "expirationDate": _proxies.c.expiration_date,
}

_PROXY_FIELDS = {
    "ip_address",
    "port",
    "protocol",
    "username",
    "encrypted_password",
    "location",
    "speed",
    "status",
    "department_id",
    "expiration_date",
    "notes",
    "tags",
    "updated_by",
}


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def _proxy_select():
    """SELECT proxies + department name. Outer join so a dangling reference still lists."""
    return select(_proxies, _departments.c.name.label("department_name")).select_from(
        _proxies.outerjoin(_departments, _proxies.c.department_id == _departments.c.id)
    )


def _scope_clause(scope: QueryScope):
    if scope.department_id is None:
        return None
    return _proxies.c.department_id == scope.department_id


def _dump_tags(tags) -> str:
    return json.dumps(list(tags or []), ensure_ascii=False)


def _tag_matches(term: str):
    """EXISTS clause matching term against individual tag values.

    Matching the serialized JSON text would also hit its brackets, quotes and
    commas, so the array is unpacked with json_each instead.
    """
    tag = func.json_each(_proxies.c.tags).table_valued(column("value", String)).alias("tag")
    return select(1).select_from(tag).where(func.lower(tag.c.value).contains(term, autoescape=True)).exists()


def _filter_clauses(scope: QueryScope, filters: Optional[ProxyFilter]) -> list:
    clauses = []
    scoped = _scope_clause(scope)
    if scoped is not None:
        clauses.append(scoped)
    if filters is None:
        return clauses
    if filters.status is not None:
        clauses.append(_proxies.c.status == ProxyStatus(filters.status).value)
    if filters.protocol is not None:
        clauses.append(_proxies.c.protocol == Protocol(filters.protocol).value)
    if filters.location:
        clauses.append(func.lower(_proxies.c.location).contains(filters.location.lower(), autoescape=True))
    if filters.search:
        term = filters.search.lower()
        clauses.append(
            or_(
                func.lower(_proxies.c.ip_address).contains(term, autoescape=True),
                func.lower(_proxies.c.location).contains(term, autoescape=True),
                func.lower(_proxies.c.notes).contains(term, autoescape=True),
                _tag_matches(term),
            )
        )
    return clauses


def _proxy_values(fields: dict) -> dict:
    """Translate domain field names/types into column values."""
    values = dict(fields)
    if "encrypted_password" in values:
        values["password"] = values.pop("encrypted_password")
    if "tags" in values:
        values["tags"] = _dump_tags(values["tags"])
    if values.get("protocol") is not None:
        values["protocol"] = Protocol(values["protocol"]).value
    if values.get("status") is not None:
        values["status"] = ProxyStatus(values["status"]).value
    return values


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class InventoryStore:
    """Repository for Department and Proxy entities.

    Usage:
        store = InventoryStore(create_db_engine("sqlite:///proxyvault.db"))
        dept_id = store.create_department(Department(name="IT"))
        proxy_id = store.create_proxy(Proxy(ip_address="10.0.0.5", port=8080,
                                            protocol=Protocol.HTTP, department_id=dept_id))
        page = store.list_proxies(scope, ProxyFilter(), PageRequest())
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    def create_department(self, department: Department) -> int:
        """Insert a department. Raises IntegrityError if the name is taken."""
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _departments.insert().values(
                    name=department.name,
                    description=department.description,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_department(self, department_id: int, scope: QueryScope = UNRESTRICTED) -> Optional[Department]:
        """Fetch a department by ID if it lies inside scope."""
        if not scope.allows(department_id):
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_departments.select().where(_departments.c.id == department_id)).fetchone()
        return _row_to_department(row) if row is not None else None

    def get_department_by_name(self, name: str) -> Optional[Department]:
        with self.engine.connect() as conn:
            row = conn.execute(_departments.select().where(_departments.c.name == name)).fetchone()
        return _row_to_department(row) if row is not None else None

    def list_departments(self, scope: QueryScope = UNRESTRICTED) -> list[Department]:
        """Return departments visible in scope, ordered by name."""
        stmt = _departments.select()
        if scope.department_id is not None:
            stmt = stmt.where(_departments.c.id == scope.department_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_departments.c.name)).fetchall()
        return [_row_to_department(r) for r in rows]

    def update_department(self, department_id: int, **fields) -> bool:
        """Update name and/or description. Raises IntegrityError on a name collision."""
        unknown = set(fields) - {"name", "description"}
        if unknown:
            raise ValueError(f"Unknown department fields: {unknown!r}")
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _departments.update().where(_departments.c.id == department_id).values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_department(self, department_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_departments.delete().where(_departments.c.id == department_id))
            conn.commit()
        return result.rowcount > 0

    def department_proxy_counts(self) -> dict[int, int]:
        """Return {department_id: proxy count} in one grouped query."""
        stmt = select(_proxies.c.department_id, func.count().label("n")).group_by(_proxies.c.department_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.department_id: row.n for row in rows}

    def count_proxies_in_department(self, department_id: int) -> int:
        stmt = select(func.count()).select_from(_proxies).where(_proxies.c.department_id == department_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    # ------------------------------------------------------------------
    # Proxies -- writes
    # ------------------------------------------------------------------

    def create_proxy(self, proxy: Proxy) -> int:
        """Insert a proxy and return its ID.

        Raises sqlalchemy.exc.IntegrityError if (ip_address, port) exists.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _proxies.insert().values(
                    ip_address=proxy.ip_address,
                    port=proxy.port,
                    protocol=Protocol(proxy.protocol).value,
                    username=proxy.username,
                    password=proxy.encrypted_password,
                    location=proxy.location,
                    speed=proxy.speed,
                    status=ProxyStatus(proxy.status).value,
                    department_id=proxy.department_id,
                    expiration_date=proxy.expiration_date,
                    notes=proxy.notes,
                    tags=_dump_tags(proxy.tags),
                    total_connections=proxy.usage.total_connections,
                    last_used=proxy.usage.last_used,
                    monthly_traffic=proxy.usage.monthly_traffic,
                    created_by=proxy.created_by,
                    updated_by=proxy.updated_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_proxy(self, proxy_id: int, scope: QueryScope, **fields) -> bool:
        """Update mutable fields on a proxy inside scope.

        Returns False when the proxy does not exist or is outside scope.
        Raises IntegrityError if the new (ip_address, port) collides.
        """
        unknown = set(fields) - _PROXY_FIELDS
        if unknown:
            raise ValueError(f"Unknown proxy fields: {unknown!r}")
        values = _proxy_values(fields)
        values["updated_at"] = now_iso()
        stmt = _proxies.update().where(_proxies.c.id == proxy_id)
        scoped = _scope_clause(scope)
        if scoped is not None:
            stmt = stmt.where(scoped)
        with self.engine.connect() as conn:
            result = conn.execute(stmt.values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_proxy(self, proxy_id: int, scope: QueryScope) -> bool:
        """Delete a proxy inside scope. False when missing or out of scope."""
        stmt = _proxies.delete().where(_proxies.c.id == proxy_id)
        scoped = _scope_clause(scope)
        if scoped is not None:
            stmt = stmt.where(scoped)
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Proxies -- reads
    # ------------------------------------------------------------------

    def get_proxy(self, proxy_id: int, scope: QueryScope) -> Optional[Proxy]:
        """Fetch a proxy by ID under scope. None if missing or out of scope."""
        stmt = _proxy_select().where(_proxies.c.id == proxy_id)
        scoped = _scope_clause(scope)
        if scoped is not None:
            stmt = stmt.where(scoped)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_proxy(row) if row is not None else None

    def get_proxies(self, proxy_ids: list[int], scope: QueryScope) -> list[Proxy]:
        """Fetch several proxies under scope, ordered by id. Out-of-scope ids are dropped."""
        if not proxy_ids:
            return []
        stmt = _proxy_select().where(_proxies.c.id.in_(proxy_ids))
        scoped = _scope_clause(scope)
        if scoped is not None:
            stmt = stmt.where(scoped)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_proxies.c.id)).fetchall()
        return [_row_to_proxy(r) for r in rows]

    def list_proxies(
        self,
        scope: QueryScope,
        filters: Optional[ProxyFilter] = None,
        page: Optional[PageRequest] = None,
    ) -> ProxyPage:
        """Return one page of proxies matching scope and filters.

        id is always the final sort key so equal sort values page
        deterministically and repeated identical queries return identical pages.
        """
        page = page or PageRequest()
        clauses = _filter_clauses(scope, filters)
        sort_col = _SORT_COLUMNS.get(page.sort_by, _proxies.c.created_at)
        if page.sort_order == "asc":
            order = (sort_col.asc(), _proxies.c.id.asc())
        else:
            order = (sort_col.desc(), _proxies.c.id.desc())

        stmt = _proxy_select().where(*clauses).order_by(*order)
        stmt = stmt.offset((page.page - 1) * page.limit).limit(page.limit)
        count_stmt = select(func.count()).select_from(_proxies).where(*clauses)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            total = conn.execute(count_stmt).scalar() or 0
        return ProxyPage(proxies=[_row_to_proxy(r) for r in rows], total=total, page=page.page, limit=page.limit)

    def iter_proxies(self, scope: QueryScope, filters: Optional[ProxyFilter] = None) -> Iterator[Proxy]:
        """Yield every proxy matching scope and filters, newest first (export)."""
        stmt = (
            _proxy_select()
            .where(*_filter_clauses(scope, filters))
            .order_by(_proxies.c.created_at.desc(), _proxies.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        for row in rows:
            yield _row_to_proxy(row)

    def get_stats(
        self,
        scope: QueryScope,
        expiring_within_days: int = 7,
        include_departments: bool = True,
    ) -> ProxyStats:
        """Aggregate counts for the dashboard in three grouped queries.

        expiring counts proxies whose expiration_date is set and falls on or
        before now + expiring_within_days (already expired proxies included).
        """
        clauses = _filter_clauses(scope, None)
        cutoff = to_iso(utc_now() + timedelta(days=expiring_within_days))
        overview_stmt = select(
            func.count().label("total"),
            func.count(case((_proxies.c.status == ProxyStatus.ACTIVE.value, 1))).label("active"),
            func.count(case((_proxies.c.status == ProxyStatus.INACTIVE.value, 1))).label("inactive"),
            func.count(case((_proxies.c.status == ProxyStatus.BANNED.value, 1))).label("banned"),
            func.count(
                case(
                    ((_proxies.c.expiration_date.isnot(None)) & (_proxies.c.expiration_date <= cutoff), 1),
                )
            ).label("expiring"),
        )
        overview_stmt = overview_stmt.select_from(_proxies).where(*clauses)
        protocol_stmt = (
            select(_proxies.c.protocol, func.count().label("count"))
            .where(*clauses)
            .group_by(_proxies.c.protocol)
            .order_by(_proxies.c.protocol)
        )
        department_stmt = (
            select(_departments.c.name, func.count().label("count"))
            .select_from(_proxies.join(_departments, _proxies.c.department_id == _departments.c.id))
            .where(*clauses)
            .group_by(_departments.c.name)
            .order_by(_departments.c.name)
        )
        with self.engine.connect() as conn:
            overview = conn.execute(overview_stmt).one()
            protocols = conn.execute(protocol_stmt).fetchall()
            departments = conn.execute(department_stmt).fetchall() if include_departments else []

        return ProxyStats(
            total=overview.total,
            active=overview.active,
            inactive=overview.inactive,
            banned=overview.banned,
            expiring=overview.expiring,
            protocol_distribution=[{"name": r.protocol, "count": r.count} for r in protocols],
            department_distribution=[{"name": r.name, "count": r.count} for r in departments],
        )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_department(row) -> Department:
    return Department(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_proxy(row) -> Proxy:
    tags: list[str] = json.loads(row.tags) if row.tags else []
    return Proxy(
        id=row.id,
        ip_address=row.ip_address,
        port=row.port,
        protocol=Protocol(row.protocol),
        username=row.username,
        encrypted_password=row.password,
        location=row.location,
        speed=row.speed,
        status=ProxyStatus(row.status),
        department_id=row.department_id,
        expiration_date=row.expiration_date,
        notes=row.notes,
        tags=tags,
        usage=ProxyUsage(
            total_connections=row.total_connections,
            last_used=row.last_used,
            monthly_traffic=row.monthly_traffic,
        ),
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
        department_name=getattr(row, "department_name", None),
    )
