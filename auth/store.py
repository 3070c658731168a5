"""
auth/store.py -- SQLAlchemy Core persistence layer for user identities.

Pattern: Repository + Data Mapper (same as inventory/store.py).
UserStore is the repository; _row_to_user is the mapper. Services never
touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  UNIQUE(username) is enforced by the database; create_user() and
  update_user() let IntegrityError propagate so the users service can map it
  to a Conflict without a check-then-insert race.

Layer rule: no imports from api/, services/, inventory/, or audit/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import Role, User
from core.database import now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False),
    Column("department_id", Integer, index=True),  # NULL for SuperAdmin
    Column("email", String(255)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

# Columns update_user() accepts. Anything else is a programming error.
_MUTABLE_FIELDS = {"username", "hashed_password", "role", "department_id", "email", "is_active"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        store.create_user(User(username="admin", role=Role.SUPER_ADMIN, hashed_password=hash_password("secret")))
        user = store.get_by_username("admin")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    department_id=_department_for(user.role, user.department_id),
                    email=user.email,
                    is_active=1 if user.is_active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        role: Role | None = None,
        department_id: int | None = None,
        is_active: bool | None = None,
    ) -> list[User]:
        """Return users ordered by username, optionally filtered."""
        stmt = _users.select()
        if role is not None:
            stmt = stmt.where(_users.c.role == Role(role).value)
        if department_id is not None:
            stmt = stmt.where(_users.c.department_id == department_id)
        if is_active is not None:
            stmt = stmt.where(_users.c.is_active == (1 if is_active else 0))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_users.c.username, _users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: username, hashed_password, role, department_id,
        email, is_active. When role is SuperAdmin, department_id is forced to
        None. Returns True if a row was updated, False if user_id was not found.

        Raises sqlalchemy.exc.IntegrityError on a username collision.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
            if fields["role"] == Role.SUPER_ADMIN.value:
                fields["department_id"] = None
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted.

        Last-admin and self-deletion rules are the caller's responsibility.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def count_active_super_admins(self) -> int:
        """Used by the users service to refuse removing the last SuperAdmin."""
        stmt = (
            select(func.count())
            .select_from(_users)
            .where((_users.c.role == Role.SUPER_ADMIN.value) & (_users.c.is_active == 1))
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def count_by_department(self, department_id: int) -> int:
        """Number of users that reference a department (department delete guard)."""
        stmt = select(func.count()).select_from(_users).where(_users.c.department_id == department_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def has_super_admin(self) -> bool:
        """Return True if at least one SuperAdmin exists. Used by first-run bootstrap."""
        stmt = select(func.count()).select_from(_users).where(_users.c.role == Role.SUPER_ADMIN.value)
        with self.engine.connect() as conn:
            return (conn.execute(stmt).scalar() or 0) > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()


# ---------------------------------------------------------------------------
# Helpers / row mapper
# ---------------------------------------------------------------------------


def _department_for(role: Role | str, department_id: int | None) -> int | None:
    return None if Role(role) is Role.SUPER_ADMIN else department_id


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        department_id=row.department_id,
        email=row.email,
        is_active=bool(row.is_active),
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
