"""
API request and response models for ProxyVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in inventory/models.py,
auth/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two.

Wire format is camelCase (alias_generator=to_camel). populate_by_name lets
Python callers and tests construct models with snake_case names; handlers
always dump with by_alias=True.

Separation of concerns: domain dataclasses = truth; api/ models = API contract.
"""

from __future__ import annotations

import ipaddress
from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from audit.models import AuditAction, AuditEntry, TargetType
from auth.models import Role, User
from inventory.models import SORTABLE_FIELDS, Department, Protocol, Proxy, ProxyStats, ProxyStatus

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
SORT_FIELD_PATTERN = "^(" + "|".join(SORTABLE_FIELDS) + ")$"

_Tag = Annotated[str, Field(min_length=1, max_length=50)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class _CamelOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _normalize_ip(value: Any) -> Any:
    """Validate an IPv4/IPv6 literal and return its canonical text form."""
    if value is None:
        return value
    try:
        return str(ipaddress.ip_address(str(value).strip()))
    except ValueError as exc:
        raise ValueError("Invalid IP address format") from exc


def _normalize_tags(values: Any) -> Any:
    """Strip, drop empties and deduplicate tags while preserving order."""
    if values is None:
        return values
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        tag = str(v).strip()
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


# ---------------------------------------------------------------------------
# Request models -- auth
# ---------------------------------------------------------------------------


class LoginRequest(_CamelModel):
    """Request body for POST /api/auth/login."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Request models -- proxies
# ---------------------------------------------------------------------------


class ProxyCreate(_CamelModel):
    """Request body for POST /api/proxies.

    departmentId is required for SuperAdmin callers and ignored for
    DepartmentManager callers (forced to their own department).
    """

    ip_address: str
    port: int = Field(ge=1, le=65535)
    protocol: Protocol
    username: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None, max_length=200)
    location: Optional[str] = Field(default=None, max_length=200)
    speed: float = Field(default=0.0, ge=0)
    status: ProxyStatus = ProxyStatus.ACTIVE
    department_id: Optional[int] = Field(default=None, ge=1)
    expiration_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: list[_Tag] = Field(default_factory=list, max_length=20)

    @field_validator("ip_address", mode="before")
    @classmethod
    def normalize_ip(cls, value: Any) -> Any:
        return _normalize_ip(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, values: Any) -> Any:
        return _normalize_tags(values)

    def to_domain(self) -> Proxy:
        return Proxy(
            ip_address=self.ip_address,
            port=self.port,
            protocol=self.protocol,
            department_id=self.department_id,
            username=self.username or None,
            location=self.location or None,
            speed=self.speed,
            status=self.status,
            expiration_date=self.expiration_date,
            notes=self.notes or None,
            tags=list(self.tags),
        )


class ProxyUpdate(_CamelModel):
    """Request body for PUT /api/proxies/{id}. Only fields sent are changed.

    Sending "password": null (or "") clears the stored password.
    """

    ip_address: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    protocol: Optional[Protocol] = None
    username: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None, max_length=200)
    location: Optional[str] = Field(default=None, max_length=200)
    speed: Optional[float] = Field(default=None, ge=0)
    status: Optional[ProxyStatus] = None
    department_id: Optional[int] = Field(default=None, ge=1)
    expiration_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[list[_Tag]] = Field(default=None, max_length=20)

    @field_validator("ip_address", mode="before")
    @classmethod
    def normalize_ip(cls, value: Any) -> Any:
        return _normalize_ip(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, values: Any) -> Any:
        return _normalize_tags(values)

    @field_validator("ip_address", "port", "protocol", "status", "speed")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    def changes(self) -> dict[str, Any]:
        """Fields the client actually sent, keyed by domain attribute name."""
        return self.model_dump(exclude_unset=True)


class ProxyAssign(_CamelModel):
    department_id: int = Field(ge=1)


class BulkStatusRequest(_CamelModel):
    """Request body for POST /api/proxies/bulk-status."""

    proxy_ids: list[Annotated[int, Field(ge=1)]] = Field(min_length=1, max_length=100)
    status: ProxyStatus


# ---------------------------------------------------------------------------
# Request models -- departments and users
# ---------------------------------------------------------------------------


class DepartmentCreate(_CamelModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class DepartmentUpdate(_CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class UserCreate(_CamelModel):
    """Request body for POST /api/users (SuperAdmin only)."""

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=6, max_length=128)
    role: Role = Role.DEPARTMENT_MANAGER
    department_id: Optional[int] = Field(default=None, ge=1)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)


class UserUpdate(_CamelModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    role: Optional[Role] = None
    department_id: Optional[int] = Field(default=None, ge=1)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    is_active: Optional[bool] = None

    @field_validator("username", "password", "role", "is_active")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UsageOut(_CamelOut):
    total_connections: int
    last_used: Optional[str]
    monthly_traffic: float


class ProxyOut(_CamelOut):
    """One proxy as returned by list/get. Never carries the password."""

    id: int
    ip_address: str
    port: int
    full_address: str
    protocol: Protocol
    username: Optional[str]
    has_password: bool
    location: Optional[str]
    speed: float
    status: ProxyStatus
    department_id: int
    department_name: Optional[str]
    expiration_date: Optional[str]
    notes: Optional[str]
    tags: list[str]
    usage: UsageOut
    created_by: Optional[int]
    updated_by: Optional[int]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, proxy: Proxy) -> "ProxyOut":
        """Factory Method: mapping colocated with the output model."""
        return cls(
            id=proxy.id,
            ip_address=proxy.ip_address,
            port=proxy.port,
            full_address=proxy.full_address,
            protocol=proxy.protocol,
            username=proxy.username,
            has_password=proxy.has_password,
            location=proxy.location,
            speed=proxy.speed,
            status=proxy.status,
            department_id=proxy.department_id,
            department_name=proxy.department_name,
            expiration_date=proxy.expiration_date,
            notes=proxy.notes,
            tags=proxy.tags,
            usage=UsageOut(
                total_connections=proxy.usage.total_connections,
                last_used=proxy.usage.last_used,
                monthly_traffic=proxy.usage.monthly_traffic,
            ),
            created_by=proxy.created_by,
            updated_by=proxy.updated_by,
            created_at=proxy.created_at,
            updated_at=proxy.updated_at,
        )


class CredentialsOut(_CamelOut):
    username: Optional[str]
    password: Optional[str]


class StatsOverview(_CamelOut):
    total: int
    active: int
    inactive: int
    banned: int
    expiring: int


class DistributionRow(_CamelOut):
    name: str
    count: int


class StatsOut(_CamelOut):
    overview: StatsOverview
    protocol_distribution: list[DistributionRow]
    department_distribution: list[DistributionRow]

    @classmethod
    def from_domain(cls, stats: ProxyStats) -> "StatsOut":
        return cls(
            overview=StatsOverview(
                total=stats.total,
                active=stats.active,
                inactive=stats.inactive,
                banned=stats.banned,
                expiring=stats.expiring,
            ),
            protocol_distribution=[DistributionRow(**r) for r in stats.protocol_distribution],
            department_distribution=[DistributionRow(**r) for r in stats.department_distribution],
        )


class DepartmentOut(_CamelOut):
    id: int
    name: str
    description: Optional[str]
    proxy_count: Optional[int] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, department: Department, proxy_count: Optional[int] = None) -> "DepartmentOut":
        return cls(
            id=department.id,
            name=department.name,
            description=department.description,
            proxy_count=proxy_count,
            created_at=department.created_at,
            updated_at=department.updated_at,
        )


class UserOut(_CamelOut):
    """Public view of a user. The password hash is never serialized."""

    id: int
    username: str
    role: Role
    department_id: Optional[int]
    email: Optional[str]
    is_active: bool
    last_login: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_domain(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            department_id=user.department_id,
            email=user.email,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuditLogOut(_CamelOut):
    id: int
    user_id: int
    username: str
    action: AuditAction
    description: str
    target_id: Optional[int]
    target_type: Optional[TargetType]
    before: Optional[dict[str, Any]]
    after: Optional[dict[str, Any]]
    extra: Optional[dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: str

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditLogOut":
        return cls(
            id=entry.id,
            user_id=entry.actor_id,
            username=entry.actor_username,
            action=entry.action,
            description=entry.description,
            target_id=entry.target_id,
            target_type=entry.target_type,
            before=entry.before,
            after=entry.after,
            extra=entry.extra,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=entry.created_at,
        )


class HealthResponse(BaseModel):
    """Response body for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


def dump(model: BaseModel) -> dict:
    """Serialize a response model to its camelCase JSON-ready dict."""
    return model.model_dump(by_alias=True, mode="json")
