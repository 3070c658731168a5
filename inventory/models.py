"""
inventory/models.py -- Domain dataclasses for departments and proxy records.

These are pure data containers. Persistence lives in inventory/store.py,
business rules (scoping, uniqueness mapping, audit) in services/.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Protocol(str, Enum):
    HTTP = "HTTP"
    HTTPS = "HTTPS"
    SOCKS4 = "SOCKS4"
    SOCKS5 = "SOCKS5"


class ProxyStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    BANNED = "Banned"


@dataclass
class Department:
    name: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class ProxyUsage:
    """Usage counters. Maintained by external tooling; the API reads them only."""

    total_connections: int = 0
    last_used: Optional[str] = None
    monthly_traffic: float = 0.0  # MB


@dataclass
class Proxy:
    """A proxy server owned by exactly one department.

    (ip_address, port) is globally unique. encrypted_password holds the
    AES-GCM token produced by inventory/crypto.py, never the plaintext.
    department_name is filled by store reads (join) for display and export.
    """

    ip_address: str
    port: int
    protocol: Protocol
    department_id: int
    username: Optional[str] = None
    encrypted_password: Optional[str] = None
    location: Optional[str] = None
    speed: float = 0.0
    status: ProxyStatus = ProxyStatus.ACTIVE
    expiration_date: Optional[str] = None  # ISO 8601, UTC
    notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    usage: ProxyUsage = field(default_factory=ProxyUsage)
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
    department_name: Optional[str] = None

    @property
    def full_address(self) -> str:
        return f"{self.ip_address}:{self.port}"

    @property
    def has_password(self) -> bool:
        return bool(self.encrypted_password)

    def snapshot(self) -> dict:
        """Full-entity audit snapshot. The password appears only as a flag."""
        return {
            "id": self.id,
            "ipAddress": self.ip_address,
            "port": self.port,
            "protocol": Protocol(self.protocol).value,
            "username": self.username,
            "hasPassword": self.has_password,
            "location": self.location,
            "speed": self.speed,
            "status": ProxyStatus(self.status).value,
            "departmentId": self.department_id,
            "expirationDate": self.expiration_date,
            "notes": self.notes,
            "tags": list(self.tags),
            "usage": {
                "totalConnections": self.usage.total_connections,
                "lastUsed": self.usage.last_used,
                "monthlyTraffic": self.usage.monthly_traffic,
            },
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# Columns a list query may sort by, keyed by the API's camelCase name.
SORTABLE_FIELDS = (
    "createdAt",
    "updatedAt",
    "ipAddress",
    "port",
    "protocol",
    "status",
    "location",
    "speed",
    "expirationDate",
)


@dataclass
class ProxyFilter:
    """Optional filters shared by list, export, and bulk queries.

    Department narrowing is not a filter field: it arrives through the
    caller's QueryScope so it cannot bypass the access gate.
    """

    status: Optional[ProxyStatus] = None
    protocol: Optional[Protocol] = None
    location: Optional[str] = None
    search: Optional[str] = None


@dataclass
class PageRequest:
    page: int = 1
    limit: int = 10
    sort_by: str = "createdAt"
    sort_order: str = "desc"


@dataclass
class ProxyPage:
    proxies: list[Proxy]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    def pagination(self) -> dict:
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalItems": self.total,
            "itemsPerPage": self.limit,
            "hasNextPage": self.page < self.total_pages,
            "hasPrevPage": self.page > 1,
        }


@dataclass
class ProxyStats:
    total: int = 0
    active: int = 0
    inactive: int = 0
    banned: int = 0
    expiring: int = 0
    protocol_distribution: list[dict] = field(default_factory=list)
    department_distribution: list[dict] = field(default_factory=list)
