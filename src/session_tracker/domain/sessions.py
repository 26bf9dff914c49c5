"""Domain models for tracked login sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

DEVICE_TYPES = ("desktop", "mobile", "tablet")
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Location:
    """Coarse location resolved from an IP address."""

    city: str | None = None
    country: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {"city": self.city, "country": self.country}


@dataclass(frozen=True)
class DeviceInfo:
    """Browser, OS and device class parsed from a user agent."""

    browser: str = UNKNOWN
    os: str = UNKNOWN
    device_type: str = "desktop"


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted session tracking row."""

    session_id: str
    user_id: UUID
    ip_address: str
    user_agent: str
    created_at: datetime
    last_active_at: datetime
    is_revoked: bool = False
    browser: str | None = None
    os: str | None = None
    device_type: str | None = None
    location: Location | None = None
    credential_synced: bool = False
    revoked_at: datetime | None = None


@dataclass(frozen=True)
class SessionInfo:
    """User-facing view of an active session."""

    session_id: str
    browser: str
    os: str
    device_type: str
    location: Location
    ip_address: str
    created_at: datetime
    last_active_at: datetime
    is_current: bool

    @classmethod
    def from_record(cls, record: SessionRecord, current_session_id: str | None):
        """Build the view with the defaults shown for missing metadata."""
        return cls(
            session_id=record.session_id,
            browser=record.browser or UNKNOWN,
            os=record.os or UNKNOWN,
            device_type=record.device_type
            if record.device_type in DEVICE_TYPES
            else "desktop",
            location=record.location or Location(city=UNKNOWN, country=UNKNOWN),
            ip_address=record.ip_address,
            created_at=record.created_at,
            last_active_at=record.last_active_at,
            is_current=record.session_id == current_session_id,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "browser": self.browser,
            "os": self.os,
            "device_type": self.device_type,
            "location": self.location.as_dict(),
            "ip_address": self.ip_address,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "is_current": self.is_current,
        }


@dataclass(frozen=True)
class Principal:
    """Authenticated identity for the current request."""

    user_id: UUID
    session_id: str | None = None
    email: str | None = None


@dataclass
class ReconcileReport:
    """Outcome of a reconciliation pass."""

    duplicates_removed: int = 0
    orphans_revoked: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class CleanupReport:
    """Outcome of a scheduled cleanup run."""

    orphaned_sessions: int = 0
    expired_sessions: int = 0
    duplicates_removed: int = 0
    credentials_resynced: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, object]:
        return {
            "orphaned_sessions": self.orphaned_sessions,
            "expired_sessions": self.expired_sessions,
            "duplicates_removed": self.duplicates_removed,
            "credentials_resynced": self.credentials_resynced,
        }


@dataclass(frozen=True)
class RevocationResult:
    """Outcome of a revocation request."""

    success: bool
    revoked_count: int = 0
    partial: bool = False
    error: str | None = None
    clear_cookies: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "success": self.success,
            "revoked_count": self.revoked_count,
        }
        if self.partial:
            payload["partial"] = True
        if self.error:
            payload["error"] = self.error
        return payload
