"""Supabase-backed session tracking repository."""

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from supabase import AsyncClient

from session_tracker.adapters.supabase_errors import is_unique_violation, store_errors
from session_tracker.domain.errors import (
    DuplicateSessionId,
    NotFound,
    SessionAlreadyRevoked,
)
from session_tracker.domain.sessions import Location, SessionRecord
from session_tracker.services.sessions import SessionRecordRepository

_TABLE = "sessions"
_COLUMNS = (
    "session_id, user_id, ip_address, user_agent, browser, os, device_type, "
    "location, created_at, last_active_at, is_revoked, revoked_at, "
    "credential_synced"
)
_PAGE_SIZE = 1000


@dataclass
class SupabaseSessionRecordRepository(SessionRecordRepository):
    """Supabase implementation for session tracking records."""

    client: AsyncClient

    async def create(self, record: SessionRecord) -> SessionRecord:
        """Insert a session row and return it."""
        payload = {
            "session_id": record.session_id,
            "user_id": str(record.user_id),
            "ip_address": record.ip_address,
            "user_agent": record.user_agent,
            "browser": record.browser,
            "os": record.os,
            "device_type": record.device_type,
            "location": record.location.as_dict() if record.location else {},
            "created_at": record.created_at.isoformat(),
            "last_active_at": record.last_active_at.isoformat(),
            "is_revoked": record.is_revoked,
            "revoked_at": record.revoked_at.isoformat() if record.revoked_at else None,
            "credential_synced": record.credential_synced,
        }
        with store_errors("create session"):
            try:
                response = await self.client.table(_TABLE).insert(payload).execute()
            except APIError as exc:
                if is_unique_violation(exc):
                    raise DuplicateSessionId(record.session_id) from exc
                raise
        if not response.data:
            raise RuntimeError("Failed to create session record")
        return _to_record(response.data[0])

    async def get(self, session_id: str) -> SessionRecord | None:
        """Return a session row by session id."""
        with store_errors("get session"):
            response = (
                await self.client.table(_TABLE)
                .select(_COLUMNS)
                .eq("session_id", session_id)
                .limit(1)
                .execute()
            )
        if not response.data:
            return None
        return _to_record(response.data[0])

    async def touch(self, session_id: str, at: datetime) -> None:
        """Bump last_active_at, only ever forward and only on live rows."""
        with store_errors("touch session"):
            response = (
                await self.client.table(_TABLE)
                .update({"last_active_at": at.isoformat()})
                .eq("session_id", session_id)
                .eq("is_revoked", False)
                .lte("last_active_at", at.isoformat())
                .execute()
            )
        if response.data:
            return
        current = await self.get(session_id)
        if current is None:
            raise NotFound("Session not found")
        if current.is_revoked:
            raise SessionAlreadyRevoked(session_id)

    async def revoke(self, session_id: str, at: datetime) -> bool:
        """Revoke a live session row; return whether it changed."""
        with store_errors("revoke session"):
            response = (
                await self.client.table(_TABLE)
                .update(_revocation(at))
                .eq("session_id", session_id)
                .eq("is_revoked", False)
                .execute()
            )
        return bool(response.data)

    async def revoke_many(self, session_ids: Iterable[str], at: datetime) -> int:
        """Revoke the live rows among the given session ids."""
        ids = list(session_ids)
        if not ids:
            return 0
        with store_errors("revoke sessions"):
            response = (
                await self.client.table(_TABLE)
                .update(_revocation(at))
                .in_("session_id", ids)
                .eq("is_revoked", False)
                .execute()
            )
        return len(response.data or [])

    async def revoke_for_users(self, user_ids: Iterable[UUID], at: datetime) -> int:
        """Revoke every live row owned by the given users."""
        ids = [str(user_id) for user_id in user_ids]
        if not ids:
            return 0
        with store_errors("revoke user sessions"):
            response = (
                await self.client.table(_TABLE)
                .update(_revocation(at))
                .in_("user_id", ids)
                .eq("is_revoked", False)
                .execute()
            )
        return len(response.data or [])

    async def revoke_all_for_user(
        self, user_id: UUID, at: datetime, except_session_id: str | None = None
    ) -> list[str]:
        """Revoke a user's live rows, sparing ``except_session_id``."""
        query = (
            self.client.table(_TABLE)
            .update(_revocation(at))
            .eq("user_id", str(user_id))
            .eq("is_revoked", False)
        )
        if except_session_id is not None:
            query = query.neq("session_id", except_session_id)
        with store_errors("revoke all user sessions"):
            response = await query.execute()
        return [row["session_id"] for row in response.data or []]

    async def list_for_user(
        self, user_id: UUID, include_revoked: bool = False
    ) -> list[SessionRecord]:
        """Return a user's sessions ordered by last activity."""
        query = self.client.table(_TABLE).select(_COLUMNS).eq("user_id", str(user_id))
        if not include_revoked:
            query = query.eq("is_revoked", False)
        with store_errors("list user sessions"):
            response = await query.order("last_active_at", desc=True).execute()
        return [_to_record(row) for row in response.data or []]

    async def list_active(self) -> list[SessionRecord]:
        """Return every non-revoked session row."""
        return [
            _to_record(row)
            async for row in self._scan(_COLUMNS, "list active sessions")
        ]

    async def count_for_user(self, user_id: UUID, include_revoked: bool = False) -> int:
        """Return the number of rows owned by a user."""
        query = (
            self.client.table(_TABLE)
            .select("session_id", count=CountMethod.exact)
            .eq("user_id", str(user_id))
        )
        if not include_revoked:
            query = query.eq("is_revoked", False)
        with store_errors("count user sessions"):
            response = await query.execute()
        if response.count is not None:
            return response.count
        return len(response.data or [])

    async def distinct_user_ids(self, include_revoked: bool = False) -> set[UUID]:
        """Return every user id referenced by session rows."""
        return {
            UUID(str(row["user_id"]))
            async for row in self._scan(
                "session_id, user_id", "list session owners", include_revoked
            )
        }

    async def _scan(
        self, columns: str, operation: str, include_revoked: bool = False
    ) -> AsyncIterator[dict[str, Any]]:
        # Keyset pagination on session_id stays stable while rows are revoked.
        last_id: str | None = None
        while True:
            query = self.client.table(_TABLE).select(columns)
            if not include_revoked:
                query = query.eq("is_revoked", False)
            if last_id is not None:
                query = query.gt("session_id", last_id)
            with store_errors(operation):
                response = (
                    await query.order("session_id").limit(_PAGE_SIZE).execute()
                )
            rows = response.data or []
            for row in rows:
                yield row
            if len(rows) < _PAGE_SIZE:
                return
            last_id = str(rows[-1]["session_id"])

    async def revoke_inactive(
        self, inactive_before: datetime, at: datetime
    ) -> list[str]:
        """Revoke live rows idle since before the cutoff."""
        with store_errors("revoke inactive sessions"):
            response = (
                await self.client.table(_TABLE)
                .update(_revocation(at))
                .eq("is_revoked", False)
                .lt("last_active_at", inactive_before.isoformat())
                .execute()
            )
        return [row["session_id"] for row in response.data or []]

    async def delete_expired(
        self, revoked_before: datetime, inactive_before: datetime
    ) -> int:
        """Delete rows past revocation retention and synced idle rows."""
        with store_errors("delete revoked sessions"):
            revoked = (
                await self.client.table(_TABLE)
                .delete()
                .eq("is_revoked", True)
                .lt("revoked_at", revoked_before.isoformat())
                .execute()
            )
        with store_errors("delete inactive sessions"):
            inactive = (
                await self.client.table(_TABLE)
                .delete()
                .eq("is_revoked", True)
                .eq("credential_synced", True)
                .lt("last_active_at", inactive_before.isoformat())
                .execute()
            )
        return len(revoked.data or []) + len(inactive.data or [])

    async def list_unsynced_revoked(self, limit: int) -> list[SessionRecord]:
        """Return revoked rows still waiting for credential deletion."""
        with store_errors("list unsynced sessions"):
            response = (
                await self.client.table(_TABLE)
                .select(_COLUMNS)
                .eq("is_revoked", True)
                .eq("credential_synced", False)
                .order("revoked_at")
                .limit(limit)
                .execute()
            )
        return [_to_record(row) for row in response.data or []]

    async def mark_credential_synced(self, session_ids: Iterable[str]) -> None:
        """Flag rows whose credential sessions are gone."""
        ids = list(session_ids)
        if not ids:
            return
        with store_errors("mark sessions synced"):
            await (
                self.client.table(_TABLE)
                .update({"credential_synced": True})
                .in_("session_id", ids)
                .execute()
            )

    async def set_location(self, session_id: str, location: Location) -> None:
        """Store the resolved location for a row."""
        with store_errors("update session location"):
            await (
                self.client.table(_TABLE)
                .update({"location": location.as_dict()})
                .eq("session_id", session_id)
                .execute()
            )


def _revocation(at: datetime) -> dict[str, object]:
    return {"is_revoked": True, "revoked_at": at.isoformat()}


def _timestamp(value: object) -> datetime | None:
    return datetime.fromisoformat(str(value)) if value else None


def _to_record(row: dict[str, Any]) -> SessionRecord:
    location = row.get("location")
    return SessionRecord(
        session_id=str(row["session_id"]),
        user_id=UUID(str(row["user_id"])),
        ip_address=str(row.get("ip_address") or ""),
        user_agent=str(row.get("user_agent") or ""),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        last_active_at=datetime.fromisoformat(str(row["last_active_at"])),
        is_revoked=bool(row.get("is_revoked")),
        browser=row.get("browser"),
        os=row.get("os"),
        device_type=row.get("device_type"),
        location=Location(city=location.get("city"), country=location.get("country"))
        if isinstance(location, dict) and location
        else None,
        credential_synced=bool(row.get("credential_synced")),
        revoked_at=_timestamp(row.get("revoked_at")),
    )
