"""Session record bookkeeping."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from session_tracker.domain.errors import (
    DuplicateSessionId,
    SessionAlreadyRevoked,
    UpstreamUnavailable,
)
from session_tracker.domain.sessions import Location, SessionInfo, SessionRecord
from session_tracker.services.devices import (
    DEFAULT_IP_ADDRESS,
    is_local_address,
    parse_user_agent,
)

if TYPE_CHECKING:
    from session_tracker.adapters.geolocation_client import GeolocationClient
    from session_tracker.services.reconciler import SessionReconciler

logger = logging.getLogger(__name__)

LOCAL_LOCATION = Location(city="Local", country="Development")


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SessionRecordRepository(Protocol):
    """Persistence interface for the session tracking table."""

    async def create(self, record: SessionRecord) -> SessionRecord:
        """Insert a record; raise DuplicateSessionId when the id exists."""

    async def get(self, session_id: str) -> SessionRecord | None:
        """Return a record by session id, revoked or not."""

    async def touch(self, session_id: str, at: datetime) -> None:
        """Bump last_active_at on a live record.

        Raises NotFound for unknown ids and SessionAlreadyRevoked when the
        record is revoked; a revoked record is never modified.
        """

    async def revoke(self, session_id: str, at: datetime) -> bool:
        """Flip is_revoked false to true and stamp revoked_at.

        Returns whether the record changed. last_active_at is left alone.
        """

    async def revoke_many(self, session_ids: Iterable[str], at: datetime) -> int:
        """Revoke the live records among the ids; return how many changed."""

    async def revoke_for_users(self, user_ids: Iterable[UUID], at: datetime) -> int:
        """Revoke every live record of the given users."""

    async def revoke_all_for_user(
        self, user_id: UUID, at: datetime, except_session_id: str | None = None
    ) -> list[str]:
        """Revoke a user's live records, optionally sparing one; return ids."""

    async def list_for_user(
        self, user_id: UUID, include_revoked: bool = False
    ) -> list[SessionRecord]:
        """Return a user's records, most recently active first."""

    async def list_active(self) -> list[SessionRecord]:
        """Return every non-revoked record."""

    async def count_for_user(self, user_id: UUID, include_revoked: bool = False) -> int:
        """Return how many records a user has."""

    async def distinct_user_ids(self, include_revoked: bool = False) -> set[UUID]:
        """Return the ids of users that own records."""

    async def revoke_inactive(self, inactive_before: datetime, at: datetime) -> list[str]:
        """Revoke live records idle since before the cutoff; return their ids."""

    async def delete_expired(
        self, revoked_before: datetime, inactive_before: datetime
    ) -> int:
        """Hard-delete expired records.

        Removes records revoked before ``revoked_before`` and revoked,
        credential-synced records idle since before ``inactive_before``.
        """

    async def list_unsynced_revoked(self, limit: int) -> list[SessionRecord]:
        """Return revoked records whose credential session may still exist."""

    async def mark_credential_synced(self, session_ids: Iterable[str]) -> None:
        """Record that the credential sessions for these ids are gone."""

    async def set_location(self, session_id: str, location: Location) -> None:
        """Store the resolved location of a record."""


@dataclass
class SessionService:
    """Creates, refreshes and lists session records."""

    repository: SessionRecordRepository
    geolocation_client: "GeolocationClient | None" = None
    reconciler: "SessionReconciler | None" = None
    clock: Callable[[], datetime] = field(default=utcnow)

    async def register_session(
        self,
        session_id: str,
        user_id: UUID,
        ip_address: str | None,
        user_agent: str | None,
    ) -> SessionRecord:
        """Create the shadow record for a newly issued credential session.

        Re-registering the same session from the same client is a no-op that
        returns the stored record; a clash with different content is raised.
        """
        address = ip_address or DEFAULT_IP_ADDRESS
        agent = user_agent or "Unknown"
        device = parse_user_agent(agent)
        now = self.clock()
        record = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            ip_address=address,
            user_agent=agent,
            created_at=now,
            last_active_at=now,
            browser=device.browser,
            os=device.os,
            device_type=device.device_type,
        )
        try:
            created = await self.repository.create(record)
        except DuplicateSessionId:
            existing = await self.repository.get(session_id)
            if existing is not None and _same_origin(existing, record):
                logger.info(
                    "Session already registered",
                    extra={"session_id": session_id},
                )
                return existing
            raise
        await self._resolve_location(created)
        return created

    async def record_activity(self, session_id: str) -> bool:
        """Touch a session; return False when it has been revoked."""
        try:
            await self.repository.touch(session_id, self.clock())
        except SessionAlreadyRevoked:
            logger.info("Ignoring activity on revoked session")
            return False
        return True

    async def list_sessions(
        self, user_id: UUID, current_session_id: str | None = None
    ) -> list[SessionInfo]:
        """Return the active sessions of a user for display."""
        if self.reconciler is not None:
            try:
                removed = await self.reconciler.collapse_duplicates(user_id)
            except UpstreamUnavailable:
                logger.exception(
                    "Duplicate cleanup before listing failed",
                    extra={"user_id": str(user_id)},
                )
            else:
                if removed:
                    logger.info(
                        "Collapsed duplicate sessions before listing",
                        extra={"user_id": str(user_id), "removed": removed},
                    )
        records = await self.repository.list_for_user(user_id)
        return [
            SessionInfo.from_record(record, current_session_id) for record in records
        ]

    async def _resolve_location(self, record: SessionRecord) -> None:
        if is_local_address(record.ip_address):
            location = LOCAL_LOCATION
        elif self.geolocation_client is None:
            return
        else:
            try:
                location = await self.geolocation_client.lookup(record.ip_address)
            except Exception:
                logger.exception(
                    "Failed to resolve session location",
                    extra={"session_id": record.session_id},
                )
                return
        try:
            await self.repository.set_location(record.session_id, location)
        except UpstreamUnavailable:
            logger.exception(
                "Failed to store session location",
                extra={"session_id": record.session_id},
            )


def _same_origin(existing: SessionRecord, candidate: SessionRecord) -> bool:
    return (
        existing.user_id == candidate.user_id
        and existing.user_agent == candidate.user_agent
        and existing.ip_address == candidate.ip_address
    )
