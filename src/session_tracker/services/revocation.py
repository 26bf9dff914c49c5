"""Session revocation across the tracking and credential stores."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from session_tracker.config import DEFAULT_AUTH_COOKIE_NAMES
from session_tracker.domain.errors import (
    NotFound,
    PartialSyncFailure,
    SessionTrackerError,
    UpstreamUnavailable,
)
from session_tracker.domain.sessions import RevocationResult
from session_tracker.services.sessions import SessionRecordRepository, utcnow

logger = logging.getLogger(__name__)


class CredentialSessionStore(Protocol):
    """The authentication provider's own session store."""

    async def delete(self, session_id: str) -> None:
        """Delete a credential session; missing sessions are not an error."""

    async def delete_all_for_user(self, user_id: UUID) -> int:
        """Delete every credential session of a user."""


@dataclass
class RevocationService:
    """Revokes sessions in both stores.

    The tracking store is always written first. A credential-store failure
    after that leaves the record revoked but unsynced, and the sweeper's
    resync job finishes the deletion.
    """

    repository: SessionRecordRepository
    credential_store: CredentialSessionStore
    cookie_names: tuple[str, ...] = DEFAULT_AUTH_COOKIE_NAMES
    clock: Callable[[], datetime] = field(default=utcnow)

    async def revoke_session(
        self,
        session_id: str,
        requesting_user_id: UUID,
        current_session_id: str | None = None,
    ) -> RevocationResult:
        """Revoke one session owned by the requesting user."""
        if current_session_id is not None and session_id == current_session_id:
            raise SessionTrackerError(
                "Cannot revoke current session; sign out instead"
            )
        record = await self.repository.get(session_id)
        if record is None or record.user_id != requesting_user_id:
            raise NotFound("Session not found")
        changed = await self.repository.revoke(session_id, self.clock())
        if record.is_revoked and record.credential_synced:
            return RevocationResult(success=True)
        try:
            await self._sync_credentials([session_id])
        except PartialSyncFailure as exc:
            logger.warning(exc.message, extra=exc.detail)
            return RevocationResult(
                success=True, revoked_count=int(changed), partial=True
            )
        logger.info(
            "Revoked session",
            extra={"user_id": str(requesting_user_id), "changed": changed},
        )
        return RevocationResult(success=True, revoked_count=int(changed))

    async def revoke_all_other_sessions(
        self, requesting_user_id: UUID, current_session_id: str
    ) -> RevocationResult:
        """Revoke every live session of the user except the current one."""
        if not current_session_id:
            raise SessionTrackerError("Current session id is required")
        revoked_ids = await self.repository.revoke_all_for_user(
            requesting_user_id,
            self.clock(),
            except_session_id=current_session_id,
        )
        revoked_ids = [item for item in revoked_ids if item != current_session_id]
        try:
            await self._sync_credentials(revoked_ids)
        except PartialSyncFailure as exc:
            logger.warning(exc.message, extra=exc.detail)
            return RevocationResult(
                success=True, revoked_count=len(revoked_ids), partial=True
            )
        logger.info(
            "Revoked other sessions",
            extra={"user_id": str(requesting_user_id), "count": len(revoked_ids)},
        )
        return RevocationResult(success=True, revoked_count=len(revoked_ids))

    async def revoke_all_sessions(self, user_id: UUID) -> RevocationResult:
        """Revoke every session of the user, including the current one.

        The caller clears the client-held credentials named in
        ``clear_cookies``.
        """
        revoked_ids = await self.repository.revoke_all_for_user(user_id, self.clock())
        partial = False
        try:
            await self.credential_store.delete_all_for_user(user_id)
        except Exception:
            logger.exception(
                "Failed to delete credential sessions for user",
                extra={"user_id": str(user_id)},
            )
            partial = True
        else:
            await self._mark_synced(revoked_ids)
        logger.info(
            "Revoked all sessions",
            extra={"user_id": str(user_id), "count": len(revoked_ids)},
        )
        return RevocationResult(
            success=True,
            revoked_count=len(revoked_ids),
            partial=partial,
            clear_cookies=self.cookie_names,
        )

    async def _sync_credentials(self, session_ids: list[str]) -> None:
        synced: list[str] = []
        pending: list[str] = []
        for session_id in session_ids:
            try:
                await self.credential_store.delete(session_id)
            except Exception:
                logger.exception("Failed to delete credential session")
                pending.append(session_id)
            else:
                synced.append(session_id)
        await self._mark_synced(synced)
        if pending:
            raise PartialSyncFailure(
                "Credential sessions left for the next sweep",
                detail={"pending": len(pending)},
            )

    async def _mark_synced(self, session_ids: list[str]) -> None:
        if not session_ids:
            return
        try:
            await self.repository.mark_credential_synced(session_ids)
        except UpstreamUnavailable:
            logger.exception("Failed to mark credential sessions as synced")
