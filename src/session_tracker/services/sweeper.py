"""Scheduled cleanup jobs for session records."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from session_tracker.domain.sessions import CleanupReport
from session_tracker.services.reconciler import SessionReconciler
from session_tracker.services.revocation import CredentialSessionStore
from session_tracker.services.sessions import SessionRecordRepository, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SessionSweeper:
    """Expiry, orphan, dedup and credential resync jobs.

    Triggered from outside on a timer. Jobs are independent set-based
    mutations; a second run in the same minute finds nothing to do.
    """

    repository: SessionRecordRepository
    reconciler: SessionReconciler
    credential_store: CredentialSessionStore
    revoked_retention: timedelta = timedelta(days=90)
    max_session_age: timedelta = timedelta(days=90)
    resync_batch_size: int = 200
    clock: Callable[[], datetime] = field(default=utcnow)

    async def expire(self) -> int:
        """Retire long-inactive sessions and delete expired records.

        Inactive live records are revoked and their credential sessions
        deleted first. A record is only removed once its credential session
        is gone.
        """
        now = self.clock()
        inactive_before = now - self.max_session_age
        retired = await self.repository.revoke_inactive(inactive_before, now)
        if retired:
            await self._delete_credentials(retired)
        deleted = await self.repository.delete_expired(
            revoked_before=now - self.revoked_retention,
            inactive_before=inactive_before,
        )
        logger.info(
            "Deleted expired sessions",
            extra={"retired": len(retired), "deleted": deleted},
        )
        return deleted

    async def sweep_orphans(self) -> int:
        """Revoke sessions of principals that no longer exist."""
        return await self.reconciler.revoke_orphans()

    async def collapse_duplicates(self) -> int:
        """Revoke superseded duplicate sessions across all users."""
        return await self.reconciler.collapse_duplicates()

    async def resync_credentials(self) -> int:
        """Finish credential deletions left behind by partial revocations."""
        records = await self.repository.list_unsynced_revoked(self.resync_batch_size)
        synced = await self._delete_credentials(
            [record.session_id for record in records]
        )
        return len(synced)

    async def _delete_credentials(self, session_ids: list[str]) -> list[str]:
        synced: list[str] = []
        for session_id in session_ids:
            try:
                await self.credential_store.delete(session_id)
            except Exception:
                logger.exception(
                    "Credential resync failed",
                    extra={"session_id": session_id},
                )
                continue
            synced.append(session_id)
        if synced:
            await self.repository.mark_credential_synced(synced)
        return synced

    async def run_scheduled_cleanup(self) -> CleanupReport:
        """Run every job, isolating failures so one job cannot block another."""
        report = CleanupReport()
        jobs: list[tuple[str, Callable[[], Awaitable[int]], str]] = [
            ("orphans", self.sweep_orphans, "orphaned_sessions"),
            ("dedup", self.collapse_duplicates, "duplicates_removed"),
            ("resync", self.resync_credentials, "credentials_resynced"),
            ("expire", self.expire, "expired_sessions"),
        ]
        for name, job, attribute in jobs:
            try:
                setattr(report, attribute, await job())
            except Exception as exc:
                logger.exception("Cleanup job failed", extra={"job": name})
                report.errors[name] = f"{type(exc).__name__}: {exc}"
        logger.info(
            "Scheduled cleanup finished",
            extra={**report.to_dict(), "failed_jobs": sorted(report.errors)},
        )
        return report
