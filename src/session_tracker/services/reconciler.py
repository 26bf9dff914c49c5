"""Duplicate and orphan detection for session records."""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from session_tracker.domain.sessions import ReconcileReport, SessionRecord
from session_tracker.services.devices import device_fingerprint
from session_tracker.services.principals import PrincipalDirectory
from session_tracker.services.sessions import SessionRecordRepository, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MERGE_WINDOW = timedelta(minutes=5)


@dataclass
class SessionReconciler:
    """Collapses duplicate records and revokes orphaned ones.

    Every mutation is a conditional revoke, so concurrent or repeated runs
    converge on the same state.
    """

    repository: SessionRecordRepository
    directory: PrincipalDirectory
    merge_window: timedelta = DEFAULT_MERGE_WINDOW
    clock: Callable[[], datetime] = field(default=utcnow)

    async def reconcile(self) -> ReconcileReport:
        """Run duplicate collapsing, then orphan revocation."""
        report = ReconcileReport()
        try:
            report.duplicates_removed = await self.collapse_duplicates()
        except Exception as exc:
            logger.exception("Duplicate collapsing failed")
            report.errors.append(f"dedup: {exc}")
        try:
            report.orphans_revoked = await self.revoke_orphans()
        except Exception as exc:
            logger.exception("Orphan detection failed")
            report.errors.append(f"orphans: {exc}")
        return report

    async def collapse_duplicates(self, user_id: UUID | None = None) -> int:
        """Revoke all but the newest record of each burst of sign-ins."""
        if user_id is None:
            records = await self.repository.list_active()
        else:
            records = await self.repository.list_for_user(user_id)
        redundant = find_duplicates(records, self.merge_window)
        if not redundant:
            return 0
        removed = await self.repository.revoke_many(redundant, self.clock())
        logger.info(
            "Revoked duplicate sessions",
            extra={"candidates": len(redundant), "revoked": removed},
        )
        return removed

    async def revoke_orphans(self) -> int:
        """Revoke live records whose principal no longer exists."""
        user_ids = await self.repository.distinct_user_ids()
        if not user_ids:
            return 0
        existing = await self.directory.existing_principal_ids(user_ids)
        orphaned = user_ids - set(existing)
        if not orphaned:
            return 0
        revoked = await self.repository.revoke_for_users(orphaned, self.clock())
        logger.info(
            "Revoked orphaned sessions",
            extra={"users": len(orphaned), "revoked": revoked},
        )
        return revoked


def find_duplicates(
    records: list[SessionRecord], merge_window: timedelta
) -> list[str]:
    """Return the session ids superseded by a later record of the same device.

    Records sharing user and device fingerprint are walked in creation order;
    a record created within ``merge_window`` of the next one is considered a
    retried sign-in and is superseded by it.
    """
    groups: dict[tuple[UUID, str], list[SessionRecord]] = defaultdict(list)
    for record in records:
        if record.is_revoked:
            continue
        key = (record.user_id, device_fingerprint(record.user_agent, record.ip_address))
        groups[key].append(record)

    redundant: list[str] = []
    for group in groups.values():
        if len(group) < 2:
            continue
        ordered = sorted(group, key=lambda item: (item.created_at, item.session_id))
        for earlier, later in zip(ordered, ordered[1:]):
            if later.created_at - earlier.created_at < merge_window:
                redundant.append(earlier.session_id)
    return redundant
