"""Tests for scheduled session cleanup."""

import asyncio
from datetime import timedelta
from uuid import uuid4

from tests.conftest import SAFARI_IPHONE, make_record


def test_expire_deletes_old_revoked_and_stale_records(repository, sweeper, clock) -> None:
    user_id = uuid4()
    now = clock.now
    repository.add(
        make_record(
            user_id, now - timedelta(days=120), session_id="revoked-old",
            last_active_at=now - timedelta(days=91), is_revoked=True,
        )
    )
    repository.add(
        make_record(
            user_id, now - timedelta(days=120), session_id="revoked-recent",
            last_active_at=now - timedelta(days=89), is_revoked=True,
        )
    )
    repository.add(
        make_record(
            user_id, now - timedelta(days=100), session_id="stale",
            last_active_at=now - timedelta(days=91),
        )
    )
    repository.add(
        make_record(
            user_id, now - timedelta(days=100), session_id="active",
            last_active_at=now - timedelta(days=1),
        )
    )

    assert asyncio.run(sweeper.expire()) == 2
    assert set(repository.records) == {"revoked-recent", "active"}


def test_scheduled_cleanup_leaves_no_live_orphans(
    repository, directory, sweeper, clock
) -> None:
    alive, gone = uuid4(), uuid4()
    directory.existing.add(alive)
    repository.add(make_record(alive, clock.now, session_id="alive"))
    repository.add(make_record(gone, clock.now, session_id="gone-1"))
    repository.add(
        make_record(
            gone, clock.now + timedelta(hours=2), session_id="gone-2",
            user_agent=SAFARI_IPHONE,
        )
    )

    report = asyncio.run(sweeper.run_scheduled_cleanup())

    assert report.ok
    assert report.orphaned_sessions == 2
    live_orphans = [
        r for r in repository.records.values() if r.user_id == gone and not r.is_revoked
    ]
    assert live_orphans == []


def test_scheduled_cleanup_twice_finds_nothing_new(
    repository, directory, credential_store, sweeper, clock
) -> None:
    user_id = uuid4()
    directory.existing.add(user_id)
    repository.add(make_record(user_id, clock.now, session_id="retry-1"))
    repository.add(
        make_record(user_id, clock.now + timedelta(minutes=1), session_id="retry-2")
    )
    credential_store.issue("retry-1", user_id)

    first = asyncio.run(sweeper.run_scheduled_cleanup())
    second = asyncio.run(sweeper.run_scheduled_cleanup())

    assert first.duplicates_removed == 1
    assert first.credentials_resynced == 1
    assert second.to_dict() == {
        "orphaned_sessions": 0,
        "expired_sessions": 0,
        "duplicates_removed": 0,
        "credentials_resynced": 0,
    }
    assert credential_store.live == set()


def test_failing_job_does_not_block_the_others(
    repository, directory, sweeper, clock
) -> None:
    user_id = uuid4()
    directory.failing = True
    repository.add(
        make_record(
            user_id, clock.now - timedelta(days=200), session_id="ancient",
            last_active_at=clock.now - timedelta(days=100),
        )
    )

    report = asyncio.run(sweeper.run_scheduled_cleanup())

    assert not report.ok
    assert set(report.errors) == {"orphans"}
    assert report.errors["orphans"].startswith("UpstreamUnavailable:")
    assert report.expired_sessions == 1
    assert repository.records == {}


def test_unavailable_store_fails_every_job(repository, sweeper) -> None:
    repository.unavailable = True

    report = asyncio.run(sweeper.run_scheduled_cleanup())

    assert set(report.errors) == {"orphans", "dedup", "resync", "expire"}


def test_resync_keeps_failed_deletions_pending(
    repository, credential_store, sweeper, clock
) -> None:
    user_id = uuid4()
    repository.add(
        make_record(user_id, clock.now, session_id="pending", is_revoked=True)
    )
    repository.add(
        make_record(
            user_id, clock.now, session_id="done", is_revoked=True,
            credential_synced=True,
        )
    )
    credential_store.failing = True

    assert asyncio.run(sweeper.resync_credentials()) == 0
    assert repository.records["pending"].credential_synced is False

    credential_store.failing = False
    assert asyncio.run(sweeper.resync_credentials()) == 1
    assert credential_store.deleted == ["pending"]


def test_expire_keeps_idle_record_until_credential_is_gone(
    repository, credential_store, sweeper, clock
) -> None:
    user_id = uuid4()
    repository.add(
        make_record(
            user_id, clock.now - timedelta(days=100), session_id="idle",
            last_active_at=clock.now - timedelta(days=91),
        )
    )
    credential_store.issue("idle", user_id)
    credential_store.failing = True

    assert asyncio.run(sweeper.expire()) == 0
    assert repository.records["idle"].is_revoked is True
    assert repository.records["idle"].credential_synced is False
    assert credential_store.live == {"idle"}

    credential_store.failing = False
    assert asyncio.run(sweeper.resync_credentials()) == 1
    assert asyncio.run(sweeper.expire()) == 1
    assert repository.records == {}
    assert credential_store.live == set()
