"""Shared test fixtures."""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from session_tracker.config import Settings
from session_tracker.containers import AppContainer
from session_tracker.domain.errors import (
    DuplicateSessionId,
    NotFound,
    SessionAlreadyRevoked,
    UpstreamUnavailable,
)
from session_tracker.domain.sessions import Location, Principal, SessionRecord
from session_tracker.services.principals import (
    AuthGateway,
    PrincipalDirectory,
    PrincipalService,
)
from session_tracker.services.rate_limit import InMemoryRateLimitStore, RateLimiter
from session_tracker.services.reconciler import SessionReconciler
from session_tracker.services.revocation import (
    CredentialSessionStore,
    RevocationService,
)
from session_tracker.services.sessions import SessionRecordRepository, SessionService
from session_tracker.services.sweeper import SessionSweeper

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


@dataclass
class FrozenClock:
    """Manually advanced clock."""

    now: datetime = field(
        default_factory=lambda: datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class InMemorySessionRecordRepository(SessionRecordRepository):
    """In-memory session tracking store for tests."""

    records: dict[str, SessionRecord] = field(default_factory=dict)
    unavailable: bool = False

    def _check(self) -> None:
        if self.unavailable:
            raise UpstreamUnavailable("Session store unreachable")

    def add(self, record: SessionRecord) -> SessionRecord:
        self.records[record.session_id] = record
        return record

    async def create(self, record: SessionRecord) -> SessionRecord:
        self._check()
        if record.session_id in self.records:
            raise DuplicateSessionId(record.session_id)
        return self.add(record)

    async def get(self, session_id: str) -> SessionRecord | None:
        self._check()
        return self.records.get(session_id)

    async def touch(self, session_id: str, at: datetime) -> None:
        self._check()
        record = self.records.get(session_id)
        if record is None:
            raise NotFound("Session not found")
        if record.is_revoked:
            raise SessionAlreadyRevoked(session_id)
        if at >= record.last_active_at:
            self.records[session_id] = replace(record, last_active_at=at)

    def _revoke(self, session_id: str, at: datetime) -> bool:
        record = self.records.get(session_id)
        if record is None or record.is_revoked:
            return False
        self.records[session_id] = replace(record, is_revoked=True, revoked_at=at)
        return True

    async def revoke(self, session_id: str, at: datetime) -> bool:
        self._check()
        return self._revoke(session_id, at)

    async def revoke_many(self, session_ids: Iterable[str], at: datetime) -> int:
        self._check()
        return sum(self._revoke(session_id, at) for session_id in list(session_ids))

    async def revoke_for_users(self, user_ids: Iterable[UUID], at: datetime) -> int:
        self._check()
        targets = set(user_ids)
        ids = [r.session_id for r in self.records.values() if r.user_id in targets]
        return sum(self._revoke(session_id, at) for session_id in ids)

    async def revoke_all_for_user(
        self, user_id: UUID, at: datetime, except_session_id: str | None = None
    ) -> list[str]:
        self._check()
        ids = [
            r.session_id
            for r in self.records.values()
            if r.user_id == user_id and r.session_id != except_session_id
        ]
        return [session_id for session_id in ids if self._revoke(session_id, at)]

    async def list_for_user(
        self, user_id: UUID, include_revoked: bool = False
    ) -> list[SessionRecord]:
        self._check()
        records = [
            r
            for r in self.records.values()
            if r.user_id == user_id and (include_revoked or not r.is_revoked)
        ]
        return sorted(records, key=lambda r: r.last_active_at, reverse=True)

    async def list_active(self) -> list[SessionRecord]:
        self._check()
        return [r for r in self.records.values() if not r.is_revoked]

    async def count_for_user(self, user_id: UUID, include_revoked: bool = False) -> int:
        return len(await self.list_for_user(user_id, include_revoked))

    async def distinct_user_ids(self, include_revoked: bool = False) -> set[UUID]:
        self._check()
        return {
            r.user_id
            for r in self.records.values()
            if include_revoked or not r.is_revoked
        }

    async def revoke_inactive(self, inactive_before: datetime, at: datetime) -> list[str]:
        self._check()
        ids = [
            r.session_id
            for r in self.records.values()
            if not r.is_revoked and r.last_active_at < inactive_before
        ]
        return [session_id for session_id in ids if self._revoke(session_id, at)]

    async def delete_expired(
        self, revoked_before: datetime, inactive_before: datetime
    ) -> int:
        self._check()
        expired = [
            r.session_id
            for r in self.records.values()
            if r.is_revoked
            and (
                (r.revoked_at is not None and r.revoked_at < revoked_before)
                or (r.credential_synced and r.last_active_at < inactive_before)
            )
        ]
        for session_id in expired:
            del self.records[session_id]
        return len(expired)

    async def list_unsynced_revoked(self, limit: int) -> list[SessionRecord]:
        self._check()
        pending = [
            r
            for r in self.records.values()
            if r.is_revoked and not r.credential_synced
        ]
        return pending[:limit]

    async def mark_credential_synced(self, session_ids: Iterable[str]) -> None:
        self._check()
        for session_id in session_ids:
            record = self.records.get(session_id)
            if record is not None:
                self.records[session_id] = replace(record, credential_synced=True)

    async def set_location(self, session_id: str, location: Location) -> None:
        self._check()
        record = self.records.get(session_id)
        if record is not None:
            self.records[session_id] = replace(record, location=location)


@dataclass
class FakeCredentialStore(CredentialSessionStore):
    """Credential store that records deletions and can be made to fail."""

    live: set[str] = field(default_factory=set)
    owners: dict[str, UUID] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    failing: bool = False

    def issue(self, session_id: str, user_id: UUID) -> None:
        self.live.add(session_id)
        self.owners[session_id] = user_id

    async def delete(self, session_id: str) -> None:
        if self.failing:
            raise UpstreamUnavailable("Auth store unreachable")
        self.live.discard(session_id)
        self.deleted.append(session_id)

    async def delete_all_for_user(self, user_id: UUID) -> int:
        if self.failing:
            raise UpstreamUnavailable("Auth store unreachable")
        ids = [sid for sid in self.live if self.owners.get(sid) == user_id]
        for session_id in ids:
            self.live.discard(session_id)
            self.deleted.append(session_id)
        return len(ids)


@dataclass
class InMemoryPrincipalDirectory(PrincipalDirectory):
    """Principal directory backed by a set of user ids."""

    existing: set[UUID] = field(default_factory=set)
    failing: bool = False
    calls: int = 0

    async def principal_exists(self, user_id: UUID) -> bool:
        return user_id in await self.existing_principal_ids([user_id])

    async def existing_principal_ids(self, candidate_ids: Iterable[UUID]) -> set[UUID]:
        self.calls += 1
        if self.failing:
            raise UpstreamUnavailable("User store unreachable")
        return {user_id for user_id in candidate_ids if user_id in self.existing}


@dataclass
class FakeAuthGateway(AuthGateway):
    """Maps access tokens to principals."""

    tokens: dict[str, Principal] = field(default_factory=dict)

    async def current_principal(self, access_token: str) -> Principal | None:
        return self.tokens.get(access_token)


@dataclass
class FakeGeolocationClient:
    """Geolocation client returning a fixed location."""

    location: Location = field(
        default_factory=lambda: Location(city="Berlin", country="Germany")
    )
    lookups: list[str] = field(default_factory=list)
    error: Exception | None = None

    async def lookup(self, ip_address: str) -> Location:
        self.lookups.append(ip_address)
        if self.error is not None:
            raise self.error
        return self.location


def make_record(  # noqa: PLR0913
    user_id: UUID,
    created_at: datetime,
    *,
    session_id: str | None = None,
    user_agent: str = CHROME_MAC,
    ip_address: str = "203.0.113.10",
    last_active_at: datetime | None = None,
    is_revoked: bool = False,
    credential_synced: bool = False,
    revoked_at: datetime | None = None,
) -> SessionRecord:
    last_active_at = last_active_at or created_at
    if is_revoked and revoked_at is None:
        revoked_at = last_active_at
    return SessionRecord(
        session_id=session_id or str(uuid4()),
        user_id=user_id,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=created_at,
        last_active_at=last_active_at,
        is_revoked=is_revoked,
        credential_synced=credential_synced,
        revoked_at=revoked_at,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        cron_secret="cron-secret",
        environment="test",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def repository() -> InMemorySessionRecordRepository:
    return InMemorySessionRecordRepository()


@pytest.fixture
def credential_store() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest.fixture
def directory() -> InMemoryPrincipalDirectory:
    return InMemoryPrincipalDirectory()


@pytest.fixture
def auth_gateway() -> FakeAuthGateway:
    return FakeAuthGateway()


@pytest.fixture
def reconciler(
    repository: InMemorySessionRecordRepository,
    directory: InMemoryPrincipalDirectory,
    clock: FrozenClock,
) -> SessionReconciler:
    return SessionReconciler(repository=repository, directory=directory, clock=clock)


@pytest.fixture
def revocation_service(
    repository: InMemorySessionRecordRepository,
    credential_store: FakeCredentialStore,
    clock: FrozenClock,
) -> RevocationService:
    return RevocationService(
        repository=repository,
        credential_store=credential_store,
        clock=clock,
    )


@pytest.fixture
def sweeper(
    repository: InMemorySessionRecordRepository,
    reconciler: SessionReconciler,
    credential_store: FakeCredentialStore,
    clock: FrozenClock,
) -> SessionSweeper:
    return SessionSweeper(
        repository=repository,
        reconciler=reconciler,
        credential_store=credential_store,
        clock=clock,
    )


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    repository: InMemorySessionRecordRepository,
    reconciler: SessionReconciler,
    revocation_service: RevocationService,
    sweeper: SessionSweeper,
    auth_gateway: FakeAuthGateway,
    clock: FrozenClock,
) -> AppContainer:
    session_service = SessionService(
        repository=repository,
        geolocation_client=FakeGeolocationClient(),
        reconciler=reconciler,
        clock=clock,
    )
    rate_limiter = RateLimiter(
        store=InMemoryRateLimitStore(),
        max_requests=settings.rate_limit_max_requests,
        window=timedelta(seconds=settings.rate_limit_window_seconds),
        clock=clock,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        principal_service=PrincipalService(auth_gateway),
        session_service=session_service,
        reconciler=reconciler,
        revocation_service=revocation_service,
        sweeper=sweeper,
        rate_limiter=rate_limiter,
        close_resources=close_resources,
    )
