"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import acreate_client

from session_tracker.adapters.geolocation_client import HttpxGeolocationClient
from session_tracker.adapters.supabase_auth_gateway import SupabaseAuthGateway
from session_tracker.adapters.supabase_credential_store import (
    SupabaseCredentialStore,
)
from session_tracker.adapters.supabase_principal_directory import (
    SupabasePrincipalDirectory,
)
from session_tracker.adapters.supabase_session_record_repository import (
    SupabaseSessionRecordRepository,
)
from session_tracker.config import Settings, parse_cookie_names
from session_tracker.services.principals import PrincipalService
from session_tracker.services.rate_limit import InMemoryRateLimitStore, RateLimiter
from session_tracker.services.reconciler import SessionReconciler
from session_tracker.services.revocation import RevocationService
from session_tracker.services.sessions import SessionService
from session_tracker.services.sweeper import SessionSweeper


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    principal_service: PrincipalService
    session_service: SessionService
    reconciler: SessionReconciler
    revocation_service: RevocationService
    sweeper: SessionSweeper
    rate_limiter: RateLimiter
    close_resources: Callable[[], Awaitable[None]]


async def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = await acreate_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    repository = SupabaseSessionRecordRepository(supabase_client)
    credential_store = SupabaseCredentialStore(supabase_client)
    directory = SupabasePrincipalDirectory(
        supabase_client, table=resolved_settings.principals_table
    )
    geolocation_client = HttpxGeolocationClient.create(
        base_url=resolved_settings.geolocation_base_url,
        timeout=resolved_settings.geolocation_timeout_seconds,
    )
    reconciler = SessionReconciler(
        repository=repository,
        directory=directory,
        merge_window=timedelta(seconds=resolved_settings.dedup_merge_window_seconds),
    )
    session_service = SessionService(
        repository=repository,
        geolocation_client=geolocation_client,
        reconciler=reconciler,
    )
    revocation_service = RevocationService(
        repository=repository,
        credential_store=credential_store,
        cookie_names=parse_cookie_names(resolved_settings.auth_cookie_names),
    )
    sweeper = SessionSweeper(
        repository=repository,
        reconciler=reconciler,
        credential_store=credential_store,
        revoked_retention=timedelta(days=resolved_settings.revoked_retention_days),
        max_session_age=timedelta(days=resolved_settings.max_session_age_days),
        resync_batch_size=resolved_settings.resync_batch_size,
    )
    rate_limiter = RateLimiter(
        store=InMemoryRateLimitStore(),
        max_requests=resolved_settings.rate_limit_max_requests,
        window=timedelta(seconds=resolved_settings.rate_limit_window_seconds),
    )

    async def close_resources() -> None:
        await geolocation_client.close()
        rate_limiter.store.clear()

    return AppContainer(
        settings=resolved_settings,
        principal_service=PrincipalService(SupabaseAuthGateway(supabase_client)),
        session_service=session_service,
        reconciler=reconciler,
        revocation_service=revocation_service,
        sweeper=sweeper,
        rate_limiter=rate_limiter,
        close_resources=close_resources,
    )
