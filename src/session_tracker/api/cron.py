"""Timer-triggered and service-to-service endpoints with bearer auth."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from session_tracker.api.dependencies import get_container

if TYPE_CHECKING:
    from session_tracker.containers import AppContainer

router = APIRouter(prefix="/cron", tags=["cron"])


def _get_cron_secret(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.cron_secret


async def require_cron_secret(
    authorization: str | None = Header(default=None),
    cron_secret: str = Depends(_get_cron_secret),
) -> None:
    """Ensure requests carry ``Authorization: Bearer <CRON_SECRET>``."""
    if not authorization or authorization != f"Bearer {cron_secret}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


async def _run_cleanup(request: Request) -> dict[str, object]:
    container = get_container(request)
    report = await container.sweeper.run_scheduled_cleanup()
    container.rate_limiter.sweep()
    payload: dict[str, object] = {
        "success": report.ok,
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "cleaned": report.to_dict(),
    }
    if report.errors:
        payload["errors"] = report.errors
    return payload


@router.post("/session-cleanup", dependencies=[Depends(require_cron_secret)])
async def session_cleanup(request: Request) -> dict[str, object]:
    """Run expiry, orphan, dedup and resync jobs."""
    return await _run_cleanup(request)


@router.get("/session-cleanup", dependencies=[Depends(require_cron_secret)])
async def session_cleanup_manual(request: Request) -> dict[str, object]:
    """Manual trigger for diagnostics, disabled in production."""
    container = get_container(request)
    if container.settings.environment == "production":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return await _run_cleanup(request)


@router.post(
    "/users/{user_id}/revoke-all", dependencies=[Depends(require_cron_secret)]
)
async def revoke_user_sessions(user_id: UUID, request: Request) -> dict[str, object]:
    """Forced logout, used when an account is deleted or locked."""
    container = get_container(request)
    result = await container.revocation_service.revoke_all_sessions(user_id)
    return result.to_dict()
