"""Session management endpoints for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from session_tracker.api.dependencies import (
    current_principal,
    enforce_rate_limit,
    get_container,
    request_ip,
    require_session_id,
)
from session_tracker.domain.sessions import Principal, SessionInfo

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("")
async def list_sessions(
    request: Request, principal: Principal = Depends(current_principal)
) -> dict[str, object]:
    """Return the caller's active sessions, flagging the current one."""
    container = get_container(request)
    sessions = await container.session_service.list_sessions(
        principal.user_id, principal.session_id
    )
    return {"success": True, "sessions": [info.to_dict() for info in sessions]}


@router.post("/register")
async def register_session(
    request: Request, principal: Principal = Depends(current_principal)
) -> dict[str, object]:
    """Record the session that issued the caller's access token."""
    container = get_container(request)
    session_id = require_session_id(principal)
    record = await container.session_service.register_session(
        session_id=session_id,
        user_id=principal.user_id,
        ip_address=request_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {
        "success": True,
        "session": SessionInfo.from_record(record, session_id).to_dict(),
    }


@router.post("/activity")
async def record_activity(
    request: Request, principal: Principal = Depends(current_principal)
) -> dict[str, object]:
    """Refresh the last activity time of the current session."""
    container = get_container(request)
    active = await container.session_service.record_activity(
        require_session_id(principal)
    )
    return {"success": True, "active": active}


@router.delete("/{session_id}", dependencies=[Depends(enforce_rate_limit)])
async def revoke_session(
    session_id: str,
    request: Request,
    principal: Principal = Depends(current_principal),
) -> dict[str, object]:
    """Sign out one of the caller's other devices."""
    container = get_container(request)
    result = await container.revocation_service.revoke_session(
        session_id,
        requesting_user_id=principal.user_id,
        current_session_id=principal.session_id,
    )
    return result.to_dict()


@router.post("/revoke-others", dependencies=[Depends(enforce_rate_limit)])
async def revoke_other_sessions(
    request: Request, principal: Principal = Depends(current_principal)
) -> dict[str, object]:
    """Sign out every device except the current one."""
    container = get_container(request)
    result = await container.revocation_service.revoke_all_other_sessions(
        principal.user_id, require_session_id(principal)
    )
    return result.to_dict()


@router.post("/revoke-all", dependencies=[Depends(enforce_rate_limit)])
async def revoke_all_sessions(
    request: Request,
    response: Response,
    principal: Principal = Depends(current_principal),
) -> dict[str, object]:
    """Sign out everywhere, including this device, and expire auth cookies."""
    container = get_container(request)
    result = await container.revocation_service.revoke_all_sessions(principal.user_id)
    secure = container.settings.environment == "production"
    for name in result.clear_cookies:
        response.delete_cookie(
            name, path="/", secure=secure, httponly=True, samesite="lax"
        )
    return result.to_dict()
