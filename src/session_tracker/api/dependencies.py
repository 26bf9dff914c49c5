"""Request-scoped dependencies shared by the API routers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Header, Request

from session_tracker.domain.errors import NotAuthenticated
from session_tracker.domain.sessions import Principal
from session_tracker.services.devices import client_ip
from session_tracker.services.rate_limit import client_key

if TYPE_CHECKING:
    from session_tracker.containers import AppContainer

ACCESS_TOKEN_COOKIE = "sb-access-token"


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def request_ip(request: Request) -> str:
    """Client address, honouring proxy headers."""
    return client_ip(
        request.headers.get("x-forwarded-for"), request.headers.get("x-real-ip")
    )


async def current_principal(
    request: Request, authorization: str | None = Header(default=None)
) -> Principal:
    """Resolve the principal from a bearer token or the auth cookie."""
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    token = token or request.cookies.get(ACCESS_TOKEN_COOKIE)
    container = get_container(request)
    return await container.principal_service.require_principal(token)


async def enforce_rate_limit(request: Request) -> None:
    """Count the request against the client's rate limit window."""
    container = get_container(request)
    container.rate_limiter.hit(
        client_key(request_ip(request), request.headers.get("user-agent"))
    )


def require_session_id(principal: Principal) -> str:
    """Return the principal's session id or raise NotAuthenticated."""
    if not principal.session_id:
        raise NotAuthenticated("Access token carries no session id")
    return principal.session_id
