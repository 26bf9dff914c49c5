"""Principal lookups consumed from the authentication provider."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from session_tracker.domain.errors import NotAuthenticated
from session_tracker.domain.sessions import Principal


class AuthGateway(Protocol):
    """Resolves the principal behind an access token."""

    async def current_principal(self, access_token: str) -> Principal | None:
        """Return the principal for a valid token, else None."""


class PrincipalDirectory(Protocol):
    """Existence checks against the user store."""

    async def principal_exists(self, user_id: UUID) -> bool:
        """Return true when the user still exists."""

    async def existing_principal_ids(self, candidate_ids: Iterable[UUID]) -> set[UUID]:
        """Return the subset of ids that still exist."""


@dataclass
class PrincipalService:
    """Establishes identity for API requests."""

    gateway: AuthGateway

    async def require_principal(self, access_token: str | None) -> Principal:
        """Return the request principal or raise NotAuthenticated."""
        if not access_token:
            raise NotAuthenticated("Missing access token")
        principal = await self.gateway.current_principal(access_token)
        if principal is None:
            raise NotAuthenticated("No active session found")
        return principal
