"""Supabase auth gateway for resolving request principals."""

import logging
from dataclasses import dataclass
from uuid import UUID

import jwt
from supabase import AsyncClient, AuthError

from session_tracker.adapters.supabase_errors import store_errors
from session_tracker.domain.sessions import Principal
from session_tracker.services.principals import AuthGateway

logger = logging.getLogger(__name__)


@dataclass
class SupabaseAuthGateway(AuthGateway):
    """Validates access tokens against Supabase auth."""

    client: AsyncClient

    async def current_principal(self, access_token: str) -> Principal | None:
        """Return the principal for a valid token, else None."""
        try:
            with store_errors("validate access token"):
                response = await self.client.auth.get_user(access_token)
        except AuthError:
            logger.info("Rejected access token")
            return None
        if response is None or response.user is None:
            return None
        return Principal(
            user_id=UUID(str(response.user.id)),
            session_id=session_id_from_token(access_token),
            email=response.user.email,
        )


def session_id_from_token(access_token: str) -> str | None:
    """Read the ``session_id`` claim of an already validated token."""
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    session_id = claims.get("session_id")
    return str(session_id) if session_id else None
