"""Supabase auth session store accessed through database functions."""

from dataclasses import dataclass
from uuid import UUID

from supabase import AsyncClient

from session_tracker.adapters.supabase_errors import store_errors
from session_tracker.services.revocation import CredentialSessionStore


@dataclass
class SupabaseCredentialStore(CredentialSessionStore):
    """Deletes rows from ``auth.sessions`` via security-definer RPCs."""

    client: AsyncClient

    async def delete(self, session_id: str) -> None:
        """Delete one auth session; unknown ids are ignored by the function."""
        with store_errors("delete auth session"):
            await self.client.rpc(
                "delete_auth_session", {"session_id_param": session_id}
            ).execute()

    async def delete_all_for_user(self, user_id: UUID) -> int:
        """Delete every auth session of a user and return the count."""
        with store_errors("delete user auth sessions"):
            response = await self.client.rpc(
                "delete_auth_sessions_for_user", {"user_id_param": str(user_id)}
            ).execute()
        return response.data if isinstance(response.data, int) else 0
