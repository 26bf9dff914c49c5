"""Supabase-backed principal existence checks."""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from supabase import AsyncClient

from session_tracker.adapters.supabase_errors import store_errors
from session_tracker.services.principals import PrincipalDirectory

_CHUNK_SIZE = 100


@dataclass
class SupabasePrincipalDirectory(PrincipalDirectory):
    """Looks up user ids in the principals table."""

    client: AsyncClient
    table: str = "profiles"

    async def principal_exists(self, user_id: UUID) -> bool:
        """Return true when the user row still exists."""
        return user_id in await self.existing_principal_ids([user_id])

    async def existing_principal_ids(self, candidate_ids: Iterable[UUID]) -> set[UUID]:
        """Return the ids that still have a user row, querying in chunks."""
        ids = sorted({str(user_id) for user_id in candidate_ids})
        existing: set[UUID] = set()
        for start in range(0, len(ids), _CHUNK_SIZE):
            chunk = ids[start : start + _CHUNK_SIZE]
            with store_errors("look up principals"):
                response = (
                    await self.client.table(self.table)
                    .select("id")
                    .in_("id", chunk)
                    .execute()
                )
            existing.update(UUID(row["id"]) for row in response.data or [])
        return existing
