"""IP geolocation API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from session_tracker.domain.sessions import UNKNOWN, Location


class GeolocationClient(Protocol):
    """Interface for IP address to location lookups."""

    async def lookup(self, ip_address: str) -> Location:
        """Return the coarse location of an IP address."""


@dataclass
class HttpxGeolocationClient(GeolocationClient):
    """HTTPX-backed client for ip-api.com style endpoints."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 5.0

    @classmethod
    def create(cls, base_url: str, timeout: float = 5.0) -> "HttpxGeolocationClient":
        """Create a geolocation client with a managed httpx session."""
        return cls(base_url=base_url, http_client=httpx.AsyncClient(), timeout=timeout)

    async def lookup(self, ip_address: str) -> Location:
        """Resolve city and country for an address."""
        response = await self.http_client.get(
            f"{self.base_url}/{ip_address}",
            params={"fields": "status,city,country"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("status") == "fail":
            return Location(city=UNKNOWN, country=UNKNOWN)
        return Location(
            city=payload.get("city") or UNKNOWN,
            country=payload.get("country") or UNKNOWN,
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
