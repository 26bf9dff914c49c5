"""Translation of Supabase client failures into service errors."""

from collections.abc import Iterator
from contextlib import contextmanager

import httpx
from postgrest.exceptions import APIError

from session_tracker.domain.errors import UpstreamUnavailable

UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: APIError) -> bool:
    """Return true when PostgREST reports a duplicate key."""
    return exc.code == UNIQUE_VIOLATION or "duplicate key" in (exc.message or "")


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Map transport and PostgREST failures to UpstreamUnavailable."""
    try:
        yield
    except httpx.TimeoutException as exc:
        raise UpstreamUnavailable(
            f"Timed out during {operation}", detail={"operation": operation}
        ) from exc
    except httpx.HTTPError as exc:
        raise UpstreamUnavailable(
            f"Session store unreachable during {operation}",
            detail={"operation": operation},
        ) from exc
    except APIError as exc:
        raise UpstreamUnavailable(
            f"Session store rejected {operation}: {exc.message}",
            detail={"operation": operation, "code": exc.code},
        ) from exc
