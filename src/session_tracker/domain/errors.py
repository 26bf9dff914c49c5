"""Session tracker error taxonomy."""


class SessionTrackerError(Exception):
    """Base class for service errors mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "bad_request"
    retryable: bool = False

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotAuthenticated(SessionTrackerError):
    """No valid principal for the request (401)."""

    status_code = 401
    error_code = "not_authenticated"


class NotFound(SessionTrackerError):
    """Session missing or owned by another principal (404)."""

    status_code = 404
    error_code = "not_found"


class DuplicateSessionId(SessionTrackerError):
    """A record with the same session id already exists (409)."""

    status_code = 409
    error_code = "duplicate_session_id"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session {session_id} already exists",
            detail={"session_id": session_id},
        )
        self.session_id = session_id


class SessionAlreadyRevoked(SessionTrackerError):
    """Activity ping for a session that is already revoked (409)."""

    status_code = 409
    error_code = "session_revoked"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session {session_id} is revoked",
            detail={"session_id": session_id},
        )
        self.session_id = session_id


class PartialSyncFailure(SessionTrackerError):
    """Only one of the two session stores could be mutated."""

    error_code = "partial_sync"


class UpstreamUnavailable(SessionTrackerError):
    """The remote data store could not be reached (503)."""

    status_code = 503
    error_code = "upstream_unavailable"
    retryable = True


class RateLimited(SessionTrackerError):
    """Too many requests for this client (429)."""

    status_code = 429
    error_code = "rate_limited"
    retryable = True

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            "Rate limit exceeded. Please try again later.",
            detail={"retry_after": retry_after},
        )
        self.retry_after = retry_after


__all__ = [
    "DuplicateSessionId",
    "NotAuthenticated",
    "NotFound",
    "PartialSyncFailure",
    "RateLimited",
    "SessionAlreadyRevoked",
    "SessionTrackerError",
    "UpstreamUnavailable",
]
