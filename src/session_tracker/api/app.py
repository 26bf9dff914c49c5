"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from session_tracker.api.cron import router as cron_router
from session_tracker.api.sessions import router as sessions_router
from session_tracker.app_logging import configure_logging
from session_tracker.containers import AppContainer, build_container
from session_tracker.domain.errors import RateLimited, SessionTrackerError


def create_app(container: AppContainer | None = None) -> FastAPI:
    """Create a FastAPI app; the container is built at startup when omitted."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.container is None:
            app.state.container = await build_container()
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(sessions_router)
    app.include_router(cron_router)

    @app.exception_handler(SessionTrackerError)
    async def handle_service_error(
        request: Request, exc: SessionTrackerError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "error_code": exc.error_code},
            )
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": {
                    "code": exc.error_code,
                    "message": exc.message,
                    "retryable": exc.retryable,
                    **exc.detail,
                },
            },
            headers=headers,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
