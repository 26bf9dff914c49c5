"""ASGI entrypoint for the session tracker API."""

from session_tracker.api.app import create_app

app = create_app()
