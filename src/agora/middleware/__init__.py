"""Middleware registration."""

from fastapi import FastAPI

from agora.config import Settings
from agora.middleware.error_handler import setup_error_handlers
from agora.middleware.logging import setup_logging
from agora.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, map domain errors to responses and tag every request with an id."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
