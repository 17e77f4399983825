"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance for the
narrator service. It sets up routing, logging and request error handling.

Usage:
    # Run with uvicorn
    uvicorn narrator.main:app --host 0.0.0.0 --port 8000

    # Or use the module directly
    python -m uvicorn narrator.main:app --reload

Environment:
    GEMINI_API_KEY       Remote model key (checked per request)
    NARRATOR_SETTINGS    Settings file (default config/settings.yaml)
    NARRATOR_LOG_LEVEL   1-4
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from narrator import __version__
from narrator.api.routes import router
from narrator.core.logging import configure_logging, get_logger, warn

_LOG = get_logger("narrator.main")

INVALID_BODY_MESSAGE = "Request body must be a JSON object with a text field."


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or non-object JSON bodies become the plain 400 {"error"} shape."""
    warn(_LOG, "invalid_body", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": INVALID_BODY_MESSAGE})


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Configures structured logging based on environment settings
        2. Creates a FastAPI instance with the service title
        3. Maps request body validation failures to 400 {"error": ...}
        4. Registers the speech router

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    # Initialize structured logging (reads NARRATOR_LOG_LEVEL env var)
    configure_logging()

    app = FastAPI(title="narrator", version=__version__)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
