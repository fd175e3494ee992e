"""FastAPI server for Starlit Journals"""

from __future__ import annotations

import os
import sqlite3

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from starlit.api.errors import engagement_exception_handler
from starlit.api.middleware.rate_limit import RateLimitMiddleware
from starlit.api.routes.health import router as health_router
from starlit.api.routes.journals import router as journals_router
from starlit.api.routes.mail import router as mail_router
from starlit.api.routes.users import router as users_router
from starlit.config import (
    API_HOST,
    API_PORT,
    APP_VERSION,
    AUTH_REQUESTS_PER_HOUR,
    AUTH_REQUESTS_PER_MINUTE,
)
from starlit.engagement.engine import EngagementEngine, engine_from_defaults
from starlit.engagement.errors import EngagementError
from starlit.infrastructure.database import init_database
from starlit.infrastructure.settings import is_development
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

DEFAULT_ORIGINS = [
    "https://starlitjournals.com",
    "https://www.starlitjournals.com",
]

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


def allowed_origins() -> list[str]:
    """CORS origins: the production site, extras from STARLIT_CORS_ORIGINS, localhost in development."""
    origins = list(DEFAULT_ORIGINS)
    extra = os.getenv("STARLIT_CORS_ORIGINS", "")
    origins.extend(o.strip() for o in extra.split(",") if o.strip())
    if is_development():
        origins.extend(DEV_ORIGINS)
    return origins


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Return field names only, never the validation rules.

    Side Effects:
        - Logs the full validation errors
        - Increments api.validation_errors
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


def create_app(
    engine: EngagementEngine | None = None,
    *,
    requests_per_minute: int = AUTH_REQUESTS_PER_MINUTE,
    requests_per_hour: int = AUTH_REQUESTS_PER_HOUR,
) -> FastAPI:
    """
    Build the API.

    The engine defaults to one wired to the packaged catalogs; tests pass
    their own with fixture catalogs and a seeded random source.

    Raises:
        RuntimeError: If the database schema cannot be initialized
    """
    app = FastAPI(title="Starlit Journals API", version=APP_VERSION)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(EngagementError, engagement_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=requests_per_minute,
        requests_per_hour=requests_per_hour,
    )

    # Idempotent; safe on every startup
    try:
        init_database()
    except sqlite3.OperationalError as e:
        logger.critical("Database schema error: %s", e)
        raise RuntimeError(f"Database initialization failed: {e}") from e

    app.state.engine = engine or engine_from_defaults()

    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(journals_router)
    app.include_router(mail_router)

    log_event("api.startup", service="starlit", version=APP_VERSION)
    return app


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("starlit.api.app:create_app", factory=True, host=API_HOST, port=API_PORT)
