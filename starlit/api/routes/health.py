"""Health check endpoints.

- /health - Service status, catalog readiness and telemetry counters
- /health/db - Database connection pool health
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request

from starlit.config import APP_VERSION
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import snapshot

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Service status, catalog sizes and in-process telemetry."""
    engine = request.app.state.engine
    return {
        "status": "healthy",
        "service": "Starlit Journals API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "catalogs": {
            "writing_prompts": len(engine.templates.writing_prompts()),
            "stories": len(engine.stories.names()),
        },
        "telemetry": snapshot(),
    }


@router.get("/health/db")
async def database_health() -> dict[str, Any]:
    """
    Connection pool health metrics.

    Reports degraded when pool usage exceeds 80% or the schema is incomplete.
    """
    from starlit.infrastructure.database import get_pool_stats, validate_schema

    stats = get_pool_stats()
    usage_percent = stats["usage_percent"]

    try:
        schema_valid = validate_schema()
    except ValueError as e:
        logger.error("Schema validation failed: %s", e)
        schema_valid = False

    warning = None
    if not schema_valid:
        warning = "Schema incomplete"
    elif usage_percent > 80:
        warning = "Pool usage high"

    return {
        "status": "healthy" if warning is None else "degraded",
        "pool": stats,
        "schema_valid": schema_valid,
        "warning": warning,
    }
