"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Request

from starlit.engagement.engine import EngagementEngine


def get_engine(request: Request) -> EngagementEngine:
    """The engine built at app creation, held on app.state."""
    return request.app.state.engine
