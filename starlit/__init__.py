"""Starlit Journals - journaling backend with a login-driven engagement engine"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports so `import starlit` does not pull in FastAPI or open the database
def __getattr__(name: str):
    if name in ("EngagementEngine", "LoginOutcome", "LikeOutcome", "engine_from_defaults"):
        from starlit.engagement import engine

        return getattr(engine, name)

    if name in ("TemplateCatalog", "StoryCatalog"):
        from starlit.catalog import stories, templates

        if name == "TemplateCatalog":
            return templates.TemplateCatalog
        return stories.StoryCatalog

    if name == "create_app":
        from starlit.api.app import create_app

        return create_app

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "EngagementEngine",
    "LoginOutcome",
    "LikeOutcome",
    "engine_from_defaults",
    "TemplateCatalog",
    "StoryCatalog",
    "create_app",
]
