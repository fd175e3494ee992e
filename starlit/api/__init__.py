"""HTTP API"""

from __future__ import annotations

from starlit.api.app import create_app, main

__all__ = ["create_app", "main"]
