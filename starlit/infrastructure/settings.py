"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
STARLIT_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("STARLIT_ENV", "development")

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Catalog data shipped with the package
CATALOG_DIR = Path(os.getenv("STARLIT_CATALOG_DIR", str(STARLIT_ROOT / "catalog" / "data")))
MAIL_TEMPLATES_PATH = CATALOG_DIR / "mail_templates.yaml"
STORIES_PATH = CATALOG_DIR / "stories.yaml"

# Feedback link embedded in the 3-day streak reward copy
FEEDBACK_URL = os.getenv("FEEDBACK_URL", "https://tally.so/r/3xoNOo")


def is_development() -> bool:
    """Check if running in development"""
    return ENV == "development"
