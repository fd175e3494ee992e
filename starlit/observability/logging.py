"""
Logging setup for Starlit

Modules log through get_logger(__name__). A single stream handler sits on the
"starlit" logger, leaving the root logger to uvicorn or the host app.

- STARLIT_LOG_LEVEL sets the level (default INFO)
- STARLIT_LOG_FORMAT=json switches to one JSON object per line, with
  telemetry event fields as top-level keys
- Email addresses are masked in every line; journal text is never logged
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import UTC, datetime
from typing import Any, Final

ROOT_LOGGER: Final[str] = "starlit"
HANDLER_NAME: Final[str] = "starlit.stream"

_TEXT_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def redact(text: str) -> str:
    return _EMAIL_PATTERN.sub("[EMAIL]", text)


class RedactingFilter(logging.Filter):
    """Masks email addresses in the rendered message and event fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            record.fields = {
                k: redact(v) if isinstance(v, str) else v for k, v in fields.items()
            }
        return True


class JsonFormatter(logging.Formatter):
    """One line per record: ts, level, logger, msg, then event fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def _resolve_level() -> int:
    level_name = os.getenv("STARLIT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _build_formatter() -> logging.Formatter:
    if os.getenv("STARLIT_LOG_FORMAT", "text").lower() == "json":
        return JsonFormatter()
    return logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def configure_logging(force: bool = False) -> logging.Logger:
    """
    Attach the Starlit handler (once) and apply the configured level.

    force=True rebuilds the handler, picking up a changed STARLIT_LOG_FORMAT.
    """
    base = logging.getLogger(ROOT_LOGGER)
    base.setLevel(_resolve_level())

    existing = [h for h in base.handlers if h.get_name() == HANDLER_NAME]
    if existing and not force:
        return base
    for handler in existing:
        base.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(_build_formatter())
    handler.addFilter(RedactingFilter())
    base.addHandler(handler)
    return base


def get_logger(name: str) -> logging.Logger:
    """Logger under the "starlit" namespace, configuring the handler on first use."""
    configure_logging()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
