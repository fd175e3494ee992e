"""Unit tests for logging setup and in-process telemetry"""

from __future__ import annotations

import json
import logging

from starlit.observability.logging import (
    JsonFormatter,
    RedactingFilter,
    configure_logging,
    get_logger,
    redact,
)
from starlit.observability.telemetry import (
    counter,
    get_counter,
    get_p95,
    snapshot,
    time_block,
)


def _record(msg, *args, **extra):
    record = logging.LogRecord("starlit.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_loggers_live_under_starlit_namespace():
    assert get_logger("engine").name == "starlit.engine"
    assert get_logger("starlit.api").name == "starlit.api"
    assert get_logger("starlit").name == "starlit"


def test_configure_logging_attaches_one_handler():
    configure_logging()
    configure_logging()
    base = configure_logging(force=True)

    named = [h for h in base.handlers if h.get_name() == "starlit.stream"]
    assert len(named) == 1


def test_redact_masks_emails():
    assert redact("signup from nova@example.com done") == "signup from [EMAIL] done"
    assert redact("no address here") == "no address here"


def test_filter_redacts_message_and_fields():
    record = _record("login for %s", "nova@example.com", fields={"email": "nova@example.com", "n": 3})

    assert RedactingFilter().filter(record)
    assert record.getMessage() == "login for [EMAIL]"
    assert record.fields == {"email": "[EMAIL]", "n": 3}


def test_json_formatter_lifts_event_fields():
    record = _record("event=engine.like", event="engine.like", fields={"journal_id": "j1", "liked": True})

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "starlit.test"
    assert payload["event"] == "engine.like"
    assert payload["journal_id"] == "j1"
    assert payload["liked"] is True


def test_counters_accumulate():
    assert get_counter("mail.sent") == 0
    counter("mail.sent")
    counter("mail.sent", 2)

    assert get_counter("mail.sent") == 3
    assert snapshot()["counters"]["mail.sent"] == 3


def test_time_block_records_samples():
    for _ in range(3):
        with time_block("unit.block"):
            pass

    stats = snapshot()["latency_ms"]["unit.block"]
    assert stats["samples"] == 3
    assert stats["p95"] >= 0
    assert get_p95("missing.metric") == 0.0


def test_login_is_timed(engine, make_user, now):
    user = make_user()
    engine.process_login(user.id, now)

    assert snapshot()["latency_ms"]["engine.login"]["samples"] == 1
