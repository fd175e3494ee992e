"""
In-process telemetry for the engagement engine and API.

Events are log records carrying `event` and `fields` extras (rendered as
JSON keys with STARLIT_LOG_FORMAT=json). Counters and latency samples live
in memory behind a lock, since logins for different users run on
different threads. /health exposes a snapshot; tests reset between runs.
"""

from __future__ import annotations

import contextlib
import threading
import time
from collections.abc import Iterator
from typing import Any

from starlit.observability.logging import get_logger

logger = get_logger("starlit.telemetry")

# Latency samples kept per metric; older samples are dropped first
MAX_LATENCY_SAMPLES = 1000

_lock = threading.Lock()
_counters: dict[str, int] = {}
_latencies: dict[str, list[float]] = {}


def log_event(event_name: str, **fields: Any) -> None:
    """Structured event. Pass ids and counts only, never journal text or emails."""
    logger.info("event=%s %s", event_name, fields, extra={"event": event_name, "fields": fields})


def counter(name: str, increment: int = 1) -> int:
    with _lock:
        value = _counters.get(name, 0) + increment
        _counters[name] = value
    logger.debug("counter=%s value=%s", name, value)
    return value


def get_counter(name: str) -> int:
    """Current value of a counter (0 if never incremented)."""
    with _lock:
        return _counters.get(name, 0)


def reset_counters() -> None:
    with _lock:
        _counters.clear()


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """Record the wall time of the block, in milliseconds, under metric_name."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        with _lock:
            samples = _latencies.setdefault(metric_name, [])
            samples.append(elapsed_ms)
            if len(samples) > MAX_LATENCY_SAMPLES:
                del samples[: len(samples) - MAX_LATENCY_SAMPLES]
        logger.debug("timing=%s ms=%.3f", metric_name, elapsed_ms)


def get_p95(metric_name: str) -> float:
    """95th percentile latency in ms (0.0 with no samples)."""
    with _lock:
        samples = sorted(_latencies.get(metric_name, []))
    if not samples:
        return 0.0
    return samples[min(int(len(samples) * 0.95), len(samples) - 1)]


def reset_latencies() -> None:
    with _lock:
        _latencies.clear()


def snapshot() -> dict[str, Any]:
    """Counters plus sample count and p95 per latency metric."""
    with _lock:
        counters = dict(_counters)
        names = list(_latencies)
        sizes = {name: len(_latencies[name]) for name in names}
    return {
        "counters": counters,
        "latency_ms": {
            name: {"samples": sizes[name], "p95": round(get_p95(name), 3)} for name in names
        },
    }
