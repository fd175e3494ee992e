"""Rate limiting middleware for the Starlit API

Throttles the credential endpoints (login and signup) per client IP, since
those are the ones that accept passwords and create accounts.

- IP spoofing protection (X-Forwarded-For only trusted when the peer is a
  configured proxy, or in development)
- Memory bounded by TTLCache
"""

from __future__ import annotations

import ipaddress
import time
from collections.abc import Callable, Iterable
from typing import Any

from cachetools import TTLCache
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from starlit.config import TRUSTED_PROXIES
from starlit.infrastructure.settings import ENV
from starlit.observability.telemetry import counter, log_event

AUTH_PATHS: tuple[str, ...] = ("/api/users/login", "/api/users/signup")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window request limits per IP for a fixed set of paths.

    Single-process only; a multi-instance deployment needs a shared store.
    """

    def __init__(
        self,
        app: Any,
        requests_per_minute: int = 30,
        requests_per_hour: int = 300,
        paths: Iterable[str] = AUTH_PATHS,
        max_tracked_ips: int = 10000,
        trusted_proxies: Iterable[str] = TRUSTED_PROXIES,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.paths = frozenset(paths)

        # {ip: [timestamp, ...]}, idle IPs expire on their own
        self.minute_buckets: TTLCache[str, list[float]] = TTLCache(
            maxsize=max_tracked_ips, ttl=120
        )
        self.hour_buckets: TTLCache[str, list[float]] = TTLCache(
            maxsize=max_tracked_ips, ttl=7200
        )

        self.trusted_proxies = frozenset(trusted_proxies)

    @staticmethod
    def _is_valid_ip(ip_str: str) -> bool:
        try:
            ipaddress.ip_address(ip_str)
            return True
        except ValueError:
            return False

    def _forwarded_ip(self, request: Request) -> str | None:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
            if self._is_valid_ip(ip):
                return ip
        return None

    def _get_client_ip(self, request: Request) -> str:
        """Client IP; forwarded headers only count from a trusted proxy or in development."""
        peer = request.client.host if request.client else "unknown"
        if peer in self.trusted_proxies:
            if ip := self._forwarded_ip(request):
                return ip

        if ENV == "development":
            if ip := self._forwarded_ip(request):
                return ip
            real_ip = request.headers.get("X-Real-IP")
            if real_ip and self._is_valid_ip(real_ip):
                return real_ip

        return peer

    @staticmethod
    def _window(bucket: list[float], max_age_seconds: int, now: float) -> list[float]:
        return [ts for ts in bucket if now - ts < max_age_seconds]

    def _reject(
        self, client_ip: str, limit: str, count: int, maximum: int, retry_after: int
    ) -> Response:
        log_event("api.rate_limit.exceeded", ip=client_ip, limit=limit, count=count)
        counter("api.rate_limited")
        return JSONResponse(
            status_code=429,
            content={
                "detail": f"Rate limit exceeded. Maximum {maximum} requests per {limit}.",
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path not in self.paths:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        now = time.time()

        minute_bucket = self._window(self.minute_buckets.get(client_ip, []), 60, now)
        hour_bucket = self._window(self.hour_buckets.get(client_ip, []), 3600, now)

        if len(minute_bucket) >= self.requests_per_minute:
            self.minute_buckets[client_ip] = minute_bucket
            return self._reject(
                client_ip, "minute", len(minute_bucket), self.requests_per_minute, 60
            )
        if len(hour_bucket) >= self.requests_per_hour:
            self.hour_buckets[client_ip] = hour_bucket
            return self._reject(
                client_ip, "hour", len(hour_bucket), self.requests_per_hour, 3600
            )

        minute_bucket.append(now)
        hour_bucket.append(now)
        self.minute_buckets[client_ip] = minute_bucket
        self.hour_buckets[client_ip] = hour_bucket

        response = await call_next(request)

        response.headers["X-RateLimit-Limit-Minute"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining-Minute"] = str(
            max(0, self.requests_per_minute - len(minute_bucket))
        )
        response.headers["X-RateLimit-Limit-Hour"] = str(self.requests_per_hour)
        response.headers["X-RateLimit-Remaining-Hour"] = str(
            max(0, self.requests_per_hour - len(hour_bucket))
        )
        return response
