"""Fixed-window rate limiting.

Counters live in a ``limits`` storage backend picked by
``RATE_LIMIT_STORAGE_URI``: ``memory://`` keeps them in-process (with its own
background sweep of expired windows), ``redis://...`` shares them between
workers. Either way a window is created on first hit, counted up, and
replaced once its expiry has passed; nothing ever decrements it.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from enum import Enum
from functools import lru_cache

import structlog
from fastapi import Request, Response
from limits.storage import MemoryStorage, Storage, storage_from_string

from html2png.core.config import Settings, get_settings
from html2png.core.errors import RateLimitedError

logger = structlog.get_logger()

UNKNOWN_CLIENT = "unknown"


class EndpointClass(str, Enum):
    auth = "auth"
    convert = "convert"
    api = "api"


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    # Epoch milliseconds at which the current window ends.
    reset_at: int

    def retry_after_seconds(self, now_ms: int | None = None) -> int:
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        return max(0, math.ceil((self.reset_at - now_ms) / 1000))

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds())
        return headers


def configs_from_settings(settings: Settings) -> dict[EndpointClass, RateLimitConfig]:
    return {
        EndpointClass.auth: RateLimitConfig(settings.RATE_LIMIT_AUTH_WINDOW_MS, settings.RATE_LIMIT_AUTH_MAX),
        EndpointClass.convert: RateLimitConfig(settings.RATE_LIMIT_CONVERT_WINDOW_MS, settings.RATE_LIMIT_CONVERT_MAX),
        EndpointClass.api: RateLimitConfig(settings.RATE_LIMIT_API_WINDOW_MS, settings.RATE_LIMIT_API_MAX),
    }


class RateLimiter:
    def __init__(
        self,
        storage: Storage,
        configs: dict[EndpointClass, RateLimitConfig] | None = None,
        unknown_max: int | None = None,
    ):
        self.storage = storage
        self.configs = configs or {}
        self.unknown_max = unknown_max

    def check(self, identity: str, config: RateLimitConfig, namespace: str = "default") -> RateLimitResult:
        key = f"ratelimit/{namespace}/{identity}"
        expiry = config.window_ms / 1000
        if not isinstance(self.storage, MemoryStorage):
            # Key TTLs on shared backends are whole seconds.
            expiry = max(1, math.ceil(expiry))

        count = self.storage.incr(key, expiry, amount=1)
        reset_at = int(self.storage.get_expiry(key) * 1000)

        return RateLimitResult(
            allowed=count <= config.max_requests,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - count),
            reset_at=reset_at,
        )

    def check_endpoint(self, identity: str, endpoint_class: EndpointClass) -> RateLimitResult:
        config = self.configs[endpoint_class]
        if identity == UNKNOWN_CLIENT and self.unknown_max is not None:
            config = replace(config, max_requests=min(config.max_requests, self.unknown_max))

        result = self.check(identity, config, namespace=endpoint_class.value)
        if not result.allowed:
            logger.info("rate_limit.exceeded", endpoint_class=endpoint_class.value, identity=identity)
        return result

    def reset(self) -> None:
        self.storage.reset()


def get_client_ip(request: Request, trust_proxy_headers: bool | None = None) -> str:
    if trust_proxy_headers is None:
        trust_proxy_headers = get_settings().TRUST_PROXY_HEADERS

    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop

        real_ip = (request.headers.get("x-real-ip") or "").strip()
        if real_ip:
            return real_ip

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    storage = storage_from_string(settings.RATE_LIMIT_STORAGE_URI)
    logger.info("rate_limit.storage.configured", uri_scheme=settings.RATE_LIMIT_STORAGE_URI.split(":", 1)[0])
    return RateLimiter(
        storage,
        configs=configs_from_settings(settings),
        unknown_max=settings.RATE_LIMIT_UNKNOWN_MAX,
    )


def rate_limit(endpoint_class: EndpointClass):
    def rate_limit_dependency(request: Request, response: Response) -> RateLimitResult:
        result = get_rate_limiter().check_endpoint(get_client_ip(request), endpoint_class)
        if not result.allowed:
            raise RateLimitedError(result)
        response.headers.update(result.headers())
        return result

    return rate_limit_dependency
