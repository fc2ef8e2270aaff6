"""Per-client-IP rate limiting for the auth endpoints, on fastapi-limiter.

Usage::

    @router.post("/login", dependencies=[Depends(rate_limit("auth"))])

Declared in the route decorator so it runs before session resolution; a
denied request never reaches the endpoint.

The client address is ``request.client.host``. Behind a reverse proxy run
uvicorn with ``--proxy-headers --forwarded-allow-ips=<proxy ips>`` so only
trusted proxies can rewrite it.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List
from fastapi import Request, Response
from fastapi_limiter.depends import RateLimiter
from pyrate_limiter import (
    AbstractBucket,
    BucketFactory,
    Duration,
    InMemoryBucket,
    Limiter,
    Rate,
    RateItem,
    RedisBucket,
    TimeClock,
)
from config import settings
from errors import AppError, AppErrorCode
from logs import log_action


@dataclass(frozen=True)
class RateLimitRule:
    prefix: str
    limit: int
    window_seconds: int

    def rates(self) -> List[Rate]:
        return [Rate(self.limit, Duration.SECOND * self.window_seconds)]


RULES: Dict[str, RateLimitRule] = {
    "auth": RateLimitRule(prefix="auth", limit=5, window_seconds=60),
    "otp_request": RateLimitRule(prefix="otp-req", limit=3, window_seconds=300),
    "otp_verify": RateLimitRule(prefix="otp-verify", limit=5, window_seconds=900),
}


def bucket_key(name: str) -> str:
    # RateLimiter appends ":{route_index}:{dep_index}"; a class shares one bucket across its routes
    return name.rsplit(":", 2)[0]


class ClientBucketFactory(BucketFactory):
    """One bucket per "{prefix}:{client_ip}", in memory or in Redis."""

    def __init__(self, rule: RateLimitRule, redis_client=None):
        self.rule = rule
        self.clock = TimeClock()
        self.redis = redis_client
        self.buckets: Dict[str, AbstractBucket] = {}

    def wrap_item(self, name: str, weight: int = 1) -> RateItem:
        return RateItem(name, self.clock.now(), weight=weight)

    def get(self, item: RateItem) -> AbstractBucket:
        key = bucket_key(item.name)
        if key not in self.buckets:
            if self.redis is not None:
                bucket = RedisBucket.init(self.rule.rates(), self.redis, f"ratelimit:{key}")
                self.schedule_leak(bucket, self.clock)
            else:
                bucket = self.create(self.clock, InMemoryBucket, self.rule.rates())
            self.buckets[key] = bucket
        return self.buckets[key]

    def reset(self) -> None:
        for bucket in self.buckets.values():
            bucket.flush()
        self.buckets.clear()


def _redis_client():
    if settings.RATE_LIMIT_BACKEND != "redis":
        return None
    import redis
    return redis.Redis.from_url(settings.REDIS_URL)


def rule_for_key(name: str) -> RateLimitRule:
    prefix = name.split(":", 1)[0]
    return next((rule for rule in RULES.values() if rule.prefix == prefix), RULES["auth"])


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limit_exceeded(rule: RateLimitRule, request: Request) -> AppError:
    log_action(
        "rate_limited",
        correlation_id=getattr(request.state, "request_id", ""),
        context={"key": f"{rule.prefix}:{client_ip(request)}", "path": request.url.path},
        level="WARNING",
    )
    return AppError(
        AppErrorCode.RATE_LIMITED,
        "Too many requests, please try again later",
        headers={"Retry-After": str(rule.window_seconds)},
    )


_factories: Dict[str, ClientBucketFactory] = {}
_limiters: Dict[str, RateLimiter] = {}


def rate_limit(kind: str) -> RateLimiter:
    """Dependency for one rate-limit class; the same instance is shared by every route using it."""
    if kind in _limiters:
        return _limiters[kind]
    rule = RULES[kind]
    factory = ClientBucketFactory(rule, _redis_client())

    async def identifier(request: Request) -> str:
        return f"{rule.prefix}:{client_ip(request)}"

    async def callback(request: Request, response: Response):
        raise rate_limit_exceeded(rule, request)

    _factories[kind] = factory
    _limiters[kind] = RateLimiter(limiter=Limiter(factory), identifier=identifier, callback=callback)
    return _limiters[kind]


def reset_rate_limits() -> None:
    for factory in _factories.values():
        factory.reset()
