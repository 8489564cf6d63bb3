from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol

import boto3

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    limit: int
    remaining: int
    count: int
    window_reset_epoch: int
    limiter_key: str
    window_seconds: int


class RateLimiter(Protocol):
    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        ...


class NoopRateLimiter:
    """
    Limiter that always allows. Used when route throttles are turned off
    or configuration is incomplete.
    """

    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        now_ts = int(now or time.time())
        return RateLimitResult(
            allowed=True,
            retry_after_seconds=0,
            limit=limit,
            remaining=max(0, limit),
            count=0,
            window_reset_epoch=now_ts + window_seconds,
            limiter_key=f"noop:{route_key}:window:{window_seconds}",
            window_seconds=window_seconds,
        )


_route_limiter: RateLimiter | None = None
_access_counter: RateLimiter | None = None
_access_counter_resolved = False
_lock = threading.Lock()


def _dynamo_limiter(purpose: str) -> RateLimiter | None:
    table_name = settings.DDB_RATE_LIMIT_TABLE
    region = settings.AWS_REGION
    if not table_name or not region:
        logger.warning("%s counter needs DDB_RATE_LIMIT_TABLE and AWS_REGION; not configured", purpose)
        return None

    from app.services.rate_limiter_dynamo import DynamoRateLimiter

    client = boto3.client("dynamodb", region_name=region)
    logger.info("%s counter using DynamoDB table %s in %s", purpose, table_name, region)
    return DynamoRateLimiter(client, table_name=table_name)


def get_rate_limiter() -> RateLimiter:
    """
    Per-user route throttles. Off unless RATE_LIMIT_ENABLED; incomplete
    configuration degrades to the no-op limiter.
    """
    global _route_limiter
    if _route_limiter is not None:
        return _route_limiter
    with _lock:
        if _route_limiter is None:
            if not settings.RATE_LIMIT_ENABLED:
                logger.info("Route throttles disabled via RATE_LIMIT_ENABLED=false")
                _route_limiter = NoopRateLimiter()
            else:
                _route_limiter = _dynamo_limiter("Route throttle") or NoopRateLimiter()
    return _route_limiter


def get_access_counter() -> RateLimiter | None:
    """
    Shared counter store for the per-(company, resume) access budget. This
    budget is never switched off, so it ignores RATE_LIMIT_ENABLED; None means
    no counter store is configured and the caller must use the access log.
    """
    global _access_counter, _access_counter_resolved
    with _lock:
        if not _access_counter_resolved:
            _access_counter = _dynamo_limiter("Resume access")
            _access_counter_resolved = True
    return _access_counter


def reset_rate_limiter() -> None:
    """
    Test helper to ensure fresh limiters are constructed after settings change.
    """

    global _route_limiter, _access_counter, _access_counter_resolved
    with _lock:
        _route_limiter = None
        _access_counter = None
        _access_counter_resolved = False
