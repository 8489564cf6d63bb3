from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.timeutils import as_utc, utcnow
from app.models.resume_access_log import ResumeAccessLog
from app.services.errors import RateLimited
from app.services.rate_limiter import RateLimiter, RateLimitResult, get_access_counter

logger = logging.getLogger(__name__)


def _limiter_key(resume_id: int, company_id: int, window_seconds: int) -> str:
    return f"resume:{resume_id}:company:{company_id}:window:{window_seconds}"


def check_via_access_log(
    db: Session,
    *,
    resume_id: int,
    company_id: int,
    limit: int,
    window_seconds: int,
    now: datetime,
) -> RateLimitResult:
    """
    Sliding window over the audit log itself, so the limiter and the log can
    never disagree. One indexed count per check.
    """
    window_start = now - timedelta(seconds=window_seconds)
    count, oldest = (
        db.query(func.count(ResumeAccessLog.id), func.min(ResumeAccessLog.accessed_at))
        .filter(
            ResumeAccessLog.resume_id == resume_id,
            ResumeAccessLog.company_id == company_id,
            ResumeAccessLog.accessed_at > window_start,
        )
        .one()
    )
    count = int(count or 0)
    allowed = count < limit
    oldest = as_utc(oldest)
    reset_at = (oldest + timedelta(seconds=window_seconds)) if oldest else now
    retry_after = 0 if allowed else max(1, int((reset_at - now).total_seconds()))
    return RateLimitResult(
        allowed=allowed,
        retry_after_seconds=retry_after,
        limit=limit,
        # Includes the access about to be recorded on success.
        remaining=max(0, limit - count - 1) if allowed else 0,
        count=count,
        window_reset_epoch=int(reset_at.timestamp()),
        limiter_key=_limiter_key(resume_id, company_id, window_seconds),
        window_seconds=window_seconds,
    )


def check_via_counter(
    counter: RateLimiter,
    *,
    resume_id: int,
    company_id: int,
    limit: int,
    window_seconds: int,
    now: datetime,
) -> RateLimitResult:
    return counter.check(
        identifier=f"company:{company_id}",
        route_key=f"resume_access:{resume_id}",
        limit=limit,
        window_seconds=window_seconds,
        now=int(now.timestamp()),
    )


def check_access_rate(
    db: Session,
    *,
    resume_id: int,
    company_id: int,
    limit: int | None = None,
    window_seconds: int | None = None,
    now: datetime | None = None,
) -> RateLimitResult:
    """
    Bound how often one company may mint links for one resume. Raises RateLimited
    when over budget. Must run before the access is logged so rejected attempts
    never reach the log.
    """
    now = now or utcnow()
    resolved_limit = limit if limit is not None else settings.ACCESS_RATE_LIMIT_MAX
    resolved_window = window_seconds if window_seconds is not None else settings.ACCESS_RATE_LIMIT_WINDOW_SECONDS

    # Without a configured counter store the access log is the fallback.
    counter = get_access_counter() if settings.ACCESS_RATE_LIMIT_BACKEND == "counter" else None
    if counter is not None:
        result = check_via_counter(
            counter,
            resume_id=resume_id,
            company_id=company_id,
            limit=resolved_limit,
            window_seconds=resolved_window,
            now=now,
        )
    else:
        result = check_via_access_log(
            db,
            resume_id=resume_id,
            company_id=company_id,
            limit=resolved_limit,
            window_seconds=resolved_window,
            now=now,
        )

    _log_decision(resume_id=resume_id, company_id=company_id, result=result)
    if not result.allowed:
        raise RateLimited(retry_after_seconds=max(1, result.retry_after_seconds))
    return result


def _log_decision(*, resume_id: int, company_id: int, result: RateLimitResult) -> None:
    payload = {
        "event": "resume_access_rate_limit",
        "resume_id": resume_id,
        "company_id": company_id,
        "limiter_key": result.limiter_key,
        "window_seconds": result.window_seconds,
        "limit": result.limit,
        "current_count": result.count,
        "remaining": result.remaining,
        "decision": "allow" if result.allowed else "block",
    }
    logger.info(json.dumps(payload, separators=(",", ":")))
