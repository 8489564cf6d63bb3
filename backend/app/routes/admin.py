from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.identity import Actor
from app.core.config import settings
from app.core.database import get_db
from app.dependencies.admin import require_admin_actor
from app.schemas.resume_access import AccessLogCleanupIn, AccessLogCleanupOut
from app.services.resume_stats import cleanup_logs_older_than
from app.tasks.resume_stats import enqueue_stats_recompute

router = APIRouter(prefix="/admin", tags=["admin"])

logger = logging.getLogger(__name__)


@router.post("/resume-access-logs/cleanup", response_model=AccessLogCleanupOut)
def cleanup_access_logs(
    payload: AccessLogCleanupIn | None = None,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin_actor),
):
    days = (payload.older_than_days if payload else None) or settings.ACCESS_LOG_RETENTION_DAYS
    deleted, affected = cleanup_logs_older_than(db, timedelta(days=days))
    for resume_id in affected:
        enqueue_stats_recompute(resume_id)
    logger.info("Admin %s purged %s access logs older than %s days", admin.user_id, deleted, days)
    return {"deleted": deleted, "cutoff_days": days, "resumes_recomputed": len(affected)}
