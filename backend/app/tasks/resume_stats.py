from __future__ import annotations

import logging

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.celery_app import celery_app, enqueue
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.resume_stats import recompute_resume_stats
from app.services.uploads import sweep_expired_upload_tokens


logger = logging.getLogger(__name__)


def _with_db_session() -> Session:
    return SessionLocal()


@celery_app.task(name="resume_stats.recompute", bind=True, max_retries=settings.STATS_TASK_MAX_RETRIES)
def recompute_stats(self, resume_id: int) -> None:
    db = _with_db_session()
    try:
        recompute_resume_stats(db, resume_id)
    except OperationalError as exc:
        db.rollback()
        if self.request.retries >= self.max_retries:
            # Stats are a cache; the next access re-enqueues a full recompute.
            logger.error("Giving up on stats recompute for resume %s after %s retries", resume_id, self.request.retries)
            return
        countdown = settings.STATS_TASK_BACKOFF_SECONDS * (2 ** self.request.retries)
        logger.warning("Stats recompute for resume %s failed (%s); retrying in %ss", resume_id, exc, countdown)
        raise self.retry(exc=exc, countdown=countdown)
    finally:
        db.close()


@celery_app.task(name="upload_tokens.sweep_expired")
def sweep_expired_tokens() -> int:
    db = _with_db_session()
    try:
        removed = sweep_expired_upload_tokens(db)
        if removed:
            logger.info("Swept %s expired upload tokens", removed)
        return removed
    finally:
        db.close()


def enqueue_stats_recompute(resume_id: int) -> None:
    """
    Fire-and-forget. A broker outage must never fail the request that logged the access.
    """
    try:
        enqueue(recompute_stats, resume_id)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Failed to enqueue stats recompute for resume %s", resume_id)
