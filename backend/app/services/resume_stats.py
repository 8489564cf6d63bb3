from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.timeutils import as_utc, isoformat_utc, utcnow
from app.models.resume import Resume
from app.models.resume_access_log import ResumeAccessLog
from app.models.resume_stats import ResumeStats
from app.services.errors import InvalidInput

logger = logging.getLogger(__name__)

_AGGREGATE_FIELDS = (
    "total_views",
    "total_downloads",
    "unique_company_views",
    "unique_company_downloads",
    "last_viewed_at",
    "last_downloaded_at",
    "viewers",
)


@dataclass
class CompanyUsage:
    company_id: int
    view_count: int = 0
    download_count: int = 0
    last_accessed_at: datetime | None = None

    def add(self, access_type: str, at: datetime) -> None:
        if access_type == "download":
            self.download_count += 1
        else:
            self.view_count += 1
        if self.last_accessed_at is None or at > self.last_accessed_at:
            self.last_accessed_at = at

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "view_count": self.view_count,
            "download_count": self.download_count,
            "last_accessed_at": isoformat_utc(self.last_accessed_at),
        }


@dataclass
class UsageAggregate:
    total_views: int = 0
    total_downloads: int = 0
    unique_company_views: int = 0
    unique_company_downloads: int = 0
    last_viewed_at: datetime | None = None
    last_downloaded_at: datetime | None = None
    viewers: list[dict[str, Any]] = field(default_factory=list)

    def as_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in _AGGREGATE_FIELDS}


def _later(current: datetime | None, candidate: datetime) -> datetime:
    return candidate if current is None or candidate > current else current


def aggregate_logs(logs: Iterable[ResumeAccessLog]) -> UsageAggregate:
    """
    Pure fold over access-log rows. Uses max() for every "last" timestamp, so the
    result doesn't depend on the order rows come back in.
    """
    agg = UsageAggregate()
    per_company: dict[int, CompanyUsage] = {}
    viewed_by: set[int] = set()
    downloaded_by: set[int] = set()

    for log in logs:
        at = as_utc(log.accessed_at)
        usage = per_company.setdefault(log.company_id, CompanyUsage(company_id=log.company_id))
        usage.add(log.access_type, at)
        if log.access_type == "download":
            agg.total_downloads += 1
            downloaded_by.add(log.company_id)
            agg.last_downloaded_at = _later(agg.last_downloaded_at, at)
        else:
            agg.total_views += 1
            viewed_by.add(log.company_id)
            agg.last_viewed_at = _later(agg.last_viewed_at, at)

    agg.unique_company_views = len(viewed_by)
    agg.unique_company_downloads = len(downloaded_by)
    agg.viewers = [per_company[cid].to_dict() for cid in sorted(per_company)]
    return agg


def _stored_fields(stats: ResumeStats) -> dict[str, Any]:
    out = {name: getattr(stats, name) for name in _AGGREGATE_FIELDS}
    out["last_viewed_at"] = as_utc(out["last_viewed_at"])
    out["last_downloaded_at"] = as_utc(out["last_downloaded_at"])
    out["viewers"] = list(out["viewers"] or [])
    return out


def recompute_resume_stats(db: Session, resume_id: int, *, now: datetime | None = None) -> ResumeStats | None:
    """
    Full recompute + replace of the cached aggregate. Returns None when the
    resume has been deleted in the meantime (nothing to do).

    Re-running with no new log rows leaves the row untouched, `computed_at`
    included.
    """
    resume = db.query(Resume).filter(Resume.id == resume_id).first()
    if not resume:
        logger.info("Stats recompute skipped; resume %s no longer exists", resume_id)
        return None

    logs = (
        db.query(ResumeAccessLog)
        .filter(ResumeAccessLog.resume_id == resume.id)
        .order_by(ResumeAccessLog.accessed_at.asc(), ResumeAccessLog.id.asc())
        .all()
    )
    fields = aggregate_logs(logs).as_fields()

    stats = db.query(ResumeStats).filter(ResumeStats.resume_id == resume.id).first()
    if stats is not None and _stored_fields(stats) == fields:
        return stats

    created = stats is None
    if created:
        stats = ResumeStats(resume_id=resume.id, owner_id=resume.owner_id)
        db.add(stats)
    for name, value in fields.items():
        setattr(stats, name, value)
    stats.computed_at = now or utcnow()

    try:
        db.commit()
    except IntegrityError:
        if not created:
            raise
        # A concurrent job inserted first; replace its row instead.
        db.rollback()
        stats = db.query(ResumeStats).filter(ResumeStats.resume_id == resume_id).one()
        for name, value in fields.items():
            setattr(stats, name, value)
        stats.computed_at = now or utcnow()
        db.commit()

    db.refresh(stats)
    return stats


def get_cached_stats(db: Session, resume_id: int) -> ResumeStats | None:
    """
    Read-only: never triggers or waits for a recompute.
    """
    return db.query(ResumeStats).filter(ResumeStats.resume_id == resume_id).first()


# ----------------------------
# Owner / company reporting (computed straight from the log)
# ----------------------------
def owner_stats_summary(db: Session, owner_id: int) -> dict[str, Any]:
    resumes = (
        db.query(Resume)
        .filter(Resume.owner_id == owner_id)
        .order_by(Resume.uploaded_at.desc(), Resume.id.desc())
        .all()
    )
    if not resumes:
        return {"resumes": [], "total_views": 0, "total_downloads": 0, "companies": []}

    logs = (
        db.query(ResumeAccessLog)
        .filter(ResumeAccessLog.resume_id.in_([r.id for r in resumes]))
        .all()
    )
    by_resume: dict[int, list[ResumeAccessLog]] = {}
    for log in logs:
        by_resume.setdefault(log.resume_id, []).append(log)

    rows = []
    for resume in resumes:
        agg = aggregate_logs(by_resume.get(resume.id, []))
        rows.append(
            {
                "resume_id": resume.id,
                "file_name": resume.file_name,
                "visibility": resume.visibility,
                "views": agg.total_views,
                "downloads": agg.total_downloads,
                "uploaded_at": as_utc(resume.uploaded_at),
                "last_viewed_at": agg.last_viewed_at,
            }
        )

    overall = aggregate_logs(logs)
    return {
        "resumes": rows,
        "total_views": overall.total_views,
        "total_downloads": overall.total_downloads,
        "companies": overall.viewers,
    }


def company_access_analytics(
    db: Session,
    company_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    resume_id: int | None = None,
) -> dict[str, Any]:
    if start and end and start > end:
        raise InvalidInput("start_date must be before end_date")

    query = (
        db.query(ResumeAccessLog, Resume.file_name)
        .join(Resume, Resume.id == ResumeAccessLog.resume_id)
        .filter(ResumeAccessLog.company_id == company_id)
    )
    if start:
        query = query.filter(ResumeAccessLog.accessed_at >= start)
    if end:
        query = query.filter(ResumeAccessLog.accessed_at <= end)
    if resume_id is not None:
        query = query.filter(ResumeAccessLog.resume_id == resume_id)

    rows = query.order_by(ResumeAccessLog.accessed_at.desc(), ResumeAccessLog.id.desc()).all()

    grouped: dict[int, dict[str, Any]] = {}
    for log, file_name in rows:
        at = as_utc(log.accessed_at)
        entry = grouped.get(log.resume_id)
        if entry is None:
            entry = grouped[log.resume_id] = {
                "resume_id": log.resume_id,
                "file_name": file_name,
                "views": 0,
                "downloads": 0,
                "first_accessed_at": at,
                "last_accessed_at": at,
                "access_log": [],
            }
        if log.access_type == "download":
            entry["downloads"] += 1
        else:
            entry["views"] += 1
        entry["first_accessed_at"] = min(entry["first_accessed_at"], at)
        entry["last_accessed_at"] = max(entry["last_accessed_at"], at)
        entry["access_log"].append({"access_type": log.access_type, "accessed_at": at, "ip_address": log.ip_address})

    return {"analytics": list(grouped.values()), "total_logs": len(rows)}


def cleanup_logs_older_than(
    db: Session,
    older_than: timedelta,
    *,
    now: datetime | None = None,
) -> tuple[int, list[int]]:
    """
    Retention purge. Returns (rows deleted, resume ids whose aggregate is now stale).
    """
    if older_than <= timedelta(0):
        raise InvalidInput("Retention window must be positive")
    cutoff = (now or utcnow()) - older_than

    affected = [
        rid
        for (rid,) in db.query(ResumeAccessLog.resume_id)
        .filter(ResumeAccessLog.accessed_at < cutoff)
        .distinct()
        .order_by(ResumeAccessLog.resume_id)
        .all()
    ]
    deleted = (
        db.query(ResumeAccessLog)
        .filter(ResumeAccessLog.accessed_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Purged %s resume access logs older than %s", deleted, cutoff.isoformat())
    return int(deleted or 0), affected
