from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.identity import Actor
from app.core.timeutils import as_utc, utcnow
from app.models.application import Application
from app.models.company import Company
from app.models.posting import Posting
from app.models.resume import Resume
from app.models.resume_share import ACCESS_LEVELS, ResumeShare
from app.services.errors import AlreadyShared, InvalidInput, NotFound, ScanNotClean
from app.services.resumes import get_owned_resume

logger = logging.getLogger(__name__)

DEFAULT_SHARE_DAYS = 30
MAX_SHARE_DAYS = 365

# access level -> access types it covers
_LEVEL_COVERS = {
    "view": {"view"},
    "download": {"view", "download"},
}


@dataclass(frozen=True)
class GrantDecision:
    allowed: bool
    access_level: str | None = None
    source: str | None = None  # owner | public | share | application
    reason: str | None = None  # set on denials

    @classmethod
    def allow(cls, access_level: str, source: str) -> GrantDecision:
        return cls(allowed=True, access_level=access_level, source=source)

    @classmethod
    def deny(cls, reason: str) -> GrantDecision:
        return cls(allowed=False, reason=reason)

    def permits(self, access_type: str) -> bool:
        return self.allowed and access_type in _LEVEL_COVERS.get(self.access_level or "", set())


def is_share_active(share: ResumeShare, now: datetime) -> bool:
    expires_at = as_utc(share.expires_at)
    return expires_at is None or expires_at > now


def find_active_share(db: Session, resume_id: int, company_id: int, now: datetime) -> ResumeShare | None:
    share = (
        db.query(ResumeShare)
        .filter(ResumeShare.resume_id == resume_id, ResumeShare.company_id == company_id)
        .first()
    )
    if share and is_share_active(share, now):
        return share
    return None


def has_application_link(db: Session, resume_id: int, company_id: int) -> bool:
    return (
        db.query(Application.id)
        .join(Posting, Posting.id == Application.posting_id)
        .filter(Application.resume_id == resume_id, Posting.company_id == company_id)
        .first()
        is not None
    )


def _application_matches(db: Session, application_id: int, resume: Resume, company_id: int) -> bool:
    row = (
        db.query(Application.resume_id, Posting.company_id)
        .join(Posting, Posting.id == Application.posting_id)
        .filter(Application.id == application_id)
        .first()
    )
    if row is None:
        return False
    return row.resume_id == resume.id and row.company_id == company_id


def authorize(
    db: Session,
    resume: Resume,
    actor: Actor,
    *,
    application_id: int | None = None,
    now: datetime | None = None,
) -> GrantDecision:
    """
    First match wins:
      1. owner -> download
      (non-owners never see a resume that isn't scan-clean)
      2. public + clean -> download
      3. active explicit share -> share.access_level
      4. application to one of the company's postings -> download
      5. deny

    When the request names an application, that application alone decides:
    its resume and its posting's company must both match.
    """
    now = now or utcnow()

    if actor.owns(resume):
        return GrantDecision.allow("download", "owner")

    if not actor.is_company:
        return GrantDecision.deny("no_grant")

    if resume.scan_status != "clean":
        return GrantDecision.deny("scan_not_clean")

    company_id = actor.company_id

    if application_id is not None:
        if _application_matches(db, application_id, resume, company_id):
            return GrantDecision.allow("download", "application")
        return GrantDecision.deny("application_mismatch")

    if resume.visibility == "public":
        return GrantDecision.allow("download", "public")

    share = find_active_share(db, resume.id, company_id, now)
    if share is not None:
        return GrantDecision.allow(share.access_level, "share")

    if has_application_link(db, resume.id, company_id):
        return GrantDecision.allow("download", "application")

    return GrantDecision.deny("no_grant")


# ----------------------------
# Grant management
# ----------------------------
def _normalize_access_level(raw: str | None) -> str:
    level = (raw or "download").strip().lower()
    if level not in ACCESS_LEVELS:
        raise InvalidInput(f"Invalid access_level: {raw}")
    return level


def _share_expiry(expires_in_days: int | None, now: datetime) -> datetime | None:
    if not expires_in_days:
        return None
    days = int(expires_in_days)
    if days < 0 or days > MAX_SHARE_DAYS:
        raise InvalidInput(f"expires_in_days must be between 0 and {MAX_SHARE_DAYS}")
    return now + timedelta(days=days)


def create_share(
    db: Session,
    *,
    resume_id: int,
    owner_id: int,
    company_id: int,
    access_level: str | None = "download",
    expires_in_days: int | None = DEFAULT_SHARE_DAYS,
    now: datetime | None = None,
) -> ResumeShare:
    now = now or utcnow()
    level = _normalize_access_level(access_level)
    expires_at = _share_expiry(expires_in_days, now)
    resume = get_owned_resume(db, resume_id, owner_id)
    if resume.scan_status == "rejected":
        raise ScanNotClean("A resume that failed the security scan cannot be shared")

    if not db.get(Company, company_id):
        raise NotFound("Company not found")

    existing = (
        db.query(ResumeShare)
        .filter(ResumeShare.resume_id == resume.id, ResumeShare.company_id == company_id)
        .first()
    )
    if existing is not None:
        if is_share_active(existing, now):
            raise AlreadyShared()
        # A lapsed grant is renewed in place rather than blocking re-sharing.
        existing.access_level = level
        existing.expires_at = expires_at
        existing.source = "manual"
        db.commit()
        db.refresh(existing)
        return existing

    share = ResumeShare(
        resume_id=resume.id,
        owner_id=resume.owner_id,
        company_id=company_id,
        access_level=level,
        source="manual",
        expires_at=expires_at,
    )
    db.add(share)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AlreadyShared() from exc
    db.refresh(share)
    return share


def revoke_share(db: Session, *, resume_id: int, owner_id: int, company_id: int) -> None:
    resume = get_owned_resume(db, resume_id, owner_id)
    deleted = (
        db.query(ResumeShare)
        .filter(ResumeShare.resume_id == resume.id, ResumeShare.company_id == company_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFound("Share not found")
    db.commit()


def list_shares(db: Session, *, resume_id: int, owner_id: int) -> list[ResumeShare]:
    resume = get_owned_resume(db, resume_id, owner_id)
    return (
        db.query(ResumeShare)
        .filter(ResumeShare.resume_id == resume.id)
        .order_by(ResumeShare.created_at.desc(), ResumeShare.id.desc())
        .all()
    )


def _upgrade_to_standing(share: ResumeShare) -> bool:
    changed = False
    if share.access_level != "download":
        share.access_level = "download"
        changed = True
    if share.expires_at is not None:
        share.expires_at = None
        changed = True
    return changed


def record_application_resume_link(db: Session, *, resume_id: int, company_id: int) -> ResumeShare:
    """
    Materialize the implicit grant created by applying with a resume: a standing
    download-level share for (resume, company). Safe to call any number of
    times, and safe to race with an owner's explicit share.
    """
    resume = db.query(Resume).filter(Resume.id == resume_id).first()
    if not resume:
        raise NotFound("Resume not found")
    if not db.get(Company, company_id):
        raise NotFound("Company not found")

    existing = (
        db.query(ResumeShare)
        .filter(ResumeShare.resume_id == resume.id, ResumeShare.company_id == company_id)
        .first()
    )
    if existing is None:
        share = ResumeShare(
            resume_id=resume.id,
            owner_id=resume.owner_id,
            company_id=company_id,
            access_level="download",
            source="application",
            expires_at=None,
        )
        db.add(share)
        try:
            db.commit()
            db.refresh(share)
            logger.info("Application grant created resume_id=%s company_id=%s", resume.id, company_id)
            return share
        except IntegrityError:
            # Lost the race to a concurrent writer; fall through and upgrade theirs.
            db.rollback()
            existing = (
                db.query(ResumeShare)
                .filter(ResumeShare.resume_id == resume_id, ResumeShare.company_id == company_id)
                .one()
            )

    if _upgrade_to_standing(existing):
        db.commit()
        db.refresh(existing)
    return existing


def record_grant_for_application(db: Session, application_id: int) -> ResumeShare | None:
    """
    Entry point for the application pipeline: resolves the application's posting
    company and materializes the grant. Applications without a resume need none.
    """
    row = (
        db.query(Application.resume_id, Posting.company_id)
        .join(Posting, Posting.id == Application.posting_id)
        .filter(Application.id == application_id)
        .first()
    )
    if row is None:
        raise NotFound("Application not found")
    if row.resume_id is None:
        return None
    return record_application_resume_link(db, resume_id=row.resume_id, company_id=row.company_id)
