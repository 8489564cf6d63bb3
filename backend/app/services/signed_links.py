from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.auth.identity import Actor
from app.core.config import settings
from app.core.security import hash_signed_url
from app.core.timeutils import utcnow
from app.models.resume import Resume
from app.models.resume_access_log import ResumeAccessLog
from app.services.access_limiter import check_access_rate
from app.services.errors import Forbidden, InvalidInput, NotFound
from app.services.grants import authorize
from app.services.storage import presign_download

logger = logging.getLogger(__name__)

ACCESS_TYPES = ("view", "download")

_DENIAL_MESSAGES = {
    "scan_not_clean": "This resume is not available yet",
    "application_mismatch": "Not authorized to view this resume for that application",
    "insufficient_access_level": "Your access to this resume is view-only",
}


@dataclass(frozen=True)
class IssuedLink:
    url: str
    expires_in: int
    access_type: str
    logged: bool


@dataclass(frozen=True)
class AccessContext:
    application_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def normalize_access_type(raw: str | None) -> str:
    access_type = (raw or "view").strip().lower()
    if access_type not in ACCESS_TYPES:
        raise InvalidInput(f"Invalid access_type: {raw}")
    return access_type


def issue_link(
    db: Session,
    resume_id: int,
    actor: Actor,
    access_type: str | None = "view",
    context: AccessContext | None = None,
    *,
    now: datetime | None = None,
) -> IssuedLink:
    """
    Steps, stopping at the first failure:
      load -> grant check -> rate limit -> mint URL -> log + count.
    Owner self-access skips the limiter, the log and the counters.
    Recompute of the stats aggregate is left to the caller (after commit).
    """
    now = now or utcnow()
    context = context or AccessContext()
    access_type = normalize_access_type(access_type)

    resume = db.query(Resume).filter(Resume.id == resume_id).first()
    if not resume:
        raise NotFound("Resume not found")

    is_owner = actor.owns(resume)
    if not is_owner:
        decision = authorize(db, resume, actor, application_id=context.application_id, now=now)
        if not decision.allowed:
            logger.info(
                "Resume link denied resume_id=%s actor=%s reason=%s",
                resume.id,
                actor.to_log_dict(),
                decision.reason,
            )
            raise Forbidden(_DENIAL_MESSAGES.get(decision.reason or ""), reason=decision.reason or "no_grant")
        if not decision.permits(access_type):
            raise Forbidden(_DENIAL_MESSAGES["insufficient_access_level"], reason="insufficient_access_level")

        check_access_rate(db, resume_id=resume.id, company_id=actor.company_id, now=now)

    expires_in = settings.OWNER_LINK_TTL_SECONDS if is_owner else settings.COMPANY_LINK_TTL_SECONDS
    url = presign_download(
        resume.object_key,
        expires_in=expires_in,
        access_type=access_type,
        filename=resume.file_name,
    )

    if is_owner:
        return IssuedLink(url=url, expires_in=expires_in, access_type=access_type, logged=False)

    db.add(
        ResumeAccessLog(
            resume_id=resume.id,
            company_id=actor.company_id,
            actor_user_id=actor.user_id,
            access_type=access_type,
            accessed_at=now,
            ip_address=(context.ip_address or None) and context.ip_address[:64],
            user_agent=(context.user_agent or None) and context.user_agent[:512],
            signed_url_hash=hash_signed_url(url),
        )
    )
    if access_type == "download":
        resume.downloads_count = Resume.downloads_count + 1
        resume.last_downloaded_at = now
    else:
        resume.views_count = Resume.views_count + 1
        resume.last_viewed_at = now
    db.commit()

    logger.info(
        "Resume link issued resume_id=%s company_id=%s access_type=%s",
        resume.id,
        actor.company_id,
        access_type,
    )
    return IssuedLink(url=url, expires_in=expires_in, access_type=access_type, logged=True)
