from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.identity import Actor
from app.core.config import settings
from app.core.timeutils import utcnow
from app.models.application import Application
from app.models.resume import VISIBILITIES, Resume
from app.models.resume_access_log import ResumeAccessLog
from app.models.resume_share import ResumeShare
from app.models.resume_stats import ResumeStats
from app.models.user import User
from app.services.errors import Conflict, Forbidden, InvalidInput, NotFound, ScanNotClean
from app.services.storage import RESUME_MIME_EXTENSIONS, delete_object_best_effort, key_belongs_to_owner

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(RESUME_MIME_EXTENSIONS)
_FILENAME_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]")
MAX_FILENAME_LENGTH = 255
MAX_DISCOVER_PAGE_SIZE = 100


@dataclass
class ResumePage:
    items: list[Resume]
    page: int
    limit: int
    total: int


def sanitize_filename(raw: str | None) -> str:
    name = _FILENAME_UNSAFE_RE.sub("_", (raw or "").strip())[:MAX_FILENAME_LENGTH]
    # Nothing but separators/dots left means nothing usable was supplied.
    if not name.strip("._-"):
        return ""
    return name


def normalize_visibility(raw: str | None) -> str:
    visibility = (raw or "").strip().lower()
    if visibility not in VISIBILITIES:
        raise InvalidInput(f"Invalid visibility: {raw}")
    return visibility


def get_owned_resume(db: Session, resume_id: int, owner_id: int) -> Resume:
    """
    404 for both "missing" and "someone else's" so ids can't be enumerated.
    """
    resume = db.query(Resume).filter(Resume.id == resume_id, Resume.owner_id == owner_id).first()
    if not resume:
        raise NotFound("Resume not found")
    return resume


def _reject_upload(object_key: str, message: str) -> InvalidInput:
    # Bytes are already in storage; don't leave them orphaned.
    delete_object_best_effort(object_key)
    return InvalidInput(message)


def _lock_owner(db: Session, owner_id: int) -> None:
    """
    Serializes primary-flag transitions per owner (no-op on SQLite).
    """
    db.execute(select(User.id).where(User.id == owner_id).with_for_update()).first()


def _clear_primary(db: Session, owner_id: int) -> None:
    (
        db.query(Resume)
        .filter(Resume.owner_id == owner_id, Resume.is_primary.is_(True))
        .update({Resume.is_primary: False}, synchronize_session="fetch")
    )


def create_resume_record(
    db: Session,
    *,
    owner_id: int,
    object_key: str,
    filename: str | None,
    size_bytes: int | None,
    mime_type: str | None,
    visibility: str | None = "private",
    is_primary: bool = False,
    now: datetime | None = None,
) -> Resume:
    """
    Persist a confirmed upload. Any validation failure deletes the uploaded object
    before raising.
    """
    if not key_belongs_to_owner(object_key, owner_id):
        # Not this owner's slot: refuse, and leave the object alone.
        raise InvalidInput("Object key does not belong to this user")

    mime = (mime_type or "").strip().lower()
    if mime not in ALLOWED_MIME_TYPES:
        allowed = ", ".join(RESUME_MIME_EXTENSIONS.values())
        raise _reject_upload(object_key, f"Invalid file type. Allowed: {allowed}")

    size = int(size_bytes or 0)
    if size <= 0:
        raise _reject_upload(object_key, "Upload is empty")
    if size > settings.MAX_RESUME_BYTES:
        max_mb = settings.MAX_RESUME_BYTES / (1024 * 1024)
        raise _reject_upload(object_key, f"File too large (max {max_mb:.0f} MB)")

    safe_name = sanitize_filename(filename)
    if not safe_name:
        raise _reject_upload(object_key, "Invalid file name")

    vis = (visibility or "private").strip().lower()
    if vis not in VISIBILITIES:
        raise _reject_upload(object_key, f"Invalid visibility: {visibility}")

    if db.query(Resume.id).filter(Resume.object_key == object_key).first():
        raise Conflict("A resume already exists for this upload")

    if is_primary:
        _lock_owner(db, owner_id)
        _clear_primary(db, owner_id)

    resume = Resume(
        owner_id=owner_id,
        object_key=object_key,
        file_name=safe_name,
        file_size=size,
        mime_type=mime,
        visibility=vis,
        is_primary=bool(is_primary),
        scan_status="clean" if settings.SCAN_AUTO_CLEAN else "pending",
        uploaded_at=now or utcnow(),
    )
    db.add(resume)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Resume could not be saved due to a concurrent update") from exc
    return resume


def list_owner_resumes(db: Session, owner_id: int) -> list[Resume]:
    # Primary first, then newest. Includes resumes still waiting on the scanner.
    return (
        db.query(Resume)
        .filter(Resume.owner_id == owner_id)
        .order_by(Resume.is_primary.desc(), Resume.uploaded_at.desc(), Resume.id.desc())
        .all()
    )


def set_visibility(db: Session, resume_id: int, owner_id: int, visibility: str | None) -> Resume:
    vis = normalize_visibility(visibility)
    resume = get_owned_resume(db, resume_id, owner_id)
    if vis == "public" and resume.scan_status == "rejected":
        raise ScanNotClean("A resume that failed the security scan cannot be made public")
    resume.visibility = vis
    db.commit()
    db.refresh(resume)
    return resume


def set_primary(db: Session, resume_id: int, owner_id: int) -> Resume:
    """
    Unset-all then set-one, in one transaction under the owner lock.
    """
    resume = get_owned_resume(db, resume_id, owner_id)
    _lock_owner(db, owner_id)
    _clear_primary(db, owner_id)
    resume.is_primary = True
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Another primary resume update is in progress") from exc
    db.refresh(resume)
    return resume


def delete_resume(db: Session, resume_id: int, owner_id: int) -> None:
    resume = get_owned_resume(db, resume_id, owner_id)
    object_key = resume.object_key

    db.query(ResumeShare).filter(ResumeShare.resume_id == resume.id).delete(synchronize_session=False)
    db.query(ResumeAccessLog).filter(ResumeAccessLog.resume_id == resume.id).delete(synchronize_session=False)
    db.query(ResumeStats).filter(ResumeStats.resume_id == resume.id).delete(synchronize_session=False)
    (
        db.query(Application)
        .filter(Application.resume_id == resume.id)
        .update({Application.resume_id: None}, synchronize_session=False)
    )
    db.delete(resume)
    db.commit()

    if not delete_object_best_effort(object_key):
        logger.error("Resume %s deleted but storage object %s could not be removed", resume_id, object_key)


def record_scan_result(
    db: Session,
    resume_id: int,
    verdict: str | None,
    *,
    message: str | None = None,
    now: datetime | None = None,
) -> Resume:
    """
    Apply the external scanner's verdict. Final verdicts (clean/rejected) are
    sticky so redelivered callbacks are harmless.
    """
    raw = (verdict or "").strip().lower()
    if raw in {"clean", "ok"}:
        result = "clean"
    elif raw in {"rejected", "infected"}:
        result = "rejected"
    elif raw in {"error", "pending"}:
        result = "pending"
    else:
        raise InvalidInput(f"Invalid scan verdict: {verdict}")

    resume = db.query(Resume).filter(Resume.id == resume_id).first()
    if not resume:
        raise NotFound("Resume not found")

    if resume.scan_status in {"clean", "rejected"}:
        return resume

    resume.scan_status = result
    resume.scan_checked_at = now or utcnow()
    resume.scan_message = _clip(message)
    db.commit()
    db.refresh(resume)

    if result == "rejected":
        delete_object_best_effort(resume.object_key)
    return resume


def _clip(msg: str | None, *, max_len: int = 1024) -> str | None:
    if not isinstance(msg, str) or not msg.strip():
        return None
    s = msg.strip()
    return s if len(s) <= max_len else s[: max_len - 3] + "..."


def discover_public_resumes(db: Session, actor: Actor, *, page: int = 1, limit: int = 20) -> ResumePage:
    if not actor.is_company:
        raise Forbidden("Only companies can discover resumes", reason="company_required")

    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 20), MAX_DISCOVER_PAGE_SIZE))
    query = db.query(Resume).filter(Resume.visibility == "public", Resume.scan_status == "clean")
    total = query.count()
    items = (
        query.order_by(Resume.uploaded_at.desc(), Resume.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ResumePage(items=items, page=page, limit=limit, total=total)


