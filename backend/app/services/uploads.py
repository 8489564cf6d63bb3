from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import generate_upload_token, hash_token
from app.core.timeutils import utcnow
from app.models.resume import Resume
from app.services.errors import Conflict, InvalidInput, QuotaExceeded, TokenInvalid, TokenOwnerMismatch
from app.services.resumes import ALLOWED_MIME_TYPES, create_resume_record
from app.services.storage import build_resume_key, head_object, presign_upload
from app.services.upload_tokens import UploadSlotBinding, UploadTokenStore, get_upload_token_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSlot:
    object_key: str
    token: str
    upload_url: str
    expires_in: int
    max_file_size: int
    allowed_types: list[str] = field(default_factory=list)


def _quota_zone() -> tzinfo:
    name = settings.UPLOAD_QUOTA_TIMEZONE or "UTC"
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        if name.upper() != "UTC":
            logger.warning("Unknown UPLOAD_QUOTA_TIMEZONE=%s; using UTC", name)
        return timezone.utc


def quota_window(now: datetime) -> tuple[datetime, datetime]:
    """
    [local midnight today, local midnight tomorrow) in the quota timezone.
    """
    local_now = now.astimezone(_quota_zone())
    start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def count_uploads_today(db: Session, owner_id: int, now: datetime) -> int:
    start, _ = quota_window(now)
    start_utc = start.astimezone(timezone.utc)
    return db.query(Resume).filter(Resume.owner_id == owner_id, Resume.uploaded_at >= start_utc).count()


def issue_upload_slot(
    db: Session,
    owner_id: int,
    *,
    daily_quota: int | None = None,
    store: UploadTokenStore | None = None,
    now: datetime | None = None,
) -> UploadSlot:
    now = now or utcnow()
    quota = settings.DAILY_UPLOAD_QUOTA if daily_quota is None else daily_quota

    used = count_uploads_today(db, owner_id, now)
    if used >= quota:
        _, window_end = quota_window(now)
        raise QuotaExceeded(
            f"Daily upload limit reached ({quota} resumes/day)",
            retry_after_seconds=max(1, int((window_end - now).total_seconds())),
        )

    ttl = settings.UPLOAD_TOKEN_TTL_SECONDS
    object_key = build_resume_key(owner_id, now_ms=int(now.timestamp() * 1000))
    presigned = presign_upload(object_key, expires_in=ttl)

    token = generate_upload_token()
    store = store or get_upload_token_store(db)
    store.put(
        hash_token(token),
        UploadSlotBinding(owner_id=owner_id, object_key=object_key, expires_at=now + timedelta(seconds=ttl)),
    )
    db.commit()

    logger.info("Issued upload slot owner_id=%s key=%s uploads_today=%s", owner_id, object_key, used)
    return UploadSlot(
        object_key=object_key,
        token=token,
        upload_url=presigned.upload_url,
        expires_in=ttl,
        max_file_size=settings.MAX_RESUME_BYTES,
        allowed_types=sorted(ALLOWED_MIME_TYPES),
    )


def _lookup(store: UploadTokenStore, token: str | None, owner_id: int, now: datetime) -> UploadSlotBinding:
    if not token:
        raise TokenInvalid()
    binding = store.get(hash_token(token), now=now)
    if binding is None:
        raise TokenInvalid()
    if binding.owner_id != owner_id:
        raise TokenOwnerMismatch()
    return binding


def redeem_upload_slot(
    db: Session,
    token: str | None,
    owner_id: int,
    *,
    store: UploadTokenStore | None = None,
    now: datetime | None = None,
) -> UploadSlotBinding:
    """
    Single-use: the binding is deleted on success, and a concurrent second
    redeem loses the consume race and gets TokenInvalid. The deletion is
    flushed; the caller commits.
    """
    now = now or utcnow()
    store = store or get_upload_token_store(db)
    binding = _lookup(store, token, owner_id, now)
    if not store.consume(hash_token(token)):
        raise TokenInvalid()
    return binding


def confirm_upload(
    db: Session,
    *,
    token: str | None,
    owner_id: int,
    filename: str | None,
    size_bytes: int | None,
    mime_type: str | None,
    visibility: str | None = "private",
    is_primary: bool = False,
    store: UploadTokenStore | None = None,
    now: datetime | None = None,
) -> Resume:
    """
    Redeem the slot and create the resume record. The token is only consumed
    once the bytes are actually in storage, so an early confirm can be retried.
    """
    now = now or utcnow()
    store = store or get_upload_token_store(db)

    binding = _lookup(store, token, owner_id, now)
    meta = head_object(binding.object_key)
    if meta is None:
        raise Conflict("Upload not found in storage yet. Try again in a moment.")

    binding = redeem_upload_slot(db, token, owner_id, store=store, now=now)
    # Trust what storage holds over what the client declared; an empty object is rejected.
    stored_size = int(meta.get("ContentLength") or 0)
    if size_bytes is not None and int(size_bytes) != stored_size:
        logger.info("Declared size %s differs from stored size %s for %s", size_bytes, stored_size, binding.object_key)

    try:
        resume = create_resume_record(
            db,
            owner_id=owner_id,
            object_key=binding.object_key,
            filename=filename,
            size_bytes=stored_size,
            mime_type=mime_type,
            visibility=visibility,
            is_primary=is_primary,
            now=now,
        )
    except (InvalidInput, Conflict):
        # Token stays consumed; the object has already been cleaned up on validation failures.
        db.commit()
        raise
    db.commit()
    db.refresh(resume)
    logger.info("Confirmed upload owner_id=%s resume_id=%s size=%s", owner_id, resume.id, resume.file_size)
    return resume


def sweep_expired_upload_tokens(db: Session, *, now: datetime | None = None) -> int:
    store = get_upload_token_store(db)
    removed = store.sweep(now=now or utcnow())
    db.commit()
    return removed
