from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.auth.identity import Actor
from app.core.database import get_db
from app.core.timeutils import utcnow
from app.dependencies.auth import get_current_actor
from app.dependencies.rate_limit import require_rate_limit
from app.schemas.resume import (
    ConfirmUploadIn,
    OwnerStatsSummaryOut,
    ResumeOut,
    ResumeStatsOut,
    ShareCreateIn,
    ShareOut,
    SignedUrlIn,
    SignedUrlOut,
    UploadSlotOut,
    VisibilityIn,
)
from app.services.errors import Forbidden
from app.services.grants import create_share, is_share_active, list_shares, revoke_share
from app.services.resume_stats import get_cached_stats, owner_stats_summary
from app.services.resumes import delete_resume, get_owned_resume, list_owner_resumes, set_primary, set_visibility
from app.services.signed_links import AccessContext, issue_link
from app.services.uploads import confirm_upload, issue_upload_slot
from app.tasks.resume_stats import enqueue_stats_recompute

router = APIRouter(prefix="/resumes", tags=["resumes"], dependencies=[Depends(get_current_actor)])

logger = logging.getLogger(__name__)


def _require_owner_role(actor: Actor) -> None:
    # Resumes belong to students; company/admin accounts can't hold any.
    if actor.role != "student":
        raise Forbidden("Only student accounts can manage resumes", reason="student_required")


@router.post(
    "/upload-url",
    response_model=UploadSlotOut,
    dependencies=[Depends(require_rate_limit("resume_upload_url", limit=10, window_seconds=60))],
)
def request_upload_url(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _require_owner_role(actor)
    return issue_upload_slot(db, actor.user_id)


@router.post(
    "/confirm-upload",
    response_model=ResumeOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit("resume_confirm_upload", limit=20, window_seconds=60))],
)
def confirm_resume_upload(
    payload: ConfirmUploadIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _require_owner_role(actor)
    return confirm_upload(
        db,
        token=payload.token,
        owner_id=actor.user_id,
        filename=payload.filename,
        size_bytes=payload.size_bytes,
        mime_type=payload.mime_type,
        visibility=payload.visibility,
        is_primary=payload.is_primary,
    )


@router.get("", response_model=list[ResumeOut])
def list_resumes(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return list_owner_resumes(db, actor.user_id)


@router.get("/stats/summary", response_model=OwnerStatsSummaryOut)
def get_stats_summary(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return owner_stats_summary(db, actor.user_id)


@router.patch("/{resume_id}/visibility", response_model=ResumeOut)
def update_visibility(
    resume_id: int,
    payload: VisibilityIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return set_visibility(db, resume_id, actor.user_id, payload.visibility)


@router.post("/{resume_id}/primary", response_model=ResumeOut)
def make_primary(
    resume_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return set_primary(db, resume_id, actor.user_id)


@router.delete("/{resume_id}")
def remove_resume(
    resume_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    delete_resume(db, resume_id, actor.user_id)
    return {"deleted": True}


@router.post(
    "/{resume_id}/signed-url",
    response_model=SignedUrlOut,
    dependencies=[Depends(require_rate_limit("resume_signed_url", limit=60, window_seconds=60))],
)
def create_signed_url(
    resume_id: int,
    request: Request,
    payload: SignedUrlIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    payload = payload or SignedUrlIn()
    context = AccessContext(
        application_id=payload.application_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    link = issue_link(db, resume_id, actor, payload.access_type, context)
    if link.logged:
        enqueue_stats_recompute(resume_id)
    return {"url": link.url, "expires_in": link.expires_in, "access_type": link.access_type}


@router.get("/{resume_id}/stats", response_model=ResumeStatsOut)
def get_resume_stats(
    resume_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    resume = get_owned_resume(db, resume_id, actor.user_id)
    stats = get_cached_stats(db, resume.id)
    if stats is None:
        # Nothing aggregated yet; report zeros rather than blocking on a recompute.
        return ResumeStatsOut(resume_id=resume.id)
    return stats


@router.post(
    "/{resume_id}/shares",
    response_model=ShareOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit("resume_share_create", limit=30, window_seconds=60))],
)
def share_resume(
    resume_id: int,
    payload: ShareCreateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    share = create_share(
        db,
        resume_id=resume_id,
        owner_id=actor.user_id,
        company_id=payload.company_id,
        access_level=payload.access_level,
        expires_in_days=payload.expires_in_days,
    )
    logger.info("Resume %s shared with company %s by user %s", resume_id, payload.company_id, actor.user_id)
    return share


@router.get("/{resume_id}/shares", response_model=list[ShareOut])
def get_shares(
    resume_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    now = utcnow()
    return [
        ShareOut.model_validate(share).model_copy(update={"is_active": is_share_active(share, now)})
        for share in list_shares(db, resume_id=resume_id, owner_id=actor.user_id)
    ]


@router.delete("/{resume_id}/shares/{company_id}")
def unshare_resume(
    resume_id: int,
    company_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    revoke_share(db, resume_id=resume_id, owner_id=actor.user_id, company_id=company_id)
    return {"deleted": True}
