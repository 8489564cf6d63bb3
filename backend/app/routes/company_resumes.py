from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.identity import Actor
from app.core.database import get_db
from app.core.timeutils import as_utc
from app.dependencies.auth import get_current_actor
from app.dependencies.rate_limit import require_rate_limit
from app.schemas.resume import PublicResumePageOut
from app.schemas.resume_access import CompanyAnalyticsOut
from app.services.errors import Forbidden
from app.services.resume_stats import company_access_analytics
from app.services.resumes import MAX_DISCOVER_PAGE_SIZE, discover_public_resumes

router = APIRouter(prefix="/company/resumes", tags=["company"], dependencies=[Depends(get_current_actor)])


@router.get(
    "/discover",
    response_model=PublicResumePageOut,
    dependencies=[Depends(require_rate_limit("resume_discover", limit=60, window_seconds=60))],
)
def discover_resumes(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_DISCOVER_PAGE_SIZE),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = discover_public_resumes(db, actor, page=page, limit=limit)
    return {"items": result.items, "page": result.page, "limit": result.limit, "total": result.total}


@router.get("/analytics", response_model=CompanyAnalyticsOut)
def get_access_analytics(
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    resume_id: int | None = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not actor.is_company:
        raise Forbidden("Only companies can view access analytics", reason="company_required")
    return company_access_analytics(
        db,
        actor.company_id,
        start=as_utc(start_date),
        end=as_utc(end_date),
        resume_id=resume_id,
    )
