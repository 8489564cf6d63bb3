from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.dependencies.internal import require_internal_token
from app.schemas.resume_access import ApplicationGrantIn, ApplicationGrantOut, ScanResultIn, ScanResultOut
from app.services.grants import record_grant_for_application
from app.services.resumes import record_scan_result


router = APIRouter(
    prefix="/internal/resumes",
    tags=["internal"],
    include_in_schema=False,
    dependencies=[Depends(require_internal_token)],
)

logger = logging.getLogger(__name__)


@router.post("/{resume_id}/scan-result", response_model=ScanResultOut)
def post_scan_result(
    resume_id: int,
    payload: ScanResultIn,
    db: Session = Depends(get_db),
):
    """
    Callback for the malware scanner.

    Payload:
      {
        "verdict": "clean" | "rejected" (also accepts ok / infected / error / pending),
        "message": "..."   (optional)
      }

    Redeliveries are harmless: once a resume is clean or rejected it stays that way.
    """
    resume = record_scan_result(db, resume_id, payload.verdict, message=payload.message)
    logger.info("Scan result applied resume_id=%s verdict=%s status=%s", resume_id, payload.verdict, resume.scan_status)
    return {"ok": True, "resume_id": resume.id, "scan_status": resume.scan_status}


@router.post("/application-grants", response_model=ApplicationGrantOut)
def post_application_grant(
    payload: ApplicationGrantIn,
    db: Session = Depends(get_db),
):
    """
    Called by the application pipeline after a student applies with a resume.
    Idempotent.
    """
    share = record_grant_for_application(db, payload.application_id)
    if share is None:
        return {"ok": True, "application_id": payload.application_id}
    return {
        "ok": True,
        "application_id": payload.application_id,
        "share_id": share.id,
        "resume_id": share.resume_id,
        "company_id": share.company_id,
    }
