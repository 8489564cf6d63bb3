from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ScanResultIn(BaseModel):
    # clean | rejected, plus the scanner's aliases (ok, infected, error, pending)
    verdict: str = Field(min_length=1, max_length=32)
    message: str | None = None


class ScanResultOut(BaseModel):
    ok: bool = True
    resume_id: int
    scan_status: str


class ApplicationGrantIn(BaseModel):
    application_id: int


class ApplicationGrantOut(BaseModel):
    ok: bool = True
    application_id: int
    share_id: int | None = None
    resume_id: int | None = None
    company_id: int | None = None


class AccessLogEntryOut(BaseModel):
    access_type: Literal["view", "download"]
    accessed_at: datetime
    ip_address: str | None = None


class CompanyResumeAnalyticsOut(BaseModel):
    resume_id: int
    file_name: str
    views: int
    downloads: int
    first_accessed_at: datetime
    last_accessed_at: datetime
    access_log: list[AccessLogEntryOut]


class CompanyAnalyticsOut(BaseModel):
    analytics: list[CompanyResumeAnalyticsOut]
    total_logs: int


class AccessLogCleanupIn(BaseModel):
    older_than_days: int | None = Field(default=None, ge=1, le=3650)


class AccessLogCleanupOut(BaseModel):
    deleted: int
    cutoff_days: int
    resumes_recomputed: int
