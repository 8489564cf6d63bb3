from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Visibility = Literal["private", "public", "restricted"]
AccessType = Literal["view", "download"]
AccessLevel = Literal["view", "download"]


# ---------- INPUT SCHEMAS ----------

class ConfirmUploadIn(BaseModel):
    token: str = Field(min_length=1)
    filename: str = Field(min_length=1, max_length=512)
    size_bytes: int = Field(gt=0, description="File size in bytes (re-checked against storage)")
    mime_type: str = Field(min_length=1, max_length=255)
    visibility: str = "private"
    is_primary: bool = False


class VisibilityIn(BaseModel):
    visibility: str = Field(min_length=1, max_length=20)


class SignedUrlIn(BaseModel):
    access_type: str = "view"
    application_id: int | None = None


class ShareCreateIn(BaseModel):
    company_id: int
    access_level: str = "download"
    # null / 0 -> no expiry
    expires_in_days: int | None = Field(default=30, ge=0, le=365)


# ---------- OUTPUT SCHEMAS ----------

class ResumeOut(BaseModel):
    id: int
    owner_id: int
    file_name: str
    file_size: int
    mime_type: str
    visibility: Visibility
    # pending | clean | rejected
    scan_status: str
    scan_checked_at: datetime | None = None
    is_primary: bool
    views_count: int
    downloads_count: int
    uploaded_at: datetime
    last_viewed_at: datetime | None = None
    last_downloaded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PublicResumeOut(BaseModel):
    """What a company sees while browsing; no storage key, no counters."""

    id: int
    owner_id: int
    file_name: str
    mime_type: str
    file_size: int
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PublicResumePageOut(BaseModel):
    items: list[PublicResumeOut]
    page: int
    limit: int
    total: int


class UploadSlotOut(BaseModel):
    upload_url: str
    token: str
    object_key: str
    expires_in: int
    max_file_size: int
    allowed_types: list[str]


class SignedUrlOut(BaseModel):
    url: str
    expires_in: int
    access_type: AccessType


class ShareOut(BaseModel):
    id: int
    resume_id: int
    company_id: int
    access_level: AccessLevel
    # manual | application
    source: str
    expires_at: datetime | None = None
    created_at: datetime
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class ViewerOut(BaseModel):
    company_id: int
    view_count: int
    download_count: int
    last_accessed_at: datetime | None = None


class ResumeStatsOut(BaseModel):
    resume_id: int
    total_views: int = 0
    total_downloads: int = 0
    unique_company_views: int = 0
    unique_company_downloads: int = 0
    last_viewed_at: datetime | None = None
    last_downloaded_at: datetime | None = None
    viewers: list[ViewerOut] = Field(default_factory=list)
    # None until the first recompute has landed
    computed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class OwnerResumeSummaryOut(BaseModel):
    resume_id: int
    file_name: str
    visibility: Visibility
    views: int
    downloads: int
    uploaded_at: datetime
    last_viewed_at: datetime | None = None


class OwnerStatsSummaryOut(BaseModel):
    resumes: list[OwnerResumeSummaryOut]
    total_views: int
    total_downloads: int
    companies: list[ViewerOut]
