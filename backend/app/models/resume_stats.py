from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlalchemy.types import JSON

from app.core.base import Base


class ResumeStats(Base):
    """
    Cached usage aggregate, fully replaced by each recompute. Never a source of truth.
    """

    __tablename__ = "resume_stats"

    id = Column(Integer, primary_key=True, index=True)

    resume_id = Column(
        Integer,
        ForeignKey("resumes.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    total_views = Column(Integer, nullable=False, server_default="0", default=0)
    total_downloads = Column(Integer, nullable=False, server_default="0", default=0)
    unique_company_views = Column(Integer, nullable=False, server_default="0", default=0)
    unique_company_downloads = Column(Integer, nullable=False, server_default="0", default=0)
    last_viewed_at = Column(DateTime(timezone=True), nullable=True)
    last_downloaded_at = Column(DateTime(timezone=True), nullable=True)

    # [{"company_id", "view_count", "download_count", "last_accessed_at"}], ordered by company_id
    viewers = Column(JSON, nullable=False, default=list)

    computed_at = Column(DateTime(timezone=True), nullable=False)
