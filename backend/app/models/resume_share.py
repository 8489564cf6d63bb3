from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.base import Base

ACCESS_LEVELS = ("view", "download")


class ResumeShare(Base):
    """
    Explicit grant from a resume's owner to one company. Also materialized
    implicitly when a student applies to one of the company's postings.
    """

    __tablename__ = "resume_shares"

    id = Column(Integer, primary_key=True, index=True)

    resume_id = Column(
        Integer,
        ForeignKey("resumes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id = Column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # view | download
    access_level = Column(String(20), nullable=False, server_default="download", default="download")
    # manual | application
    source = Column(String(20), nullable=False, server_default="manual", default="manual")
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    resume = relationship("Resume")
    company = relationship("Company")

    __table_args__ = (
        UniqueConstraint("resume_id", "company_id", name="uq_resume_shares_resume_company"),
        CheckConstraint("access_level IN ('view', 'download')", name="ck_resume_shares_access_level"),
    )
