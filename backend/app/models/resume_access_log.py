from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func

from app.core.base import Base


class ResumeAccessLog(Base):
    """
    Append-only record of every link issued to a company. Rows are never updated;
    they go away only with their resume or through the retention purge.
    """

    __tablename__ = "resume_access_logs"

    id = Column(Integer, primary_key=True, index=True)

    resume_id = Column(
        Integer,
        ForeignKey("resumes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id = Column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # view | download
    access_type = Column(String(20), nullable=False)
    # Issuance time, set by the issuer (not by the database on insert)
    accessed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    # sha256 of the issued signed URL
    signed_url_hash = Column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_resume_access_logs_window", "resume_id", "company_id", "accessed_at"),
        CheckConstraint("access_type IN ('view', 'download')", name="ck_resume_access_logs_access_type"),
    )
