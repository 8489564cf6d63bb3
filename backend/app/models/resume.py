from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, true
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.base import Base

VISIBILITIES = ("private", "public", "restricted")
SCAN_STATUSES = ("pending", "clean", "rejected")


class Resume(Base):
    __tablename__ = "resumes"

    id = Column(Integer, primary_key=True, index=True)

    # ✅ ownership (student)
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    object_key = Column(String(512), nullable=False, unique=True, index=True)
    file_name = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    mime_type = Column(String(255), nullable=False)

    # private | public | restricted
    visibility = Column(String(20), nullable=False, server_default="private", default="private")

    # Verdict from the external malware scanner: pending | clean | rejected
    scan_status = Column(String(20), nullable=False, server_default="pending", default="pending")
    scan_checked_at = Column(DateTime(timezone=True), nullable=True)
    scan_message = Column(String(1024), nullable=True)

    is_primary = Column(Boolean, nullable=False, server_default="false", default=False)

    # Third-party access counters (owner self-access is never counted)
    views_count = Column(Integer, nullable=False, server_default="0", default=0)
    downloads_count = Column(Integer, nullable=False, server_default="0", default=0)

    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    last_viewed_at = Column(DateTime(timezone=True), nullable=True)
    last_downloaded_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("User")

    __table_args__ = (
        # At most one primary resume per owner.
        Index(
            "uq_resumes_owner_primary",
            "owner_id",
            unique=True,
            postgresql_where=is_primary.is_(true()),
            sqlite_where=is_primary.is_(true()),
        ),
        Index("ix_resumes_visibility_scan", "visibility", "scan_status"),
        CheckConstraint("visibility IN ('private', 'public', 'restricted')", name="ck_resumes_visibility"),
        CheckConstraint("scan_status IN ('pending', 'clean', 'rejected')", name="ck_resumes_scan_status"),
    )

    @property
    def is_clean(self) -> bool:
        return self.scan_status == "clean"
