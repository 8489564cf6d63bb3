from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.base import Base


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)

    posting_id = Column(
        Integer,
        ForeignKey("postings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Null once the resume is deleted; the application itself survives.
    resume_id = Column(
        Integer,
        ForeignKey("resumes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # applied | reviewing | accepted | rejected | withdrawn
    status = Column(String(30), nullable=False, server_default="applied", default="applied")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    posting = relationship("Posting")
