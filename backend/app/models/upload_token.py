from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.core.base import Base


class UploadToken(Base):
    """
    Pending upload slot. Only the sha256 of the token is stored; the raw
    value is handed to the client once.
    """

    __tablename__ = "upload_tokens"

    token_hash = Column(String(64), primary_key=True)
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    object_key = Column(String(512), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
