# app/models/user.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from app.core.base import Base

USER_ROLES = ("student", "company", "admin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # `sub` claim from the identity provider
    external_subject = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    name = Column(String(100), nullable=True)

    # student | company | admin
    role = Column(String(20), nullable=False, server_default="student")
    is_active = Column(Boolean, nullable=False, server_default="true", default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
