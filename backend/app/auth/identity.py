# app/auth/identity.py
"""
Canonical authenticated actor.

Route handlers and services reason about "who is asking?" through this object
instead of raw token claims. The identity provider has already verified the
bearer token; we only map its `sub`/`role` claims onto our own user and, for
company accounts, the company they act for.

INTERNAL ONLY: never returned to clients.
"""
from __future__ import annotations

from dataclasses import dataclass

ROLE_STUDENT = "student"
ROLE_COMPANY = "company"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """
    Attributes:
        user_id: Internal user id.
        role: ``student`` | ``company`` | ``admin``.
        company_id: Company the actor represents. Only set for company accounts
                    that have a company profile.
    """

    user_id: int
    role: str
    company_id: int | None = None

    @property
    def is_company(self) -> bool:
        return self.role == ROLE_COMPANY and self.company_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def owns(self, resume) -> bool:
        return resume is not None and resume.owner_id == self.user_id

    @classmethod
    def student(cls, user_id: int) -> Actor:
        return cls(user_id=user_id, role=ROLE_STUDENT)

    @classmethod
    def company(cls, user_id: int, company_id: int) -> Actor:
        return cls(user_id=user_id, role=ROLE_COMPANY, company_id=company_id)

    def to_log_dict(self) -> dict:
        return {"user_id": self.user_id, "role": self.role, "company_id": self.company_id}
