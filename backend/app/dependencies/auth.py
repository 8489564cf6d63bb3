# app/dependencies/auth.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.identity import ROLE_COMPANY, Actor
from app.core.database import get_db
from app.core.security import verify_access_claims
from app.models.company import Company
from app.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_actor(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Actor:
    """
    Validates:
      - Authorization: Bearer <token>
      - token signature + exp
      - user exists + is_active
    Returns:
      - Actor (company accounts carry their company id)
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise _unauthorized("Missing Authorization header")

    try:
        payload = verify_access_claims(creds.credentials)
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    subject = str(payload.get("sub") or "").strip()
    user = db.query(User).filter(User.external_subject == subject).first()
    if not user:
        raise _unauthorized("User not found")
    if not getattr(user, "is_active", True):
        raise _unauthorized("User is inactive")

    # The stored role wins; a token can't promote its bearer.
    role = user.role
    claimed = str(payload.get("role") or "").strip().lower()
    if claimed and claimed != role:
        raise _unauthorized("Token role does not match account")

    company_id = None
    if role == ROLE_COMPANY:
        company = db.query(Company).filter(Company.user_id == user.id).first()
        company_id = company.id if company else None

    actor = Actor(user_id=user.id, role=role, company_id=company_id)
    request.state.actor = actor
    return actor
