# app/core/security.py
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings


# -------------------------
# Bearer token verification
# -------------------------
def _require_jwt_secret() -> None:
    if not settings.JWT_SECRET or not settings.JWT_SECRET.strip():
        raise RuntimeError("JWT_SECRET must be set (auth is required).")


def decode_token(token: str) -> dict[str, Any]:
    _require_jwt_secret()
    # Let callers decide how to handle JWTError
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def verify_access_claims(token: str) -> dict[str, Any]:
    """
    Verify signature + expiry and return the identity claims (`sub`, `role`).
    Raises ValueError for anything unusable.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise ValueError("Invalid or expired token")

    if not str(payload.get("sub") or "").strip():
        raise ValueError("Token missing subject")
    return payload


def create_access_token(subject: str, role: str, *, expires_in_seconds: int = 900) -> str:
    """
    Only used by tests and local tooling; production tokens come from the identity provider.
    """
    _require_jwt_secret()

    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in_seconds)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# -------------------------
# Opaque tokens / audit hashes
# -------------------------
def generate_upload_token() -> str:
    """
    256 bits of entropy. The raw value is returned to the client once;
    storage only ever sees its hash.
    """
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return sha256(token.encode("utf-8")).hexdigest()


def hash_signed_url(url: str) -> str:
    """
    Audit fingerprint of an issued link. The URL itself is a bearer credential and is never stored.
    """
    return sha256(url.encode("utf-8")).hexdigest()


def constant_time_equals(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return secrets.compare_digest(a, b)
